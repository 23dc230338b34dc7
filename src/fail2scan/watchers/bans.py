import re, logging
from collections.abc import Callable

log = logging.getLogger("fail2scan")

BAN_RE = re.compile(r"\bban\b", re.IGNORECASE)
IPV4_RE = re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b")
IPV6_RE = re.compile(r"\b(?:[0-9a-fA-F]{0,4}:){2,7}[0-9a-fA-F]{0,4}\b")


def is_ban_line(line: str) -> bool:
    return BAN_RE.search(line) is not None


def extract_address(line: str) -> str | None:
    """First IPv4 literal in ``line``, else the first IPv6-looking one.

    Pattern match only: ``999.999.999.999`` comes back as-is.
    """
    v4 = IPV4_RE.search(line)
    if v4:
        return v4.group(0)
    v6 = IPV6_RE.search(line)
    if v6:
        return v6.group(0)
    return None


def handle_line(line: str, enqueue: Callable[[str], object]) -> None:
    """LogTail callback: ban filter → extraction → enqueue."""
    if not is_ban_line(line):
        return
    ip = extract_address(line)
    if not ip:
        return
    try:
        enqueue(ip)
    except Exception as exc:
        log.error("onLine handler error for %s: %s", ip, exc)
