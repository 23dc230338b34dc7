from pathlib import Path
import os, re, logging
from collections.abc import Callable

import nmap

from ..utils.io import tool_exists, run_subprocess
from ..core.models import ToolRun, ToolOutcome, PrerequisiteError

log = logging.getLogger("fail2scan.nmap")

ARGS = "-sS -Pn -p- -T4 -sV"
ARTIFACT = "nmap.txt"

_OPEN_PORT = re.compile(r"^\d+/tcp\s+open")


def version() -> str:
    """Locate nmap through python-nmap and return its version string."""
    if not tool_exists("nmap"):
        raise PrerequisiteError("nmap")
    try:
        scanner = nmap.PortScanner()
    except nmap.PortScannerError as exc:
        raise PrerequisiteError("nmap") from exc
    major, minor = scanner.nmap_version()
    return f"{major}.{minor}"


def is_privileged() -> bool:
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0


def build_args(args: str = ARGS, privileged: bool | None = None) -> list[str]:
    # -sS needs raw sockets; -sT is the unprivileged TCP connect scan
    if privileged is None:
        privileged = is_privileged()
    requested = args.split()
    if privileged:
        return requested
    return ["-sT" if a == "-sS" else a for a in requested]


def scan(
    ip: str,
    out_dir: Path,
    args: str = ARGS,
    runner: Callable[..., ToolRun] = run_subprocess,
    timeout: float | None = None,
) -> ToolOutcome:
    argv = build_args(args)
    artifact = out_dir / ARTIFACT
    log.info("Running nmap on %s args: %s", ip, " ".join(argv))

    run = runner(["nmap", *argv, ip], stdout_path=artifact, timeout=timeout)

    err = run.stderr or run.error
    if err:
        with open(artifact, "a", encoding="utf-8") as fh:
            fh.write(f"\n\nSTDERR:\n{err}")

    if not run.ok:
        log.warning("nmap failed for %s (exit=%s)", ip, run.exit_status)
    return ToolOutcome(
        ok=run.ok,
        path=ARTIFACT,
        args=" ".join(argv),
        err=None if run.ok else (run.error or f"exit status {run.exit_status}"),
    )


def open_ports(artifact: Path) -> list[str]:
    """Every ``<port>/tcp open`` line of an nmap text capture, trimmed."""
    try:
        text = artifact.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return []
    return [line.strip() for line in text.splitlines() if _OPEN_PORT.match(line)]
