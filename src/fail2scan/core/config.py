import os, logging
from dataclasses import dataclass, replace
from pathlib import Path

from dotenv import load_dotenv

from ..scanners.nmap import ARGS as NMAP_ARGS
from .executor import FALLBACK_ROOT
from .queue import RESCAN_TTL, FAILURE_COOLDOWN, default_concurrency
from .state import DEFAULT_STATE_FILE

log = logging.getLogger("fail2scan")

DEFAULT_LOG = Path("/var/log/fail2ban.log")
DEFAULT_OUT = Path("/var/log/fail2scan")
DEFAULT_STATUS_LOG = Path.home() / ".fail2scan.log"
SHUTDOWN_GRACE = 10.0


@dataclass(frozen=True)
class Settings:
    log_path: Path = DEFAULT_LOG
    out_root: Path = DEFAULT_OUT
    fallback_root: Path = FALLBACK_ROOT
    concurrency: int = 1
    nmap_args: str = NMAP_ARGS
    state_file: Path = DEFAULT_STATE_FILE
    status_log: Path | None = DEFAULT_STATUS_LOG
    rescan_ttl: int = RESCAN_TTL
    failure_cooldown: int = FAILURE_COOLDOWN
    shutdown_grace: float = SHUTDOWN_GRACE
    quiet: bool = False


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    return Path(raw).expanduser() if raw else default


def load_settings(**overrides) -> Settings:
    """
    Environment (``FAIL2SCAN_*``, optionally from a ``.env`` file) first,
    then every override that is not None (CLI options).
    """
    load_dotenv()

    status_raw = os.getenv("FAIL2SCAN_STATUS_LOG")
    settings = Settings(
        log_path=_env_path("FAIL2SCAN_LOG", DEFAULT_LOG),
        out_root=_env_path("FAIL2SCAN_OUT", DEFAULT_OUT),
        fallback_root=_env_path("FAIL2SCAN_FALLBACK_OUT", FALLBACK_ROOT),
        concurrency=_env_int("FAIL2SCAN_CONCURRENCY", 0) or default_concurrency(),
        nmap_args=os.getenv("FAIL2SCAN_NMAP_ARGS") or NMAP_ARGS,
        state_file=_env_path("FAIL2SCAN_STATE_FILE", DEFAULT_STATE_FILE),
        # an empty FAIL2SCAN_STATUS_LOG turns the status file off
        status_log=DEFAULT_STATUS_LOG if status_raw is None
        else (Path(status_raw).expanduser() if status_raw else None),
        rescan_ttl=_env_int("FAIL2SCAN_TTL", RESCAN_TTL),
        failure_cooldown=_env_int("FAIL2SCAN_FAILURE_COOLDOWN", FAILURE_COOLDOWN),
        shutdown_grace=_env_float("FAIL2SCAN_SHUTDOWN_GRACE", SHUTDOWN_GRACE),
        quiet=_env_bool("FAIL2SCAN_QUIET", False),
    )

    settings = replace(settings, **{k: v for k, v in overrides.items() if v is not None})
    if settings.concurrency < 1:
        raise ValueError("concurrency must be >= 1")
    log.debug("settings: %s", settings)
    return settings
