from pathlib import Path
import logging
from collections.abc import Callable

from ..utils.io import run_subprocess
from ..core.models import ToolRun, ToolOutcome

log = logging.getLogger("fail2scan.whois")

ARTIFACT = "whois.txt"
TIMEOUT = 120


def scan(
    ip: str,
    out_dir: Path,
    runner: Callable[..., ToolRun] = run_subprocess,
    timeout: float | None = TIMEOUT,
) -> ToolOutcome:
    run = runner(["whois", ip], timeout=timeout)
    (out_dir / ARTIFACT).write_text(run.combined(), encoding="utf-8")
    if not run.ok:
        log.warning("whois failed for %s (exit=%s)", ip, run.exit_status)
    return ToolOutcome(
        ok=run.ok,
        path=ARTIFACT,
        err=None if run.ok else (run.error or f"exit status {run.exit_status}"),
    )
