"""One scan job: output directory, the three probes, and ``summary.json``."""

import json
import logging
import os
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from ..scanners import nmap as nmap_scan, dig as dig_scan, whois as whois_scan
from ..utils.io import run_subprocess, sanitize_filename, write_text_atomic
from .models import ScanResult, ToolOutcome, ToolRun, OutputDirectoryError

log = logging.getLogger("fail2scan.executor")

DIR_MODE = 0o750
FALLBACK_ROOT = Path("/tmp/fail2scan")
SUMMARY = "summary.json"


def _iso(now: datetime) -> str:
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def scan_dir_name(ip: str, ts: str) -> str:
    return f"{sanitize_filename(ip)}_{ts.replace(':', '-').replace('.', '-')}"


class ScanExecutor:
    def __init__(
        self,
        out_root: Path,
        nmap_args: str = nmap_scan.ARGS,
        fallback_root: Path = FALLBACK_ROOT,
        runner: Callable[..., ToolRun] = run_subprocess,
        nmap_timeout: float | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.out_root = Path(out_root)
        self.fallback_root = Path(fallback_root)
        self.nmap_args = nmap_args
        self.runner = runner
        self.nmap_timeout = nmap_timeout
        self.clock = clock

    def make_output_dir(self, ip: str, now: datetime) -> Path:
        rel = Path(now.strftime("%Y-%m-%d")) / scan_dir_name(ip, _iso(now))
        try:
            target = self.out_root / rel
            target.mkdir(parents=True, exist_ok=True, mode=DIR_MODE)
            return target
        except OSError as exc:
            log.warning("cannot create %s (%s), falling back to %s",
                        self.out_root / rel, exc, self.fallback_root)
        try:
            target = self.fallback_root / rel
            target.mkdir(parents=True, exist_ok=True, mode=DIR_MODE)
            return target
        except OSError as exc:
            raise OutputDirectoryError(f"no output directory for {ip}: {exc}") from exc

    def run(self, ip: str) -> ScanResult:
        now = self.clock()
        out_dir = self.make_output_dir(ip, now)
        result = ScanResult(ip=ip, ts=_iso(now), out_dir=out_dir)

        probes = (
            ("nmap", nmap_scan.ARTIFACT,
             lambda: nmap_scan.scan(ip, out_dir, self.nmap_args, self.runner, self.nmap_timeout)),
            ("dig", dig_scan.ARTIFACT, lambda: dig_scan.scan(ip, out_dir, self.runner)),
            ("whois", whois_scan.ARTIFACT, lambda: whois_scan.scan(ip, out_dir, self.runner)),
        )
        for name, artifact, probe in probes:
            try:
                result.cmds[name] = probe()
            except Exception as exc:
                log.error("%s failed for %s: %s", name, ip, exc)
                result.cmds[name] = ToolOutcome(ok=False, path=artifact, err=str(exc))

        # partial nmap output still counts when the tool itself failed
        result.open_ports = nmap_scan.open_ports(out_dir / nmap_scan.ARTIFACT)

        try:
            write_text_atomic(out_dir / SUMMARY, json.dumps(result.to_dict(), indent=2))
        except OSError as exc:
            log.error("could not write summary for %s: %s", ip, exc)
        try:
            os.chmod(out_dir, DIR_MODE)
        except OSError:
            log.debug("chmod %s failed", out_dir)

        log.info("Scan written for %s -> %s", ip, out_dir)
        return result
