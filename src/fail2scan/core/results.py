"""Read-only view over the scan output tree."""

import json
import logging
from pathlib import Path

from .models import ScanRecord

log = logging.getLogger("fail2scan.results")


def _subdirs(path: Path) -> list[Path]:
    try:
        return sorted(p for p in path.iterdir() if p.is_dir())
    except OSError:
        return []


def list_scans(root: Path) -> dict[str, list[str]]:
    """``{date: [scan names]}`` for every date directory under ``root``."""
    return {d.name: [s.name for s in _subdirs(d)] for d in _subdirs(Path(root))}


def _read_artifact(path: Path):
    try:
        raw = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        log.debug("cannot read %s: %s", path, exc)
        return None
    if path.suffix == ".json":
        try:
            return json.loads(raw)
        except ValueError:
            return raw
    return raw


def load_scan(root: Path, name: str) -> ScanRecord | None:
    if not name or "/" in name or "\\" in name or name in (".", ".."):
        return None
    for date_dir in _subdirs(Path(root)):
        scan_dir = date_dir / name
        if not scan_dir.is_dir():
            continue
        files = {
            f.name: _read_artifact(f)
            for f in sorted(scan_dir.iterdir())
            if f.is_file() and not f.name.startswith(".")
        }
        return ScanRecord(date=date_dir.name, scan=name, files=files)
    return None
