from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import List, Dict, Any, Optional


class Fail2ScanError(Exception):
    """Base class for errors raised by fail2scan."""


class PrerequisiteError(Fail2ScanError):
    """A required external tool is not installed."""

    def __init__(self, tool: str) -> None:
        super().__init__(f"Missing required binary: {tool}")
        self.tool = tool


class OutputDirectoryError(Fail2ScanError):
    """No output directory could be created, neither primary nor fallback."""


class WatchError(Fail2ScanError):
    """The log's directory cannot be watched."""


class AddressState(Enum):
    IDLE     = auto()
    QUEUED   = auto()
    RUNNING  = auto()
    COOLDOWN = auto()


@dataclass
class ToolRun:
    exit_status: Optional[int]
    stdout: str = ""
    stderr: str = ""
    error: Optional[str] = None     # spawn failure / timeout

    @property
    def ok(self) -> bool:
        return self.exit_status == 0

    def combined(self) -> str:
        """stdout followed by a demarcated STDERR block (only if there is one)."""
        err = self.stderr or self.error or ""
        return self.stdout + (f"\n\nSTDERR:\n{err}" if err else "")


@dataclass
class ToolOutcome:
    ok: bool
    path: str
    args: Optional[str] = None
    err: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"ok": self.ok, "path": self.path}
        if self.args is not None:
            data["args"] = self.args
        if self.err:
            data["err"] = self.err
        return data


@dataclass
class ScanResult:
    ip: str
    ts: str
    out_dir: Path
    cmds: Dict[str, ToolOutcome] = field(default_factory=dict)
    open_ports: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ip": self.ip,
            "ts": self.ts,
            "cmds": {name: o.to_dict() for name, o in self.cmds.items()},
            "open_ports": list(self.open_ports),
        }


@dataclass
class ScanRecord:
    date: str
    scan: str
    files: Dict[str, Any]           # file name -> text, parsed JSON, or None
