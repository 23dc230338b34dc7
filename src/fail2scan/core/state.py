import json, logging
from dataclasses import dataclass, field
from pathlib import Path

from ..utils.io import write_text_atomic

log = logging.getLogger("fail2scan.state")

DEFAULT_STATE_FILE = Path.home() / ".fail2scan_state.json"


@dataclass
class QueueState:
    """
    What survives a restart: addresses queued/executing and their
    earliest-allowed-rescan times (epoch seconds).
    """

    in_flight: set[str] = field(default_factory=set)
    retry_after: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"in_flight": sorted(self.in_flight), "retry_after": dict(self.retry_after)}

    @classmethod
    def from_dict(cls, data: dict) -> "QueueState":
        seen = data.get("in_flight")
        retry = data.get("retry_after")
        return cls(
            in_flight={str(ip) for ip in seen} if isinstance(seen, list) else set(),
            retry_after={
                str(ip): int(ts) for ip, ts in retry.items()
                if isinstance(ts, (int, float))
            } if isinstance(retry, dict) else {},
        )

    def prune(self, now: int, active: set[str] | frozenset[str] = frozenset()) -> None:
        """Forget expired cooldowns and in-flight markers with no live job."""
        self.retry_after = {ip: ts for ip, ts in self.retry_after.items() if ts > now}
        self.in_flight &= set(active)


class StateStore:
    def __init__(self, path: Path = DEFAULT_STATE_FILE) -> None:
        self.path = Path(path)

    def load(self) -> QueueState:
        """Missing or unreadable state is an empty state, never an error."""
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return QueueState()
        except (OSError, ValueError) as exc:
            log.warning("ignoring unreadable state file %s: %s", self.path, exc)
            return QueueState()
        if not isinstance(data, dict):
            log.warning("ignoring malformed state file %s", self.path)
            return QueueState()
        return QueueState.from_dict(data)

    def save(self, state: QueueState) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
            write_text_atomic(self.path, json.dumps(state.to_dict(), indent=2))
        except OSError as exc:
            log.warning("could not persist state to %s: %s", self.path, exc)
            return False
        return True
