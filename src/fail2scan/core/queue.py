"""Deduplicating, concurrency-bounded scan queue with a rescan cooldown."""

import logging
import os
import threading
import time
from collections import deque
from collections.abc import Callable

from .models import AddressState, OutputDirectoryError
from .state import QueueState, StateStore

log = logging.getLogger("fail2scan.queue")

RESCAN_TTL = 60 * 60
FAILURE_COOLDOWN = 5 * 60


def default_concurrency() -> int:
    return os.cpu_count() or 1


class ScanQueue:
    """
    Owns every piece of queue bookkeeping. ``enqueue`` and job completion
    both go through ``self._lock``, so an address moves IDLE → QUEUED →
    RUNNING → COOLDOWN → IDLE in single atomic steps.
    """

    def __init__(
        self,
        run_job: Callable[[str], object],
        store: StateStore,
        concurrency: int | None = None,
        ttl: int = RESCAN_TTL,
        failure_cooldown: int = FAILURE_COOLDOWN,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.run_job = run_job
        self.store = store
        self.concurrency = concurrency or default_concurrency()
        if self.concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.ttl = ttl
        self.failure_cooldown = failure_cooldown
        self.clock = clock

        self.state: QueueState = store.load()
        # markers left by a previous process have no job behind them
        self.state.prune(int(clock()))
        self._pending: deque[str] = deque()
        self._running: set[str] = set()
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)

    # ------------- public API -------------

    @property
    def running(self) -> int:
        with self._lock:
            return len(self._running)

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def state_of(self, ip: str) -> AddressState:
        with self._lock:
            return self._state_of(ip, int(self.clock()))

    def enqueue(self, ip: str) -> bool:
        """Admit ``ip`` unless it is already active or still cooling down."""
        with self._lock:
            now = int(self.clock())
            current = self._state_of(ip, now)
            if current in (AddressState.QUEUED, AddressState.RUNNING):
                log.info("IP already queued or running: %s", ip)
                return False
            if current is AddressState.COOLDOWN:
                log.info("IP in cooldown until %s: %s", self.state.retry_after[ip], ip)
                return False

            self._pending.append(ip)
            self.state.in_flight.add(ip)
            self._persist()
            log.info("Queued %s (pending=%d running=%d)", ip, len(self._pending), len(self._running))
            self._dispatch()
            return True

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until nothing is pending or running; False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._idle:
            while self._pending or self._running:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._idle.wait(remaining)
            return True

    # ------------- internals (call with self._lock held) -------------

    def _state_of(self, ip: str, now: int) -> AddressState:
        if ip in self._running:
            return AddressState.RUNNING
        if ip in self._pending:
            return AddressState.QUEUED
        if self.state.retry_after.get(ip, 0) > now:
            return AddressState.COOLDOWN
        return AddressState.IDLE

    def _persist(self) -> None:
        self.state.prune(int(self.clock()), self._running | set(self._pending))
        if not self.store.save(self.state):
            log.warning("state not persisted; continuing with in-memory state")

    def _dispatch(self) -> None:
        while len(self._running) < self.concurrency and self._pending:
            ip = self._pending.popleft()
            self._running.add(ip)
            worker = threading.Thread(
                target=self._work, args=(ip,), name=f"scan-{ip}", daemon=True
            )
            worker.start()

    def _work(self, ip: str) -> None:
        cooldown = self.ttl
        try:
            log.info("Scanning %s", ip)
            self.run_job(ip)
            log.info("Done %s", ip)
        except OutputDirectoryError as exc:
            log.error("Abandoning scan of %s: %s", ip, exc)
            cooldown = self.failure_cooldown
        except Exception as exc:
            log.exception("Error scanning %s: %s", ip, exc)
        finally:
            self._complete(ip, cooldown)

    def _complete(self, ip: str, cooldown: int) -> None:
        with self._lock:
            self.state.retry_after[ip] = int(self.clock()) + cooldown
            self.state.in_flight.discard(ip)
            self._running.discard(ip)
            self._persist()
            self._dispatch()
            self._idle.notify_all()
