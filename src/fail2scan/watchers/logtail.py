"""Follow one append-only log across rotation and truncation."""

import logging
import os
import threading
from collections.abc import Callable
from pathlib import Path
from typing import BinaryIO

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..core.models import WatchError

log = logging.getLogger("fail2scan.tail")

READ_CHUNK = 64 * 1024


class _PathEvents(FileSystemEventHandler):
    def __init__(self, tail: "LogTail") -> None:
        self.tail = tail
        self.target = os.path.join(str(tail.path.parent.resolve()), tail.path.name)

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        paths = {os.path.abspath(os.fsdecode(event.src_path))}
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.add(os.path.abspath(os.fsdecode(dest)))
        if self.target in paths:
            self.tail.notify()


class LogTail:
    """
    Calls ``on_line`` once per complete, non-blank line appended to ``path``.

    Cursor: ``offset`` (bytes consumed), ``identity`` ((st_dev, st_ino) or
    None) and a partial-line buffer. A change of identity means rotation,
    a size below ``offset`` means truncation; both restart from byte 0.
    Read passes never overlap: a notification that arrives mid-pass makes
    the running pass go round again.
    """

    def __init__(self, path: str | Path, on_line: Callable[[str], None]) -> None:
        self.path = Path(path)
        self.on_line = on_line
        self.offset = 0
        self.identity: tuple[int, int] | None = None
        self._buf = b""
        self._pass_lock = threading.Lock()
        self._flag_lock = threading.Lock()
        self._dirty = False
        self._closed = False
        self._observer = None

        try:
            st = os.stat(self.path)
        except OSError:
            log.info("%s does not exist yet; waiting for it", self.path)
        else:
            self.identity = (st.st_dev, st.st_ino)
            self.offset = st.st_size

    def start(self) -> None:
        parent = self.path.parent.resolve()
        if not parent.is_dir():
            raise WatchError(f"cannot watch {self.path}: {parent} is not a directory")
        observer = Observer()
        try:
            observer.schedule(_PathEvents(self), str(parent), recursive=False)
            observer.daemon = True
            observer.start()
        except OSError as exc:
            raise WatchError(f"cannot watch {parent}: {exc}") from exc
        self._observer = observer
        log.info("Watching %s from offset %d", self.path, self.offset)
        self.notify()

    def close(self) -> None:
        self._closed = True
        if self._observer is not None:
            try:
                self._observer.stop()
                self._observer.join(timeout=5)
            except RuntimeError:
                log.debug("observer for %s was not running", self.path)
            self._observer = None

    def notify(self) -> None:
        """Process pending changes; safe to call from any thread at any time."""
        with self._flag_lock:
            self._dirty = True
        # if another thread holds the pass lock, its loop will see _dirty
        while not self._closed and self._pass_lock.acquire(blocking=False):
            try:
                while not self._closed:
                    with self._flag_lock:
                        if not self._dirty:
                            break
                        self._dirty = False
                    self._pass()
            finally:
                self._pass_lock.release()
            # a notify may have landed between the last check and release
            with self._flag_lock:
                if not self._dirty:
                    return

    # ------------- state machine -------------

    def _reset(self, identity: tuple[int, int] | None) -> None:
        self.identity = identity
        self.offset = 0
        self._buf = b""

    def _pass(self) -> None:
        # stat and read through one descriptor so a rotation in between
        # cannot pair the old offset with the new file
        try:
            fh = open(self.path, "rb")
        except FileNotFoundError:
            if self.identity is not None:
                log.info("%s disappeared; waiting for it to come back", self.path)
            self._reset(None)
            return
        except OSError as exc:
            log.debug("open %s failed: %s", self.path, exc)
            return

        with fh:
            try:
                st = os.fstat(fh.fileno())
            except OSError as exc:
                log.debug("stat %s failed: %s", self.path, exc)
                return

            identity = (st.st_dev, st.st_ino)
            if self.identity is None:
                self._reset(identity)
            elif identity != self.identity:
                log.info("%s rotated; reading new file from the start", self.path)
                self._reset(identity)

            if st.st_size < self.offset:
                log.info("%s truncated; reading from the start", self.path)
                self._reset(identity)
            if st.st_size == self.offset:
                return

            try:
                self._read(fh, st.st_size)
            except OSError as exc:
                log.debug("read %s failed: %s", self.path, exc)

    def _read(self, fh: BinaryIO, size: int) -> None:
        fh.seek(self.offset)
        remaining = size - self.offset
        while remaining > 0 and not self._closed:
            chunk = fh.read(min(READ_CHUNK, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            self.offset += len(chunk)
            self._buf += chunk
            self._emit_complete_lines()

    def _emit_complete_lines(self) -> None:
        *lines, self._buf = self._buf.split(b"\n")
        for raw in lines:
            if self._closed:
                return
            line = raw.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            try:
                self.on_line(line)
            except Exception as exc:
                log.error("line handler failed: %s", exc)
