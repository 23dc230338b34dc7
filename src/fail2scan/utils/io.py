import os, re, shutil, subprocess, tempfile, logging
from pathlib import Path
from typing import IO

from ..core.models import ToolRun

log = logging.getLogger("fail2scan")

MAX_CAPTURE_BYTES = 1024 * 1024

_HOSTILE = re.compile(r'[:/\\<>?"|* ]+')


def tool_exists(name: str) -> bool:
    return shutil.which(name) is not None


def sanitize_filename(value: str) -> str:
    return _HOSTILE.sub("_", str(value))


def _read_bounded(fh: IO[bytes], limit: int) -> str:
    fh.seek(0)
    data = fh.read(limit + 1)
    text = data[:limit].decode("utf-8", errors="replace")
    if len(data) > limit:
        text += f"\n[... output truncated at {limit} bytes]\n"
    return text


def run_subprocess(
    cmd: list[str],
    stdout_path: Path | None = None,
    timeout: float | None = None,
    max_capture: int = MAX_CAPTURE_BYTES,
) -> ToolRun:
    """Run ``cmd`` and return its exit status and (bounded) captures.

    When ``stdout_path`` is given, stdout streams straight into that file and
    ``ToolRun.stdout`` stays empty; otherwise stdout is spooled to a temp file
    and read back. stderr is always spooled. Neither capture grows past
    ``max_capture`` bytes in memory.
    """
    log.info("exec: %s", " ".join(cmd))
    with tempfile.TemporaryFile() as err_fh:
        if stdout_path is not None:
            out_fh = open(stdout_path, "wb")
        else:
            out_fh = tempfile.TemporaryFile()
        with out_fh:
            try:
                proc = subprocess.Popen(
                    cmd, stdin=subprocess.DEVNULL, stdout=out_fh, stderr=err_fh
                )
            except OSError as exc:
                log.warning("could not start %s: %s", cmd[0], exc)
                return ToolRun(None, error=f"{cmd[0]}: {exc}")

            error = None
            try:
                code = proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
                code = None
                error = f"{cmd[0]} timed out after {timeout}s"
                log.warning(error)

            stdout = "" if stdout_path is not None else _read_bounded(out_fh, max_capture)
            stderr = _read_bounded(err_fh, max_capture)

    if code not in (0, None):
        log.warning("non‑zero exit (%d) from %s stderr=%s", code, cmd[0], stderr.strip()[:200])
    return ToolRun(code, stdout=stdout, stderr=stderr, error=error)


def write_text_atomic(path: Path, text: str) -> None:
    """Write via a sibling temp file + rename so readers never see half a file."""
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise
