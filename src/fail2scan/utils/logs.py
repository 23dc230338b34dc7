import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(
    level: str = "INFO",
    status_log: Path | None = None,
    quiet: bool = False,
    console: Console | None = None,
) -> None:
    """Rich console output (unless quiet) plus an optional plain status file."""
    root = logging.getLogger("fail2scan")
    root.setLevel(level.upper())
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    if not quiet:
        root.addHandler(RichHandler(console=console, show_path=False, rich_tracebacks=True))

    if status_log is not None:
        try:
            status_log.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(status_log, encoding="utf-8")
        except OSError:
            root.debug("status log %s not writable", status_log)
        else:
            handler.setFormatter(logging.Formatter(FILE_FORMAT))
            root.addHandler(handler)

    if not root.handlers:
        root.addHandler(logging.NullHandler())
