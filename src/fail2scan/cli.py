"""Fail2Scan CLI
---------------
Entry‑point for the Fail2Scan daemon.
Watches a fail2ban log and scans every banned address, plus one‑shot
commands for a single scan and for browsing written results.
"""

import json
import logging
import signal
import threading
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .core.config import Settings, load_settings
from .core.executor import ScanExecutor
from .core.models import PrerequisiteError, WatchError
from .core.queue import ScanQueue
from .core.results import list_scans, load_scan
from .core.state import StateStore
from .scanners import check_prerequisites
from .utils.logs import configure_logging
from .watchers.bans import handle_line
from .watchers.logtail import LogTail

# ─────────────────────────────────────────────────────────────────────────────
# Globals & singletons
# ─────────────────────────────────────────────────────────────────────────────

app: typer.Typer = typer.Typer(add_completion=False, rich_markup_mode="rich")
console: Console = Console()
log = logging.getLogger("fail2scan")

EXIT_PREREQUISITE = 2

# ─────────────────────────────────────────────────────────────────────────────
# Helper functions (not exposed as CLI commands)
# ─────────────────────────────────────────────────────────────────────────────


def _settings(verbose: bool = False, **overrides) -> Settings:
    try:
        settings = load_settings(**overrides)
    except ValueError as exc:
        console.print(f"[red]{exc}[/]")
        raise typer.Exit(code=1)
    configure_logging(
        "DEBUG" if verbose else "INFO",
        status_log=settings.status_log,
        quiet=settings.quiet,
        console=console,
    )
    return settings


def _require_tools() -> None:
    try:
        check_prerequisites()
    except PrerequisiteError as exc:
        console.print(f"[bold red]{exc}[/]")
        raise typer.Exit(code=EXIT_PREREQUISITE)


def _build_queue(settings: Settings) -> ScanQueue:
    executor = ScanExecutor(
        settings.out_root,
        nmap_args=settings.nmap_args,
        fallback_root=settings.fallback_root,
    )
    return ScanQueue(
        executor.run,
        StateStore(settings.state_file),
        concurrency=settings.concurrency,
        ttl=settings.rescan_ttl,
        failure_cooldown=settings.failure_cooldown,
    )


def _concurrency(concurrency: Optional[int], cores: Optional[int]) -> Optional[int]:
    # --cores wins over --concurrency
    return cores or concurrency or None


def _install_stop_handlers(stop: threading.Event) -> None:
    def _handler(signum, frame):
        log.info("Shutting down Fail2Scan (signal %d)...", signum)
        stop.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)

# ─────────────────────────────────────────────────────────────────────────────
# Typer commands
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def watch(
    log_path: Optional[Path] = typer.Option(None, "--log", help="fail2ban log to follow."),
    out: Optional[Path] = typer.Option(None, "--out", help="Root directory for scan output."),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", min=1, help="Parallel scans."),
    cores: Optional[int] = typer.Option(None, "--cores", min=1, help="Override --concurrency."),
    nmap_args: Optional[str] = typer.Option(None, "--nmap-args", help="nmap argument string."),
    state_file: Optional[Path] = typer.Option(None, "--state-file", help="Queue state file."),
    quiet: bool = typer.Option(False, "--quiet", help="No console logging."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Follow the log and scan every banned address."""
    settings = _settings(
        verbose,
        log_path=log_path,
        out_root=out,
        concurrency=_concurrency(concurrency, cores),
        nmap_args=nmap_args,
        state_file=state_file,
        quiet=quiet or None,
    )
    _require_tools()

    queue = _build_queue(settings)
    tail = LogTail(settings.log_path, lambda line: handle_line(line, queue.enqueue))
    log.info(
        "Fail2Scan started. Watching %s -> output %s, concurrency %d",
        settings.log_path, settings.out_root, queue.concurrency,
    )

    try:
        tail.start()
    except WatchError as exc:
        console.print(f"[bold red]{exc}[/]")
        raise typer.Exit(code=1)

    stop = threading.Event()
    _install_stop_handlers(stop)
    try:
        stop.wait()
    finally:
        tail.close()
        if not queue.wait_idle(timeout=settings.shutdown_grace):
            log.warning("exiting with %d scan(s) still running", queue.running)


@app.command()
def scan(
    ip: str = typer.Argument(..., help="Address to scan once."),
    out: Optional[Path] = typer.Option(None, "--out", help="Root directory for scan output."),
    nmap_args: Optional[str] = typer.Option(None, "--nmap-args", help="nmap argument string."),
    state_file: Optional[Path] = typer.Option(None, "--state-file", help="Queue state file."),
    quiet: bool = typer.Option(False, "--quiet", help="No console logging."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Scan a single address and exit (no log watching)."""
    settings = _settings(
        verbose,
        out_root=out,
        concurrency=1,
        nmap_args=nmap_args,
        state_file=state_file,
        quiet=quiet or None,
    )
    _require_tools()

    queue = _build_queue(settings)
    if not queue.enqueue(ip):
        console.print(f"[yellow]{ip} was scanned recently; skipping.[/]")
        return
    queue.wait_idle()


@app.command("list")
def list_cmd(
    out: Optional[Path] = typer.Option(None, "--out", help="Root directory for scan output."),
) -> None:
    """List written scans by date."""
    root = out or load_settings().out_root
    listing = list_scans(root)
    if not listing:
        console.print(f"[yellow]No scans under {root}.[/]")
        return
    table = Table("date", "scans")
    for date, names in listing.items():
        table.add_row(date, "\n".join(names) or "-")
    console.print(table)


@app.command()
def show(
    name: str = typer.Argument(..., help="Scan directory name, e.g. 203.0.113.7_2025-10-12T10-00-00-000Z"),
    out: Optional[Path] = typer.Option(None, "--out", help="Root directory for scan output."),
    raw: bool = typer.Option(False, "--raw", help="Dump every artifact as JSON."),
) -> None:
    """Show one scan's summary and raw captures."""
    root = out or load_settings().out_root
    record = load_scan(root, name)
    if record is None:
        console.print(f"[red]scan not found: {name}[/]")
        raise typer.Exit(code=1)

    if raw:
        console.print_json(data={"date": record.date, "scan": record.scan, "files": record.files})
        return

    summary = record.files.get("summary.json")
    if isinstance(summary, dict):
        console.print_json(data=summary)
    for fname, content in record.files.items():
        if fname == "summary.json":
            continue
        console.rule(fname)
        console.print(content if isinstance(content, str) else json.dumps(content), markup=False)

# ─────────────────────────────────────────────────────────────────────────────
# python -m fail2scan.cli entry‑point fallback
# ─────────────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    app()
