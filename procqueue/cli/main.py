"""procqueue CLI — fan a script out over bounded worker processes.

`procqueue run worker.py -n 20 -j 4` starts worker.py twenty times, at
most four at once, and reports how each one ended.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from procqueue.config import LauncherConfig, ProcqueueSettings, resolve_log_level
from procqueue.launcher import ProcessLauncher
from procqueue.types import SpawnOptions, WorkerProcess

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="procqueue",
    help="procqueue -- launch short-lived worker processes under a concurrency ceiling.",
    no_args_is_help=True,
)


def _setup_logging(settings: ProcqueueSettings) -> None:
    logging.basicConfig(
        level=resolve_log_level(settings.log_level),
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


async def _launch_all(
    launcher: ProcessLauncher,
    script: str,
    args: list[str],
    options: SpawnOptions,
    count: int,
) -> list[WorkerProcess | BaseException]:
    futures = [launcher.submit(script, args, options) for _ in range(count)]
    results = await asyncio.gather(*futures, return_exceptions=True)
    await launcher.join()
    return results


@app.command("run")
def run(
    script: str = typer.Argument(help="Script to launch (a module name with --module)"),
    args: Optional[List[str]] = typer.Argument(None, help="Arguments passed to every worker"),
    count: int = typer.Option(1, "--count", "-n", min=1, help="How many workers to launch"),
    max_concurrency: Optional[int] = typer.Option(
        None, "--max-concurrency", "-j", help="Most workers running at once"
    ),
    module: bool = typer.Option(False, "--module", "-m", help="Run SCRIPT as a module"),
    program: bool = typer.Option(
        False, "--program", help="Run SCRIPT as an executable instead of under Python"
    ),
    cwd: Optional[Path] = typer.Option(None, "--cwd", help="Working directory for workers"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
):
    """Launch SCRIPT COUNT times and wait for every worker to exit."""
    settings = ProcqueueSettings()
    if log_level:
        settings = settings.model_copy(update={"log_level": log_level})
    _setup_logging(settings)

    try:
        if max_concurrency is None:
            config = LauncherConfig.from_settings(settings)
        else:
            config = LauncherConfig(max_concurrency=max_concurrency)
    except ValidationError as e:
        err_console.print(f"[red]Invalid configuration:[/red] {e.errors()[0]['msg']}")
        raise typer.Exit(code=2)

    options = SpawnOptions(interpreter=not program, module=module, cwd=cwd)

    async def _main() -> list[WorkerProcess | BaseException]:
        launcher = ProcessLauncher(config=config, settings=settings)
        return await _launch_all(launcher, script, list(args or []), options, count)

    results = asyncio.run(_main())

    table = Table(title=f"{script} x{count} (max {config.max_concurrency} at once)")
    table.add_column("#", justify="right")
    table.add_column("Request")
    table.add_column("PID", justify="right")
    table.add_column("State")
    table.add_column("Exit", justify="right")

    failed = 0
    for i, result in enumerate(results, start=1):
        if isinstance(result, BaseException):
            failed += 1
            table.add_row(str(i), "-", "-", "[red]failed[/red]", str(result)[:60])
            continue
        ok = result.exit_code == 0
        if not ok:
            failed += 1
        style = "green" if ok else "yellow"
        table.add_row(
            str(i),
            result.request_id,
            str(result.pid),
            f"[{style}]{result.state.value}[/{style}]",
            str(result.exit_code),
        )

    console.print(table)
    if failed:
        console.print(f"[red]{failed} of {count} worker(s) failed[/red]")
        raise typer.Exit(code=1)


@app.command("config")
def show_config():
    """Show the effective configuration."""
    settings = ProcqueueSettings()
    try:
        config = LauncherConfig.from_settings(settings)
        ceiling = str(config.max_concurrency)
    except ValidationError:
        ceiling = f"[red]invalid ({settings.max_concurrency})[/red]"

    debug = (
        f"{settings.debug_host}:{settings.debug_port}+"
        if settings.debug_port is not None else "off"
    )
    from procqueue import __version__
    console.print(Panel(
        f"[bold]procqueue v{__version__}[/bold]\n\n"
        f"Max concurrency:  {ceiling}\n"
        f"Log level:        {settings.log_level}\n"
        f"Debug ports:      {debug}",
        title="Configuration",
        border_style="cyan",
    ))


def main():
    app()
