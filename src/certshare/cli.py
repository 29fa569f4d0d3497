# src/certshare/cli.py
"""certshare Command Line Interface.

Entry point for the certshare CLI tool.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from pathlib import Path

import typer
from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError
from googleapiclient.errors import HttpError
from pydantic import ValidationError

from certshare import __version__
from certshare.contracts.errors import MonitorAlreadyRunning, SetupError, describe_error
from certshare.core.config import CertshareSettings, load_settings

__all__ = [
    "app",
    "load_settings",  # Re-exported from config for convenience
]


class View(StrEnum):
    """Monitor views."""

    TABLE = "table"
    LOGS = "logs"


app = typer.Typer(
    name="certshare",
    help="certshare: share participant Drive folders listed in a Google Sheet.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"certshare version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from .env file.

    Raises:
        typer.Exit: If explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(
                f"Error: .env file not found: {env_file}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)

    return load_dotenv(override=False)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(
        False,
        "--no-dotenv",
        help="Skip loading .env file.",
    ),
    env_file: Path | None = typer.Option(
        None,
        "--env-file",
        help="Path to .env file (skips automatic search).",
        exists=False,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """certshare: share participant Drive folders listed in a Google Sheet."""
    from certshare.core.logging import configure_logging

    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "INFO")

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho(
            "Warning: --env-file ignored because --no-dotenv is set.",
            fg=typer.colors.YELLOW,
            err=True,
        )


def _settings_or_exit(settings: Path | None, **overrides: object) -> CertshareSettings:
    """Load settings, turning every configuration problem into exit code 1."""
    try:
        return load_settings(settings.expanduser() if settings else None, **overrides)
    except (YamlParserError, YamlScannerError) as e:
        typer.echo(f"YAML syntax error in {settings}: {e.problem}", err=True)
        raise typer.Exit(1) from None
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


_SETTINGS_OPTION = typer.Option(
    None,
    "--settings",
    "-s",
    help="Path to settings YAML file.",
)


@app.command()
def worker(
    settings: Path | None = _SETTINGS_OPTION,
    loop: bool | None = typer.Option(
        None,
        "--loop/--once",
        help="Repeat cycles every poll interval, or run a single cycle.",
    ),
    dry_run: bool | None = typer.Option(
        None,
        "--dry-run/--no-dry-run",
        help="Do everything except create permissions.",
    ),
    max_per_run: int | None = typer.Option(
        None,
        "--max-per-run",
        help="Records processed per cycle at most.",
    ),
) -> None:
    """Grant folder access to the participants owned by this worker."""
    from certshare.clients.credentials import build_services
    from certshare.core.clock import SystemClock
    from certshare.core.logging import WorkerLog
    from certshare.core.shutdown import shutdown_handler_context
    from certshare.engine.processor import build_processor

    config = _settings_or_exit(settings, loop=loop, dry_run=dry_run, max_per_run=max_per_run)
    if config.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        if not config.sheet_id:
            raise SetupError("sheet_id is not configured (set SHEET_ID or CERTSHARE_SHEET_ID)")
        drive_service, sheets_service = build_services(config.credentials_path)
    except SetupError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    worklog = WorkerLog.open(
        config.logs_dir,
        shard_index=config.shard_index if config.sharded else None,
        debug=config.debug,
    )
    try:
        with shutdown_handler_context() as stop:
            processor = build_processor(config, drive_service, sheets_service, worklog, clock=SystemClock(stop))
            processor.run(stop=stop)
    except SetupError as e:
        worklog.error(f"Setup error: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None
    except HttpError as e:
        summary = describe_error(e).summary()
        worklog.error(f"Sheets Error: {summary}")
        typer.echo(f"Error reading the sheet: {summary}", err=True)
        raise typer.Exit(1) from None
    finally:
        worklog.close()


@app.command()
def monitor(
    view: View = typer.Option(
        View.TABLE,
        "--view",
        help="'table' (worker grid) or 'logs' (live tail of every worker log).",
    ),
    logs_dir: Path = typer.Option(
        Path("logs"),
        "--logs-dir",
        help="Directory holding share-*.log files.",
    ),
) -> None:
    """Watch worker progress from their log files."""
    from certshare.monitor.lock import MonitorLock

    logs_dir.mkdir(parents=True, exist_ok=True)
    try:
        with MonitorLock():
            _show(view, logs_dir)
    except MonitorAlreadyRunning as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None


@app.command()
def launch(
    workers: int = typer.Option(
        4,
        "--workers",
        "-w",
        min=1,
        help="Number of worker processes (one shard each).",
    ),
    view: View = typer.Option(
        View.LOGS,
        "--view",
        help="View shown while workers run.",
    ),
    attach: bool = typer.Option(
        False,
        "--attach",
        help="Follow existing logs without spawning workers.",
    ),
    settings: Path | None = _SETTINGS_OPTION,
    logs_dir: Path = typer.Option(
        Path("logs"),
        "--logs-dir",
        help="Directory holding share-*.log files.",
    ),
) -> None:
    """Start sharded workers and watch them."""
    from certshare.monitor.launcher import WorkerLauncher, worker_command
    from certshare.monitor.lock import MonitorLock

    logs_dir.mkdir(parents=True, exist_ok=True)
    try:
        with MonitorLock(), WorkerLauncher(workers, command=worker_command(settings)) as launcher:
            if not attach:
                typer.echo(f"Starting {workers} workers...")
                launcher.start()
            _show(view, logs_dir)
    except MonitorAlreadyRunning as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None


def _show(view: View, logs_dir: Path) -> None:
    if view is View.TABLE:
        from certshare.tui.monitor_app import MonitorApp

        MonitorApp(logs_dir).run()
        return

    from certshare.core.shutdown import shutdown_handler_context
    from certshare.monitor.tail import LiveTail, follow

    with shutdown_handler_context() as stop:
        follow(LiveTail(logs_dir), stop)
    typer.echo("Live logs stopped.")


@app.command("map-folders")
def map_folders(
    parent: str | None = typer.Option(
        None,
        "--parent",
        "-p",
        help="Parent folder id to scan (defaults to parent_folder_id).",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Where to write the mapping (defaults to folder_mapping_path).",
    ),
    depth: int = typer.Option(
        3,
        "--depth",
        min=1,
        help="Levels of sub-folders to scan.",
    ),
    settings: Path | None = _SETTINGS_OPTION,
) -> None:
    """Build the folder-name cache used by workers before live search."""
    from certshare.clients.credentials import build_services
    from certshare.clients.drive import DriveClient
    from certshare.engine.folder_map import build_folder_mapping

    config = _settings_or_exit(settings)
    parent_id = (parent or config.parent_folder_id).strip()
    if not parent_id:
        typer.echo("Error: no parent folder id (use --parent or set PARENT_FOLDER_ID)", err=True)
        raise typer.Exit(1)

    try:
        drive_service, _ = build_services(config.credentials_path)
    except SetupError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    mapping = build_folder_mapping(DriveClient(drive_service), parent_id, max_depth=depth)
    destination = output or config.folder_mapping_path
    mapping.save(destination)
    typer.echo(f"Mapped {len(mapping)} entries from {parent_id} to {destination}")


if __name__ == "__main__":
    app()
