# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Main CLI entry point for the NetBird Events Exporter.
"""

import os
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from ..activity.codes import known_codes, name_for
from ..config import Config
from ..database.event_reader import EventReader
from ..database.sqlite_client import SQLiteClient
from ..delivery.loki_client import LokiClient
from ..errors import ExporterError
from ..processing import server

# Create console for rich output
console = Console()

# Pass context through Click
pass_config = click.make_pass_decorator(Config, ensure=True)


@click.group(invoke_without_command=True)
@click.option(
    "--version",
    is_flag=True,
    help="Show version and exit"
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="NETBIRD_EXPORTER_CONFIG",
    default=None,
    help="YAML config file"
)
@click.option(
    "--loki-url",
    default=None,
    help="Loki base URL (overrides LOKI_URL)"
)
@click.option(
    "--db-path",
    default=None,
    help="NetBird events.db path (overrides EVENTS_DB_PATH)"
)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug logging"
)
@click.pass_context
def cli(ctx, version: bool, config_path: Optional[Path], loki_url: Optional[str],
        db_path: Optional[str], debug: bool):
    """
    NetBird Events Exporter - ship NetBird activity events to Loki.

    Examples:
        netbird-exporter run
        netbird-exporter --loki-url http://localhost:3100 ping
        netbird-exporter status
        netbird-exporter activities --code 57
    """
    if version:
        click.echo(f"NetBird Events Exporter version {__version__}")
        ctx.exit()

    config = Config(config_path=config_path)
    if loki_url:
        config.loki_url = loki_url
    if db_path:
        config.db_path = db_path
    if debug:
        config.log_level = "DEBUG"

    ctx.obj = config

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@pass_config
def run(config: Config):
    """Run the exporter until stopped."""
    errors = config.validate()
    if errors:
        for error in errors:
            console.print(f"[red]Configuration error:[/red] {error}")
        sys.exit(1)

    sys.exit(server.main(config))


@cli.command()
@pass_config
def ping(config: Config):
    """Check whether Loki is ready."""
    client = LokiClient(config.loki_url, ready_timeout=config.ready_timeout)
    try:
        ready = client.is_ready()
    finally:
        client.close()

    if ready:
        console.print(f"[green]✓[/green] Loki is ready at {config.loki_url}")
    else:
        console.print(f"[red]✗[/red] Loki is not ready at {config.loki_url}", style="bold red")
        sys.exit(1)


@cli.command()
@pass_config
def status(config: Config):
    """Show events database and Loki status."""
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Check", style="cyan")
    table.add_column("Value")

    ok = True
    sqlite_client = SQLiteClient(config.db_path)
    table.add_row("Events DB", str(sqlite_client.db_path))
    try:
        sqlite_client.verify()
        reader = EventReader(sqlite_client)
        table.add_row("Latest event ID", str(reader.get_max_id()))
        table.add_row("Event count", str(reader.count_events()))
    except ExporterError as e:
        ok = False
        table.add_row("Database", f"[red]{e}[/red]")

    client = LokiClient(config.loki_url, ready_timeout=config.ready_timeout)
    try:
        ready = client.is_ready()
    finally:
        client.close()
    table.add_row("Loki push URL", client.push_url)
    table.add_row("Loki ready", "[green]yes[/green]" if ready else "[red]no[/red]")
    ok = ok and ready

    console.print(table)
    if not ok:
        sys.exit(1)


@cli.command()
@click.option(
    "--code",
    type=int,
    default=None,
    help="Resolve a single activity code"
)
def activities(code: Optional[int]):
    """List the known NetBird activity codes."""
    if code is not None:
        click.echo(name_for(code))
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Code", justify="right", style="cyan")
    table.add_column("Activity")
    for activity_code in known_codes():
        table.add_row(str(activity_code), name_for(activity_code))
    console.print(table)


def main():
    """Main entry point for the CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        if os.environ.get("NETBIRD_EXPORTER_DEBUG"):
            console.print_exception()
        else:
            console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
