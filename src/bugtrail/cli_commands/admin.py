"""CLI commands for project setup and serving: init, dashboard."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from bugtrail.core import (
    BUGTRAIL_DIR_NAME,
    DB_FILENAME,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    RECENT_WINDOW_HOURS,
    BugDB,
    read_config,
    write_config,
)


@click.command()
@click.option("--prefix", default="bug", help="ID prefix for bugs (default: bug)")
def init(prefix: str) -> None:
    """Initialize .bugtrail/ in the current directory."""
    cwd = Path.cwd()
    bugtrail_dir = cwd / BUGTRAIL_DIR_NAME

    if bugtrail_dir.exists():
        click.echo(f"{BUGTRAIL_DIR_NAME}/ already exists in {cwd}")
        # Still ensure DB is initialized
        config = read_config(bugtrail_dir)
        with BugDB(bugtrail_dir / DB_FILENAME, prefix=config.get("prefix", "bug")) as db:
            db.initialize()
        return

    bugtrail_dir.mkdir()
    write_config(
        bugtrail_dir,
        {
            "prefix": prefix,
            "version": 1,
            "default_page_size": DEFAULT_PAGE_SIZE,
            "max_page_size": MAX_PAGE_SIZE,
            "recent_window_hours": RECENT_WINDOW_HOURS,
        },
    )
    with BugDB(bugtrail_dir / DB_FILENAME, prefix=prefix) as db:
        db.initialize()

    click.echo(f"Initialized {BUGTRAIL_DIR_NAME}/ in {cwd}")
    click.echo(f"  Prefix: {prefix}")
    click.echo(f"  Database: {bugtrail_dir / DB_FILENAME}")


@click.command()
@click.option("--port", default=8377, type=int, help="Server port (default 8377)")
def dashboard(port: int) -> None:
    """Serve the JSON API (requires bugtrail[dashboard])."""
    try:
        from bugtrail.dashboard import main as dashboard_main
    except ImportError:
        click.echo('Dashboard requires extra dependencies. Install with: pip install "bugtrail[dashboard]"', err=True)
        sys.exit(1)
    try:
        dashboard_main(port=port)
    except FileNotFoundError:
        click.echo(f"No {BUGTRAIL_DIR_NAME}/ found. Run 'bugtrail init' first.", err=True)
        sys.exit(1)


def register(cli: click.Group) -> None:
    """Register admin commands with the CLI group."""
    cli.add_command(init)
    cli.add_command(dashboard)
