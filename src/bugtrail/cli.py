"""CLI for the bugtrail defect tracker.

Convention-based: discovers .bugtrail/ by walking up from cwd.

Usage:
    bugtrail init                                  # Initialize .bugtrail/ in cwd
    bugtrail create "Crash on save" --severity=high
    bugtrail show <id>                             # Show bug details
    bugtrail list --status=open --sort-by=severity # Filter, sort, page
    bugtrail update <id> --status=resolved         # Update bug
    bugtrail delete <id>                           # Hard delete
    bugtrail stats --tag=ui                        # Aggregate statistics
    bugtrail dashboard                             # Serve the JSON API
"""

from __future__ import annotations

import click

from bugtrail import __version__
from bugtrail.cli_commands import admin, bugs


@click.group()
@click.version_option(version=__version__, prog_name="bugtrail")
@click.option("--actor", default="cli", help="Default reporter identity (default: cli)")
@click.pass_context
def cli(ctx: click.Context, actor: str) -> None:
    """bugtrail defect tracker."""
    ctx.ensure_object(dict)
    ctx.obj["actor"] = actor


admin.register(cli)
bugs.register(cli)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
