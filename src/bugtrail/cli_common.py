"""Shared CLI helpers.

Provides ``get_db()`` and ``fail()`` so the ``cli_commands/*.py`` modules
can reach them without importing ``cli.py``.
"""

from __future__ import annotations

import json as json_mod
import sys
from typing import NoReturn

import click

from bugtrail.core import BUGTRAIL_DIR_NAME, BugDB


def get_db() -> BugDB:
    """Discover .bugtrail/ and return an initialized BugDB."""
    try:
        return BugDB.from_project()
    except FileNotFoundError:
        click.echo(f"No {BUGTRAIL_DIR_NAME}/ found. Run 'bugtrail init' first.", err=True)
        sys.exit(1)


def fail(message: str, *, as_json: bool) -> NoReturn:
    """Report an error in the requested output format and exit 1."""
    if as_json:
        click.echo(json_mod.dumps({"error": message}))
    else:
        click.echo(f"Error: {message}", err=True)
    sys.exit(1)
