"""CLI commands for bug CRUD and queries: create, show, list, update, delete, stats."""

from __future__ import annotations

import json as json_mod

import click

from bugtrail.cli_common import fail, get_db
from bugtrail.core import VALID_PRIORITIES, VALID_SEVERITIES, VALID_STATUSES, Bug
from bugtrail.query import SORT_FIELDS


def _filter_options(func: click.decorators.FC) -> click.decorators.FC:
    """Attach the shared filter options used by ``list`` and ``stats``."""
    for option in reversed(
        (
            click.option("--status", default=None, help="Filter by status"),
            click.option("--severity", default=None, help="Filter by severity"),
            click.option("--priority", "-p", default=None, help="Filter by priority"),
            click.option("--search", "-s", default=None, help="Substring of title or description"),
            click.option("--tag", "-t", default=None, help="Filter by tag"),
        )
    ):
        func = option(func)
    return func


def _echo_bug_line(bug: Bug) -> None:
    click.echo(f"{bug.id} [{bug.severity}/{bug.priority}] {bug.status:<12} {bug.title}")


@click.command()
@click.argument("title")
@click.option("--description", "-d", default="", help="Description")
@click.option("--severity", type=click.Choice(VALID_SEVERITIES), default="medium", help="Severity (default medium)")
@click.option("--priority", "-p", type=click.Choice(VALID_PRIORITIES), default="medium", help="Priority (default medium)")
@click.option("--reported-by", default=None, help="Reporter (default: --actor)")
@click.option("--assignee", default=None, help="Assignee")
@click.option("--steps", default=None, help="Steps to reproduce")
@click.option("--expected", default=None, help="Expected behavior")
@click.option("--actual", default=None, help="Actual behavior")
@click.option("--tag", "-t", "tags", multiple=True, help="Tag (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def create(
    ctx: click.Context,
    title: str,
    description: str,
    severity: str,
    priority: str,
    reported_by: str | None,
    assignee: str | None,
    steps: str | None,
    expected: str | None,
    actual: str | None,
    tags: tuple[str, ...],
    as_json: bool,
) -> None:
    """Report a new bug."""
    with get_db() as db:
        try:
            bug = db.create_bug(
                title,
                description=description,
                severity=severity,
                priority=priority,
                reported_by=reported_by or ctx.obj["actor"],
                assigned_to=assignee,
                steps_to_reproduce=steps,
                expected_behavior=expected,
                actual_behavior=actual,
                tags=tags,
            )
        except ValueError as e:
            fail(str(e), as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps(bug.to_dict(), indent=2, default=str))
        else:
            click.echo(f"Created {bug.id}: {bug.title}")


@click.command()
@click.argument("bug_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def show(bug_id: str, as_json: bool) -> None:
    """Show bug details."""
    with get_db() as db:
        try:
            bug = db.get_bug(bug_id)
        except KeyError:
            fail(f"Not found: {bug_id}", as_json=as_json)

        if as_json:
            click.echo(json_mod.dumps(bug.to_dict(), indent=2, default=str))
            return

        click.echo(f"ID:       {bug.id}")
        click.echo(f"Title:    {bug.title}")
        click.echo(f"Status:   {bug.status}")
        click.echo(f"Severity: {bug.severity}")
        click.echo(f"Priority: {bug.priority}")
        click.echo(f"Reporter: {bug.reported_by}")
        if bug.assigned_to:
            click.echo(f"Assignee: {bug.assigned_to}")
        click.echo(f"Created:  {bug.created_at}")
        click.echo(f"Updated:  {bug.updated_at}")
        click.echo(f"Age:      {bug.age_hours():.1f}h")
        if bug.tags:
            click.echo(f"Tags:     {', '.join(sorted(bug.tags))}")
        if bug.description:
            click.echo(f"\n--- Description ---\n{bug.description}")
        if bug.steps_to_reproduce:
            click.echo(f"\n--- Steps to reproduce ---\n{bug.steps_to_reproduce}")
        if bug.expected_behavior:
            click.echo(f"\n--- Expected ---\n{bug.expected_behavior}")
        if bug.actual_behavior:
            click.echo(f"\n--- Actual ---\n{bug.actual_behavior}")


@click.command("list")
@_filter_options
@click.option("--sort-by", default=None, help=f"Sort key: {', '.join(sorted(SORT_FIELDS))} (default createdAt)")
@click.option("--sort-dir", default=None, help="asc or desc (default desc)")
@click.option("--page", default=1, type=int, help="Page number (default 1)")
@click.option("--page-size", default=None, type=int, help="Results per page (default from config)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_bugs(
    status: str | None,
    severity: str | None,
    priority: str | None,
    search: str | None,
    tag: str | None,
    sort_by: str | None,
    sort_dir: str | None,
    page: int,
    page_size: int | None,
    as_json: bool,
) -> None:
    """List bugs with optional filters, sorting, and paging."""
    params = {
        "status": status,
        "severity": severity,
        "priority": priority,
        "search": search,
        "tag": tag,
        "sortBy": sort_by,
        "sortDir": sort_dir,
        "page": page,
        "pageSize": page_size,
    }
    with get_db() as db:
        result = db.list_bugs(params)

    if as_json:
        click.echo(json_mod.dumps(result.to_dict(), indent=2, default=str))
        return

    for bug in result.items:
        _echo_bug_line(bug)
    click.echo(f"\nPage {result.page}/{result.total_pages}, {result.total_count} bugs")


@click.command()
@click.argument("bug_id")
@click.option("--title", default=None, help="New title")
@click.option("--description", "-d", default=None, help="New description")
@click.option("--status", type=click.Choice(VALID_STATUSES), default=None, help="New status")
@click.option("--severity", type=click.Choice(VALID_SEVERITIES), default=None, help="New severity")
@click.option("--priority", "-p", type=click.Choice(VALID_PRIORITIES), default=None, help="New priority")
@click.option("--assignee", default=None, help="New assignee (empty string to clear)")
@click.option("--steps", default=None, help="New steps to reproduce")
@click.option("--expected", default=None, help="New expected behavior")
@click.option("--actual", default=None, help="New actual behavior")
@click.option("--tag", "-t", "tags", multiple=True, help="Replace tags (repeatable)")
@click.option("--clear-tags", is_flag=True, help="Remove all tags")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def update(
    bug_id: str,
    title: str | None,
    description: str | None,
    status: str | None,
    severity: str | None,
    priority: str | None,
    assignee: str | None,
    steps: str | None,
    expected: str | None,
    actual: str | None,
    tags: tuple[str, ...],
    clear_tags: bool,
    as_json: bool,
) -> None:
    """Update a bug."""
    new_tags: list[str] | None = None
    if clear_tags:
        new_tags = []
    elif tags:
        new_tags = list(tags)

    with get_db() as db:
        try:
            bug = db.update_bug(
                bug_id,
                title=title,
                description=description,
                status=status,
                severity=severity,
                priority=priority,
                assigned_to=assignee,
                steps_to_reproduce=steps,
                expected_behavior=expected,
                actual_behavior=actual,
                tags=new_tags,
            )
        except KeyError:
            fail(f"Not found: {bug_id}", as_json=as_json)
        except ValueError as e:
            fail(str(e), as_json=as_json)

    if as_json:
        click.echo(json_mod.dumps(bug.to_dict(), indent=2, default=str))
    else:
        click.echo(f"Updated {bug.id}: {bug.status}")


@click.command()
@click.argument("bug_id")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def delete(bug_id: str, yes: bool, as_json: bool) -> None:
    """Permanently delete a bug."""
    if not yes and not as_json:
        click.confirm(f"Delete {bug_id}? This cannot be undone", abort=True)
    with get_db() as db:
        try:
            db.delete_bug(bug_id)
        except KeyError:
            fail(f"Not found: {bug_id}", as_json=as_json)

    if as_json:
        click.echo(json_mod.dumps({"deleted": bug_id}))
    else:
        click.echo(f"Deleted {bug_id}")


@click.command()
@_filter_options
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def stats(
    status: str | None,
    severity: str | None,
    priority: str | None,
    search: str | None,
    tag: str | None,
    as_json: bool,
) -> None:
    """Show bug statistics, optionally scoped by filters."""
    filters = {"status": status, "severity": severity, "priority": priority, "search": search, "tag": tag}
    with get_db() as db:
        report = db.get_stats(filters)

    if as_json:
        click.echo(json_mod.dumps(report, indent=2, default=str))
        return

    click.echo(f"Total: {report['total']}")
    for heading, key in (("Status", "byStatus"), ("Severity", "bySeverity"), ("Priority", "byPriority")):
        click.echo(f"\n{heading}:")
        for value, count in report[key].items():  # type: ignore[literal-required]
            click.echo(f"  {value}: {count}")
    click.echo("\nAge:")
    for label, count in report["ageBuckets"].items():
        click.echo(f"  {label}: {count}")
    click.echo(f"\nAverage age: {report['averageAgeHours']}h")
    click.echo(f"New in last {report['recentWindowHours']}h: {report['recentCount']}")


def register(cli: click.Group) -> None:
    """Register bug commands with the CLI group."""
    cli.add_command(create)
    cli.add_command(show)
    cli.add_command(list_bugs)
    cli.add_command(update)
    cli.add_command(delete)
    cli.add_command(stats)
