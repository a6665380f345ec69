"""Shared pytest fixtures for bugtrail tests."""

from __future__ import annotations

from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from bugtrail.core import BUGTRAIL_DIR_NAME, DB_FILENAME, Bug, BugDB, write_config

# Fixed evaluation time for engine tests.
NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def db(tmp_path: Path) -> Generator[BugDB, None, None]:
    """Fresh BugDB for each test."""
    d = BugDB(tmp_path / "bugtrail.db", prefix="test")
    d.initialize()
    yield d
    d.close()


@pytest.fixture
def make_bug() -> Callable[..., Bug]:
    """Factory for in-memory Bug records aged relative to NOW.

    ``age`` (hours) sets both created_at and updated_at; remaining keyword
    arguments override Bug fields directly.
    """
    counter = iter(range(1, 10_000))

    def _make(*, age: float = 1.0, **overrides: Any) -> Bug:
        n = next(counter)
        ts = (NOW - timedelta(hours=age)).isoformat()
        fields: dict[str, Any] = {
            "id": f"bug-{n:04d}",
            "title": f"Bug {n}",
            "reported_by": "tester",
            "created_at": ts,
            "updated_at": ts,
        }
        fields.update(overrides)
        if "tags" in fields:
            fields["tags"] = frozenset(fields["tags"])
        return Bug(**fields)

    return _make


@pytest.fixture
def backdate() -> Callable[[BugDB, str, datetime], None]:
    """Rewrite a stored bug's timestamps so age-dependent tests are deterministic."""

    def _backdate(db: BugDB, bug_id: str, when: datetime) -> None:
        ts = when.isoformat()
        db.conn.execute("UPDATE bugs SET created_at = ?, updated_at = ? WHERE id = ?", (ts, ts, bug_id))
        db.conn.commit()

    return _backdate


@pytest.fixture
def populated_db(db: BugDB, backdate: Callable[[BugDB, str, datetime], None]) -> BugDB:
    """BugDB pre-populated with a representative bug set.

    Creates (newest first):
    - A: critical/high, open, tags ["ui", "crash"], 2h old
    - B: high/medium, in-progress, tags ["api"], 30h old
    - C: low/low, resolved, no tags, 10 days old
    - D: medium/critical, closed, tags ["ui"], 40 days old
    """
    now = datetime.now(UTC)
    a = db.create_bug("Crash on save", reported_by="alice", severity="critical", priority="high", tags=["ui", "crash"])
    b = db.create_bug("Slow search endpoint", reported_by="bob", severity="high", description="Timeouts under load")
    c = db.create_bug("Typo in footer", reported_by="carol", severity="low", priority="low")
    d = db.create_bug("Login button misaligned", reported_by="dave", priority="critical", tags=["ui"])
    db.update_bug(b.id, status="in-progress", tags=["api"])
    db.update_bug(c.id, status="resolved")
    db.update_bug(d.id, status="closed")
    backdate(db, a.id, now - timedelta(hours=2))
    backdate(db, b.id, now - timedelta(hours=30))
    backdate(db, c.id, now - timedelta(days=10))
    backdate(db, d.id, now - timedelta(days=40))
    db._test_ids: dict[str, str] = {"a": a.id, "b": b.id, "c": c.id, "d": d.id}  # type: ignore[attr-defined]
    return db


@pytest.fixture
def bugtrail_project(tmp_path: Path) -> Path:
    """A tmp directory set up as a bugtrail project (.bugtrail/ with config + db).

    Returns the project root (parent of .bugtrail/).
    """
    bugtrail_dir = tmp_path / BUGTRAIL_DIR_NAME
    bugtrail_dir.mkdir()
    write_config(bugtrail_dir, {"prefix": "proj", "version": 1})

    d = BugDB(bugtrail_dir / DB_FILENAME, prefix="proj")
    d.initialize()
    d.close()
    return tmp_path


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()
