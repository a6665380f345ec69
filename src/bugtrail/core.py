"""Core database operations for the bug tracker.

Single source of truth for bug storage. Both the CLI and the dashboard API
import from this module. Direct SQLite with WAL mode; no daemon.

Querying and statistics are delegated to the pure engine modules
(``filters``, ``query``, ``analytics``), which work on a read-only snapshot
returned by :meth:`BugDB.snapshot`.

Convention-based discovery: each project has a `.bugtrail/` directory
containing `bugtrail.db` (SQLite) and `config.json` (prefix, query settings).
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from bugtrail.db_base import _now_iso, _parse_iso
from bugtrail.types.core import BugDict, ISOTimestamp, ProjectConfig

if TYPE_CHECKING:
    from bugtrail.query import QueryResult
    from bugtrail.types.core import StatsReport

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Enumerated facets and their rank tables
# ---------------------------------------------------------------------------

VALID_SEVERITIES: tuple[str, ...] = ("low", "medium", "high", "critical")
VALID_PRIORITIES: tuple[str, ...] = ("low", "medium", "high", "critical")
VALID_STATUSES: tuple[str, ...] = ("open", "in-progress", "resolved", "closed")

# Sort ranks are an explicit contract, independent of tuple order above.
SEVERITY_RANK: dict[str, int] = {"low": 0, "medium": 1, "high": 2, "critical": 3}
PRIORITY_RANK: dict[str, int] = {"low": 0, "medium": 1, "high": 2, "critical": 3}
STATUS_RANK: dict[str, int] = {"open": 0, "in-progress": 1, "resolved": 2, "closed": 3}

DEFAULT_SEVERITY = "medium"
DEFAULT_PRIORITY = "medium"
DEFAULT_STATUS = "open"

# ---------------------------------------------------------------------------
# Convention-based discovery and configuration
# ---------------------------------------------------------------------------

BUGTRAIL_DIR_NAME = ".bugtrail"
DB_FILENAME = "bugtrail.db"
CONFIG_FILENAME = "config.json"

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
RECENT_WINDOW_HOURS = 24

_SETTINGS_ENV = {
    "default_page_size": "BUGTRAIL_DEFAULT_PAGE_SIZE",
    "max_page_size": "BUGTRAIL_MAX_PAGE_SIZE",
    "recent_window_hours": "BUGTRAIL_RECENT_WINDOW_HOURS",
}


def find_bugtrail_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for .bugtrail/ directory.

    Returns the .bugtrail/ directory path (not the project root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / BUGTRAIL_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {BUGTRAIL_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def read_config(bugtrail_dir: Path) -> ProjectConfig:
    """Read .bugtrail/config.json. Returns defaults if missing or corrupt."""
    defaults = ProjectConfig(
        prefix="bug",
        version=1,
        default_page_size=DEFAULT_PAGE_SIZE,
        max_page_size=MAX_PAGE_SIZE,
        recent_window_hours=RECENT_WINDOW_HOURS,
    )
    config_path = bugtrail_dir / CONFIG_FILENAME
    if not config_path.exists():
        return defaults
    try:
        result = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return defaults
    if not isinstance(result, dict):
        logger.warning("Ignoring %s: expected a JSON object", config_path)
        return defaults
    return ProjectConfig(**{**defaults, **result})  # type: ignore[typeddict-item]


def write_config(bugtrail_dir: Path, config: dict[str, Any] | ProjectConfig) -> None:
    """Write .bugtrail/config.json."""
    config_path = bugtrail_dir / CONFIG_FILENAME
    config_path.write_text(json.dumps(config, indent=2) + "\n")


@dataclass(frozen=True)
class QuerySettings:
    """Effective bounds for list pagination and the stats recency window."""

    default_page_size: int = DEFAULT_PAGE_SIZE
    max_page_size: int = MAX_PAGE_SIZE
    recent_window_hours: int = RECENT_WINDOW_HOURS

    def to_dict(self) -> dict[str, int]:
        return {
            "defaultPageSize": self.default_page_size,
            "maxPageSize": self.max_page_size,
            "recentWindowHours": self.recent_window_hours,
        }


def _positive_int(value: Any, name: str, fallback: int) -> int:
    if isinstance(value, bool):
        logger.warning("Ignoring non-integer %s=%r", name, value)
        return fallback
    try:
        result = int(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-integer %s=%r", name, value)
        return fallback
    if result < 1:
        logger.warning("Ignoring %s=%r: must be >= 1", name, value)
        return fallback
    return result


def resolve_query_settings(config: Mapping[str, Any] | None = None) -> QuerySettings:
    """Resolve query settings from env + project config.

    Environment variables win over config.json. Invalid values are logged
    and replaced by the built-in defaults; the default page size never
    exceeds the maximum.
    """
    config = config or {}
    defaults = QuerySettings()
    resolved: dict[str, int] = {}
    for key, env_name in _SETTINGS_ENV.items():
        fallback: int = getattr(defaults, key)
        env_raw = os.getenv(env_name)
        if env_raw is not None:
            resolved[key] = _positive_int(env_raw, env_name, fallback)
        elif key in config:
            resolved[key] = _positive_int(config[key], key, fallback)
        else:
            resolved[key] = fallback
    if resolved["default_page_size"] > resolved["max_page_size"]:
        resolved["default_page_size"] = resolved["max_page_size"]
    return QuerySettings(**resolved)


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

CURRENT_SCHEMA_VERSION = 1

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS bugs (
    id                  TEXT PRIMARY KEY,
    title               TEXT NOT NULL,
    description         TEXT NOT NULL DEFAULT '',
    severity            TEXT NOT NULL DEFAULT 'medium',
    priority            TEXT NOT NULL DEFAULT 'medium',
    status              TEXT NOT NULL DEFAULT 'open',
    steps_to_reproduce  TEXT,
    expected_behavior   TEXT,
    actual_behavior     TEXT,
    reported_by         TEXT NOT NULL,
    assigned_to         TEXT,
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL,

    CHECK (severity IN ('low', 'medium', 'high', 'critical')),
    CHECK (priority IN ('low', 'medium', 'high', 'critical')),
    CHECK (status IN ('open', 'in-progress', 'resolved', 'closed')),
    CHECK (created_at <= updated_at)
);

CREATE INDEX IF NOT EXISTS idx_bugs_status ON bugs(status);
CREATE INDEX IF NOT EXISTS idx_bugs_severity ON bugs(severity);
CREATE INDEX IF NOT EXISTS idx_bugs_priority ON bugs(priority);
CREATE INDEX IF NOT EXISTS idx_bugs_created ON bugs(created_at, id);

CREATE TABLE IF NOT EXISTS tags (
    bug_id TEXT NOT NULL REFERENCES bugs(id) ON DELETE CASCADE,
    tag    TEXT NOT NULL,
    PRIMARY KEY (bug_id, tag)
);

CREATE INDEX IF NOT EXISTS idx_tags_tag ON tags(tag);
"""

# ---------------------------------------------------------------------------
# Bug record
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Bug:
    id: str
    title: str
    description: str = ""
    severity: str = DEFAULT_SEVERITY
    priority: str = DEFAULT_PRIORITY
    status: str = DEFAULT_STATUS
    steps_to_reproduce: str | None = None
    expected_behavior: str | None = None
    actual_behavior: str | None = None
    reported_by: str = ""
    assigned_to: str | None = None
    tags: frozenset[str] = field(default_factory=frozenset)
    created_at: str = ""
    updated_at: str = ""

    def age_hours(self, now: datetime | None = None) -> float:
        """Hours since creation at *now*. Never negative; 0.0 if unparseable."""
        created = _parse_iso(self.created_at)
        if created is None:
            return 0.0
        now = now or datetime.now(UTC)
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        return max(0.0, (now - created).total_seconds() / 3600)

    def to_dict(self, *, now: datetime | None = None) -> BugDict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "severity": self.severity,
            "priority": self.priority,
            "status": self.status,
            "stepsToReproduce": self.steps_to_reproduce,
            "expectedBehavior": self.expected_behavior,
            "actualBehavior": self.actual_behavior,
            "reportedBy": self.reported_by,
            "assignedTo": self.assigned_to,
            "tags": sorted(self.tags),
            "createdAt": ISOTimestamp(self.created_at),
            "updatedAt": ISOTimestamp(self.updated_at),
            "ageHours": round(self.age_hours(now), 1),
        }


def _check_choice(value: str, name: str, choices: tuple[str, ...]) -> None:
    if value not in choices:
        msg = f"Invalid {name} '{value}'. Must be one of: {', '.join(choices)}"
        raise ValueError(msg)


def _clean_tags(tags: Iterable[str]) -> frozenset[str]:
    if isinstance(tags, str):
        tags = (tags,)
    cleaned = {t.strip() for t in tags if isinstance(t, str)}
    cleaned.discard("")
    return frozenset(cleaned)


# Columns an update may touch. Optional text columns store "" as NULL.
_TEXT_COLUMNS = ("title", "description", "reported_by")
_OPTIONAL_TEXT_COLUMNS = ("steps_to_reproduce", "expected_behavior", "actual_behavior", "assigned_to")

# ---------------------------------------------------------------------------
# BugDB
# ---------------------------------------------------------------------------


class BugDB:
    """Direct SQLite operations. No daemon, no sync. Importable by CLI and API."""

    def __init__(
        self,
        db_path: str | Path,
        *,
        prefix: str = "bug",
        settings: QuerySettings | None = None,
        check_same_thread: bool = True,
    ) -> None:
        self.db_path = Path(db_path)
        self.prefix = prefix
        self.settings = settings or QuerySettings()
        self._conn: sqlite3.Connection | None = None
        self._check_same_thread = check_same_thread

    @classmethod
    def from_project(cls, project_path: Path | None = None, *, check_same_thread: bool = True) -> BugDB:
        """Create a BugDB by discovering .bugtrail/ from project_path (or cwd)."""
        bugtrail_dir = find_bugtrail_root(project_path)
        config = read_config(bugtrail_dir)
        db = cls(
            bugtrail_dir / DB_FILENAME,
            prefix=config.get("prefix", "bug"),
            settings=resolve_query_settings(config),
            check_same_thread=check_same_thread,
        )
        db.initialize()
        return db

    def __enter__(self) -> BugDB:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                isolation_level="DEFERRED",
                check_same_thread=self._check_same_thread,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.execute("PRAGMA busy_timeout=5000")
        return self._conn

    def initialize(self) -> None:
        """Create tables if this is a fresh database and stamp the schema version."""
        current_version = self.get_schema_version()
        if current_version == 0:
            self.conn.executescript(SCHEMA_SQL)
            self.conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION}")
        elif current_version > CURRENT_SCHEMA_VERSION:
            msg = f"Database schema v{current_version} is newer than supported v{CURRENT_SCHEMA_VERSION}"
            raise RuntimeError(msg)
        self.conn.commit()

    def get_schema_version(self) -> int:
        """Return the current schema version from PRAGMA user_version."""
        result: int = self.conn.execute("PRAGMA user_version").fetchone()[0]
        return result

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _generate_unique_id(self) -> str:
        """Generate a unique bug ID using O(1) EXISTS checks against the PK index."""
        for _ in range(10):
            candidate = f"{self.prefix}-{uuid.uuid4().hex[:10]}"
            if self.conn.execute("SELECT 1 FROM bugs WHERE id = ?", (candidate,)).fetchone() is None:
                return candidate
        return f"{self.prefix}-{uuid.uuid4().hex[:16]}"

    # -- Bug CRUD ------------------------------------------------------------

    def create_bug(
        self,
        title: str,
        *,
        reported_by: str,
        description: str = "",
        severity: str = DEFAULT_SEVERITY,
        priority: str = DEFAULT_PRIORITY,
        steps_to_reproduce: str | None = None,
        expected_behavior: str | None = None,
        actual_behavior: str | None = None,
        assigned_to: str | None = None,
        tags: Iterable[str] | None = None,
    ) -> Bug:
        if not title or not title.strip():
            msg = "Title cannot be empty"
            raise ValueError(msg)
        if not reported_by or not reported_by.strip():
            msg = "reported_by cannot be empty"
            raise ValueError(msg)
        _check_choice(severity, "severity", VALID_SEVERITIES)
        _check_choice(priority, "priority", VALID_PRIORITIES)

        bug_id = self._generate_unique_id()
        now = _now_iso()
        clean_tags = _clean_tags(tags or ())

        try:
            self.conn.execute(
                "INSERT INTO bugs (id, title, description, severity, priority, status, "
                "steps_to_reproduce, expected_behavior, actual_behavior, reported_by, assigned_to, "
                "created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    bug_id,
                    title.strip(),
                    description,
                    severity,
                    priority,
                    DEFAULT_STATUS,
                    steps_to_reproduce or None,
                    expected_behavior or None,
                    actual_behavior or None,
                    reported_by.strip(),
                    assigned_to or None,
                    now,
                    now,
                ),
            )
            self._write_tags(bug_id, clean_tags)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

        logger.info("Created bug %s (severity=%s, priority=%s)", bug_id, severity, priority)
        return self.get_bug(bug_id)

    def get_bug(self, bug_id: str) -> Bug:
        row = self.conn.execute("SELECT * FROM bugs WHERE id = ?", (bug_id,)).fetchone()
        if row is None:
            msg = f"Bug not found: {bug_id}"
            raise KeyError(msg)
        tags = [r["tag"] for r in self.conn.execute("SELECT tag FROM tags WHERE bug_id = ?", (bug_id,)).fetchall()]
        return self._build_bug(row, tags)

    def update_bug(
        self,
        bug_id: str,
        *,
        title: str | None = None,
        description: str | None = None,
        severity: str | None = None,
        priority: str | None = None,
        status: str | None = None,
        steps_to_reproduce: str | None = None,
        expected_behavior: str | None = None,
        actual_behavior: str | None = None,
        reported_by: str | None = None,
        assigned_to: str | None = None,
        tags: Iterable[str] | None = None,
    ) -> Bug:
        """Apply a partial update. ``None`` leaves a field unchanged.

        For optional text fields an empty string clears the value. ``tags``
        replaces the whole tag set. Status transitions are unrestricted.
        ``updated_at`` is refreshed only when something actually changes.
        """
        current = self.get_bug(bug_id)

        # --- Validate all inputs BEFORE any writes to prevent partial commits ---
        if title is not None and not title.strip():
            msg = "Title cannot be empty"
            raise ValueError(msg)
        if reported_by is not None and not reported_by.strip():
            msg = "reported_by cannot be empty"
            raise ValueError(msg)
        if severity is not None:
            _check_choice(severity, "severity", VALID_SEVERITIES)
        if priority is not None:
            _check_choice(priority, "priority", VALID_PRIORITIES)
        if status is not None:
            _check_choice(status, "status", VALID_STATUSES)

        requested: dict[str, str | None] = {
            "title": title.strip() if title is not None else None,
            "description": description,
            "reported_by": reported_by.strip() if reported_by is not None else None,
            "severity": severity,
            "priority": priority,
            "status": status,
        }
        updates: list[str] = []
        params: list[Any] = []
        for column, value in requested.items():
            if value is not None and value != getattr(current, column):
                updates.append(f"{column} = ?")
                params.append(value)
        optional = {
            "steps_to_reproduce": steps_to_reproduce,
            "expected_behavior": expected_behavior,
            "actual_behavior": actual_behavior,
            "assigned_to": assigned_to,
        }
        for column, value in optional.items():
            if value is None:
                continue
            stored = value or None
            if stored != getattr(current, column):
                updates.append(f"{column} = ?")
                params.append(stored)

        new_tags = _clean_tags(tags) if tags is not None else None
        tags_changed = new_tags is not None and new_tags != current.tags

        if not updates and not tags_changed:
            return current

        # Never move updated_at behind the stored value, even if the clock did.
        now = max(_now_iso(), current.updated_at)
        try:
            updates.append("updated_at = ?")
            params.extend([now, bug_id])
            self.conn.execute(f"UPDATE bugs SET {', '.join(updates)} WHERE id = ?", params)
            if tags_changed and new_tags is not None:
                self.conn.execute("DELETE FROM tags WHERE bug_id = ?", (bug_id,))
                self._write_tags(bug_id, new_tags)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

        if status is not None and status != current.status:
            logger.info("Bug %s status %s -> %s", bug_id, current.status, status)
        return self.get_bug(bug_id)

    def delete_bug(self, bug_id: str) -> None:
        """Hard-delete a bug; its tags go with it. Raises ``KeyError`` if missing."""
        self.get_bug(bug_id)
        try:
            self.conn.execute("DELETE FROM bugs WHERE id = ?", (bug_id,))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        logger.info("Deleted bug %s", bug_id)

    def _write_tags(self, bug_id: str, tags: frozenset[str]) -> None:
        for tag in sorted(tags):
            self.conn.execute(
                "INSERT OR IGNORE INTO tags (bug_id, tag) VALUES (?, ?)",
                (bug_id, tag),
            )

    @staticmethod
    def _build_bug(row: sqlite3.Row, tags: Iterable[str]) -> Bug:
        return Bug(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            severity=row["severity"],
            priority=row["priority"],
            status=row["status"],
            steps_to_reproduce=row["steps_to_reproduce"],
            expected_behavior=row["expected_behavior"],
            actual_behavior=row["actual_behavior"],
            reported_by=row["reported_by"],
            assigned_to=row["assigned_to"],
            tags=frozenset(tags),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # -- Snapshot & queries --------------------------------------------------

    def snapshot(self) -> list[Bug]:
        """Return every bug as seen by one read transaction.

        Bug rows and tag rows are read inside the same transaction so a
        concurrent writer cannot interleave between the two reads. The
        returned list has no defined order; callers sort.
        """
        owns_txn = not self.conn.in_transaction
        if owns_txn:
            self.conn.execute("BEGIN")
        try:
            rows = self.conn.execute("SELECT * FROM bugs").fetchall()
            tags_by_id: dict[str, list[str]] = {}
            for r in self.conn.execute("SELECT bug_id, tag FROM tags").fetchall():
                tags_by_id.setdefault(r["bug_id"], []).append(r["tag"])
        finally:
            if owns_txn:
                self.conn.commit()
        return [self._build_bug(row, tags_by_id.get(row["id"], ())) for row in rows]

    def count_bugs(self) -> int:
        result: int = self.conn.execute("SELECT COUNT(*) FROM bugs").fetchone()[0]
        return result

    def list_bugs(self, params: Mapping[str, Any] | None = None) -> QueryResult:
        """Filter, sort and paginate a snapshot according to raw *params*.

        Invalid parameters degrade to defaults; see ``query.normalize_query``.
        """
        from bugtrail.query import execute_query, normalize_query

        query = normalize_query(params, settings=self.settings)
        return execute_query(self.snapshot(), query)

    def get_stats(self, filters: Mapping[str, Any] | None = None, *, now: datetime | None = None) -> StatsReport:
        """Aggregate statistics over all bugs, or over those matching *filters*."""
        from bugtrail.analytics import compute_stats
        from bugtrail.filters import build_predicate

        predicate = build_predicate(filters) if filters else None
        return compute_stats(
            self.snapshot(),
            now=now,
            recent_window_hours=self.settings.recent_window_hours,
            predicate=predicate,
        )
