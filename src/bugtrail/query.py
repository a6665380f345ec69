"""Query executor: filter, sort and paginate a snapshot of bug records.

``normalize_query`` turns raw request parameters into a fully-defaulted
:class:`QueryParams` and has no failure path. ``execute_query`` applies
the predicate, a full sort and the page window. Both are pure.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from bugtrail.core import DEFAULT_PAGE_SIZE, PRIORITY_RANK, SEVERITY_RANK, STATUS_RANK, Bug, QuerySettings
from bugtrail.db_base import _parse_iso
from bugtrail.filters import build_predicate, normalize_filters
from bugtrail.types.core import FilterOptions, QueryResultDict

DEFAULT_SORT_BY = "createdAt"
DEFAULT_SORT_DIR = "desc"

SORT_FIELDS: frozenset[str] = frozenset({"createdAt", "updatedAt", "severity", "priority", "status"})
SORT_DIRECTIONS: frozenset[str] = frozenset({"asc", "desc"})

_SORT_ALIASES = {"created_at": "createdAt", "updated_at": "updatedAt"}
_RANK_TABLES: dict[str, dict[str, int]] = {
    "severity": SEVERITY_RANK,
    "priority": PRIORITY_RANK,
    "status": STATUS_RANK,
}
_TIMESTAMP_ATTRS = {"createdAt": "created_at", "updatedAt": "updated_at"}
_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_MICROSECOND = timedelta(microseconds=1)


@dataclass(frozen=True)
class QueryParams:
    """Normalized list parameters. Build with :func:`normalize_query`."""

    filters: FilterOptions = field(default_factory=lambda: FilterOptions())
    sort_by: str = DEFAULT_SORT_BY
    sort_dir: str = DEFAULT_SORT_DIR
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE


@dataclass
class QueryResult:
    items: list[Bug]
    total_count: int
    total_pages: int
    page: int
    page_size: int

    def to_dict(self, *, now: datetime | None = None) -> QueryResultDict:
        now = now or datetime.now(UTC)
        return {
            "items": [b.to_dict(now=now) for b in self.items],
            "totalCount": self.total_count,
            "totalPages": self.total_pages,
            "page": self.page,
            "pageSize": self.page_size,
        }


def _coerce_int(raw: Any) -> int | None:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def normalize_query(raw: Mapping[str, Any] | None = None, *, settings: QuerySettings | None = None) -> QueryParams:
    """Clamp raw list parameters to safe values.

    - ``page``: malformed or < 1 becomes 1.
    - ``pageSize``: malformed or < 1 becomes the configured default;
      anything above the configured maximum becomes the maximum.
    - ``sortBy``: unknown keys fall back to ``createdAt``.
    - ``sortDir``: anything but ``asc``/``desc`` falls back to ``desc``.

    snake_case spellings (``page_size``, ``sort_by``, ``sort_dir``,
    ``created_at``, ``updated_at``) are accepted as aliases.
    """
    settings = settings or QuerySettings()
    raw = raw or {}

    page = _coerce_int(raw.get("page"))
    if page is None or page < 1:
        page = 1

    page_size = _coerce_int(_first(raw, "pageSize", "page_size"))
    if page_size is None or page_size < 1:
        page_size = settings.default_page_size
    page_size = min(page_size, settings.max_page_size)

    sort_by = str(_first(raw, "sortBy", "sort_by") or "").strip()
    sort_by = _SORT_ALIASES.get(sort_by, sort_by)
    if sort_by not in SORT_FIELDS:
        sort_by = DEFAULT_SORT_BY

    sort_dir = str(_first(raw, "sortDir", "sort_dir") or "").strip().lower()
    if sort_dir not in SORT_DIRECTIONS:
        sort_dir = DEFAULT_SORT_DIR

    return QueryParams(
        filters=normalize_filters(raw),
        sort_by=sort_by,
        sort_dir=sort_dir,
        page=page,
        page_size=page_size,
    )


def _timestamp_value(ts: str) -> int:
    """Microseconds since the epoch; unparseable timestamps sort as the epoch."""
    dt = _parse_iso(ts)
    if dt is None:
        return 0
    return (dt - _EPOCH) // _MICROSECOND


def sort_value(bug: Bug, sort_by: str) -> int:
    """Integer sort key for *bug* under *sort_by*.

    Enumerated facets use their rank tables, not lexical order; unknown
    values rank below every known one.
    """
    ranks = _RANK_TABLES.get(sort_by)
    if ranks is not None:
        return ranks.get(getattr(bug, sort_by), -1)
    return _timestamp_value(getattr(bug, _TIMESTAMP_ATTRS.get(sort_by, "created_at")))


def sort_bugs(bugs: Iterable[Bug], sort_by: str = DEFAULT_SORT_BY, sort_dir: str = DEFAULT_SORT_DIR) -> list[Bug]:
    """Fully sort *bugs*. Ties break by ``id`` ascending in both directions."""
    sign = -1 if sort_dir == "desc" else 1
    return sorted(bugs, key=lambda b: (sign * sort_value(b, sort_by), b.id))


def execute_query(bugs: Iterable[Bug], params: QueryParams | None = None) -> QueryResult:
    """Filter *bugs* by ``params.filters``, sort, and cut out one page.

    ``total_count`` counts every match regardless of the window. A page
    past the end yields no items with unchanged totals.
    """
    params = params or QueryParams()
    page = max(1, params.page)
    page_size = max(1, params.page_size)

    predicate = build_predicate(params.filters)
    ordered = sort_bugs((b for b in bugs if predicate(b)), params.sort_by, params.sort_dir)

    total = len(ordered)
    total_pages = -(-total // page_size)
    start = (page - 1) * page_size
    return QueryResult(
        items=ordered[start : start + page_size],
        total_count=total,
        total_pages=total_pages,
        page=page,
        page_size=page_size,
    )
