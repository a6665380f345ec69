"""Aggregate statistics for bugtrail: facet counts, age, recency.

Operates on a read-only snapshot of bugs, usually from BugDB.snapshot().
Every facet and the age aggregate are accumulated in a single traversal.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from bugtrail.core import RECENT_WINDOW_HOURS, VALID_PRIORITIES, VALID_SEVERITIES, VALID_STATUSES, Bug
from bugtrail.db_base import _parse_iso
from bugtrail.types.core import StatsReport

# (label, exclusive upper bound in hours), checked in order.
AGE_BUCKETS: tuple[tuple[str, float], ...] = (
    ("<1d", 24.0),
    ("1-7d", 7 * 24.0),
    ("7-30d", 30 * 24.0),
    (">30d", math.inf),
)


def age_bucket(age_hours: float) -> str:
    """Label of the age band containing *age_hours*."""
    for label, upper in AGE_BUCKETS:
        if age_hours < upper:
            return label
    return AGE_BUCKETS[-1][0]


def compute_stats(
    bugs: Iterable[Bug],
    *,
    now: datetime | None = None,
    recent_window_hours: int = RECENT_WINDOW_HOURS,
    predicate: Callable[[Bug], bool] | None = None,
) -> StatsReport:
    """Compute the stats report for the bugs in scope.

    Args:
        bugs: The snapshot to aggregate.
        now: Evaluation time for ages (default: current UTC time).
        recent_window_hours: Bugs younger than or exactly this old count
            towards ``recentCount``.
        predicate: Optional scope filter, applied during the same pass.

    Returns:
        {
            "total": int,
            "byStatus": {status: int},        # every status, zero-filled
            "bySeverity": {severity: int},
            "byPriority": {priority: int},
            "ageBuckets": {label: int},
            "averageAgeHours": float,         # over dated bugs; 0.0 if none
            "recentCount": int,
            "recentWindowHours": int,
        }
    """
    now = now or datetime.now(UTC)

    by_status = dict.fromkeys(VALID_STATUSES, 0)
    by_severity = dict.fromkeys(VALID_SEVERITIES, 0)
    by_priority = dict.fromkeys(VALID_PRIORITIES, 0)
    by_age = dict.fromkeys((label for label, _ in AGE_BUCKETS), 0)
    total = 0
    age_sum = 0.0
    dated = 0
    recent = 0

    for bug in bugs:
        if predicate is not None and not predicate(bug):
            continue
        total += 1
        if bug.status in by_status:
            by_status[bug.status] += 1
        if bug.severity in by_severity:
            by_severity[bug.severity] += 1
        if bug.priority in by_priority:
            by_priority[bug.priority] += 1

        if _parse_iso(bug.created_at) is None:
            # Unparseable createdAt: oldest bucket, never recent, not averaged.
            by_age[AGE_BUCKETS[-1][0]] += 1
            continue
        age = bug.age_hours(now)
        dated += 1
        age_sum += age
        by_age[age_bucket(age)] += 1
        if age <= recent_window_hours:
            recent += 1

    return {
        "total": total,
        "byStatus": by_status,
        "bySeverity": by_severity,
        "byPriority": by_priority,
        "ageBuckets": by_age,
        "averageAgeHours": round(age_sum / dated, 1) if dated else 0.0,
        "recentCount": recent,
        "recentWindowHours": recent_window_hours,
    }
