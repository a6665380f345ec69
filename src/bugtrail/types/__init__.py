"""Typed shapes shared across the bugtrail package."""

from bugtrail.types.core import (
    BugDict,
    BugStatus,
    FilterOptions,
    ISOTimestamp,
    Priority,
    ProjectConfig,
    QueryResultDict,
    Severity,
    SortDirection,
    SortField,
    StatsReport,
)

__all__ = [
    "BugDict",
    "BugStatus",
    "FilterOptions",
    "ISOTimestamp",
    "Priority",
    "ProjectConfig",
    "QueryResultDict",
    "Severity",
    "SortDirection",
    "SortField",
    "StatsReport",
]
