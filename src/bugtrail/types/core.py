"""TypedDicts for to_dict() returns and the query/stats wire format.

Keys mirror the JSON API, which uses camelCase.
"""

from __future__ import annotations

from typing import Literal, NewType, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)

Severity = Literal["low", "medium", "high", "critical"]
Priority = Literal["low", "medium", "high", "critical"]
BugStatus = Literal["open", "in-progress", "resolved", "closed"]
SortField = Literal["createdAt", "updatedAt", "severity", "priority", "status"]
SortDirection = Literal["asc", "desc"]


class ProjectConfig(TypedDict, total=False):
    """Shape of .bugtrail/config.json."""

    prefix: str
    version: int
    default_page_size: int
    max_page_size: int
    recent_window_hours: int


class BugDict(TypedDict):
    id: str
    title: str
    description: str
    severity: str
    priority: str
    status: str
    stepsToReproduce: str | None
    expectedBehavior: str | None
    actualBehavior: str | None
    reportedBy: str
    assignedTo: str | None
    tags: list[str]
    createdAt: ISOTimestamp
    updatedAt: ISOTimestamp
    ageHours: float


class FilterOptions(TypedDict, total=False):
    """Recognized filter facets. An absent key imposes no constraint."""

    status: str
    severity: str
    priority: str
    search: str
    tag: str


class QueryResultDict(TypedDict):
    """Envelope returned by the list endpoint."""

    items: list[BugDict]
    totalCount: int
    totalPages: int
    page: int
    pageSize: int


class StatsReport(TypedDict):
    """Aggregate report produced by ``compute_stats()``."""

    total: int
    byStatus: dict[str, int]
    bySeverity: dict[str, int]
    byPriority: dict[str, int]
    ageBuckets: dict[str, int]
    averageAgeHours: float
    recentCount: int
    recentWindowHours: int
