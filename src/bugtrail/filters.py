"""Filter predicates for bug records: status, severity, priority, search, tag.

Pure functions, no I/O. ``build_predicate`` never raises: unknown option
keys are ignored, and a value outside an enumerated facet's allowed set
produces a predicate that matches nothing.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, cast

from bugtrail.core import VALID_PRIORITIES, VALID_SEVERITIES, VALID_STATUSES, Bug
from bugtrail.types.core import FilterOptions

logger = logging.getLogger(__name__)

Predicate = Callable[[Bug], bool]

FILTER_KEYS: tuple[str, ...] = ("status", "severity", "priority", "search", "tag")

_ENUM_FACETS: dict[str, tuple[str, ...]] = {
    "status": VALID_STATUSES,
    "severity": VALID_SEVERITIES,
    "priority": VALID_PRIORITIES,
}


def normalize_filters(options: Mapping[str, Any] | None) -> FilterOptions:
    """Keep recognized facets with non-blank values; drop everything else."""
    result: dict[str, str] = {}
    if not options:
        return cast(FilterOptions, result)
    for key in FILTER_KEYS:
        raw = options.get(key)
        if raw is None:
            continue
        value = str(raw).strip()
        if value:
            result[key] = value
    return cast(FilterOptions, result)


def filter_by_facet(bug: Bug, facet: str, value: str) -> bool:
    """True if the bug's enumerated *facet* equals *value* exactly."""
    return bool(getattr(bug, facet) == value)


def filter_by_search(bug: Bug, term: str) -> bool:
    """True if term appears in the title or description (case-insensitive)."""
    needle = term.casefold()
    return needle in bug.title.casefold() or needle in bug.description.casefold()


def filter_by_tag(bug: Bug, tag: str) -> bool:
    return tag in bug.tags


def _match_nothing(bug: Bug) -> bool:
    return False


def _match_all(bug: Bug) -> bool:
    return True


def build_predicate(options: Mapping[str, Any] | None) -> Predicate:
    """Combine all active facets into a single callable.

    Returns a function that ANDs every active predicate together.
    """
    filters = normalize_filters(options)
    predicates: list[Predicate] = []

    for facet, allowed in _ENUM_FACETS.items():
        value = filters.get(facet)
        if value is None:
            continue
        if value not in allowed:
            logger.debug("Filter %s=%r is not a known value; matching nothing", facet, value)
            return _match_nothing
        predicates.append(lambda bug, f=facet, v=value: filter_by_facet(bug, f, v))

    search = filters.get("search")
    if search is not None:
        predicates.append(lambda bug, s=search: filter_by_search(bug, s))

    tag = filters.get("tag")
    if tag is not None:
        predicates.append(lambda bug, t=tag: filter_by_tag(bug, t))

    if not predicates:
        return _match_all

    def combined(bug: Bug) -> bool:
        return all(p(bug) for p in predicates)

    return combined
