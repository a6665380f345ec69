"""Shared validation functions for all entry points.

Pure functions, no FastAPI or Click dependencies. Each returns a
``(cleaned, error)`` pair: ``error`` is None on success.
"""

from __future__ import annotations

import unicodedata
from collections.abc import Mapping
from typing import Any

from bugtrail.core import VALID_PRIORITIES, VALID_SEVERITIES, VALID_STATUSES

_MAX_TITLE_LENGTH = 200
_MAX_NAME_LENGTH = 128
_MAX_TEXT_LENGTH = 20000
_MAX_TAG_LENGTH = 64
_MAX_TAGS = 32

# JSON key -> (keyword argument, max length, allows newlines)
_TEXT_FIELDS: dict[str, tuple[str, int, bool]] = {
    "title": ("title", _MAX_TITLE_LENGTH, False),
    "description": ("description", _MAX_TEXT_LENGTH, True),
    "reportedBy": ("reported_by", _MAX_NAME_LENGTH, False),
    "assignedTo": ("assigned_to", _MAX_NAME_LENGTH, False),
    "stepsToReproduce": ("steps_to_reproduce", _MAX_TEXT_LENGTH, True),
    "expectedBehavior": ("expected_behavior", _MAX_TEXT_LENGTH, True),
    "actualBehavior": ("actual_behavior", _MAX_TEXT_LENGTH, True),
}
_CHOICE_FIELDS: dict[str, tuple[str, ...]] = {
    "severity": VALID_SEVERITIES,
    "priority": VALID_PRIORITIES,
    "status": VALID_STATUSES,
}
_READ_ONLY_FIELDS = frozenset({"id", "createdAt", "updatedAt", "ageHours"})
_CREATE_REQUIRED = ("title", "reportedBy")


def sanitize_text(
    value: Any,
    name: str,
    *,
    max_length: int = _MAX_TEXT_LENGTH,
    allow_newlines: bool = True,
) -> tuple[str, str | None]:
    """Validate and clean a free-text value.

    Rejects non-strings, control/format characters (tab and newline are
    allowed when *allow_newlines* is set) and over-long values. Leading
    and trailing whitespace is stripped.
    """
    if not isinstance(value, str):
        return ("", f"{name} must be a string")
    allowed = {"\n", "\r", "\t"} if allow_newlines else set()
    for ch in value:
        if ch in allowed:
            continue
        cat = unicodedata.category(ch)
        if cat.startswith("C"):  # Cc (control) and Cf (format)
            return ("", f"{name} must not contain control characters (found U+{ord(ch):04X})")
    cleaned = value.strip()
    if len(cleaned) > max_length:
        return ("", f"{name} must be at most {max_length} characters")
    return (cleaned, None)


def validate_choice(value: Any, name: str, choices: tuple[str, ...]) -> tuple[str, str | None]:
    if not isinstance(value, str) or value not in choices:
        return ("", f"{name} must be one of: {', '.join(choices)}")
    return (value, None)


def normalize_tags(value: Any) -> tuple[list[str], str | None]:
    """Validate a tag list. Duplicates collapse; order is not preserved."""
    if not isinstance(value, list):
        return ([], "tags must be a list of strings")
    cleaned: set[str] = set()
    for raw in value:
        tag, err = sanitize_text(raw, "tag", max_length=_MAX_TAG_LENGTH, allow_newlines=False)
        if err:
            return ([], err)
        if tag:
            cleaned.add(tag)
    if len(cleaned) > _MAX_TAGS:
        return ([], f"at most {_MAX_TAGS} tags are allowed")
    return (sorted(cleaned), None)


def _validate_fields(body: Mapping[str, Any]) -> tuple[dict[str, Any], str | None]:
    kwargs: dict[str, Any] = {}
    read_only = [key for key in sorted(_READ_ONLY_FIELDS) if key in body]
    if read_only:
        return ({}, f"{read_only[0]} is read-only")
    for key, (kwarg, max_length, allow_newlines) in _TEXT_FIELDS.items():
        if key not in body or body[key] is None:
            continue
        cleaned, err = sanitize_text(body[key], key, max_length=max_length, allow_newlines=allow_newlines)
        if err:
            return ({}, err)
        kwargs[kwarg] = cleaned
    for key, choices in _CHOICE_FIELDS.items():
        if key not in body or body[key] is None:
            continue
        choice, err = validate_choice(body[key], key, choices)
        if err:
            return ({}, err)
        kwargs[key] = choice
    if body.get("tags") is not None:
        tags, err = normalize_tags(body["tags"])
        if err:
            return ({}, err)
        kwargs["tags"] = tags
    return (kwargs, None)


def validate_bug_create(body: Mapping[str, Any]) -> tuple[dict[str, Any], str | None]:
    """Turn a JSON create request into ``BugDB.create_bug`` keyword arguments.

    ``title`` and ``reportedBy`` are required and must be non-empty. New
    bugs always start ``open``, so ``status`` is rejected here.
    """
    if "status" in body:
        return ({}, "status cannot be set on creation")
    kwargs, err = _validate_fields(body)
    if err:
        return ({}, err)
    for key in _CREATE_REQUIRED:
        kwarg = _TEXT_FIELDS[key][0]
        if not kwargs.get(kwarg):
            return ({}, f"{key} is required")
    return (kwargs, None)


def validate_bug_update(body: Mapping[str, Any]) -> tuple[dict[str, Any], str | None]:
    """Turn a JSON patch into ``BugDB.update_bug`` keyword arguments.

    Absent or null keys leave the field unchanged. Required text fields
    may not be blanked.
    """
    kwargs, err = _validate_fields(body)
    if err:
        return ({}, err)
    for key in _CREATE_REQUIRED:
        kwarg = _TEXT_FIELDS[key][0]
        if kwarg in kwargs and not kwargs[kwarg]:
            return ({}, f"{key} cannot be empty")
    return (kwargs, None)
