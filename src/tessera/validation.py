"""Shared validation functions for all entry points.

Pure functions, no MCP or Click dependencies. Validators return an error
message, or ``None`` when the value is acceptable, so callers can collect
every problem before raising.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import date
from typing import Any

_MAX_ACTOR_LENGTH = 128
_MAX_TITLE_LENGTH = 500

TAG_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")
ITEM_ID_RE = re.compile(r"^[A-Za-z0-9._-]+$")
SESSION_ID_RE = re.compile(r"^\d{4}-\d{2}-\d{2}-\d{2}\.\d{2}\.\d{2}\.\d{3}$")
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

VALID_PRIORITIES: frozenset[str] = frozenset({"high", "medium", "low"})
DEFAULT_PRIORITY = "medium"


def sanitize_actor(value: Any) -> tuple[str, str | None]:
    """Validate and clean an ``updated_by`` actor name.

    Returns (cleaned_actor, None) on success or ("", error_message) on failure.
    Strips whitespace, then checks: non-empty, max length, no control/format chars.
    """
    if not isinstance(value, str):
        return ("", "updated_by must be a string")
    for ch in value:
        cat = unicodedata.category(ch)
        if cat.startswith("C"):
            return ("", f"updated_by must not contain control characters (found U+{ord(ch):04X})")
    cleaned = value.strip()
    if not cleaned:
        return ("", "updated_by must not be empty")
    if len(cleaned) > _MAX_ACTOR_LENGTH:
        return ("", f"updated_by must be at most {_MAX_ACTOR_LENGTH} characters")
    return (cleaned, None)


def validate_tag_name(name: Any) -> str | None:
    """Return an error message if *name* is not a valid tag name."""
    if not isinstance(name, str) or not name:
        return "Tag name must be a non-empty string"
    if not TAG_NAME_RE.match(name):
        return f"Invalid tag name '{name}': use letters, digits, hyphens and underscores only"
    return None


def validate_item_id(item_id: Any) -> str | None:
    """Return an error message if *item_id* is unsafe to use as a file name component."""
    if not isinstance(item_id, str) or not item_id:
        return "Item id must be a non-empty string"
    if ".." in item_id or "/" in item_id or "\\" in item_id:
        return f"Invalid item id '{item_id}': path separators and '..' are not allowed"
    if not ITEM_ID_RE.match(item_id):
        return f"Invalid item id '{item_id}': use letters, digits, '.', '-' and '_' only"
    return None


def validate_title(title: Any) -> str | None:
    if not isinstance(title, str) or not title.strip():
        return "title is required and cannot be empty"
    if "\n" in title or "\r" in title:
        return "title must be a single line"
    if len(title) > _MAX_TITLE_LENGTH:
        return f"title must be at most {_MAX_TITLE_LENGTH} characters"
    return None


def validate_priority(priority: Any) -> str | None:
    if priority not in VALID_PRIORITIES:
        return f"Invalid priority '{priority}': expected one of high, medium, low"
    return None


def parse_date(value: Any, name: str) -> tuple[date | None, str | None]:
    """Parse a ``YYYY-MM-DD`` string. Returns (date, None) or (None, error)."""
    if not isinstance(value, str) or not DATE_RE.match(value):
        return (None, f"{name} must be a date in YYYY-MM-DD format, got {value!r}")
    try:
        return (date.fromisoformat(value), None)
    except ValueError:
        return (None, f"{name} is not a valid calendar date: {value}")


def validate_date_range(start: str | None, end: str | None) -> list[str]:
    """Validate an optional start/end pair. Returns every problem found."""
    problems: list[str] = []
    start_d = end_d = None
    if start is not None:
        start_d, err = parse_date(start, "start_date")
        if err:
            problems.append(err)
    if end is not None:
        end_d, err = parse_date(end, "end_date")
        if err:
            problems.append(err)
    if start_d is not None and end_d is not None and end_d < start_d:
        problems.append(f"end_date {end} is before start_date {start}")
    return problems


def validate_string_list(value: Any, name: str) -> str | None:
    """Return an error message if *value* is not a list of strings."""
    if not isinstance(value, list) or not all(isinstance(i, str) for i in value):
        return f"{name} must be a list of strings"
    return None


def dedupe(values: list[str]) -> list[str]:
    """Drop repeated entries, keeping first-seen order."""
    seen: set[str] = set()
    out: list[str] = []
    for v in values:
        if v not in seen:
            seen.add(v)
            out.append(v)
    return out
