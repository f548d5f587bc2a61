"""Base-category descriptors and reference-string helpers.

Every item type maps to one of four base categories. The category decides
how IDs are allocated, which fields are required, whether the status filter
applies, and which column drives date-range filtering and ordering. The
repositories consult :data:`BASE_TYPES` instead of branching on type names.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

IdStrategy = Literal["sequence", "date", "timestamp"]
BaseTypeName = Literal["tasks", "documents", "sessions", "dailies"]

TYPE_NAME_RE = re.compile(r"^[a-z][a-z0-9_]*$")
MAX_TYPE_NAME_LENGTH = 50


@dataclass(frozen=True)
class BaseTypeDescriptor:
    name: BaseTypeName
    id_strategy: IdStrategy
    required_fields: tuple[str, ...]
    supports_status: bool
    supports_dates: bool
    # get_items returns summaries (no content) for these.
    summary_view: bool
    # Column used for date-range filters and recency ordering.
    date_column: str
    # Category shown when results are regrouped into task/document buckets.
    group: Literal["tasks", "documents"]


BASE_TYPES: dict[str, BaseTypeDescriptor] = {
    "tasks": BaseTypeDescriptor(
        name="tasks",
        id_strategy="sequence",
        required_fields=("title",),
        supports_status=True,
        supports_dates=True,
        summary_view=True,
        date_column="updated_at",
        group="tasks",
    ),
    "documents": BaseTypeDescriptor(
        name="documents",
        id_strategy="sequence",
        required_fields=("title", "content"),
        supports_status=False,
        supports_dates=False,
        summary_view=True,
        date_column="updated_at",
        group="documents",
    ),
    "sessions": BaseTypeDescriptor(
        name="sessions",
        id_strategy="timestamp",
        required_fields=("title",),
        supports_status=False,
        supports_dates=False,
        summary_view=False,
        date_column="start_date",
        group="tasks",
    ),
    "dailies": BaseTypeDescriptor(
        name="dailies",
        id_strategy="date",
        required_fields=("title", "content"),
        supports_status=False,
        supports_dates=False,
        summary_view=False,
        date_column="start_date",
        group="documents",
    ),
}

# Base categories a registered (non-special) type may use.
USER_BASE_TYPES: frozenset[str] = frozenset({"tasks", "documents"})

# Types that always exist, resolve to their own descriptor, and never appear
# in the registry listing.
SPECIAL_TYPES: dict[str, str] = {"sessions": "sessions", "dailies": "dailies"}

BUILTIN_TYPES: dict[str, tuple[str, str]] = {
    "issues": ("tasks", "Bugs, features and other trackable work"),
    "plans": ("tasks", "Multi-step plans and milestones"),
    "docs": ("documents", "Project documentation"),
    "knowledge": ("documents", "Reusable notes, decisions and learnings"),
}


def validate_type_name(name: object) -> str | None:
    """Return an error message if *name* is not a syntactically valid type name."""
    if not isinstance(name, str) or not name:
        return "Type name must be a non-empty string"
    if len(name) > MAX_TYPE_NAME_LENGTH:
        return f"Type name '{name}' is longer than {MAX_TYPE_NAME_LENGTH} characters"
    if not TYPE_NAME_RE.match(name):
        return f"Invalid type name '{name}': must start with a lowercase letter and contain only lowercase letters, digits and underscores"
    return None


def parse_reference(ref: object) -> tuple[str, str]:
    """Split a ``"type-id"`` reference into its parts.

    Type names cannot contain hyphens, so the first hyphen always separates
    the type from the id (ids such as session timestamps contain hyphens).
    Raises ValueError for malformed references.
    """
    if not isinstance(ref, str) or not ref:
        msg = f"Invalid reference {ref!r}: expected 'type-id'"
        raise ValueError(msg)
    type_name, sep, item_id = ref.partition("-")
    if not sep or not type_name or not item_id:
        msg = f"Invalid reference '{ref}': expected 'type-id'"
        raise ValueError(msg)
    if validate_type_name(type_name) is not None:
        msg = f"Invalid reference '{ref}': '{type_name}' is not a valid type name"
        raise ValueError(msg)
    return type_name, item_id


def format_reference(type_name: str, item_id: str) -> str:
    return f"{type_name}-{item_id}"
