"""Item dataclass and the partial-update object used by update_item."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Final

from tessera.item_types import format_reference
from tessera.types.core import ISOTimestamp, ItemDict, ItemSummary


class _Unset:
    """Marker for a patch field the caller did not supply."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Final = _Unset()


@dataclass
class Item:
    type: str
    id: str
    title: str
    description: str | None = None
    content: str = ""
    priority: str | None = None
    status: str | None = None
    tags: list[str] = field(default_factory=list)
    related: list[str] = field(default_factory=list)
    start_date: str | None = None
    end_date: str | None = None
    start_time: str | None = None
    created_at: str = ""
    updated_at: str = ""
    # Computed (index only, not stored in the file)
    keywords: list[str] = field(default_factory=list)

    @property
    def ref(self) -> str:
        return format_reference(self.type, self.id)

    def to_summary(self) -> ItemSummary:
        return ItemSummary(
            type=self.type,
            id=self.id,
            title=self.title,
            description=self.description,
            priority=self.priority,
            status=self.status,
            tags=list(self.tags),
            related=list(self.related),
            start_date=self.start_date,
            end_date=self.end_date,
            created_at=ISOTimestamp(self.created_at),
            updated_at=ISOTimestamp(self.updated_at),
        )

    def to_dict(self) -> ItemDict:
        return ItemDict(
            **self.to_summary(),
            content=self.content,
            start_time=self.start_time,
            keywords=list(self.keywords),
        )


@dataclass
class ItemPatch:
    """Fields to change on an existing item.

    A field left at ``UNSET`` is unchanged. Any other value, including
    ``None``, ``""`` and ``[]``, replaces the stored value; that is how a
    caller clears a field.
    """

    title: Any = UNSET
    description: Any = UNSET
    content: Any = UNSET
    priority: Any = UNSET
    status: Any = UNSET
    tags: Any = UNSET
    related: Any = UNSET
    start_date: Any = UNSET
    end_date: Any = UNSET

    @classmethod
    def from_arguments(cls, arguments: dict[str, Any]) -> ItemPatch:
        """Build a patch from the keys actually present in *arguments*."""
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in arguments.items() if k in names})

    def changed_fields(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not UNSET}

    def is_empty(self) -> bool:
        return not self.changed_fields()
