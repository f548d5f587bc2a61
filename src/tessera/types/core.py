"""Foundational TypedDicts for dataclass to_dict() returns."""

from __future__ import annotations

from typing import NewType, NotRequired, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)


class ProjectConfig(TypedDict, total=False):
    """Shape of .tessera/config.json."""

    name: str
    version: int
    embedding_backend: str
    embedding_model: str
    chunk_size: int
    max_file_size: int
    exclude: list[str]


class ItemSummary(TypedDict):
    """Reduced item shape used by list and search results (no content)."""

    type: str
    id: str
    title: str
    description: str | None
    priority: str | None
    status: str | None
    tags: list[str]
    related: list[str]
    start_date: str | None
    end_date: str | None
    created_at: ISOTimestamp
    updated_at: ISOTimestamp


class ItemDict(ItemSummary):
    content: str
    start_time: str | None
    keywords: list[str]


class TypeRecord(TypedDict):
    name: str
    base_type: str
    description: str | None
    is_builtin: bool
    item_count: NotRequired[int]


class StatusRecord(TypedDict):
    id: int
    name: str
    is_closed: bool
    sort_order: int


class TagRecord(TypedDict):
    name: str
    count: int
    created_at: ISOTimestamp


class CurrentStateMetadata(TypedDict):
    title: str
    type: str
    priority: str
    tags: list[str]
    related: list[str]
    updated_at: ISOTimestamp | None
    updated_by: str | None


class CurrentStateDict(TypedDict):
    content: str
    metadata: CurrentStateMetadata
