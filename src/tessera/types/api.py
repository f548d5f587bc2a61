"""TypedDicts for repository results and MCP tool handler responses."""

from __future__ import annotations

from typing import NotRequired, TypedDict

from tessera.types.core import ItemSummary

# ---------------------------------------------------------------------------
# Shared types
# ---------------------------------------------------------------------------


class ErrorResponse(TypedDict):
    """Standard error envelope returned by MCP error paths."""

    error: str
    code: str
    problems: NotRequired[list[str]]


class ChangeTypeResult(TypedDict):
    old_ref: str
    new_ref: str
    new_id: str
    related_updates: int


class GroupedItems(TypedDict):
    tasks: list[ItemSummary]
    documents: list[ItemSummary]


class SearchHit(ItemSummary):
    snippet: str
    score: float


class SearchResult(TypedDict):
    results: list[SearchHit]
    total: int
    limit: int
    offset: int
    has_more: bool


class Suggestion(TypedDict):
    type: str
    id: str
    title: str


class RelatedItem(TypedDict):
    type: str
    id: str
    title: str
    score: float


class RebuildReport(TypedDict):
    items: int
    types_registered: list[str]
    tags: int
    relations: int
    errors: list[str]
    legacy_files: list[str]


# ---------------------------------------------------------------------------
# Code index
# ---------------------------------------------------------------------------


class CodeSearchHit(TypedDict):
    file_path: str
    start_line: int
    end_line: int
    content: str
    similarity: float


class RelatedFile(TypedDict):
    file_path: str
    score: float
    max_similarity: float
    matching_chunks: int


class IndexStats(TypedDict):
    total_files: int
    total_chunks: int
    index_size: int
    last_updated: str | None
    embedding_dimensions: int | None


class IndexReport(TypedDict):
    files_seen: int
    files_indexed: int
    files_skipped: int
    files_removed: int
    chunks_indexed: int
    cancelled: bool


# ---------------------------------------------------------------------------
# MCP handler responses
# ---------------------------------------------------------------------------


class ItemListResponse(TypedDict):
    type: str
    items: list[ItemSummary]
    count: int


class DeleteItemResponse(TypedDict):
    status: str
    ref: str
    related_updates: int


class DeleteTagResponse(TypedDict):
    status: str
    name: str
    items_updated: int


class CodeSearchResponse(TypedDict):
    query: str
    results: list[CodeSearchHit]
    count: int


class RelatedFilesResponse(TypedDict):
    file: str
    related: list[RelatedFile]


class IndexCodebaseResponse(TypedDict):
    report: IndexReport
    stats: IndexStats


class IndexStatusResponse(IndexStats):
    indexed: bool
    project_root: str
