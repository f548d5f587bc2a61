"""Typed return-value contracts for tessera core and API layers.

IMPORT CONSTRAINT: types/ modules import only from typing, stdlib, and each
other, never from core.py or the mixins.
"""

from __future__ import annotations

from tessera.types.api import (
    ChangeTypeResult,
    CodeSearchHit,
    CodeSearchResponse,
    DeleteItemResponse,
    DeleteTagResponse,
    ErrorResponse,
    GroupedItems,
    IndexCodebaseResponse,
    IndexReport,
    IndexStats,
    IndexStatusResponse,
    ItemListResponse,
    RebuildReport,
    RelatedFile,
    RelatedFilesResponse,
    SearchResult,
)
from tessera.types.core import (
    CurrentStateDict,
    ISOTimestamp,
    ItemDict,
    ItemSummary,
    ProjectConfig,
    StatusRecord,
    TagRecord,
    TypeRecord,
)

__all__ = [
    "ChangeTypeResult",
    "CodeSearchHit",
    "CodeSearchResponse",
    "CurrentStateDict",
    "DeleteItemResponse",
    "DeleteTagResponse",
    "ErrorResponse",
    "GroupedItems",
    "ISOTimestamp",
    "IndexCodebaseResponse",
    "IndexReport",
    "IndexStats",
    "IndexStatusResponse",
    "ItemDict",
    "ItemListResponse",
    "ItemSummary",
    "ProjectConfig",
    "RebuildReport",
    "RelatedFile",
    "RelatedFilesResponse",
    "SearchResult",
    "StatusRecord",
    "TagRecord",
    "TypeRecord",
]
