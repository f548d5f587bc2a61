"""MCP tools for the semantic code index."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any

from mcp.types import TextContent, Tool

from tessera.mcp_tools.common import (
    Registration,
    _error,
    _first_error,
    _text,
    _validate_bool,
    _validate_int_range,
    _validate_str,
    _validate_str_list,
)
from tessera.types.api import (
    CodeSearchResponse,
    IndexCodebaseResponse,
    IndexStatusResponse,
    RelatedFilesResponse,
)

if TYPE_CHECKING:
    from tessera.context import ProjectContext

logger = logging.getLogger(__name__)

_MAX_CODE_RESULTS = 100
_MAX_DEPTH = 5


def register() -> Registration:
    tools = [
        Tool(
            name="index_codebase",
            description=(
                "Index the git-tracked source files of the project for search_code. Incremental: unchanged "
                "files are skipped unless force=true."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "force": {"type": "boolean", "default": False},
                    "exclude": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Extra glob patterns to skip, e.g. 'tests/*'",
                    },
                },
            },
        ),
        Tool(
            name="search_code",
            description="Semantic search over indexed code chunks. Returns file, line range, content and similarity.",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Natural language or a code snippet"},
                    "limit": {"type": "integer", "default": 10, "minimum": 1, "maximum": _MAX_CODE_RESULTS},
                    "fileTypes": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Restrict to extensions, e.g. ['py', '.ts']",
                    },
                    "minScore": {"type": "number", "description": "Drop hits below this similarity"},
                },
                "required": ["query"],
            },
        ),
        Tool(
            name="get_related_files",
            description="Find files whose code resembles the given file",
            inputSchema={
                "type": "object",
                "properties": {
                    "file": {"type": "string", "description": "Path relative to the project root"},
                    "depth": {"type": "integer", "default": 1, "minimum": 1, "maximum": _MAX_DEPTH},
                },
                "required": ["file"],
            },
        ),
        Tool(
            name="get_index_status",
            description="Report whether the code index exists, with file and chunk counts and size on disk",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]
    handlers = {
        "index_codebase": _handle_index_codebase,
        "search_code": _handle_search_code,
        "get_related_files": _handle_get_related_files,
        "get_index_status": _handle_get_index_status,
    }
    return tools, handlers


async def _handle_index_codebase(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    err = _first_error(
        _validate_bool(arguments.get("force"), "force"),
        _validate_str_list(arguments.get("exclude"), "exclude"),
    )
    if err:
        return err
    indexer = ctx.indexer
    stop = threading.Event()
    try:
        report = await asyncio.to_thread(
            indexer.index_all,
            force=bool(arguments.get("force", False)),
            should_stop=stop.is_set,
            exclude=arguments.get("exclude") or (),
        )
    except asyncio.CancelledError:
        # The worker thread cannot be interrupted; it stops after its current file.
        logger.info("index_codebase cancelled for %s", ctx.project_root)
        stop.set()
        raise
    stats = await asyncio.to_thread(indexer.get_stats)
    return _text(IndexCodebaseResponse(report=report, stats=stats))


async def _handle_search_code(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    min_score = arguments.get("minScore")
    err = _first_error(
        _validate_str(arguments.get("query"), "query", required=True),
        _validate_int_range(arguments.get("limit"), "limit", min_val=1, max_val=_MAX_CODE_RESULTS),
        _validate_str_list(arguments.get("fileTypes"), "fileTypes"),
    )
    if err:
        return err
    if min_score is not None and (isinstance(min_score, bool) or not isinstance(min_score, int | float)):
        return _error("minScore must be a number", "validation_error")
    hits = await asyncio.to_thread(
        ctx.indexer.search,
        arguments["query"],
        limit=arguments.get("limit", 10),
        file_types=arguments.get("fileTypes"),
        min_score=min_score,
    )
    return _text(CodeSearchResponse(query=arguments["query"], results=hits, count=len(hits)))


async def _handle_get_related_files(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    err = _first_error(
        _validate_str(arguments.get("file"), "file", required=True),
        _validate_int_range(arguments.get("depth"), "depth", min_val=1, max_val=_MAX_DEPTH),
    )
    if err:
        return err
    related = await asyncio.to_thread(ctx.indexer.get_related_files, arguments["file"], depth=arguments.get("depth", 1))
    return _text(RelatedFilesResponse(file=arguments["file"], related=related))


async def _handle_get_index_status(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    indexer = ctx.indexer
    stats = await asyncio.to_thread(indexer.get_stats)
    indexed = await asyncio.to_thread(indexer.has_index)
    return _text(IndexStatusResponse(**stats, indexed=indexed, project_root=str(ctx.project_root)))
