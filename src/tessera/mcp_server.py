"""MCP server for the tessera knowledge base.

Primary interface for agents. Direct SQLite, no daemon.
Exposes items, tags, types, the current state and the code index as MCP tools.

Usage:
    tessera-mcp                              # Auto-discover .tessera/ from cwd
    tessera-mcp --project /path/to/project   # Explicit project root
    TESSERA_DIR=/path/.tessera tessera-mcp   # Explicit .tessera/ directory
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Resource, TextContent, Tool

from tessera.context import ProjectContext
from tessera.core import TESSERA_DIR_NAME, find_tessera_root
from tessera.mcp_tools import code_index, items, meta, state
from tessera.mcp_tools.common import ToolHandler, _error, _error_from

logger = logging.getLogger(__name__)

CURRENT_STATE_URI = "tessera://current-state"
TESSERA_DIR_ENV = "TESSERA_DIR"

# ---------------------------------------------------------------------------
# Tool registry
# ---------------------------------------------------------------------------


def _collect_tools() -> tuple[list[Tool], dict[str, ToolHandler]]:
    tools: list[Tool] = []
    handlers: dict[str, ToolHandler] = {}
    for module in (items, meta, state, code_index):
        module_tools, module_handlers = module.register()
        tools.extend(module_tools)
        handlers.update(module_handlers)
    return tools, handlers


TOOLS, HANDLERS = _collect_tools()


async def dispatch(ctx: ProjectContext, name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
    """Run one tool call against *ctx*, translating domain errors into the error envelope."""
    handler = HANDLERS.get(name)
    if handler is None:
        return _error(f"Unknown tool: {name}", "unknown_tool")
    args = arguments or {}
    t0 = time.monotonic()

    try:
        result = await handler(ctx, args)
    except Exception as exc:
        response = _error_from(exc)
        if response is None:
            logger.error("tool_error", extra={"tool": name, "args_data": args}, exc_info=True)
            raise
        logger.warning("tool_error", extra={"tool": name, "args_data": args, "error": str(exc)})
        return response
    else:
        duration_ms = round((time.monotonic() - t0) * 1000, 1)
        logger.info("tool_call", extra={"tool": name, "args_data": args, "duration_ms": duration_ms})
        return result
    finally:
        # Successful mutations commit explicitly; anything still open here is
        # a partial failure that must not leak into the next call's commit.
        if ctx.db.conn.in_transaction:
            ctx.db.conn.rollback()


def create_server(ctx: ProjectContext) -> Server:
    """Build an MCP ``Server`` whose handlers are bound to *ctx*."""
    server = Server("tessera")

    @server.list_resources()  # type: ignore[untyped-decorator,no-untyped-call]
    async def list_resources() -> list[Resource]:
        return [
            Resource(
                uri=CURRENT_STATE_URI,  # type: ignore[arg-type]
                name="Current State",
                description="The project's handover document: what is in flight and what comes next",
                mimeType="text/markdown",
            ),
        ]

    @server.read_resource()  # type: ignore[untyped-decorator,no-untyped-call]
    async def read_resource(uri: Any) -> str:
        if str(uri) == CURRENT_STATE_URI:
            return ctx.current_state.get()["content"]
        msg = f"Unknown resource: {uri}"
        raise ValueError(msg)

    @server.list_tools()  # type: ignore[untyped-decorator,no-untyped-call]
    async def list_tools() -> list[Tool]:
        return list(TOOLS)

    @server.call_tool()  # type: ignore[untyped-decorator]
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        return await dispatch(ctx, name, arguments)

    return server


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def resolve_tessera_dir(project_path: Path | None) -> Path:
    """``--project`` wins, then ``$TESSERA_DIR``, then discovery from cwd.

    Raises FileNotFoundError naming what was looked for.
    """
    if project_path is not None:
        tessera_dir = project_path / TESSERA_DIR_NAME
    elif os.environ.get(TESSERA_DIR_ENV):
        tessera_dir = Path(os.environ[TESSERA_DIR_ENV])
    else:
        return find_tessera_root()
    if not tessera_dir.is_dir():
        msg = f"{tessera_dir} not found. Run 'tessera init' first."
        raise FileNotFoundError(msg)
    return tessera_dir


async def _run(project_path: Path | None) -> None:
    try:
        tessera_dir = resolve_tessera_dir(project_path)
    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    from tessera.logging import setup_logging

    run_logger = setup_logging(tessera_dir)
    ctx = ProjectContext.open(tessera_dir)
    run_logger.info("mcp_server_start", extra={"tool": "server", "args_data": {"project": str(ctx.project_root)}})
    server = create_server(ctx)
    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        ctx.close()
        run_logger.info("mcp_server_stop", extra={"tool": "server"})


def main() -> None:
    import asyncio

    parser = argparse.ArgumentParser(description="Tessera MCP server")
    parser.add_argument("--project", type=Path, default=None, help="Project root (auto-discovers .tessera/ if omitted)")
    args = parser.parse_args()

    asyncio.run(_run(args.project))


if __name__ == "__main__":
    main()
