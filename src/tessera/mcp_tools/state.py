"""MCP tools for the current-state handover document."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from mcp.types import TextContent, Tool

from tessera.mcp_tools.common import Registration, _error, _first_error, _text, _validate_str, _validate_str_list

if TYPE_CHECKING:
    from tessera.context import ProjectContext


def register() -> Registration:
    tools = [
        Tool(
            name="get_current_state",
            description="Read the project's current-state document (empty content if never written)",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="update_current_state",
            description="Replace the current-state document. related entries must reference existing items.",
            inputSchema={
                "type": "object",
                "properties": {
                    "content": {"type": "string", "description": "Markdown body"},
                    "tags": {"type": "array", "items": {"type": "string"}},
                    "related": {"type": "array", "items": {"type": "string"}, "description": "'type-id' references"},
                    "updated_by": {"type": "string", "description": "Who is writing this state"},
                },
                "required": ["content"],
            },
        ),
    ]
    handlers = {
        "get_current_state": _handle_get_current_state,
        "update_current_state": _handle_update_current_state,
    }
    return tools, handlers


async def _handle_get_current_state(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    return _text(ctx.current_state.get())


async def _handle_update_current_state(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    if "content" not in arguments:
        return _error("content is required", "validation_error")
    err = _first_error(
        _validate_str(arguments.get("content"), "content"),
        _validate_str_list(arguments.get("tags"), "tags"),
        _validate_str_list(arguments.get("related"), "related"),
        _validate_str(arguments.get("updated_by"), "updated_by"),
    )
    if err:
        return err
    state = ctx.current_state.update(
        arguments.get("content") or "",
        tags=arguments.get("tags"),
        related=arguments.get("related"),
        updated_by=arguments.get("updated_by"),
    )
    return _text(state)
