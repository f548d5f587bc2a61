"""MCP tools for statuses, tags, the type registry, and index maintenance."""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any

from mcp.types import TextContent, Tool

from tessera.item_types import BASE_TYPES, BUILTIN_TYPES
from tessera.mcp_tools.common import (
    Registration,
    _first_error,
    _text,
    _validate_bool,
    _validate_str,
)
from tessera.types.api import DeleteTagResponse

if TYPE_CHECKING:
    from tessera.context import ProjectContext


def register() -> Registration:
    """Return (tool_definitions, handler_map) for registry and maintenance tools."""
    name_only = {
        "type": "object",
        "properties": {"name": {"type": "string"}},
        "required": ["name"],
    }
    tools = [
        Tool(
            name="get_statuses",
            description="List the status vocabulary for task types, with ids and whether each is closed",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="get_tags",
            description="List all tags with the number of items carrying each",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(name="create_tag", description="Register a new tag", inputSchema=name_only),
        Tool(
            name="delete_tag",
            description="Delete a tag and remove it from every item that carries it",
            inputSchema=name_only,
        ),
        Tool(
            name="search_tags",
            description="Find tags whose name contains the given text (case-insensitive)",
            inputSchema={
                "type": "object",
                "properties": {"pattern": {"type": "string"}},
                "required": ["pattern"],
            },
        ),
        Tool(
            name="get_types",
            description=(
                "List item types grouped by base type (tasks, documents). Set include_definitions=true "
                "for item counts, descriptions and per-base-type field rules."
            ),
            inputSchema={
                "type": "object",
                "properties": {"include_definitions": {"type": "boolean", "default": False}},
            },
        ),
        Tool(
            name="create_type",
            description="Register a custom item type",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Lowercase letters, digits and underscores"},
                    "base_type": {"type": "string", "enum": ["tasks", "documents"], "default": "documents"},
                    "description": {"type": "string"},
                },
                "required": ["name"],
            },
        ),
        Tool(
            name="update_type",
            description="Change a type's description. Types cannot be renamed.",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "description": {"type": "string"},
                    "new_name": {"type": "string", "description": "Rejected: renaming is not supported"},
                },
                "required": ["name"],
            },
        ),
        Tool(
            name="delete_type",
            description="Delete a custom type that has no items",
            inputSchema=name_only,
        ),
        Tool(
            name="rebuild_index",
            description=(
                "Rebuild the item index from the markdown files on disk. Set upgrade_legacy=true to rewrite "
                "files that still use comma-separated lists."
            ),
            inputSchema={
                "type": "object",
                "properties": {"upgrade_legacy": {"type": "boolean", "default": False}},
            },
        ),
    ]

    handlers = {
        "get_statuses": _handle_get_statuses,
        "get_tags": _handle_get_tags,
        "create_tag": _handle_create_tag,
        "delete_tag": _handle_delete_tag,
        "search_tags": _handle_search_tags,
        "get_types": _handle_get_types,
        "create_type": _handle_create_type,
        "update_type": _handle_update_type,
        "delete_type": _handle_delete_type,
        "rebuild_index": _handle_rebuild_index,
    }
    return tools, handlers


async def _handle_get_statuses(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    return _text(ctx.db.get_statuses())


async def _handle_get_tags(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    return _text(ctx.db.get_tags())


async def _handle_create_tag(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    err = _validate_str(arguments.get("name"), "name", required=True)
    if err:
        return err
    return _text(ctx.db.create_tag(arguments["name"]))


async def _handle_delete_tag(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    err = _validate_str(arguments.get("name"), "name", required=True)
    if err:
        return err
    updated = ctx.db.delete_tag(arguments["name"])
    return _text(DeleteTagResponse(status="deleted", name=arguments["name"], items_updated=updated))


async def _handle_search_tags(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    err = _validate_str(arguments.get("pattern"), "pattern", required=True)
    if err:
        return err
    return _text(ctx.db.search_tags(arguments["pattern"]))


def _base_type_definitions() -> dict[str, Any]:
    definitions: dict[str, Any] = {}
    for name, descriptor in BASE_TYPES.items():
        data = dataclasses.asdict(descriptor)
        data["required_fields"] = list(descriptor.required_fields)
        definitions[name] = data
    return definitions


async def _handle_get_types(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    err = _validate_bool(arguments.get("include_definitions"), "include_definitions")
    if err:
        return err
    grouped = ctx.db.get_types_grouped()
    if not arguments.get("include_definitions"):
        return _text({base: [t["name"] for t in records] for base, records in grouped.items()})
    return _text(
        {
            "types": grouped,
            "builtin": sorted(BUILTIN_TYPES),
            "definitions": _base_type_definitions(),
        }
    )


async def _handle_create_type(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    err = _first_error(
        _validate_str(arguments.get("name"), "name", required=True),
        _validate_str(arguments.get("base_type"), "base_type"),
        _validate_str(arguments.get("description"), "description"),
    )
    if err:
        return err
    record = ctx.db.create_type(
        arguments["name"],
        arguments.get("base_type") or "documents",
        arguments.get("description"),
    )
    return _text(record)


async def _handle_update_type(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    err = _first_error(
        _validate_str(arguments.get("name"), "name", required=True),
        _validate_str(arguments.get("description"), "description"),
        _validate_str(arguments.get("new_name"), "new_name"),
    )
    if err:
        return err
    record = ctx.db.update_type(arguments["name"], arguments.get("description"), new_name=arguments.get("new_name"))
    return _text(record)


async def _handle_delete_type(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    err = _validate_str(arguments.get("name"), "name", required=True)
    if err:
        return err
    ctx.db.delete_type(arguments["name"])
    return _text({"status": "deleted", "name": arguments["name"]})


async def _handle_rebuild_index(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    err = _validate_bool(arguments.get("upgrade_legacy"), "upgrade_legacy")
    if err:
        return err
    return _text(ctx.db.rebuild_index(upgrade_legacy=bool(arguments.get("upgrade_legacy", False))))
