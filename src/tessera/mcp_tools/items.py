"""MCP tools for item CRUD, type changes, tag lookup and full-text search."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from mcp.types import TextContent, Tool

from tessera.mcp_tools.common import (
    ITEM_KEY_PROPERTIES,
    Registration,
    _error,
    _first_error,
    _item_id,
    _text,
    _validate_bool,
    _validate_int_range,
    _validate_str,
    _validate_str_list,
)
from tessera.models import ItemPatch
from tessera.types.api import DeleteItemResponse, ItemListResponse

if TYPE_CHECKING:
    from tessera.context import ProjectContext

_MAX_LIST_RESULTS = 1000
_MAX_SEARCH_RESULTS = 100

_STRING_LIST = {"type": "array", "items": {"type": "string"}}

_ITEM_FIELDS: dict[str, Any] = {
    "title": {"type": "string", "description": "Item title (single line)"},
    "description": {"type": "string", "description": "Short description"},
    "content": {"type": "string", "description": "Markdown body. Required for document types."},
    "priority": {"type": "string", "enum": ["high", "medium", "low"], "description": "Task types only"},
    "status": {"type": "string", "description": "Status name (task types only). See get_statuses."},
    "tags": {**_STRING_LIST, "description": "Tag names; unknown tags are registered automatically"},
    "related": {**_STRING_LIST, "description": "References to other items as 'type-id', e.g. 'issues-3'"},
    "start_date": {"type": "string", "description": "YYYY-MM-DD. Task types, or the date of a daily."},
    "end_date": {"type": "string", "description": "YYYY-MM-DD, not before start_date. Task types only."},
}


def register() -> Registration:
    """Return (tool_definitions, handler_map) for item tools."""
    tools = [
        Tool(
            name="get_items",
            description=(
                "List items of one type, most recent first. Task types hide closed statuses unless "
                "includeClosedStatuses is true or statusIds are given. Sessions and dailies return full content."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "type": ITEM_KEY_PROPERTIES["type"],
                    "statusIds": {"type": "array", "items": {"type": "integer"}, "description": "Only these status ids"},
                    "includeClosedStatuses": {"type": "boolean", "default": False},
                    "start_date": {"type": "string", "description": "YYYY-MM-DD lower bound (inclusive)"},
                    "end_date": {"type": "string", "description": "YYYY-MM-DD upper bound (inclusive)"},
                    "limit": {"type": "integer", "minimum": 1, "maximum": _MAX_LIST_RESULTS},
                },
                "required": ["type"],
            },
        ),
        Tool(
            name="get_item_detail",
            description="Get one item with its full content, tags, related references and extracted keywords",
            inputSchema={
                "type": "object",
                "properties": dict(ITEM_KEY_PROPERTIES),
                "required": ["type", "id"],
            },
        ),
        Tool(
            name="create_item",
            description=(
                "Create an item. Ids are allocated per type; dailies are keyed by date and sessions by "
                "timestamp (pass id or datetime to choose one)."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "type": ITEM_KEY_PROPERTIES["type"],
                    **_ITEM_FIELDS,
                    "id": {"type": "string", "description": "Session id YYYY-MM-DD-HH.MM.SS.mmm (sessions only)"},
                    "datetime": {"type": "string", "description": "ISO timestamp to derive a session id from"},
                },
                "required": ["type", "title"],
            },
        ),
        Tool(
            name="update_item",
            description=(
                "Update an item. Only the fields present are changed; pass [] or \"\" to clear a field. "
                "title cannot be cleared."
            ),
            inputSchema={
                "type": "object",
                "properties": {**ITEM_KEY_PROPERTIES, **_ITEM_FIELDS},
                "required": ["type", "id"],
            },
        ),
        Tool(
            name="delete_item",
            description="Delete an item and remove references to it from other items",
            inputSchema={
                "type": "object",
                "properties": dict(ITEM_KEY_PROPERTIES),
                "required": ["type", "id"],
            },
        ),
        Tool(
            name="search_items_by_tag",
            description="Find items carrying an exact tag, grouped into tasks and documents",
            inputSchema={
                "type": "object",
                "properties": {
                    "tag": {"type": "string"},
                    "types": {**_STRING_LIST, "description": "Restrict to these item types"},
                },
                "required": ["tag"],
            },
        ),
        Tool(
            name="change_item_type",
            description=(
                "Move an item to another type with the same base type. It gets a new id and every "
                "reference to it is rewritten. Sessions and dailies cannot be moved."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "from_type": {"type": "string"},
                    "from_id": {"type": ["string", "integer"]},
                    "to_type": {"type": "string"},
                },
                "required": ["from_type", "from_id", "to_type"],
            },
        ),
        Tool(
            name="search_items",
            description="Full-text search over title, description, content and tags, best match first",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {"type": "string"},
                    "types": _STRING_LIST,
                    "limit": {"type": "integer", "default": 20, "minimum": 1, "maximum": _MAX_SEARCH_RESULTS},
                    "offset": {"type": "integer", "default": 0, "minimum": 0},
                },
                "required": ["query"],
            },
        ),
        Tool(
            name="search_suggest",
            description="Suggest item titles starting with the given text (autocomplete)",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {"type": "string"},
                    "types": _STRING_LIST,
                    "limit": {"type": "integer", "default": 10, "minimum": 1, "maximum": _MAX_SEARCH_RESULTS},
                },
                "required": ["query"],
            },
        ),
        Tool(
            name="get_related_items",
            description="Items sharing the most keywords with the given item",
            inputSchema={
                "type": "object",
                "properties": {
                    **ITEM_KEY_PROPERTIES,
                    "limit": {"type": "integer", "default": 10, "minimum": 1, "maximum": _MAX_SEARCH_RESULTS},
                },
                "required": ["type", "id"],
            },
        ),
    ]

    handlers = {
        "get_items": _handle_get_items,
        "get_item_detail": _handle_get_item_detail,
        "create_item": _handle_create_item,
        "update_item": _handle_update_item,
        "delete_item": _handle_delete_item,
        "search_items_by_tag": _handle_search_items_by_tag,
        "change_item_type": _handle_change_item_type,
        "search_items": _handle_search_items,
        "search_suggest": _handle_search_suggest,
        "get_related_items": _handle_get_related_items,
    }
    return tools, handlers


def _item_key(arguments: dict[str, Any]) -> tuple[str, str, list[TextContent] | None]:
    type_err = _validate_str(arguments.get("type"), "type", required=True)
    if type_err:
        return "", "", type_err
    item_id, id_err = _item_id(arguments.get("id"))
    return arguments["type"], item_id, id_err


async def _handle_get_items(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    status_ids = arguments.get("statusIds")
    err = _first_error(
        _validate_str(arguments.get("type"), "type", required=True),
        _validate_bool(arguments.get("includeClosedStatuses"), "includeClosedStatuses"),
        _validate_str(arguments.get("start_date"), "start_date"),
        _validate_str(arguments.get("end_date"), "end_date"),
        _validate_int_range(arguments.get("limit"), "limit", min_val=1, max_val=_MAX_LIST_RESULTS),
    )
    if err:
        return err
    if status_ids is not None and (
        not isinstance(status_ids, list) or not all(isinstance(s, int) and not isinstance(s, bool) for s in status_ids)
    ):
        return _error("statusIds must be an array of integers", "validation_error")
    items = ctx.db.get_items(
        arguments["type"],
        include_closed=bool(arguments.get("includeClosedStatuses", False)),
        status_ids=status_ids,
        start_date=arguments.get("start_date"),
        end_date=arguments.get("end_date"),
        limit=arguments.get("limit"),
    )
    return _text(ItemListResponse(type=arguments["type"], items=items, count=len(items)))


async def _handle_get_item_detail(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    type_name, item_id, err = _item_key(arguments)
    if err:
        return err
    return _text(ctx.db.get_item(type_name, item_id).to_dict())


async def _handle_create_item(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    err = _first_error(
        _validate_str(arguments.get("type"), "type", required=True),
        _validate_str(arguments.get("id"), "id"),
        _validate_str(arguments.get("datetime"), "datetime"),
        _validate_str_list(arguments.get("tags"), "tags"),
        _validate_str_list(arguments.get("related"), "related"),
    )
    if err:
        return err
    item = ctx.db.create_item(
        arguments["type"],
        arguments.get("title"),  # type: ignore[arg-type]
        description=arguments.get("description"),
        content=arguments.get("content"),
        priority=arguments.get("priority"),
        status=arguments.get("status"),
        tags=arguments.get("tags"),
        related=arguments.get("related"),
        start_date=arguments.get("start_date"),
        end_date=arguments.get("end_date"),
        item_id=arguments.get("id"),
        datetime_=arguments.get("datetime"),
    )
    return _text(item.to_dict())


async def _handle_update_item(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    type_name, item_id, err = _item_key(arguments)
    if err:
        return err
    patch = ItemPatch.from_arguments({k: v for k, v in arguments.items() if k not in ("type", "id")})
    if patch.is_empty():
        return _error("No fields to update", "validation_error")
    item = ctx.db.update_item(type_name, item_id, patch)
    return _text(item.to_dict())


async def _handle_delete_item(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    type_name, item_id, err = _item_key(arguments)
    if err:
        return err
    rewritten = ctx.db.delete_item(type_name, item_id)
    return _text(DeleteItemResponse(status="deleted", ref=f"{type_name}-{item_id}", related_updates=rewritten))


async def _handle_search_items_by_tag(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    err = _first_error(
        _validate_str(arguments.get("tag"), "tag", required=True),
        _validate_str_list(arguments.get("types"), "types"),
    )
    if err:
        return err
    return _text(ctx.db.search_items_by_tag_grouped(arguments["tag"], arguments.get("types")))


async def _handle_change_item_type(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    err = _first_error(
        _validate_str(arguments.get("from_type"), "from_type", required=True),
        _validate_str(arguments.get("to_type"), "to_type", required=True),
    )
    if err:
        return err
    from_id, id_err = _item_id(arguments.get("from_id"))
    if id_err:
        return id_err
    return _text(ctx.db.change_item_type(arguments["from_type"], from_id, arguments["to_type"]))


async def _handle_search_items(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    err = _first_error(
        _validate_str(arguments.get("query"), "query", required=True),
        _validate_str_list(arguments.get("types"), "types"),
        _validate_int_range(arguments.get("limit"), "limit", min_val=1, max_val=_MAX_SEARCH_RESULTS),
        _validate_int_range(arguments.get("offset"), "offset", min_val=0),
    )
    if err:
        return err
    result = ctx.db.search_items(
        arguments["query"],
        types=arguments.get("types"),
        limit=arguments.get("limit", 20),
        offset=arguments.get("offset", 0),
    )
    return _text(result)


async def _handle_search_suggest(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    err = _first_error(
        _validate_str(arguments.get("query"), "query", required=True),
        _validate_str_list(arguments.get("types"), "types"),
        _validate_int_range(arguments.get("limit"), "limit", min_val=1, max_val=_MAX_SEARCH_RESULTS),
    )
    if err:
        return err
    suggestions = ctx.db.search_suggest(arguments["query"], types=arguments.get("types"), limit=arguments.get("limit", 10))
    return _text(suggestions)


async def _handle_get_related_items(ctx: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
    type_name, item_id, err = _item_key(arguments)
    if err:
        return err
    limit_err = _validate_int_range(arguments.get("limit"), "limit", min_val=1, max_val=_MAX_SEARCH_RESULTS)
    if limit_err:
        return limit_err
    ctx.db.get_type_descriptor(type_name)
    return _text(ctx.db.get_related_items_by_keywords(type_name, item_id, limit=arguments.get("limit", 10)))
