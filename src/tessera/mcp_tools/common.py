"""Pure helpers shared across MCP tool modules.

Nothing here touches ``mcp_server``; handlers receive the project context
explicitly, so tool modules import this freely.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from mcp.types import TextContent, Tool

from tessera.errors import FrontmatterError, IndexerError, InvalidRequestError, NotFoundError
from tessera.types.api import ErrorResponse

if TYPE_CHECKING:
    from tessera.context import ProjectContext

logger = logging.getLogger(__name__)

ToolHandler = Callable[["ProjectContext", dict[str, Any]], Awaitable[list[TextContent]]]
Registration = tuple[list[Tool], dict[str, ToolHandler]]


def _text(content: object) -> list[TextContent]:
    if isinstance(content, str):
        return [TextContent(type="text", text=content)]
    return [TextContent(type="text", text=json.dumps(content, indent=2, default=str))]


def _error(message: str, code: str, problems: list[str] | None = None) -> list[TextContent]:
    data = ErrorResponse(error=message, code=code)
    if problems:
        data["problems"] = problems
    return _text(data)


def _error_from(exc: Exception) -> list[TextContent] | None:
    """Translate a domain exception into the error envelope, or None if it is not ours to report."""
    if isinstance(exc, NotFoundError):
        return _error(str(exc), "not_found")
    if isinstance(exc, InvalidRequestError):
        return _error(str(exc), "validation_error", exc.problems)
    if isinstance(exc, FrontmatterError):
        return _error(str(exc), "corrupt_file")
    if isinstance(exc, IndexerError):
        return _error(str(exc), "index_error")
    if isinstance(exc, ValueError):
        return _error(str(exc), "validation_error")
    return None


def _validate_str(value: Any, name: str, *, required: bool = False) -> list[TextContent] | None:
    """Return a validation error if *value* is not ``None`` and not a ``str``."""
    if value is None:
        if required:
            return _error(f"{name} is required", "validation_error")
        return None
    if not isinstance(value, str):
        return _error(f"{name} must be a string", "validation_error")
    if required and not value.strip():
        return _error(f"{name} must not be empty", "validation_error")
    return None


def _validate_int_range(
    value: Any,
    name: str,
    min_val: int | None = None,
    max_val: int | None = None,
) -> list[TextContent] | None:
    """Return a validation error if *value* is not ``None`` and outside range.

    When *value* is ``None`` it is considered optional and passes.
    """
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        return _error(f"{name} must be an integer", "validation_error")
    if min_val is not None and value < min_val:
        return _error(f"{name} must be >= {min_val}", "validation_error")
    if max_val is not None and value > max_val:
        return _error(f"{name} must be <= {max_val}", "validation_error")
    return None


def _validate_bool(value: Any, name: str) -> list[TextContent] | None:
    if value is not None and not isinstance(value, bool):
        return _error(f"{name} must be a boolean", "validation_error")
    return None


def _validate_str_list(value: Any, name: str) -> list[TextContent] | None:
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        return _error(f"{name} must be an array of strings", "validation_error")
    return None


def _item_id(value: Any) -> tuple[str, list[TextContent] | None]:
    """Accept ``"42"`` or ``42`` for an item id; agents send both."""
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value), None
    err = _validate_str(value, "id", required=True)
    if err:
        return "", err
    return value.strip(), None


def _first_error(*errors: list[TextContent] | None) -> list[TextContent] | None:
    for err in errors:
        if err is not None:
            return err
    return None


ITEM_KEY_PROPERTIES: dict[str, Any] = {
    "type": {"type": "string", "description": "Item type (e.g. issues, docs, sessions)"},
    "id": {"type": ["string", "integer"], "description": "Item id within its type"},
}
