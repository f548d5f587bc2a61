"""Shared utilities and the Protocol for DB mixins."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from tessera.item_types import BaseTypeDescriptor
    from tessera.models import Item


def _now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds")


def _placeholders(values: list[Any] | tuple[Any, ...]) -> str:
    return ",".join("?" * len(values))


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class DBMixinProtocol(Protocol):
    """Shared attributes and methods that DB mixins access via self.

    Mixins inherit this Protocol so mypy can type-check self.conn,
    self.get_item(), etc. Actual implementations are provided by
    TesseraDB at composition time.
    """

    db_path: Path
    data_dir: Path
    _conn: sqlite3.Connection | None

    @property
    def conn(self) -> sqlite3.Connection: ...

    def get_item(self, type_name: str, item_id: str) -> Item: ...

    def get_type_descriptor(self, type_name: str) -> BaseTypeDescriptor: ...

    def type_exists(self, type_name: str) -> bool: ...
