"""TypesMixin: the type registry.

Registered types map a name to the ``tasks`` or ``documents`` base category.
``sessions`` and ``dailies`` are never stored: they resolve through the
descriptor table in :mod:`tessera.item_types`.
"""

from __future__ import annotations

import logging
import sqlite3

from tessera.db_base import DBMixinProtocol, _now_iso
from tessera.errors import InvalidRequestError, NotFoundError
from tessera.item_types import (
    BASE_TYPES,
    BUILTIN_TYPES,
    SPECIAL_TYPES,
    USER_BASE_TYPES,
    BaseTypeDescriptor,
    validate_type_name,
)
from tessera.types.core import TypeRecord

logger = logging.getLogger(__name__)


def _unknown_type(name: str) -> NotFoundError:
    return NotFoundError(
        f"Unknown type: '{name}'. Use the 'get_types' tool to see available types.",
        key=name,
    )


class TypesMixin(DBMixinProtocol):
    """Type registry. Composed into ``TesseraDB``."""

    def _seed_builtin_types(self) -> int:
        now = _now_iso()
        count = 0
        for name, (base_type, description) in BUILTIN_TYPES.items():
            cursor = self.conn.execute(
                "INSERT OR IGNORE INTO types (name, base_type, description, is_builtin, created_at, updated_at) "
                "VALUES (?, ?, ?, 1, ?, ?)",
                (name, base_type, description, now, now),
            )
            count += cursor.rowcount
        return count

    @staticmethod
    def _type_record(row: sqlite3.Row) -> TypeRecord:
        return TypeRecord(
            name=row["name"],
            base_type=row["base_type"],
            description=row["description"],
            is_builtin=bool(row["is_builtin"]),
        )

    # -- Lookup --------------------------------------------------------------

    def type_exists(self, type_name: str) -> bool:
        if type_name in SPECIAL_TYPES:
            return True
        row = self.conn.execute("SELECT 1 FROM types WHERE name = ?", (type_name,)).fetchone()
        return row is not None

    def get_base_type(self, type_name: str) -> str:
        """Resolve *type_name* to its base category. Raises NotFoundError if unknown."""
        if type_name in SPECIAL_TYPES:
            return SPECIAL_TYPES[type_name]
        row = self.conn.execute("SELECT base_type FROM types WHERE name = ?", (type_name,)).fetchone()
        if row is None:
            raise _unknown_type(type_name)
        base: str = row["base_type"]
        return base

    def get_type_descriptor(self, type_name: str) -> BaseTypeDescriptor:
        return BASE_TYPES[self.get_base_type(type_name)]

    def get_all_types(self) -> list[TypeRecord]:
        """All registered (non-special) types, sorted by name."""
        rows = self.conn.execute(
            "SELECT t.name, t.base_type, t.description, t.is_builtin, "
            "(SELECT COUNT(*) FROM items i WHERE i.type = t.name) AS item_count "
            "FROM types t ORDER BY t.name"
        ).fetchall()
        result: list[TypeRecord] = []
        for row in rows:
            record = self._type_record(row)
            record["item_count"] = row["item_count"]
            result.append(record)
        return result

    def get_types_grouped(self) -> dict[str, list[TypeRecord]]:
        grouped: dict[str, list[TypeRecord]] = {base: [] for base in sorted(USER_BASE_TYPES)}
        for record in self.get_all_types():
            grouped.setdefault(record["base_type"], []).append(record)
        return grouped

    def get_type(self, type_name: str) -> TypeRecord:
        row = self.conn.execute("SELECT * FROM types WHERE name = ?", (type_name,)).fetchone()
        if row is None:
            raise _unknown_type(type_name)
        return self._type_record(row)

    # -- Mutations -----------------------------------------------------------

    def create_type(self, name: str, base_type: str = "documents", description: str | None = None) -> TypeRecord:
        problems: list[str] = []
        err = validate_type_name(name)
        if err:
            problems.append(err)
        elif name in SPECIAL_TYPES:
            problems.append(f"Type '{name}' is reserved")
        elif self.conn.execute("SELECT 1 FROM types WHERE name = ?", (name,)).fetchone() is not None:
            problems.append(f"Type '{name}' already exists")
        if base_type not in USER_BASE_TYPES:
            problems.append(f"Invalid base_type '{base_type}': expected 'tasks' or 'documents'")
        if description is not None and not isinstance(description, str):
            problems.append("description must be a string")
        if problems:
            raise InvalidRequestError.from_problems(problems, summary="Cannot create type")

        now = _now_iso()
        try:
            self.conn.execute(
                "INSERT INTO types (name, base_type, description, is_builtin, created_at, updated_at) VALUES (?, ?, ?, 0, ?, ?)",
                (name, base_type, description, now, now),
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        logger.info("Created type %s (base=%s)", name, base_type)
        return self.get_type(name)

    def update_type(self, name: str, description: str | None = None, *, new_name: str | None = None) -> TypeRecord:
        """Update a type's description. Renaming is not supported."""
        if new_name is not None and new_name != name:
            msg = f"Renaming types is not supported ('{name}' -> '{new_name}'). Create the new type and move items with change_item_type."
            raise InvalidRequestError(msg)
        if name in SPECIAL_TYPES:
            msg = f"Type '{name}' is reserved and cannot be modified"
            raise InvalidRequestError(msg)
        self.get_type(name)
        try:
            self.conn.execute(
                "UPDATE types SET description = ?, updated_at = ? WHERE name = ?",
                (description, _now_iso(), name),
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return self.get_type(name)

    def delete_type(self, name: str) -> None:
        """Delete a custom type. Refuses while any item of that type remains."""
        if name in SPECIAL_TYPES:
            msg = f"Type '{name}' is reserved and cannot be deleted"
            raise InvalidRequestError(msg)
        record = self.get_type(name)
        if record["is_builtin"]:
            msg = f"Type '{name}' is built in and cannot be deleted"
            raise InvalidRequestError(msg)
        count = self.conn.execute("SELECT COUNT(*) FROM items WHERE type = ?", (name,)).fetchone()[0]
        if count:
            msg = f"Cannot delete type '{name}': {count} item(s) still use it. Delete or move them with change_item_type first."
            raise InvalidRequestError(msg)
        try:
            self.conn.execute("DELETE FROM types WHERE name = ?", (name,))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        logger.info("Deleted type %s", name)

    def _next_sequence_id(self, type_name: str) -> str:
        """Allocate the next numeric id for *type_name* inside the caller's transaction."""
        row = self.conn.execute("SELECT next_seq FROM types WHERE name = ?", (type_name,)).fetchone()
        if row is None:
            raise _unknown_type(type_name)
        seq = int(row["next_seq"])
        # Skip over ids taken by files that were indexed out of band.
        while self.conn.execute("SELECT 1 FROM items WHERE type = ? AND id = ?", (type_name, str(seq))).fetchone():
            seq += 1
        self.conn.execute("UPDATE types SET next_seq = ? WHERE name = ?", (seq + 1, type_name))
        return str(seq)

    def _bump_sequence(self, type_name: str, used_id: str) -> None:
        if not used_id.isdigit():
            return
        self.conn.execute(
            "UPDATE types SET next_seq = MAX(next_seq, ?) WHERE name = ?",
            (int(used_id) + 1, type_name),
        )
