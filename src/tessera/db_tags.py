"""TagsMixin: tag registry, usage counts, and cascading tag deletion."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from tessera.db_base import DBMixinProtocol, _escape_like, _now_iso
from tessera.errors import InvalidRequestError, NotFoundError
from tessera.types.core import ISOTimestamp, TagRecord
from tessera.validation import dedupe, validate_tag_name

if TYPE_CHECKING:
    from tessera.models import Item

logger = logging.getLogger(__name__)


class TagsMixin(DBMixinProtocol):
    if TYPE_CHECKING:

        def _commit_items(
            self,
            writes: list[Item],
            deletes: list[tuple[str, str]] | None = None,
            *,
            extra_sql: list[tuple[str, tuple[object, ...]]] | None = None,
        ) -> None: ...

    def get_tags(self) -> list[TagRecord]:
        rows = self.conn.execute(
            "SELECT t.name, t.created_at, COUNT(it.tag) AS count "
            "FROM tags t LEFT JOIN item_tags it ON it.tag = t.name "
            "GROUP BY t.name ORDER BY t.name"
        ).fetchall()
        return [TagRecord(name=r["name"], count=r["count"], created_at=r["created_at"]) for r in rows]

    def tag_exists(self, name: str) -> bool:
        return self.conn.execute("SELECT 1 FROM tags WHERE name = ?", (name,)).fetchone() is not None

    def create_tag(self, name: str) -> TagRecord:
        """Explicitly create a tag. A duplicate is reported, unlike ``ensure_tags_exist``."""
        err = validate_tag_name(name)
        if err:
            raise InvalidRequestError(err)
        if self.tag_exists(name):
            msg = f"Tag '{name}' already exists"
            raise InvalidRequestError(msg)
        now = _now_iso()
        try:
            self.conn.execute("INSERT INTO tags (name, created_at) VALUES (?, ?)", (name, now))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return TagRecord(name=name, count=0, created_at=ISOTimestamp(now))

    def delete_tag(self, name: str) -> int:
        """Remove *name* from every item carrying it, then from the registry.

        Returns the number of items rewritten. All-or-nothing.
        """
        if not self.tag_exists(name):
            msg = f"Tag not found: {name}"
            raise NotFoundError(msg, key=name)
        rows = self.conn.execute(
            "SELECT item_type, item_id FROM item_tags WHERE tag = ? ORDER BY item_type, item_id",
            (name,),
        ).fetchall()
        now = _now_iso()
        writes: list[Item] = []
        for row in rows:
            item = self.get_item(row["item_type"], row["item_id"])
            writes.append(dataclasses.replace(item, tags=[t for t in item.tags if t != name], updated_at=now))
        self._commit_items(writes, extra_sql=[("DELETE FROM tags WHERE name = ?", (name,))])
        logger.info("Deleted tag %s from %d item(s)", name, len(writes))
        return len(writes)

    def search_tags(self, pattern: str) -> list[TagRecord]:
        """Case-insensitive substring match on tag names."""
        like = f"%{_escape_like(pattern)}%"
        rows = self.conn.execute(
            "SELECT t.name, t.created_at, COUNT(it.tag) AS count "
            "FROM tags t LEFT JOIN item_tags it ON it.tag = t.name "
            "WHERE t.name LIKE ? ESCAPE '\\' "
            "GROUP BY t.name ORDER BY t.name",
            (like,),
        ).fetchall()
        return [TagRecord(name=r["name"], count=r["count"], created_at=r["created_at"]) for r in rows]

    @staticmethod
    def _check_tag_names(names: Iterable[object]) -> list[str]:
        return [err for err in (validate_tag_name(n) for n in names) if err]

    def _register_tags(self, names: Iterable[str]) -> None:
        """INSERT OR IGNORE inside the caller's transaction."""
        now = _now_iso()
        self.conn.executemany(
            "INSERT OR IGNORE INTO tags (name, created_at) VALUES (?, ?)",
            [(n, now) for n in dedupe(list(names))],
        )

    def ensure_tags_exist(self, names: Iterable[str]) -> None:
        """Idempotently register every tag in *names*. Never fails on existing tags."""
        names = list(names)
        problems = self._check_tag_names(names)
        if problems:
            raise InvalidRequestError.from_problems(problems, summary="Invalid tags")
        try:
            self._register_tags(names)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
