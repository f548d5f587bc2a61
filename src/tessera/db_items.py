"""ItemsMixin: item CRUD, file/index synchronization, and type migration.

Every mutation goes through :meth:`ItemsMixin._commit_items`: the markdown
files are written first through a :class:`~tessera.storage.FileJournal`,
then the index rows are synced in one SQLite transaction. If the index
update fails the transaction is rolled back and every touched file is
restored, so the two representations never silently diverge.
"""

from __future__ import annotations

import dataclasses
import logging
import sqlite3
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

from tessera import frontmatter
from tessera.db_base import DBMixinProtocol, _now_iso, _placeholders
from tessera.db_statuses import DEFAULT_STATUS
from tessera.errors import ConsistencyError, FrontmatterError, InvalidRequestError, NotFoundError
from tessera.item_types import SPECIAL_TYPES, BaseTypeDescriptor, format_reference, parse_reference
from tessera.models import Item, ItemPatch
from tessera.storage import FileJournal, item_path, read_text
from tessera.types.api import ChangeTypeResult, GroupedItems
from tessera.types.core import ISOTimestamp, ItemSummary, StatusRecord
from tessera.validation import (
    DEFAULT_PRIORITY,
    SESSION_ID_RE,
    dedupe,
    parse_date,
    validate_date_range,
    validate_priority,
    validate_string_list,
    validate_title,
)

logger = logging.getLogger(__name__)

_SESSION_ID_FORMAT = "%Y-%m-%d-%H.%M.%S"


def format_session_id(moment: datetime) -> str:
    """``YYYY-MM-DD-HH.MM.SS.mmm`` for *moment*."""
    return f"{moment.strftime(_SESSION_ID_FORMAT)}.{moment.microsecond // 1000:03d}"


def _session_start(session_id: str) -> tuple[str, str]:
    """Split a session id into its date and ``HH:MM:SS.mmm`` time parts."""
    day, time_part = session_id[:10], session_id[11:]
    hh, mm, ss, ms = time_part.split(".")
    return day, f"{hh}:{mm}:{ss}.{ms}"


class ItemsMixin(DBMixinProtocol):
    """Item repository. Composed into ``TesseraDB``."""

    if TYPE_CHECKING:

        def get_status_by_name(self, name: str) -> StatusRecord: ...
        def get_closed_status_ids(self) -> list[int]: ...
        def _check_tag_names(self, names: list[Any]) -> list[str]: ...
        def _register_tags(self, names: list[str]) -> None: ...
        def _index_keywords(self, item: Item) -> list[str]: ...
        def get_item_keywords(self, type_name: str, item_id: str) -> list[str]: ...
        def _next_sequence_id(self, type_name: str) -> str: ...
        def _bump_sequence(self, type_name: str, used_id: str) -> None: ...

    # -- Paths & serialization -----------------------------------------------

    def _item_file(self, type_name: str, item_id: str, descriptor: BaseTypeDescriptor | None = None) -> Path:
        descriptor = descriptor or self.get_type_descriptor(type_name)
        return item_path(self.data_dir, type_name, item_id, grouped_by_date=descriptor.id_strategy != "sequence")

    @staticmethod
    def _item_metadata(item: Item, descriptor: BaseTypeDescriptor) -> dict[str, Any]:
        meta: dict[str, Any] = {
            "id": item.id,
            "type": item.type,
            "title": item.title,
            "description": item.description,
        }
        if descriptor.supports_status:
            meta["priority"] = item.priority
            meta["status"] = item.status
        meta["tags"] = item.tags
        meta["related"] = item.related
        if descriptor.supports_dates:
            meta["start_date"] = item.start_date
            meta["end_date"] = item.end_date
        if descriptor.id_strategy != "sequence":
            meta["date"] = item.start_date
        if descriptor.id_strategy == "timestamp":
            meta["start_time"] = item.start_time
        meta["created_at"] = item.created_at
        meta["updated_at"] = item.updated_at
        return meta

    def render_item(self, item: Item) -> str:
        descriptor = self.get_type_descriptor(item.type)
        return frontmatter.generate(self._item_metadata(item, descriptor), item.content)

    @staticmethod
    def _item_from_document(type_name: str, item_id: str, doc: frontmatter.ParsedDocument, descriptor: BaseTypeDescriptor) -> Item:
        meta = doc.metadata
        related = list(meta.get("related") or [])
        # Older files split relations into two lists.
        for legacy_key in ("related_tasks", "related_documents"):
            related.extend(meta.get(legacy_key) or [])
        start_date = meta.get("start_date")
        if descriptor.id_strategy != "sequence":
            start_date = meta.get("date") or start_date or item_id[:10]
        return Item(
            type=type_name,
            id=item_id,
            title=meta.get("title") or "",
            description=meta.get("description"),
            content=doc.content,
            priority=(meta.get("priority") or DEFAULT_PRIORITY) if descriptor.supports_status else None,
            status=(meta.get("status") or DEFAULT_STATUS) if descriptor.supports_status else None,
            tags=dedupe(list(meta.get("tags") or [])),
            related=dedupe(related),
            start_date=start_date,
            end_date=meta.get("end_date") if descriptor.supports_dates else None,
            start_time=meta.get("start_time"),
            created_at=meta.get("created_at") or "",
            updated_at=meta.get("updated_at") or meta.get("created_at") or "",
        )

    # -- Reads ---------------------------------------------------------------

    def item_exists(self, type_name: str, item_id: str) -> bool:
        row = self.conn.execute("SELECT 1 FROM items WHERE type = ? AND id = ?", (type_name, item_id)).fetchone()
        return row is not None

    def get_item(self, type_name: str, item_id: str) -> Item:
        """Return the fully hydrated item, read from its markdown file."""
        descriptor = self.get_type_descriptor(type_name)
        row = self.conn.execute("SELECT file_path FROM items WHERE type = ? AND id = ?", (type_name, item_id)).fetchone()
        if row is None:
            msg = f"Item not found: {format_reference(type_name, item_id)}"
            raise NotFoundError(msg, key=format_reference(type_name, item_id))
        path = self.data_dir / row["file_path"]
        try:
            raw = read_text(path)
        except FileNotFoundError:
            msg = f"Item {format_reference(type_name, item_id)} is indexed but its file is missing: {path}"
            raise ConsistencyError(msg, item_key=format_reference(type_name, item_id), path=path) from None
        try:
            doc = frontmatter.parse(raw)
        except FrontmatterError as exc:
            msg = f"Corrupt metadata in {path}: {exc}"
            raise FrontmatterError(msg) from exc
        item = self._item_from_document(type_name, item_id, doc, descriptor)
        item.keywords = self.get_item_keywords(type_name, item_id)
        return item

    def _summaries_for_rows(self, rows: list[sqlite3.Row], *, include_content: bool = False) -> list[ItemSummary]:
        """Build summaries for index rows, batch-loading tags, relations and status names."""
        if not rows:
            return []
        keys = [(r["type"], r["id"]) for r in rows]
        tags: dict[tuple[str, str], list[str]] = {k: [] for k in keys}
        related: dict[tuple[str, str], list[str]] = {k: [] for k in keys}
        # Chunk to stay under SQLite's bound-parameter limit.
        for start in range(0, len(keys), 400):
            chunk = keys[start : start + 400]
            cond = " OR ".join(["(item_type = ? AND item_id = ?)"] * len(chunk))
            flat = [v for pair in chunk for v in pair]
            for r in self.conn.execute(f"SELECT item_type, item_id, tag FROM item_tags WHERE {cond} ORDER BY position", flat):
                tags[(r["item_type"], r["item_id"])].append(r["tag"])
            src_cond = cond.replace("item_type", "source_type").replace("item_id", "source_id")
            for r in self.conn.execute(
                f"SELECT source_type, source_id, target_type, target_id FROM related_items WHERE {src_cond} ORDER BY position",
                flat,
            ):
                related[(r["source_type"], r["source_id"])].append(format_reference(r["target_type"], r["target_id"]))
        status_names = {r["id"]: r["name"] for r in self.conn.execute("SELECT id, name FROM statuses")}

        result: list[ItemSummary] = []
        for r in rows:
            key = (r["type"], r["id"])
            summary = ItemSummary(
                type=r["type"],
                id=r["id"],
                title=r["title"],
                description=r["description"],
                priority=r["priority"],
                status=status_names.get(r["status_id"]) if r["status_id"] is not None else None,
                tags=tags[key],
                related=related[key],
                start_date=r["start_date"],
                end_date=r["end_date"],
                created_at=ISOTimestamp(r["created_at"]),
                updated_at=ISOTimestamp(r["updated_at"]),
            )
            if include_content:
                summary["content"] = r["content"]  # type: ignore[typeddict-unknown-key]
                summary["start_time"] = r["start_time"]  # type: ignore[typeddict-unknown-key]
            result.append(summary)
        return result

    def get_items(
        self,
        type_name: str,
        *,
        include_closed: bool = False,
        status_ids: list[int] | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
        limit: int | None = None,
    ) -> list[ItemSummary]:
        """List items of one type, most recent first.

        Status and date filters are applied before ``limit``. For status-bearing
        types, closed statuses are excluded unless *include_closed* is set or
        explicit *status_ids* are given.
        """
        descriptor = self.get_type_descriptor(type_name)
        problems = validate_date_range(start_date, end_date)
        if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 1):
            problems.append("limit must be a positive integer")
        if problems:
            raise InvalidRequestError.from_problems(problems, summary="Invalid filters")

        conditions = ["type = ?"]
        params: list[Any] = [type_name]
        if descriptor.supports_status:
            if status_ids:
                conditions.append(f"status_id IN ({_placeholders([str(s) for s in status_ids])})")
                params.extend(status_ids)
            elif not include_closed:
                closed = self.get_closed_status_ids()
                if closed:
                    conditions.append(f"(status_id IS NULL OR status_id NOT IN ({_placeholders([str(c) for c in closed])}))")
                    params.extend(closed)

        if descriptor.date_column == "start_date":
            date_expr = "start_date"
            order = "start_date DESC, start_time DESC, id DESC"
        else:
            date_expr = "substr(updated_at, 1, 10)"
            order = "updated_at DESC, id DESC"
        if start_date is not None:
            conditions.append(f"{date_expr} >= ?")
            params.append(start_date)
        if end_date is not None:
            conditions.append(f"{date_expr} <= ?")
            params.append(end_date)

        sql = f"SELECT * FROM items WHERE {' AND '.join(conditions)} ORDER BY {order}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        rows = self.conn.execute(sql, params).fetchall()
        return self._summaries_for_rows(rows, include_content=not descriptor.summary_view)

    def search_items_by_tag(self, tag: str, types: list[str] | None = None) -> list[ItemSummary]:
        """Items carrying exactly *tag*, optionally restricted to *types*."""
        params: list[Any] = [tag]
        type_clause = ""
        if types:
            type_clause = f" AND i.type IN ({_placeholders(types)})"
            params.extend(types)
        rows = self.conn.execute(
            "SELECT i.* FROM items i JOIN item_tags it ON it.item_type = i.type AND it.item_id = i.id "
            f"WHERE it.tag = ?{type_clause} ORDER BY i.type, i.updated_at DESC, i.id",
            params,
        ).fetchall()
        return self._summaries_for_rows(rows)

    def search_items_by_tag_grouped(self, tag: str, types: list[str] | None = None) -> GroupedItems:
        """Like :meth:`search_items_by_tag`, regrouped into task-like and document-like buckets."""
        grouped = GroupedItems(tasks=[], documents=[])
        for summary in self.search_items_by_tag(tag, types):
            group = self.get_type_descriptor(summary["type"]).group
            grouped[group].append(summary)
        return grouped

    def validate_references(self, refs: list[str]) -> list[str]:
        """Return every entry of *refs* that is malformed or points at no item."""
        invalid: list[str] = []
        for ref in refs:
            try:
                type_name, item_id = parse_reference(ref)
            except ValueError:
                invalid.append(ref)
                continue
            if not self.type_exists(type_name) or not self.item_exists(type_name, item_id):
                invalid.append(ref)
        return invalid

    # -- Validation ----------------------------------------------------------

    def _check_related(self, related: Any, *, self_ref: str | None = None) -> list[str]:
        err = validate_string_list(related, "related")
        if err:
            return [err]
        problems: list[str] = []
        if self_ref is not None and self_ref in related:
            problems.append(f"An item cannot be related to itself ({self_ref})")
        invalid = self.validate_references([r for r in related if r != self_ref])
        if invalid:
            problems.append("Related items not found: " + ", ".join(invalid))
        return problems

    def _check_tags(self, tags: Any) -> list[str]:
        err = validate_string_list(tags, "tags")
        if err:
            return [err]
        return self._check_tag_names(tags)

    def _resolve_status(self, name: Any, problems: list[str]) -> None:
        if not isinstance(name, str):
            problems.append("status must be a string")
            return
        try:
            self.get_status_by_name(name)
        except NotFoundError as exc:
            problems.append(str(exc))

    # -- Writes --------------------------------------------------------------

    def _sync_item_index(self, item: Item, descriptor: BaseTypeDescriptor) -> None:
        """Mirror *item* into the index tables. Caller owns the transaction."""
        status_id = None
        if descriptor.supports_status and item.status is not None:
            status_id = self.get_status_by_name(item.status)["id"]
        file_rel = str(self._item_file(item.type, item.id, descriptor).relative_to(self.data_dir))
        self.conn.execute(
            "INSERT INTO items (type, id, title, description, content, priority, status_id, start_date, end_date, "
            "start_time, tags_text, file_path, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(type, id) DO UPDATE SET title = excluded.title, description = excluded.description, "
            "content = excluded.content, priority = excluded.priority, status_id = excluded.status_id, "
            "start_date = excluded.start_date, end_date = excluded.end_date, start_time = excluded.start_time, "
            "tags_text = excluded.tags_text, file_path = excluded.file_path, updated_at = excluded.updated_at",
            (
                item.type,
                item.id,
                item.title,
                item.description,
                item.content,
                item.priority,
                status_id,
                item.start_date,
                item.end_date,
                item.start_time,
                " ".join(item.tags),
                file_rel,
                item.created_at,
                item.updated_at,
            ),
        )
        self._register_tags(item.tags)
        self.conn.execute("DELETE FROM item_tags WHERE item_type = ? AND item_id = ?", (item.type, item.id))
        self.conn.executemany(
            "INSERT INTO item_tags (item_type, item_id, tag, position) VALUES (?, ?, ?, ?)",
            [(item.type, item.id, tag, pos) for pos, tag in enumerate(item.tags)],
        )
        self.conn.execute("DELETE FROM related_items WHERE source_type = ? AND source_id = ?", (item.type, item.id))
        edges = []
        for pos, ref in enumerate(item.related):
            target_type, target_id = parse_reference(ref)
            edges.append((item.type, item.id, target_type, target_id, pos))
        self.conn.executemany(
            "INSERT OR IGNORE INTO related_items (source_type, source_id, target_type, target_id, position) VALUES (?, ?, ?, ?, ?)",
            edges,
        )
        item.keywords = self._index_keywords(item)
        if descriptor.id_strategy == "sequence":
            self._bump_sequence(item.type, item.id)

    def _delete_item_index(self, type_name: str, item_id: str) -> None:
        self.conn.execute("DELETE FROM related_items WHERE target_type = ? AND target_id = ?", (type_name, item_id))
        self.conn.execute("DELETE FROM items WHERE type = ? AND id = ?", (type_name, item_id))

    def _commit_items(
        self,
        writes: list[Item],
        deletes: list[tuple[str, str]] | None = None,
        *,
        extra_sql: list[tuple[str, tuple[object, ...]]] | None = None,
    ) -> None:
        """Write files, then sync the index, as one all-or-nothing unit.

        Runs inside whatever transaction the caller already opened (for
        example one holding a freshly allocated sequence id), and commits it.
        """
        deletes = deletes or []
        journal = FileJournal()
        key = writes[0].ref if writes else (format_reference(*deletes[0]) if deletes else None)
        try:
            for item in writes:
                journal.write(self._item_file(item.type, item.id), self.render_item(item))
            for type_name, item_id in deletes:
                journal.delete(self._item_file(type_name, item_id))
            for type_name, item_id in deletes:
                self._delete_item_index(type_name, item_id)
            for item in writes:
                self._sync_item_index(item, self.get_type_descriptor(item.type))
            for sql, params in extra_sql or []:
                self.conn.execute(sql, params)
            self.conn.commit()
        except Exception as exc:
            self.conn.rollback()
            logger.error("Item write failed for %s, restoring %d file(s): %s", key, len(journal.touched), exc)
            try:
                journal.rollback(item_key=key)
            except ConsistencyError as consistency:
                raise consistency from exc
            raise

    def _allocate_id(
        self,
        type_name: str,
        descriptor: BaseTypeDescriptor,
        *,
        item_id: Any,
        start_date: Any,
        moment: Any,
        problems: list[str],
    ) -> tuple[str | None, str | None, str | None]:
        """Return (id, start_date, start_time) for a new item, or record problems."""
        if descriptor.id_strategy == "sequence":
            if item_id is not None:
                problems.append(f"Custom ids are not supported for type '{type_name}'")
            return None, None, None

        if descriptor.id_strategy == "date":
            day = item_id if item_id is not None else start_date
            if day is None:
                day = date.today().isoformat()
            parsed, err = parse_date(day, "date")
            if err or parsed is None:
                problems.append(err or f"Invalid date: {day}")
                return None, None, None
            if self.item_exists(type_name, day):
                msg = f"Daily summary already exists for date: {day}. Use 'update_item' to modify it."
                raise InvalidRequestError(msg)
            return day, day, None

        # timestamp
        if item_id is not None:
            if not isinstance(item_id, str) or not SESSION_ID_RE.match(item_id):
                problems.append(f"Invalid session id {item_id!r}: expected YYYY-MM-DD-HH.MM.SS.mmm")
                return None, None, None
            if self.item_exists(type_name, item_id):
                problems.append(f"Session already exists: {item_id}")
                return None, None, None
            day, start_time = _session_start(item_id)
            return item_id, day, start_time
        if moment is None:
            when = datetime.now()
        elif isinstance(moment, datetime):
            when = moment
        else:
            try:
                when = datetime.fromisoformat(str(moment))
            except ValueError:
                problems.append(f"datetime must be an ISO 8601 timestamp, got {moment!r}")
                return None, None, None
        candidate = format_session_id(when)
        while self.item_exists(type_name, candidate):
            when += timedelta(milliseconds=1)
            candidate = format_session_id(when)
        day, start_time = _session_start(candidate)
        return candidate, day, start_time

    def create_item(
        self,
        type_name: str,
        title: str,
        *,
        description: str | None = None,
        content: str | None = None,
        priority: str | None = None,
        status: str | None = None,
        tags: list[str] | None = None,
        related: list[str] | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
        item_id: str | None = None,
        datetime_: str | datetime | None = None,
    ) -> Item:
        descriptor = self.get_type_descriptor(type_name)

        # --- Validate all inputs BEFORE any writes ---
        problems: list[str] = []
        err = validate_title(title)
        if err:
            problems.append(err)
        if description is not None and not isinstance(description, str):
            problems.append("description must be a string")
        if content is not None and not isinstance(content, str):
            problems.append("content must be a string")
        if "content" in descriptor.required_fields and not (isinstance(content, str) and content.strip()):
            problems.append(f"content is required for {descriptor.name} type '{type_name}'")

        if descriptor.supports_status:
            priority = DEFAULT_PRIORITY if priority is None else priority
            err = validate_priority(priority)
            if err:
                problems.append(err)
            status = DEFAULT_STATUS if status is None else status
            self._resolve_status(status, problems)
        else:
            if priority is not None:
                problems.append(f"priority is only supported for task types, not '{type_name}'")
            if status is not None:
                problems.append(f"status is only supported for task types, not '{type_name}'")

        if descriptor.supports_dates:
            problems.extend(validate_date_range(start_date, end_date))
        elif end_date is not None:
            problems.append(f"end_date is only supported for task types, not '{type_name}'")
        elif start_date is not None and descriptor.id_strategy != "date":
            problems.append(f"start_date is only supported for task types and dailies, not '{type_name}'")

        tags = [] if tags is None else tags
        related = [] if related is None else related
        problems.extend(self._check_tags(tags))
        problems.extend(self._check_related(related))

        new_id, item_start, start_time = self._allocate_id(
            type_name, descriptor, item_id=item_id, start_date=start_date, moment=datetime_, problems=problems
        )
        if problems:
            raise InvalidRequestError.from_problems(problems, summary=f"Cannot create {type_name} item")

        now = _now_iso()
        try:
            if new_id is None:
                new_id = self._next_sequence_id(type_name)
        except Exception:
            self.conn.rollback()
            raise
        item = Item(
            type=type_name,
            id=new_id,
            title=title.strip(),
            description=description,
            content=content or "",
            priority=priority if descriptor.supports_status else None,
            status=status if descriptor.supports_status else None,
            tags=dedupe(tags),
            related=dedupe(related),
            start_date=item_start if descriptor.id_strategy != "sequence" else start_date,
            end_date=end_date if descriptor.supports_dates else None,
            start_time=start_time,
            created_at=now,
            updated_at=now,
        )
        self._commit_items([item])
        logger.info("Created item %s", item.ref)
        return item

    def update_item(self, type_name: str, item_id: str, patch: ItemPatch) -> Item:
        """Apply *patch* to an item. Fields left UNSET are unchanged."""
        descriptor = self.get_type_descriptor(type_name)
        current = self.get_item(type_name, item_id)
        changes = patch.changed_fields()

        problems: list[str] = []
        updates: dict[str, Any] = {}
        for name, value in changes.items():
            if name == "title":
                err = validate_title(value)
                if err:
                    problems.append(err)
                else:
                    updates["title"] = value.strip()
            elif name == "description":
                if value is not None and not isinstance(value, str):
                    problems.append("description must be a string")
                else:
                    updates["description"] = value or None
            elif name == "content":
                if value is not None and not isinstance(value, str):
                    problems.append("content must be a string")
                elif "content" in descriptor.required_fields and not (value or "").strip():
                    problems.append(f"content is required for {descriptor.name} type '{type_name}' and cannot be cleared")
                else:
                    updates["content"] = value or ""
            elif name in ("priority", "status"):
                if not descriptor.supports_status:
                    problems.append(f"{name} is only supported for task types, not '{type_name}'")
                elif value is None:
                    problems.append(f"{name} cannot be cleared")
                elif name == "priority":
                    err = validate_priority(value)
                    if err:
                        problems.append(err)
                    else:
                        updates["priority"] = value
                else:
                    before = len(problems)
                    self._resolve_status(value, problems)
                    if len(problems) == before:
                        updates["status"] = value
            elif name == "tags":
                value = [] if value is None else value
                tag_problems = self._check_tags(value)
                problems.extend(tag_problems)
                if not tag_problems:
                    updates["tags"] = dedupe(value)
            elif name == "related":
                value = [] if value is None else value
                rel_problems = self._check_related(value, self_ref=current.ref)
                problems.extend(rel_problems)
                if not rel_problems:
                    updates["related"] = dedupe(value)
            elif name in ("start_date", "end_date"):
                if not descriptor.supports_dates:
                    problems.append(f"{name} is only supported for task types, not '{type_name}'")
                else:
                    updates[name] = value or None

        if descriptor.supports_dates and ("start_date" in updates or "end_date" in updates):
            problems.extend(
                validate_date_range(
                    updates.get("start_date", current.start_date),
                    updates.get("end_date", current.end_date),
                )
            )
        if problems:
            raise InvalidRequestError.from_problems(problems, summary=f"Cannot update {current.ref}")
        if not updates:
            return current

        updated = dataclasses.replace(current, **updates, updated_at=_now_iso())
        self._commit_items([updated])
        logger.info("Updated item %s (%s)", updated.ref, ", ".join(sorted(updates)))
        return updated

    def _back_references(self, type_name: str, item_id: str) -> list[Item]:
        rows = self.conn.execute(
            "SELECT DISTINCT source_type, source_id FROM related_items WHERE target_type = ? AND target_id = ? "
            "ORDER BY source_type, source_id",
            (type_name, item_id),
        ).fetchall()
        return [self.get_item(r["source_type"], r["source_id"]) for r in rows if (r["source_type"], r["source_id"]) != (type_name, item_id)]

    def delete_item(self, type_name: str, item_id: str) -> int:
        """Delete an item and drop references to it from other items.

        Returns the number of other items whose ``related`` list was rewritten.
        """
        self.get_type_descriptor(type_name)
        if not self.item_exists(type_name, item_id):
            msg = f"Item not found: {format_reference(type_name, item_id)}"
            raise NotFoundError(msg, key=format_reference(type_name, item_id))
        ref = format_reference(type_name, item_id)
        now = _now_iso()
        rewrites = [dataclasses.replace(src, related=[r for r in src.related if r != ref], updated_at=now) for src in self._back_references(type_name, item_id)]
        self._commit_items(rewrites, [(type_name, item_id)])
        logger.info("Deleted item %s (%d back-reference(s) removed)", ref, len(rewrites))
        return len(rewrites)

    def change_item_type(self, from_type: str, from_id: str, to_type: str) -> ChangeTypeResult:
        """Re-key an item under *to_type*, rewriting every reference to it."""
        problems: list[str] = []
        for label, name in (("source", from_type), ("target", to_type)):
            if name in SPECIAL_TYPES:
                problems.append(f"Cannot change type of {name} items ({label} type '{name}' is special)")
        if problems:
            raise InvalidRequestError.from_problems(problems, summary="Cannot change item type")

        from_base = self.get_type_descriptor(from_type).name
        to_base = self.get_type_descriptor(to_type).name
        if from_type == to_type:
            problems.append(f"Item is already of type '{to_type}'")
        if from_base != to_base:
            problems.append(f"Cannot change between base types: '{from_type}' is {from_base}, '{to_type}' is {to_base}")
        if problems:
            raise InvalidRequestError.from_problems(problems, summary="Cannot change item type")

        original = self.get_item(from_type, from_id)
        old_ref = original.ref
        try:
            new_id = self._next_sequence_id(to_type)
        except Exception:
            self.conn.rollback()
            raise
        new_ref = format_reference(to_type, new_id)
        now = _now_iso()
        moved = dataclasses.replace(
            original,
            type=to_type,
            id=new_id,
            related=[r for r in original.related if r != old_ref],
            updated_at=now,
        )
        rewrites = []
        for src in self._back_references(from_type, from_id):
            rewrites.append(dataclasses.replace(src, related=dedupe([new_ref if r == old_ref else r for r in src.related]), updated_at=now))
        self._commit_items([moved, *rewrites], [(from_type, from_id)])
        logger.info("Changed %s -> %s (%d reference(s) rewritten)", old_ref, new_ref, len(rewrites))
        return ChangeTypeResult(old_ref=old_ref, new_ref=new_ref, new_id=new_id, related_updates=len(rewrites))
