"""MaintenanceMixin: rebuild the SQLite index from the markdown files.

The files under ``data/`` are authoritative. ``rebuild_index`` is the repair
path after hand edits, a restored backup, or a reported ConsistencyError.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING

from tessera import frontmatter
from tessera.db_base import DBMixinProtocol, _now_iso
from tessera.db_statuses import DEFAULT_STATUS
from tessera.errors import FrontmatterError, NotFoundError
from tessera.item_types import BASE_TYPES, SPECIAL_TYPES, BaseTypeDescriptor, parse_reference, validate_type_name
from tessera.storage import SESSIONS_DIR, read_text, write_atomic
from tessera.types.api import RebuildReport
from tessera.validation import validate_item_id

if TYPE_CHECKING:
    from tessera.models import Item
    from tessera.types.core import StatusRecord

logger = logging.getLogger(__name__)


def _split_filename(path: Path, type_name: str) -> str | None:
    prefix = f"{type_name}-"
    if path.suffix != ".md" or not path.stem.startswith(prefix):
        return None
    item_id = path.stem[len(prefix) :]
    return None if validate_item_id(item_id) else item_id


class MaintenanceMixin(DBMixinProtocol):
    if TYPE_CHECKING:

        def _item_from_document(
            self, type_name: str, item_id: str, doc: frontmatter.ParsedDocument, descriptor: BaseTypeDescriptor
        ) -> Item: ...
        def _sync_item_index(self, item: Item, descriptor: BaseTypeDescriptor) -> None: ...
        def render_item(self, item: Item) -> str: ...
        def get_status_by_name(self, name: str) -> StatusRecord: ...

    def _iter_item_files(self) -> Iterator[tuple[str, Path]]:
        """Yield (type_name, path) for every item file under ``data/``."""
        if not self.data_dir.is_dir():
            return
        for type_dir in sorted(p for p in self.data_dir.iterdir() if p.is_dir()):
            if type_dir.name == SESSIONS_DIR:
                for day_dir in sorted(p for p in type_dir.iterdir() if p.is_dir()):
                    for path in sorted(day_dir.glob("*.md")):
                        for special in SPECIAL_TYPES:
                            if path.name.startswith(f"{special}-"):
                                yield special, path
                continue
            for path in sorted(type_dir.glob("*.md")):
                yield type_dir.name, path

    def rebuild_index(self, *, upgrade_legacy: bool = False) -> RebuildReport:
        """Drop every indexed item and re-read all markdown files.

        Directories for types the registry does not know are registered on the
        fly (base type from a ``base_type`` key, else tasks when the files carry
        a status, else documents). With *upgrade_legacy*, files that still use
        comma-joined lists are rewritten in the JSON-array format. A file whose
        status, priority or references had to be replaced is rewritten with the
        indexed values so the file and the index agree.
        """
        errors: list[str] = []
        legacy: list[str] = []
        registered: list[str] = []
        relations = 0
        count = 0
        now = _now_iso()

        try:
            self.conn.execute("DELETE FROM related_items")
            self.conn.execute("DELETE FROM items")
            for type_name, path in self._iter_item_files():
                rel = str(path.relative_to(self.data_dir))
                item_id = _split_filename(path, type_name)
                if item_id is None:
                    errors.append(f"{rel}: file name does not match '{type_name}-<id>.md'")
                    continue
                try:
                    doc = frontmatter.parse(read_text(path))
                except (FrontmatterError, UnicodeDecodeError) as exc:
                    errors.append(f"{rel}: {exc}")
                    continue

                descriptor = self._descriptor_for_rebuild(type_name, doc, registered, errors, rel, now)
                if descriptor is None:
                    continue
                item = self._item_from_document(type_name, item_id, doc, descriptor)
                if not item.title:
                    errors.append(f"{rel}: missing title")
                    continue
                item, repaired = self._sanitize_rebuilt_item(item, descriptor, errors, rel, now)
                self._sync_item_index(item, descriptor)
                count += 1
                relations += len(item.related)
                if repaired or (doc.legacy_fields and upgrade_legacy):
                    write_atomic(path, self.render_item(item))
                elif doc.legacy_fields:
                    legacy.append(rel)
            self.conn.execute("DELETE FROM keywords WHERE id NOT IN (SELECT keyword_id FROM item_keywords)")
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

        tags = self.conn.execute("SELECT COUNT(*) FROM tags").fetchone()[0]
        logger.info("Rebuilt index: %d item(s), %d error(s), %d legacy file(s)", count, len(errors), len(legacy))
        return RebuildReport(
            items=count,
            types_registered=registered,
            tags=tags,
            relations=relations,
            errors=errors,
            legacy_files=legacy,
        )

    def _descriptor_for_rebuild(
        self,
        type_name: str,
        doc: frontmatter.ParsedDocument,
        registered: list[str],
        errors: list[str],
        rel: str,
        now: str,
    ) -> BaseTypeDescriptor | None:
        if type_name in SPECIAL_TYPES:
            return BASE_TYPES[SPECIAL_TYPES[type_name]]
        row = self.conn.execute("SELECT base_type FROM types WHERE name = ?", (type_name,)).fetchone()
        if row is not None:
            return BASE_TYPES[row["base_type"]]
        err = validate_type_name(type_name)
        if err:
            errors.append(f"{rel}: {err}")
            return None
        base = doc.metadata.get("base_type")
        if base not in ("tasks", "documents"):
            base = "tasks" if doc.metadata.get("status") else "documents"
        self.conn.execute(
            "INSERT INTO types (name, base_type, description, is_builtin, created_at, updated_at) VALUES (?, ?, NULL, 0, ?, ?)",
            (type_name, base, now, now),
        )
        registered.append(type_name)
        logger.info("Registered type %s (base=%s) found on disk", type_name, base)
        return BASE_TYPES[base]

    def _sanitize_rebuilt_item(
        self, item: Item, descriptor: BaseTypeDescriptor, errors: list[str], rel: str, now: str
    ) -> tuple[Item, bool]:
        """Index what the file says, replacing only values the index cannot hold.

        Returns the item and whether a reported value was replaced, in which
        case the caller writes the repaired item back to its file.
        """
        changes: dict[str, object] = {}
        if descriptor.supports_status and item.status is not None:
            try:
                self.get_status_by_name(item.status)
            except NotFoundError:
                errors.append(f"{rel}: unknown status '{item.status}', set to '{DEFAULT_STATUS}'")
                changes["status"] = DEFAULT_STATUS
        if item.priority is not None and item.priority not in ("high", "medium", "low"):
            errors.append(f"{rel}: unknown priority '{item.priority}', set to 'medium'")
            changes["priority"] = "medium"
        bad_refs = []
        for ref in item.related:
            try:
                parse_reference(ref)
            except ValueError:
                bad_refs.append(ref)
        if bad_refs:
            errors.append(f"{rel}: dropped malformed references {', '.join(bad_refs)}")
            changes["related"] = [r for r in item.related if r not in bad_refs]
        repaired = bool(changes)
        if not item.created_at:
            changes["created_at"] = now
        if not item.updated_at:
            changes["updated_at"] = item.created_at or now
        return (dataclasses.replace(item, **changes) if changes else item), repaired
