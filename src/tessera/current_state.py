"""Single-slot project handover state stored in ``.tessera/current_state.md``.

The file uses the same frontmatter format as items, with ``type`` fixed to
``current_state``. Each update overwrites it wholesale; history belongs in
session records.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from tessera import frontmatter
from tessera.core import TesseraDB
from tessera.db_base import _now_iso
from tessera.errors import InvalidRequestError
from tessera.storage import read_text, write_atomic
from tessera.types.core import CurrentStateDict, CurrentStateMetadata, ISOTimestamp
from tessera.validation import dedupe, sanitize_actor, validate_string_list

logger = logging.getLogger(__name__)

STATE_TYPE = "current_state"


def default_metadata() -> CurrentStateMetadata:
    return CurrentStateMetadata(
        title="Current State",
        type=STATE_TYPE,
        priority="medium",
        tags=[],
        related=[],
        updated_at=None,
        updated_by=None,
    )


class CurrentStateStore:
    def __init__(self, path: Path, db: TesseraDB) -> None:
        self.path = path
        self.db = db

    def get(self) -> CurrentStateDict:
        """Return the stored state, or empty content with default metadata if never written."""
        if not self.path.exists():
            return CurrentStateDict(content="", metadata=default_metadata())
        doc = frontmatter.parse(read_text(self.path))
        meta = default_metadata()
        stored = doc.metadata
        meta["title"] = stored.get("title") or meta["title"]
        meta["priority"] = stored.get("priority") or meta["priority"]
        meta["tags"] = list(stored.get("tags") or [])
        meta["related"] = list(stored.get("related") or [])
        updated_at = stored.get("updated_at")
        meta["updated_at"] = ISOTimestamp(updated_at) if updated_at else None
        meta["updated_by"] = stored.get("updated_by")
        return CurrentStateDict(content=doc.content, metadata=meta)

    def update(
        self,
        content: str,
        *,
        tags: list[str] | None = None,
        related: list[str] | None = None,
        updated_by: str | None = None,
    ) -> CurrentStateDict:
        """Overwrite the state. Validates every related reference and tag first."""
        problems: list[str] = []
        if not isinstance(content, str):
            problems.append("content must be a string")
        tags = [] if tags is None else tags
        related = [] if related is None else related
        err = validate_string_list(tags, "tags")
        if err:
            problems.append(err)
        else:
            problems.extend(self.db._check_tag_names(tags))
        err = validate_string_list(related, "related")
        if err:
            problems.append(err)
        else:
            invalid = self.db.validate_references(related)
            if invalid:
                problems.append("Related items not found: " + ", ".join(invalid))
        actor = None
        if updated_by is not None:
            actor, actor_err = sanitize_actor(updated_by)
            if actor_err:
                problems.append(actor_err)
        if problems:
            raise InvalidRequestError.from_problems(problems, summary="Cannot update current state")

        self.db.ensure_tags_exist(tags)
        meta: dict[str, Any] = dict(default_metadata())
        meta.update(
            tags=dedupe(tags),
            related=dedupe(related),
            updated_at=_now_iso(),
            updated_by=actor,
        )
        write_atomic(self.path, frontmatter.generate(meta, content))
        logger.info("Updated current state (%d chars, by %s)", len(content), actor or "unknown")
        return self.get()
