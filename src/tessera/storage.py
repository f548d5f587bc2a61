"""On-disk layout of item files and the file journal used by multi-step writes.

Ordinary items live at ``data/<type>/<type>-<id>.md``. Sessions and daily
summaries are grouped per calendar day under ``data/sessions/<date>/``.
"""

from __future__ import annotations

import contextlib
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from tessera.errors import ConsistencyError
from tessera.validation import validate_item_id

logger = logging.getLogger(__name__)

SESSIONS_DIR = "sessions"


def write_atomic(path: Path, content: str) -> None:
    """Write content to path atomically via temp file + os.replace()."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        tmp.write_text(content, encoding="utf-8", newline="")
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise


def read_text(path: Path) -> str:
    """Read an item file without newline translation, so CRLF in content is kept."""
    with path.open(encoding="utf-8", newline="") as fh:
        return fh.read()


def item_path(data_dir: Path, type_name: str, item_id: str, *, grouped_by_date: bool = False) -> Path:
    """Return the markdown file path for an item.

    *grouped_by_date* places the file under ``sessions/<YYYY-MM-DD>/``; the
    date is the first ten characters of the id for both session timestamps
    and daily dates.
    """
    err = validate_item_id(item_id)
    if err:
        raise ValueError(err)
    filename = f"{type_name}-{item_id}.md"
    if grouped_by_date:
        return data_dir / SESSIONS_DIR / item_id[:10] / filename
    return data_dir / type_name / filename


@dataclass
class _Snapshot:
    path: Path
    original: bytes | None


@dataclass
class FileJournal:
    """Records the prior state of every file touched by one logical write.

    ``rollback()`` puts each file back (or removes files that did not exist
    before), newest change first. Restoration failures are collected and
    raised as one :class:`ConsistencyError`.
    """

    _snapshots: list[_Snapshot] = field(default_factory=list)
    _seen: set[Path] = field(default_factory=set)

    def _remember(self, path: Path) -> None:
        if path in self._seen:
            return
        self._seen.add(path)
        original = path.read_bytes() if path.exists() else None
        self._snapshots.append(_Snapshot(path, original))

    def write(self, path: Path, content: str) -> None:
        self._remember(path)
        write_atomic(path, content)

    def delete(self, path: Path) -> None:
        self._remember(path)
        with contextlib.suppress(FileNotFoundError):
            path.unlink()

    @property
    def touched(self) -> list[Path]:
        return [s.path for s in self._snapshots]

    def rollback(self, *, item_key: str | None = None) -> None:
        failures: list[str] = []
        failed_paths: list[Path] = []
        for snap in reversed(self._snapshots):
            try:
                if snap.original is None:
                    with contextlib.suppress(FileNotFoundError):
                        snap.path.unlink()
                else:
                    snap.path.parent.mkdir(parents=True, exist_ok=True)
                    tmp = snap.path.with_suffix(snap.path.suffix + ".restore")
                    tmp.write_bytes(snap.original)
                    os.replace(tmp, snap.path)
            except OSError as exc:
                logger.error("Failed to restore %s: %s", snap.path, exc)
                failures.append(f"{snap.path}: {exc}")
                failed_paths.append(snap.path)
        self._snapshots.clear()
        self._seen.clear()
        if failures:
            msg = "Item files could not be restored after a failed index update; run 'tessera rebuild' after fixing: " + "; ".join(
                failures
            )
            raise ConsistencyError(msg, item_key=item_key, path=failed_paths[0])
