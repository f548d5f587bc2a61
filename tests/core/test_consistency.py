"""Tests that a failed index update never leaves files and index out of step."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from tessera.core import TesseraDB
from tessera.errors import ConsistencyError
from tessera.models import ItemPatch
from tessera.storage import FileJournal


def _fail_sync(*args: Any, **kwargs: Any) -> None:
    msg = "disk full"
    raise RuntimeError(msg)


class TestWriteRollback:
    def test_failed_create_leaves_no_file(self, db: TesseraDB, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(db, "_sync_item_index", _fail_sync)
        with pytest.raises(RuntimeError, match="disk full"):
            db.create_item("issues", "Doomed")
        assert not (db.data_dir / "issues" / "issues-1.md").exists()
        monkeypatch.undo()
        assert db.get_items("issues") == []
        # The sequence allocation was rolled back with the index transaction.
        assert db.create_item("issues", "Survivor").id == "1"

    def test_failed_update_restores_file(self, populated_db: TesseraDB, monkeypatch: pytest.MonkeyPatch) -> None:
        path = populated_db.data_dir / "issues" / "issues-1.md"
        before = path.read_bytes()
        monkeypatch.setattr(populated_db, "_sync_item_index", _fail_sync)
        with pytest.raises(RuntimeError):
            populated_db.update_item("issues", "1", ItemPatch(title="Renamed"))
        monkeypatch.undo()
        assert path.read_bytes() == before
        assert populated_db.get_item("issues", "1").title == "Auth bug"
        assert [s["title"] for s in populated_db.get_items("issues") if s["id"] == "1"] == ["Auth bug"]

    def test_failed_delete_restores_every_file(self, populated_db: TesseraDB, monkeypatch: pytest.MonkeyPatch) -> None:
        target = populated_db.data_dir / "issues" / "issues-1.md"
        referrer = populated_db.data_dir / "docs" / "docs-1.md"
        before = {target: target.read_bytes(), referrer: referrer.read_bytes()}
        monkeypatch.setattr(populated_db, "_sync_item_index", _fail_sync)
        with pytest.raises(RuntimeError):
            populated_db.delete_item("issues", "1")
        monkeypatch.undo()
        assert {p: p.read_bytes() for p in before} == before
        assert populated_db.get_item("docs", "1").related == ["issues-1"]
        assert populated_db.item_exists("issues", "1")

    def test_failed_tag_delete_keeps_tag(self, populated_db: TesseraDB, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(populated_db, "_sync_item_index", _fail_sync)
        with pytest.raises(RuntimeError):
            populated_db.delete_tag("auth")
        monkeypatch.undo()
        assert populated_db.tag_exists("auth")
        assert populated_db.get_item("issues", "1").tags == ["bug", "auth"]

    def test_failed_change_type_restores_original(self, populated_db: TesseraDB, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(populated_db, "_sync_item_index", _fail_sync)
        with pytest.raises(RuntimeError):
            populated_db.change_item_type("issues", "1", "plans")
        monkeypatch.undo()
        assert (populated_db.data_dir / "issues" / "issues-1.md").exists()
        assert not (populated_db.data_dir / "plans" / "plans-1.md").exists()
        assert populated_db.get_item("issues", "2").related == ["issues-1"]


class TestFileJournal:
    def test_rollback_restores_and_removes(self, tmp_path: Path) -> None:
        existing = tmp_path / "a.md"
        existing.write_text("original")
        created = tmp_path / "sub" / "b.md"
        journal = FileJournal()
        journal.write(existing, "changed")
        journal.write(created, "new")
        assert existing.read_text() == "changed"
        journal.rollback()
        assert existing.read_text() == "original"
        assert not created.exists()

    def test_rollback_restores_deleted_file(self, tmp_path: Path) -> None:
        path = tmp_path / "c.md"
        path.write_text("keep me")
        journal = FileJournal()
        journal.delete(path)
        assert not path.exists()
        journal.rollback()
        assert path.read_text() == "keep me"

    def test_first_snapshot_wins(self, tmp_path: Path) -> None:
        path = tmp_path / "d.md"
        path.write_text("v1")
        journal = FileJournal()
        journal.write(path, "v2")
        journal.write(path, "v3")
        journal.rollback()
        assert path.read_text() == "v1"

    def test_restore_failure_is_a_consistency_error(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "e.md"
        path.write_text("v1")
        journal = FileJournal()
        journal.write(path, "v2")

        def refuse(self: Path, data: bytes) -> int:
            msg = "read-only file system"
            raise OSError(msg)

        monkeypatch.setattr(Path, "write_bytes", refuse)
        with pytest.raises(ConsistencyError, match="tessera rebuild") as exc_info:
            journal.rollback(item_key="issues-1")
        assert exc_info.value.item_key == "issues-1"
        assert exc_info.value.path == path
