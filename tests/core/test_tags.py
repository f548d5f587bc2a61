"""Tests for the tag registry and tag cascade."""

from __future__ import annotations

import pytest

from tessera import frontmatter
from tessera.core import TesseraDB
from tessera.errors import InvalidRequestError, NotFoundError


class TestTagRegistry:
    def test_counts(self, populated_db: TesseraDB) -> None:
        counts = {t["name"]: t["count"] for t in populated_db.get_tags()}
        assert counts == {"auth": 2, "bug": 1}

    def test_create_tag(self, db: TesseraDB) -> None:
        record = db.create_tag("frontend")
        assert record["name"] == "frontend"
        assert record["count"] == 0
        assert db.tag_exists("frontend")

    def test_create_duplicate(self, populated_db: TesseraDB) -> None:
        with pytest.raises(InvalidRequestError, match="already exists"):
            populated_db.create_tag("auth")

    @pytest.mark.parametrize("name", ["", "has space", "semi;colon", "slash/tag"])
    def test_invalid_names(self, db: TesseraDB, name: str) -> None:
        with pytest.raises(InvalidRequestError):
            db.create_tag(name)

    def test_ensure_tags_exist_is_idempotent(self, populated_db: TesseraDB) -> None:
        populated_db.ensure_tags_exist(["auth", "new-tag"])
        populated_db.ensure_tags_exist(["auth", "new-tag"])
        assert {t["name"] for t in populated_db.get_tags()} == {"auth", "bug", "new-tag"}

    def test_search_tags_case_insensitive(self, populated_db: TesseraDB) -> None:
        populated_db.create_tag("authorization")
        assert [t["name"] for t in populated_db.search_tags("AUTH")] == ["auth", "authorization"]

    def test_search_tags_treats_wildcards_literally(self, populated_db: TesseraDB) -> None:
        populated_db.create_tag("snake_case")
        populated_db.create_tag("snakeXcase")
        assert [t["name"] for t in populated_db.search_tags("e_c")] == ["snake_case"]


class TestSearchByTag:
    def test_exact_match(self, populated_db: TesseraDB) -> None:
        refs = {(s["type"], s["id"]) for s in populated_db.search_items_by_tag("auth")}
        assert refs == {("issues", "1"), ("docs", "1")}

    def test_type_restriction(self, populated_db: TesseraDB) -> None:
        results = populated_db.search_items_by_tag("auth", ["docs"])
        assert [(s["type"], s["id"]) for s in results] == [("docs", "1")]

    def test_grouped(self, populated_db: TesseraDB) -> None:
        grouped = populated_db.search_items_by_tag_grouped("auth")
        assert [s["id"] for s in grouped["tasks"]] == ["1"]
        assert [s["type"] for s in grouped["documents"]] == ["docs"]

    def test_unknown_tag_is_empty(self, populated_db: TesseraDB) -> None:
        assert populated_db.search_items_by_tag("nope") == []


class TestDeleteTag:
    def test_cascades_to_items(self, populated_db: TesseraDB) -> None:
        assert populated_db.delete_tag("auth") == 2
        assert populated_db.get_item("issues", "1").tags == ["bug"]
        assert populated_db.get_item("docs", "1").tags == []
        assert not populated_db.tag_exists("auth")

    def test_rewrites_files(self, populated_db: TesseraDB) -> None:
        populated_db.delete_tag("auth")
        doc = frontmatter.parse((populated_db.data_dir / "issues" / "issues-1.md").read_text())
        assert doc.metadata["tags"] == ["bug"]

    def test_unused_tag(self, db: TesseraDB) -> None:
        db.create_tag("lonely")
        assert db.delete_tag("lonely") == 0
        assert db.get_tags() == []

    def test_missing_tag(self, db: TesseraDB) -> None:
        with pytest.raises(NotFoundError, match="Tag not found"):
            db.delete_tag("ghost")

    def test_other_fields_preserved(self, populated_db: TesseraDB) -> None:
        before = populated_db.get_item("docs", "1")
        populated_db.delete_tag("auth")
        after = populated_db.get_item("docs", "1")
        assert after.related == before.related
        assert after.content == before.content
        assert after.title == before.title
