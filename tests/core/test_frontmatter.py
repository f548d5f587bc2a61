"""Tests for the markdown frontmatter codec."""

from __future__ import annotations

import pytest

from tessera import frontmatter
from tessera.errors import FrontmatterError


class TestGenerate:
    def test_lists_written_as_json_arrays(self) -> None:
        text = frontmatter.generate({"title": "X", "tags": ["a", "b"], "related": []}, "body")
        assert 'tags: ["a", "b"]' in text
        assert "related: []" in text

    def test_none_written_as_empty_value(self) -> None:
        text = frontmatter.generate({"title": "X", "start_date": None}, "")
        assert "start_date: \n" in text

    def test_layout(self) -> None:
        text = frontmatter.generate({"title": "Hello"}, "Body line")
        assert text == "---\ntitle: Hello\n---\n\nBody line"

    def test_rejects_invalid_key(self) -> None:
        with pytest.raises(ValueError, match="invalid frontmatter key"):
            frontmatter.generate({"bad key": "x"}, "")

    def test_non_ascii_tags_kept_readable(self) -> None:
        text = frontmatter.generate({"tags": ["café"]}, "")
        assert 'tags: ["café"]' in text

    @pytest.mark.parametrize("title", ["Fix: crash on save", "[WIP] notes", "# heading-like", "a: b: c"])
    def test_titles_written_plain_and_read_back(self, title: str) -> None:
        text = frontmatter.generate({"title": title}, "")
        assert f"title: {title}\n" in text
        assert frontmatter.parse(text).metadata["title"] == title


class TestParse:
    def test_round_trip(self) -> None:
        meta = {
            "title": "Auth bug",
            "type": "issues",
            "priority": "high",
            "status": "Open",
            "tags": ["bug", "auth, login"],
            "related": ["docs-1", "sessions-2025-01-01-12.00.00.000"],
            "start_date": "2025-01-01",
            "end_date": None,
        }
        content = "# Heading\n\nSome text\n---\nnot a delimiter inside the body\n"
        doc = frontmatter.parse(frontmatter.generate(meta, content))
        assert doc.metadata == meta
        assert doc.content == content
        assert not doc.bare
        assert doc.legacy_fields == []

    def test_round_trip_awkward_scalars(self) -> None:
        meta = {"title": "  padded  ", "description": "line one\nline two", "quoted": '"already quoted"', "word": "null"}
        doc = frontmatter.parse(frontmatter.generate(meta, ""))
        assert doc.metadata == meta

    def test_round_trip_empty_content(self) -> None:
        doc = frontmatter.parse(frontmatter.generate({"title": "T"}, ""))
        assert doc.content == ""

    def test_value_containing_colon(self) -> None:
        doc = frontmatter.parse("---\ntitle: Fix: the thing\n---\n\nx")
        assert doc.metadata["title"] == "Fix: the thing"

    def test_legacy_comma_separated_lists(self) -> None:
        doc = frontmatter.parse("---\ntitle: Old\ntags: bug, auth ,ui\nrelated: issues-1,docs-2\n---\n\nbody")
        assert doc.metadata["tags"] == ["bug", "auth", "ui"]
        assert doc.metadata["related"] == ["issues-1", "docs-2"]
        assert sorted(doc.legacy_fields) == ["related", "tags"]

    def test_empty_list_field(self) -> None:
        doc = frontmatter.parse("---\ntags: \nrelated: null\n---\n")
        assert doc.metadata["tags"] == []
        assert doc.metadata["related"] == []
        assert doc.legacy_fields == []

    def test_no_block_is_bare_content(self) -> None:
        doc = frontmatter.parse("just text\n")
        assert doc.bare
        assert doc.metadata == {}
        assert doc.content == "just text\n"

    def test_unclosed_block_raises(self) -> None:
        with pytest.raises(FrontmatterError, match="never closed"):
            frontmatter.parse("---\ntitle: x\nno end")

    def test_malformed_line_raises(self) -> None:
        with pytest.raises(FrontmatterError, match="expected 'key: value'"):
            frontmatter.parse("---\ntitle: x\nthis line has no separator\n---\n")

    def test_invalid_json_array_raises(self) -> None:
        with pytest.raises(FrontmatterError, match="not a valid JSON array"):
            frontmatter.parse('---\ntags: ["a", \n---\n')

    def test_crlf_line_endings(self) -> None:
        doc = frontmatter.parse('---\r\ntitle: Win\r\ntags: ["a"]\r\n---\r\n\r\nbody')
        assert doc.metadata == {"title": "Win", "tags": ["a"]}
        assert doc.content == "body"

    def test_crlf_content_survives_round_trip(self) -> None:
        body = "line one\r\nline two\r\n"
        doc = frontmatter.parse(frontmatter.generate({"title": "x"}, body))
        assert doc.metadata == {"title": "x"}
        assert doc.content == body
