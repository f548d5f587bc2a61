"""Tests for chunking and file selection helpers."""

from __future__ import annotations

from pathlib import Path

import pytest

from tessera.file_index import (
    IGNORE_FILENAME,
    chunk_text,
    load_ignore_file,
    matches_pattern,
    representative_lines,
)


class TestChunkText:
    def test_line_windows(self) -> None:
        text = "\n".join(f"statement number {i}" for i in range(1, 66))
        chunks = chunk_text(text, 30)
        assert [(c.start_line, c.end_line) for c in chunks] == [(1, 30), (31, 60), (61, 65)]
        assert [c.index for c in chunks] == [0, 1, 2]
        assert chunks[2].content.splitlines()[0] == "statement number 61"

    def test_near_empty_windows_skipped(self) -> None:
        text = "x\ny\nreal content here\nmore of it\n"
        chunks = chunk_text(text, 2)
        assert len(chunks) == 1
        assert chunks[0].index == 0
        assert (chunks[0].start_line, chunks[0].end_line) == (3, 4)

    def test_empty_text(self) -> None:
        assert chunk_text("") == []

    def test_invalid_size(self) -> None:
        with pytest.raises(ValueError, match="chunk_size"):
            chunk_text("abc", 0)


class TestMatchesPattern:
    @pytest.mark.parametrize(
        ("path", "pattern", "expected"),
        [
            ("src/node_modules/x.js", "node_modules", True),
            ("lib/app.min.js", "*.min.js", True),
            ("lib/app.js", "*.min.js", False),
            ("docs/guide.md", "docs/*", True),
            ("src/docs/guide.md", "docs/*", False),
            ("tests/unit/a.py", "tests", True),
            ("tests/unit/a.py", "tests/", True),
            ("a/b/c.py", "a/b", True),
            ("a/b/c.py", "/a/b", True),
            ("build.py", "build", False),
            ("config/.env", ".env", True),
            ("x.py", "", False),
        ],
    )
    def test_patterns(self, path: str, pattern: str, expected: bool) -> None:
        assert matches_pattern(path, pattern) is expected


class TestIgnoreFile:
    def test_missing(self, tmp_path: Path) -> None:
        assert load_ignore_file(tmp_path) == ([], [])

    def test_excludes_and_force_includes(self, tmp_path: Path) -> None:
        (tmp_path / IGNORE_FILENAME).write_text("# generated code\n\nsecret/\n!secret/keep.py\n  vendor  \n")
        excludes, includes = load_ignore_file(tmp_path)
        assert excludes == ["secret/", "vendor"]
        assert includes == ["secret/keep.py"]


class TestRepresentativeLines:
    def test_skips_imports_comments_and_short_lines(self) -> None:
        text = (
            "import os\n"
            "from pathlib import Path\n"
            "# a comment that is long enough\n"
            "x = 1\n"
            "def compute_total(items):\n"
            "    return sum(items)\n"
        )
        assert representative_lines(text) == ["def compute_total(items):", "return sum(items)"]

    def test_count(self) -> None:
        text = "\n".join(f"value_{i} = compute({i})" for i in range(10))
        assert len(representative_lines(text, count=3)) == 3

    def test_js_module_lines(self) -> None:
        text = "export function render() {\nconst element = document.body;\nrequire('x');\n"
        assert representative_lines(text) == ["const element = document.body;"]
