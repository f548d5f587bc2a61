"""Tests for .tessera/ discovery, config and project initialization."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from tessera.context import ProjectContext
from tessera.core import (
    CONFIG_FILENAME,
    DATA_DIRNAME,
    TESSERA_DIR_NAME,
    find_tessera_root,
    init_project,
    read_config,
    write_config,
)


class TestFindTesseraRoot:
    def test_walks_up(self, tessera_project: Path) -> None:
        nested = tessera_project / "a" / "b"
        nested.mkdir(parents=True)
        assert find_tessera_root(nested) == (tessera_project / TESSERA_DIR_NAME).resolve()

    def test_not_found(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match=".tessera/"):
            find_tessera_root(tmp_path / "nowhere")


class TestConfig:
    def test_defaults_when_missing(self, tmp_path: Path) -> None:
        tessera_dir = tmp_path / "proj" / TESSERA_DIR_NAME
        tessera_dir.mkdir(parents=True)
        config = read_config(tessera_dir)
        assert config["name"] == "proj"
        assert config["embedding_backend"] == "hashing"
        assert config["exclude"] == []

    def test_corrupt_file_falls_back(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("{not json")
        assert read_config(tmp_path)["embedding_backend"] == "hashing"

    def test_non_object_ignored(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("[1, 2]")
        assert read_config(tmp_path)["version"] == 1

    def test_merged_over_defaults(self, tmp_path: Path) -> None:
        write_config(tmp_path, {"chunk_size": 50})
        config = read_config(tmp_path)
        assert config["chunk_size"] == 50
        assert config["embedding_backend"] == "hashing"


class TestInitProject:
    def test_layout(self, tmp_path: Path) -> None:
        tessera_dir = init_project(tmp_path, name="demo")
        assert (tessera_dir / DATA_DIRNAME).is_dir()
        assert json.loads((tessera_dir / CONFIG_FILENAME).read_text())["name"] == "demo"

    def test_keeps_existing_config(self, tmp_path: Path) -> None:
        init_project(tmp_path, name="first")
        init_project(tmp_path, name="second")
        assert read_config(tmp_path / TESSERA_DIR_NAME)["name"] == "first"


class TestProjectContext:
    def test_wires_components(self, tessera_project: Path) -> None:
        with ProjectContext.open(tessera_project / TESSERA_DIR_NAME) as ctx:
            assert ctx.project_root == tessera_project.resolve()
            assert ctx.config["name"] == "proj"
            item = ctx.db.create_item("issues", "Wired")
            assert ctx.current_state.update("Working on it", related=[item.ref])["metadata"]["related"] == ["issues-1"]
            assert ctx.indexer is ctx.indexer
            assert len(ctx.indexers) == 1
        assert len(ctx.indexers) == 0
