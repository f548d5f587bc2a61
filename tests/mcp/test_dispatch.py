"""Tool dispatch, error translation and server wiring."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pytest
from mcp.server import Server
from mcp.types import CallToolRequest, ListResourcesRequest, ListToolsRequest, TextContent

from tessera import mcp_server
from tessera.context import ProjectContext
from tessera.core import TESSERA_DIR_NAME
from tessera.errors import ConsistencyError, FrontmatterError
from tessera.mcp_server import HANDLERS, TOOLS, create_server, dispatch, resolve_tessera_dir
from tests.mcp._helpers import _parse

EXPECTED_TOOLS = {
    "get_items",
    "get_item_detail",
    "create_item",
    "update_item",
    "delete_item",
    "search_items_by_tag",
    "change_item_type",
    "search_items",
    "search_suggest",
    "get_related_items",
    "get_statuses",
    "get_tags",
    "create_tag",
    "delete_tag",
    "search_tags",
    "get_types",
    "create_type",
    "update_type",
    "delete_type",
    "rebuild_index",
    "get_current_state",
    "update_current_state",
    "index_codebase",
    "search_code",
    "get_related_files",
    "get_index_status",
}


class TestRegistry:
    def test_every_tool_has_a_handler(self) -> None:
        names = [t.name for t in TOOLS]
        assert len(names) == len(set(names))
        assert set(names) == EXPECTED_TOOLS
        assert set(HANDLERS) == EXPECTED_TOOLS

    def test_schemas_are_objects(self) -> None:
        for tool in TOOLS:
            assert tool.inputSchema["type"] == "object", tool.name

    def test_create_server(self, ctx: ProjectContext) -> None:
        server = create_server(ctx)
        assert isinstance(server, Server)
        assert server.name == "tessera"
        for request_type in (ListToolsRequest, CallToolRequest, ListResourcesRequest):
            assert request_type in server.request_handlers

    def test_mcp_dependency_bounded_to_major_one(self) -> None:
        """The server is written against the 1.x low-level API; a 2.x install must not satisfy it."""
        from importlib.metadata import requires

        reqs = [r for r in requires("tessera") or [] if r.split(";")[0].strip().startswith("mcp")]
        assert len(reqs) == 1
        assert "<2" in reqs[0].replace(" ", "")


class TestDispatch:
    async def test_unknown_tool(self, ctx: ProjectContext) -> None:
        data = _parse(await dispatch(ctx, "launch_rockets", {}))
        assert data == {"error": "Unknown tool: launch_rockets", "code": "unknown_tool"}

    async def test_none_arguments(self, ctx: ProjectContext) -> None:
        data = _parse(await dispatch(ctx, "get_statuses", None))
        assert isinstance(data, list)

    async def test_corrupt_file_reported(self, ctx: ProjectContext, monkeypatch: pytest.MonkeyPatch) -> None:
        async def corrupt(c: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
            msg = "issues/issues-1.md: metadata block opened with '---' but never closed"
            raise FrontmatterError(msg)

        monkeypatch.setitem(HANDLERS, "corrupt", corrupt)
        data = _parse(await dispatch(ctx, "corrupt", {}))
        assert data["code"] == "corrupt_file"
        assert "never closed" in data["error"]

    async def test_consistency_error_propagates(self, ctx: ProjectContext, monkeypatch: pytest.MonkeyPatch) -> None:
        async def diverged(c: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
            msg = "issues-1 is indexed but its file is missing"
            raise ConsistencyError(msg, item_key="issues-1")

        monkeypatch.setitem(HANDLERS, "diverged", diverged)
        with pytest.raises(ConsistencyError):
            await dispatch(ctx, "diverged", {})

    async def test_open_transaction_rolled_back(self, ctx: ProjectContext, monkeypatch: pytest.MonkeyPatch) -> None:
        async def leaky(c: ProjectContext, arguments: dict[str, Any]) -> list[TextContent]:
            c.db.conn.execute("INSERT INTO tags (name, created_at) VALUES ('half', '2025-01-01T00:00:00')")
            msg = "gave up halfway"
            raise ValueError(msg)

        monkeypatch.setitem(HANDLERS, "leaky", leaky)
        data = _parse(await dispatch(ctx, "leaky", {}))
        assert data == {"error": "gave up halfway", "code": "validation_error"}
        assert not ctx.db.conn.in_transaction
        assert not ctx.db.tag_exists("half")

    async def test_calls_are_logged(self, ctx: ProjectContext, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="tessera"):
            await dispatch(ctx, "get_tags", {})
            await dispatch(ctx, "get_item_detail", {"type": "issues", "id": "404"})
        messages = [r.getMessage() for r in caplog.records if r.name == "tessera.mcp_server"]
        assert messages == ["tool_call", "tool_error"]
        error_record = next(r for r in caplog.records if r.getMessage() == "tool_error")
        assert error_record.tool == "get_item_detail"  # type: ignore[attr-defined]


class TestResolveTesseraDir:
    def test_project_flag(self, tessera_project: Path) -> None:
        assert resolve_tessera_dir(tessera_project) == tessera_project / TESSERA_DIR_NAME

    def test_project_flag_without_tessera(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="tessera init"):
            resolve_tessera_dir(tmp_path)

    def test_env_var(self, tessera_project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(mcp_server.TESSERA_DIR_ENV, str(tessera_project / TESSERA_DIR_NAME))
        assert resolve_tessera_dir(None) == tessera_project / TESSERA_DIR_NAME

    def test_discovery_from_cwd(self, tessera_project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(mcp_server.TESSERA_DIR_ENV, raising=False)
        nested = tessera_project / "src" / "pkg"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)
        assert resolve_tessera_dir(None) == (tessera_project / TESSERA_DIR_NAME).resolve()
