"""MCP item tools: CRUD, type changes, tag lookup and search."""

from __future__ import annotations

from tessera.context import ProjectContext
from tessera.mcp_server import dispatch
from tests.mcp._helpers import _parse


class TestCreateItem:
    async def test_create_task(self, ctx: ProjectContext) -> None:
        data = _parse(
            await dispatch(ctx, "create_item", {"type": "issues", "title": "Broken build", "tags": ["ci"], "priority": "high"})
        )
        assert data["type"] == "issues"
        assert data["id"] == "1"
        assert data["status"] == "Open"
        assert data["priority"] == "high"
        assert data["tags"] == ["ci"]
        assert (ctx.tessera_dir / "data" / "issues" / "issues-1.md").exists()

    async def test_collects_every_problem(self, ctx: ProjectContext) -> None:
        data = _parse(await dispatch(ctx, "create_item", {"type": "docs", "title": "  "}))
        assert data["code"] == "validation_error"
        assert len(data["problems"]) == 2
        assert any("content is required" in p for p in data["problems"])
        assert any("title" in p for p in data["problems"])

    async def test_unknown_type(self, ctx: ProjectContext) -> None:
        data = _parse(await dispatch(ctx, "create_item", {"type": "widgets", "title": "x"}))
        assert data["code"] == "not_found"
        assert "get_types" in data["error"]

    async def test_bad_tags_argument(self, ctx: ProjectContext) -> None:
        data = _parse(await dispatch(ctx, "create_item", {"type": "issues", "title": "x", "tags": "ci"}))
        assert data == {"error": "tags must be an array of strings", "code": "validation_error"}

    async def test_missing_related(self, ctx: ProjectContext) -> None:
        data = _parse(await dispatch(ctx, "create_item", {"type": "issues", "title": "x", "related": ["issues-99"]}))
        assert data["code"] == "validation_error"
        assert "issues-99" in data["error"]
        assert ctx.db.get_items("issues") == []

    async def test_session_from_datetime(self, ctx: ProjectContext) -> None:
        data = _parse(
            await dispatch(ctx, "create_item", {"type": "sessions", "title": "Pairing", "datetime": "2025-04-02T14:30:00"})
        )
        assert data["id"] == "2025-04-02-14.30.00.000"
        assert data["start_date"] == "2025-04-02"


class TestReadItems:
    async def test_get_items(self, populated_ctx: ProjectContext) -> None:
        data = _parse(await dispatch(populated_ctx, "get_items", {"type": "issues"}))
        assert data["type"] == "issues"
        assert data["count"] == 2
        assert {i["title"] for i in data["items"]} == {"Auth bug", "Login timeout"}
        assert "content" not in data["items"][0]

    async def test_get_items_bad_status_ids(self, populated_ctx: ProjectContext) -> None:
        data = _parse(await dispatch(populated_ctx, "get_items", {"type": "issues", "statusIds": ["Open"]}))
        assert data["code"] == "validation_error"

    async def test_get_items_limit_range(self, populated_ctx: ProjectContext) -> None:
        data = _parse(await dispatch(populated_ctx, "get_items", {"type": "issues", "limit": 0}))
        assert data == {"error": "limit must be >= 1", "code": "validation_error"}

    async def test_detail(self, populated_ctx: ProjectContext) -> None:
        data = _parse(await dispatch(populated_ctx, "get_item_detail", {"type": "issues", "id": 2}))
        assert data["title"] == "Login timeout"
        assert data["related"] == ["issues-1"]
        assert data["content"] == "Session expires early."
        assert "session" in data["keywords"]

    async def test_detail_not_found(self, populated_ctx: ProjectContext) -> None:
        data = _parse(await dispatch(populated_ctx, "get_item_detail", {"type": "issues", "id": "42"}))
        assert data["code"] == "not_found"
        assert "issues-42" in data["error"]


class TestUpdateItem:
    async def test_partial_update(self, populated_ctx: ProjectContext) -> None:
        data = _parse(await dispatch(populated_ctx, "update_item", {"type": "issues", "id": "1", "status": "In Progress"}))
        assert data["status"] == "In Progress"
        assert data["title"] == "Auth bug"
        assert data["tags"] == ["auth"]

    async def test_clear_tags(self, populated_ctx: ProjectContext) -> None:
        data = _parse(await dispatch(populated_ctx, "update_item", {"type": "issues", "id": "1", "tags": []}))
        assert data["tags"] == []

    async def test_empty_patch(self, populated_ctx: ProjectContext) -> None:
        data = _parse(await dispatch(populated_ctx, "update_item", {"type": "issues", "id": "1"}))
        assert data == {"error": "No fields to update", "code": "validation_error"}

    async def test_title_cannot_be_cleared(self, populated_ctx: ProjectContext) -> None:
        data = _parse(await dispatch(populated_ctx, "update_item", {"type": "issues", "id": "1", "title": ""}))
        assert data["code"] == "validation_error"
        assert populated_ctx.db.get_item("issues", "1").title == "Auth bug"


class TestDeleteItem:
    async def test_delete_strips_references(self, populated_ctx: ProjectContext) -> None:
        data = _parse(await dispatch(populated_ctx, "delete_item", {"type": "issues", "id": "1"}))
        assert data == {"status": "deleted", "ref": "issues-1", "related_updates": 1}
        assert populated_ctx.db.get_item("issues", "2").related == []

    async def test_delete_missing(self, populated_ctx: ProjectContext) -> None:
        data = _parse(await dispatch(populated_ctx, "delete_item", {"type": "issues", "id": "9"}))
        assert data["code"] == "not_found"


class TestTagsAndTypes:
    async def test_search_by_tag_grouped(self, populated_ctx: ProjectContext) -> None:
        data = _parse(await dispatch(populated_ctx, "search_items_by_tag", {"tag": "auth"}))
        assert [i["id"] for i in data["tasks"]] == ["1"]
        assert [i["type"] for i in data["documents"]] == ["docs"]

    async def test_change_item_type(self, populated_ctx: ProjectContext) -> None:
        data = _parse(await dispatch(populated_ctx, "change_item_type", {"from_type": "issues", "from_id": 1, "to_type": "plans"}))
        assert data == {"old_ref": "issues-1", "new_ref": "plans-1", "new_id": "1", "related_updates": 1}
        assert populated_ctx.db.get_item("issues", "2").related == ["plans-1"]

    async def test_change_across_base_types(self, populated_ctx: ProjectContext) -> None:
        data = _parse(await dispatch(populated_ctx, "change_item_type", {"from_type": "issues", "from_id": "1", "to_type": "docs"}))
        assert data["code"] == "validation_error"
        assert "base types" in data["error"]


class TestSearch:
    async def test_search_items(self, populated_ctx: ProjectContext) -> None:
        data = _parse(await dispatch(populated_ctx, "search_items", {"query": "auth"}))
        assert data["total"] == 2
        assert data["has_more"] is False
        assert {(r["type"], r["id"]) for r in data["results"]} == {("issues", "1"), ("docs", "1")}

    async def test_search_requires_query(self, populated_ctx: ProjectContext) -> None:
        data = _parse(await dispatch(populated_ctx, "search_items", {"query": ""}))
        assert data["code"] == "validation_error"

    async def test_suggest(self, populated_ctx: ProjectContext) -> None:
        data = _parse(await dispatch(populated_ctx, "search_suggest", {"query": "Log"}))
        assert [s["title"] for s in data] == ["Login timeout"]

    async def test_related_items(self, populated_ctx: ProjectContext) -> None:
        data = _parse(await dispatch(populated_ctx, "get_related_items", {"type": "issues", "id": "1"}))
        assert isinstance(data, list)
        assert ("issues", "1") not in {(r["type"], r["id"]) for r in data}

    async def test_related_items_unknown_type(self, populated_ctx: ProjectContext) -> None:
        data = _parse(await dispatch(populated_ctx, "get_related_items", {"type": "widgets", "id": "1"}))
        assert data["code"] == "not_found"
