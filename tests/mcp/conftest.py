"""Fixtures for MCP tool tests: a project context over a fresh .tessera/."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest

from tessera.context import ProjectContext
from tessera.core import TESSERA_DIR_NAME


@pytest.fixture
def ctx(tessera_project: Path) -> Generator[ProjectContext, None, None]:
    c = ProjectContext.open(tessera_project / TESSERA_DIR_NAME)
    yield c
    c.close()


@pytest.fixture
def populated_ctx(ctx: ProjectContext) -> ProjectContext:
    """Context with issues-1 (tagged auth), issues-2 (related to issues-1) and docs-1."""
    a = ctx.db.create_item("issues", "Auth bug", priority="high", tags=["auth"], content="Login fails with a 500.")
    ctx.db.create_item("issues", "Login timeout", related=[a.ref], content="Session expires early.")
    ctx.db.create_item("docs", "Auth design", content="Tokens are issued by the auth service.", tags=["auth"])
    return ctx


@pytest.fixture
def git_ctx(git_project: Path) -> Generator[ProjectContext, None, None]:
    c = ProjectContext.open(git_project / TESSERA_DIR_NAME)
    yield c
    c.close()
