"""Shared pytest fixtures for tessera tests."""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from tessera.core import DB_FILENAME, TESSERA_DIR_NAME, TesseraDB, init_project
from tessera.models import Item


@pytest.fixture
def db(tmp_path: Path) -> Generator[TesseraDB, None, None]:
    """Fresh TesseraDB for each test, files under tmp_path/data."""
    d = TesseraDB(tmp_path / "tessera.db", data_dir=tmp_path / "data")
    d.initialize()
    yield d
    d.close()


@pytest.fixture
def populated_db(db: TesseraDB) -> TesseraDB:
    """TesseraDB pre-populated with a representative item set.

    Creates:
    - issues-1 "Auth bug" (high, Open, tags bug+auth)
    - issues-2 "Login timeout" (In Progress, related to issues-1)
    - issues-3 "Old crash" (Closed)
    - docs-1 "Auth design" (tags auth, related to issues-1)
    - knowledge-1 "Token rotation"
    """
    a = db.create_item("issues", "Auth bug", priority="high", tags=["bug", "auth"], content="Login fails with a 500.")
    b = db.create_item("issues", "Login timeout", status="In Progress", related=[a.ref], content="Session expires early.")
    c = db.create_item("issues", "Old crash", status="Closed")
    d = db.create_item("docs", "Auth design", content="Tokens are issued by the auth service.", tags=["auth"], related=[a.ref])
    k = db.create_item("knowledge", "Token rotation", content="Rotate refresh tokens on every use.")
    db._test_items: dict[str, Item] = {"a": a, "b": b, "c": c, "doc": d, "k": k}  # type: ignore[attr-defined]
    return db


@pytest.fixture
def tessera_project(tmp_path: Path) -> Path:
    """A tmp directory set up as a tessera project (.tessera/ with config + db).

    Returns the project root (parent of .tessera/).
    """
    init_project(tmp_path, name="proj")
    assert (tmp_path / TESSERA_DIR_NAME / DB_FILENAME).exists()
    return tmp_path


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()


def _git(root: Path, *args: str) -> None:
    subprocess.run(
        ["git", *args],
        cwd=root,
        check=True,
        capture_output=True,
        env={
            "GIT_AUTHOR_NAME": "Test",
            "GIT_AUTHOR_EMAIL": "test@example.com",
            "GIT_COMMITTER_NAME": "Test",
            "GIT_COMMITTER_EMAIL": "test@example.com",
            "GIT_CONFIG_NOSYSTEM": "1",
            "HOME": str(root),
            "PATH": _git_path(),
        },
    )


def _git_path() -> str:
    git = shutil.which("git")
    assert git is not None
    return str(Path(git).parent)


SAMPLE_SOURCES: dict[str, str] = {
    "src/auth.py": (
        "class TokenValidator:\n"
        "    def validate_token(self, token):\n"
        "        if not token:\n"
        "            raise ValueError('empty token')\n"
        "        return self.decode_token(token)\n"
        "\n"
        "    def decode_token(self, token):\n"
        "        return token.split('.')\n"
    ),
    "src/session.py": (
        "class SessionStore:\n"
        "    def create_session(self, user_id):\n"
        "        self.sessions[user_id] = {'user': user_id}\n"
        "        return self.sessions[user_id]\n"
        "\n"
        "    def validate_token(self, token):\n"
        "        return token in self.sessions\n"
    ),
    "src/math_utils.py": (
        "def add_numbers(left, right):\n"
        "    total = left + right\n"
        "    return total\n"
        "\n"
        "def multiply_numbers(left, right):\n"
        "    product = left * right\n"
        "    return product\n"
    ),
    "web/app.ts": (
        "export function renderDashboard(container: HTMLElement) {\n"
        "  container.innerHTML = '<h1>Dashboard</h1>';\n"
        "  return container;\n"
        "}\n"
    ),
    "README.md": "# Sample project\n\nA small repository used to exercise the code index.\n",
}


@pytest.fixture
def git_project(tessera_project: Path) -> Path:
    """A tessera project that is also a git repository with a few committed sources."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    for rel, text in SAMPLE_SOURCES.items():
        path = tessera_project / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text)
    (tessera_project / ".gitignore").write_text(".tessera/\n")
    _git(tessera_project, "init", "-q")
    _git(tessera_project, "add", ".gitignore", *SAMPLE_SOURCES)
    _git(tessera_project, "commit", "-q", "-m", "initial")
    return tessera_project


@pytest.fixture
def git_commit(git_project: Path) -> Callable[..., None]:
    """Stage and commit the given paths in ``git_project``."""

    def commit(*paths: str) -> None:
        _git(git_project, "add", "-A", *paths)
        _git(git_project, "commit", "-q", "-m", "update")

    return commit
