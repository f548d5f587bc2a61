"""Core database operations for the knowledge base.

Single source of truth for item storage. Both the CLI and the MCP server
import from this module. No daemon, no sync: markdown files plus a SQLite
index in WAL mode, updated together.

Convention-based discovery: each project has a `.tessera/` directory
containing `config.json`, `tessera.db` (item index), `index.db` (code
index), `current_state.md`, and the item files under `data/`.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from tessera.db_items import ItemsMixin
from tessera.db_maintenance import MaintenanceMixin
from tessera.db_schema import CURRENT_SCHEMA_VERSION, SCHEMA_SQL
from tessera.db_search import SearchMixin
from tessera.db_statuses import StatusesMixin
from tessera.db_tags import TagsMixin
from tessera.db_types import TypesMixin
from tessera.file_index import DEFAULT_CHUNK_SIZE, DEFAULT_MAX_FILE_SIZE
from tessera.models import Item, ItemPatch
from tessera.storage import write_atomic
from tessera.types.core import ProjectConfig

logger = logging.getLogger(__name__)

__all__ = [
    "CODE_INDEX_FILENAME",
    "CONFIG_FILENAME",
    "CURRENT_STATE_FILENAME",
    "DATA_DIRNAME",
    "DB_FILENAME",
    "TESSERA_DIR_NAME",
    "Item",
    "ItemPatch",
    "TesseraDB",
    "find_tessera_root",
    "init_project",
    "read_config",
    "write_atomic",
    "write_config",
]

# ---------------------------------------------------------------------------
# Convention-based discovery
# ---------------------------------------------------------------------------

TESSERA_DIR_NAME = ".tessera"
DB_FILENAME = "tessera.db"
CODE_INDEX_FILENAME = "index.db"
CONFIG_FILENAME = "config.json"
CURRENT_STATE_FILENAME = "current_state.md"
DATA_DIRNAME = "data"


def find_tessera_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for .tessera/ directory.

    Returns the .tessera/ directory path (not the project root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / TESSERA_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {TESSERA_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def default_config(name: str = "tessera") -> ProjectConfig:
    return ProjectConfig(
        name=name,
        version=1,
        embedding_backend="hashing",
        embedding_model="all-MiniLM-L6-v2",
        chunk_size=DEFAULT_CHUNK_SIZE,
        max_file_size=DEFAULT_MAX_FILE_SIZE,
        exclude=[],
    )


def read_config(tessera_dir: Path) -> ProjectConfig:
    """Read .tessera/config.json merged over defaults. Returns defaults if missing or corrupt."""
    defaults = default_config(tessera_dir.resolve().parent.name or "tessera")
    config_path = tessera_dir / CONFIG_FILENAME
    if not config_path.exists():
        return defaults
    try:
        loaded = json.loads(config_path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return defaults
    if not isinstance(loaded, dict):
        logger.warning("Ignoring %s: expected a JSON object", config_path)
        return defaults
    merged: dict[str, Any] = {**defaults, **loaded}
    return ProjectConfig(**merged)  # type: ignore[typeddict-item]


def write_config(tessera_dir: Path, config: dict[str, Any] | ProjectConfig) -> None:
    """Write .tessera/config.json."""
    config_path = tessera_dir / CONFIG_FILENAME
    config_path.write_text(json.dumps(config, indent=2) + "\n", encoding="utf-8")


def init_project(project_root: Path, *, name: str | None = None) -> Path:
    """Create ``.tessera/`` under *project_root* (idempotent). Returns the directory."""
    tessera_dir = project_root / TESSERA_DIR_NAME
    tessera_dir.mkdir(parents=True, exist_ok=True)
    (tessera_dir / DATA_DIRNAME).mkdir(exist_ok=True)
    if not (tessera_dir / CONFIG_FILENAME).exists():
        write_config(tessera_dir, default_config(name or project_root.resolve().name))
    with TesseraDB(tessera_dir / DB_FILENAME, data_dir=tessera_dir / DATA_DIRNAME) as db:
        db.initialize()
    return tessera_dir


# ---------------------------------------------------------------------------
# TesseraDB
# ---------------------------------------------------------------------------


class TesseraDB(TypesMixin, StatusesMixin, TagsMixin, SearchMixin, ItemsMixin, MaintenanceMixin):
    """Markdown files mirrored into SQLite. Importable by CLI and MCP."""

    def __init__(
        self,
        db_path: str | Path,
        *,
        data_dir: str | Path | None = None,
        check_same_thread: bool = True,
    ) -> None:
        self.db_path = Path(db_path)
        self.data_dir = Path(data_dir) if data_dir is not None else self.db_path.parent / DATA_DIRNAME
        self._conn: sqlite3.Connection | None = None
        self._check_same_thread = check_same_thread

    @classmethod
    def from_project(cls, project_path: Path | None = None) -> TesseraDB:
        """Create a TesseraDB by discovering .tessera/ from project_path (or cwd)."""
        tessera_dir = find_tessera_root(project_path)
        db = cls(tessera_dir / DB_FILENAME, data_dir=tessera_dir / DATA_DIRNAME)
        db.initialize()
        return db

    def __enter__(self) -> TesseraDB:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                isolation_level="DEFERRED",
                check_same_thread=self._check_same_thread,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.execute("PRAGMA busy_timeout=5000")
        return self._conn

    def initialize(self) -> None:
        """Create tables (if new), then seed built-in types and statuses."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        current_version = self.get_schema_version()
        if current_version == 0:
            self.conn.executescript(SCHEMA_SQL)
            self.conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION}")
        elif current_version > CURRENT_SCHEMA_VERSION:
            msg = f"{self.db_path} has schema version {current_version}, newer than this tessera ({CURRENT_SCHEMA_VERSION})"
            raise RuntimeError(msg)
        seeded = self._seed_builtin_types() + self._seed_statuses()
        if seeded:
            logger.debug("Seeded %d built-in type/status row(s)", seeded)
        self.conn.commit()

    def get_schema_version(self) -> int:
        """Return the current schema version from PRAGMA user_version."""
        result: int = self.conn.execute("PRAGMA user_version").fetchone()[0]
        return result

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
