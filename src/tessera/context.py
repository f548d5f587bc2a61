"""Process-lifetime wiring for one ``.tessera/`` project.

Built once when the MCP server or a CLI command starts, handed to every
handler, and closed on shutdown.
"""

from __future__ import annotations

import logging
from pathlib import Path

from tessera.core import (
    CODE_INDEX_FILENAME,
    CURRENT_STATE_FILENAME,
    DATA_DIRNAME,
    DB_FILENAME,
    TESSERA_DIR_NAME,
    TesseraDB,
    read_config,
)
from tessera.current_state import CurrentStateStore
from tessera.file_index import FileIndexer, IndexerPool
from tessera.types.core import ProjectConfig

logger = logging.getLogger(__name__)


class ProjectContext:
    def __init__(self, tessera_dir: Path, db: TesseraDB, config: ProjectConfig) -> None:
        self.tessera_dir = tessera_dir
        self.db = db
        self.config = config
        self.current_state = CurrentStateStore(tessera_dir / CURRENT_STATE_FILENAME, db)
        self.indexers = IndexerPool(self._make_indexer)

    @classmethod
    def open(cls, tessera_dir: Path) -> ProjectContext:
        """Read config, open and initialize the item index for *tessera_dir*."""
        config = read_config(tessera_dir)
        db = TesseraDB(tessera_dir / DB_FILENAME, data_dir=tessera_dir / DATA_DIRNAME)
        db.initialize()
        return cls(tessera_dir, db, config)

    def __enter__(self) -> ProjectContext:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def project_root(self) -> Path:
        return self.tessera_dir.resolve().parent

    @property
    def indexer(self) -> FileIndexer:
        return self.indexers.get(self.project_root)

    def _make_indexer(self, project_root: Path) -> FileIndexer:
        return FileIndexer.from_config(project_root, project_root / TESSERA_DIR_NAME / CODE_INDEX_FILENAME, self.config)

    def close(self) -> None:
        self.indexers.close_all()
        self.db.close()
        logger.debug("Closed project context for %s", self.tessera_dir)
