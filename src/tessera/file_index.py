"""Semantic code index over the git-tracked files of a project.

Files are split into fixed line windows, each window is embedded, and the
vectors are stored as float32 BLOBs in ``.tessera/index.db``. Queries embed
the query text with the same engine and rank chunks by cosine similarity.

Indexing is incremental: a file whose content hash is unchanged is skipped
unless ``force`` is set, and files that git no longer tracks are dropped.
"""

from __future__ import annotations

import functools
import hashlib
import heapq
import logging
import math
import sqlite3
import subprocess
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path, PurePosixPath
from typing import Any, TypeVar

import numpy as np
import numpy.typing as npt

from tessera.db_base import _now_iso, _placeholders
from tessera.embedding import EmbeddingInterface, get_embedding_engine
from tessera.errors import IndexMissingError, InvalidRequestError, NotAGitRepositoryError, NotFoundError
from tessera.types.api import CodeSearchHit, IndexReport, IndexStats, RelatedFile

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]
_T = TypeVar("_T")

DEFAULT_CHUNK_SIZE = 30
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
MIN_CHUNK_CHARS = 10
IGNORE_FILENAME = ".tesseraignore"

DEFAULT_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".js", ".ts", ".jsx", ".tsx", ".mjs", ".cjs",
        ".py", ".java", ".cpp", ".c", ".h", ".go", ".rs", ".rb", ".php",
        ".html", ".xml", ".yaml", ".yml", ".json", ".toml",
        ".md", ".txt", ".rst",
    }
)  # fmt: skip
DEFAULT_BASENAMES: frozenset[str] = frozenset({"Dockerfile", "Makefile"})
DEFAULT_IGNORE_PATTERNS: tuple[str, ...] = (
    ".git",
    "node_modules",
    "*.min.js",
    "*.min.css",
    "*.map",
    ".env",
    "*.key",
    "*.pem",
    "dist",
    "build",
    "coverage",
    ".tessera",
)

_RELATED_SKIP_PREFIXES = ("//", "#", "*", "/*", "--", "import ", "export ", "from ", "package ", "use ", "require(")
_RELATED_SAMPLE_LINES = 5
_RELATED_CHUNKS_PER_DEPTH = 20

INDEX_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS files (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    file_path    TEXT NOT NULL UNIQUE,
    file_hash    TEXT NOT NULL,
    file_size    INTEGER NOT NULL,
    total_chunks INTEGER NOT NULL DEFAULT 0,
    updated_at   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS file_chunks (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    file_id     INTEGER NOT NULL REFERENCES files(id) ON DELETE CASCADE,
    chunk_index INTEGER NOT NULL,
    start_line  INTEGER NOT NULL,
    end_line    INTEGER NOT NULL,
    content     TEXT NOT NULL,
    embedding   BLOB NOT NULL,
    UNIQUE (file_id, chunk_index)
);

CREATE INDEX IF NOT EXISTS idx_file_chunks_file ON file_chunks(file_id);

CREATE TABLE IF NOT EXISTS index_meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


# ---------------------------------------------------------------------------
# Chunking and filtering
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Chunk:
    index: int
    start_line: int  # 1-based, inclusive
    end_line: int  # 1-based, inclusive
    content: str


def chunk_text(text: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> list[Chunk]:
    """Split *text* into windows of *chunk_size* lines, dropping near-empty windows."""
    if chunk_size <= 0:
        msg = f"chunk_size must be positive, got {chunk_size}"
        raise ValueError(msg)
    lines = text.splitlines()
    chunks: list[Chunk] = []
    for start in range(0, len(lines), chunk_size):
        window = lines[start : start + chunk_size]
        content = "\n".join(window)
        if len(content.strip()) <= MIN_CHUNK_CHARS:
            continue
        chunks.append(Chunk(len(chunks), start + 1, start + len(window), content))
    return chunks


def matches_pattern(rel_path: str, pattern: str) -> bool:
    """gitignore-flavoured match: bare names match any path component, slashed patterns the whole path."""
    pattern = pattern.strip().rstrip("/")
    if not pattern:
        return False
    if "/" in pattern:
        pattern = pattern.lstrip("/")
        return fnmatchcase(rel_path, pattern) or fnmatchcase(rel_path, pattern + "/*")
    return any(fnmatchcase(part, pattern) for part in PurePosixPath(rel_path).parts)


def load_ignore_file(project_root: Path) -> tuple[list[str], list[str]]:
    """Read ``.tesseraignore``. Returns (exclude_patterns, force_include_patterns)."""
    path = project_root / IGNORE_FILENAME
    if not path.is_file():
        return [], []
    excludes: list[str] = []
    includes: list[str] = []
    for line in path.read_text(encoding="utf-8", errors="replace").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("!"):
            includes.append(line[1:])
        else:
            excludes.append(line)
    return excludes, includes


def representative_lines(text: str, count: int = _RELATED_SAMPLE_LINES) -> list[str]:
    """First *count* substantive lines: no comments, imports or exports."""
    picked: list[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if len(stripped) <= MIN_CHUNK_CHARS or stripped.startswith(_RELATED_SKIP_PREFIXES):
            continue
        picked.append(stripped)
        if len(picked) >= count:
            break
    return picked


def _vec_to_bytes(vec: npt.NDArray[np.float32]) -> bytes:
    return np.asarray(vec, dtype=np.float32).tobytes()


def _bytes_to_vec(buf: bytes) -> npt.NDArray[np.float32]:
    return np.frombuffer(buf, dtype=np.float32)


# ---------------------------------------------------------------------------
# FileIndexer
# ---------------------------------------------------------------------------


def _locked(method: Callable[..., _T]) -> Callable[..., _T]:
    @functools.wraps(method)
    def wrapper(self: FileIndexer, *args: Any, **kwargs: Any) -> _T:
        with self._lock:
            return method(self, *args, **kwargs)

    return wrapper


class FileIndexer:
    """Per-project embedding index. One instance per project root."""

    def __init__(
        self,
        project_root: str | Path,
        index_path: str | Path,
        *,
        embedder: EmbeddingInterface,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        exclude: Iterable[str] | None = None,
        extensions: Iterable[str] = DEFAULT_EXTENSIONS,
    ) -> None:
        if chunk_size <= 0:
            msg = f"chunk_size must be positive, got {chunk_size}"
            raise ValueError(msg)
        self.project_root = Path(project_root).resolve()
        self.index_path = Path(index_path)
        self.embedder = embedder
        self.chunk_size = chunk_size
        self.max_file_size = max_file_size
        self.exclude = list(exclude or [])
        self.extensions = frozenset(e if e.startswith(".") else f".{e}" for e in extensions)
        self._conn: sqlite3.Connection | None = None
        # index_codebase runs in a worker thread; every connection user holds this lock.
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, project_root: Path, index_path: Path, config: dict[str, Any] | Any) -> FileIndexer:
        cfg = dict(config or {})
        return cls(
            project_root,
            index_path,
            embedder=get_embedding_engine(cfg),
            chunk_size=int(cfg.get("chunk_size") or DEFAULT_CHUNK_SIZE),
            max_file_size=int(cfg.get("max_file_size") or DEFAULT_MAX_FILE_SIZE),
            exclude=cfg.get("exclude") or [],
        )

    def __enter__(self) -> FileIndexer:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self.index_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.index_path), isolation_level="DEFERRED", check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.execute("PRAGMA busy_timeout=5000")
            self._conn.executescript(INDEX_SCHEMA_SQL)
        return self._conn

    @_locked
    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _get_meta(self, key: str) -> str | None:
        row = self.conn.execute("SELECT value FROM index_meta WHERE key = ?", (key,)).fetchone()
        return None if row is None else str(row["value"])

    def _set_meta(self, key: str, value: str) -> None:
        self.conn.execute(
            "INSERT INTO index_meta (key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )

    @_locked
    def has_index(self) -> bool:
        """True once ``index_all`` has completed at least once for this index file."""
        if self._conn is None and not self.index_path.exists():
            return False
        return self._get_meta("last_indexed_at") is not None

    # -- File selection --------------------------------------------------------

    def list_tracked_files(self) -> list[str]:
        """Return git-tracked paths relative to the project root."""
        try:
            result = subprocess.run(
                ["git", "ls-files", "-z", "--cached"],
                cwd=self.project_root,
                capture_output=True,
                check=True,
                timeout=60,
            )
        except FileNotFoundError as exc:
            msg = "git is not installed. File indexing works with git-managed files only."
            raise NotAGitRepositoryError(msg) from exc
        except subprocess.CalledProcessError as exc:
            msg = "Not a git repository. File indexing works with git-managed files only."
            raise NotAGitRepositoryError(msg) from exc
        return sorted({p for p in result.stdout.decode("utf-8", errors="surrogateescape").split("\0") if p})

    def should_index(self, rel_path: str, *, extra_exclude: Iterable[str] = ()) -> bool:
        excludes, includes = load_ignore_file(self.project_root)
        return self._selector(excludes, includes, list(extra_exclude))(rel_path)

    def _selector(self, excludes: list[str], includes: list[str], extra: list[str]) -> Callable[[str], bool]:
        patterns = [*DEFAULT_IGNORE_PATTERNS, *self.exclude, *excludes, *extra]

        def select(rel_path: str) -> bool:
            if any(matches_pattern(rel_path, p) for p in includes):
                return True
            path = PurePosixPath(rel_path)
            if path.suffix.lower() not in self.extensions and path.name not in DEFAULT_BASENAMES:
                return False
            return not any(matches_pattern(rel_path, p) for p in patterns)

        return select

    # -- Indexing --------------------------------------------------------------

    def _read_source(self, abs_path: Path) -> tuple[str, bytes] | None:
        """Return (text, raw bytes), or None for missing, oversized or binary files."""
        try:
            size = abs_path.stat().st_size
        except OSError:
            return None
        if size > self.max_file_size:
            logger.info("Skipping %s: %d bytes exceeds max_file_size", abs_path, size)
            return None
        raw = abs_path.read_bytes()
        if b"\0" in raw[:8192]:
            return None
        try:
            return raw.decode("utf-8"), raw
        except UnicodeDecodeError:
            return None

    @_locked
    def index_all(
        self,
        progress: ProgressCallback | None = None,
        *,
        force: bool = False,
        should_stop: Callable[[], bool] | None = None,
        exclude: Iterable[str] = (),
    ) -> IndexReport:
        """Index every selected git-tracked file.

        *progress* is called as ``progress(file, current, total)`` after each
        file. *should_stop* is polled between files; when it returns True the
        run ends after the current file and the report says ``cancelled``.
        """
        tracked = self.list_tracked_files()
        excludes, includes = load_ignore_file(self.project_root)
        select = self._selector(excludes, includes, list(exclude))
        selected = [p for p in tracked if select(p)]

        dims = str(self.embedder.dimensions)
        stored_dims = self._get_meta("dimensions")
        backend = self.embedder.name
        if stored_dims is not None and (stored_dims != dims or self._get_meta("backend") != backend):
            logger.warning("Embedding backend changed (%s/%s -> %s/%s); re-indexing everything", self._get_meta("backend"), stored_dims, backend, dims)
            force = True
            self.conn.execute("DELETE FROM files")

        report = IndexReport(
            files_seen=len(selected),
            files_indexed=0,
            files_skipped=0,
            files_removed=0,
            chunks_indexed=0,
            cancelled=False,
        )
        report["files_removed"] = self._remove_untracked(set(selected))

        t0 = time.monotonic()
        total = len(selected)
        for current, rel in enumerate(selected, start=1):
            if should_stop is not None and should_stop():
                report["cancelled"] = True
                logger.info("Indexing cancelled after %d of %d file(s)", current - 1, total)
                break
            chunks = self._index_file(rel, force=force)
            if chunks is None:
                report["files_skipped"] += 1
            else:
                report["files_indexed"] += 1
                report["chunks_indexed"] += chunks
            if progress is not None:
                progress(rel, current, total)
            if current % 10 == 0:
                logger.info("Indexing progress", extra={"file": rel, "progress": f"{current}/{total}"})

        self._set_meta("dimensions", dims)
        self._set_meta("backend", backend)
        if not report["cancelled"]:
            self._set_meta("last_indexed_at", _now_iso())
        self.conn.commit()
        logger.info(
            "Indexed %d file(s), %d chunk(s), skipped %d, removed %d in %.1fs",
            report["files_indexed"],
            report["chunks_indexed"],
            report["files_skipped"],
            report["files_removed"],
            time.monotonic() - t0,
        )
        return report

    def _remove_untracked(self, keep: set[str]) -> int:
        rows = self.conn.execute("SELECT id, file_path FROM files").fetchall()
        stale = [r["id"] for r in rows if r["file_path"] not in keep]
        if stale:
            self.conn.execute(f"DELETE FROM files WHERE id IN ({_placeholders(stale)})", stale)
            self.conn.commit()
        return len(stale)

    def _index_file(self, rel: str, *, force: bool) -> int | None:
        """Index one file. Returns chunks written, or None when the file was skipped."""
        source = self._read_source(self.project_root / rel)
        if source is None:
            self.conn.execute("DELETE FROM files WHERE file_path = ?", (rel,))
            self.conn.commit()
            return None
        text, raw = source
        file_hash = hashlib.sha256(raw).hexdigest()
        existing = self.conn.execute("SELECT id, file_hash FROM files WHERE file_path = ?", (rel,)).fetchone()
        if existing is not None and existing["file_hash"] == file_hash and not force:
            return None

        chunks = chunk_text(text, self.chunk_size)
        vectors = self.embedder.embed_batch([c.content for c in chunks]) if chunks else None
        try:
            if existing is not None:
                self.conn.execute("DELETE FROM files WHERE id = ?", (existing["id"],))
            cursor = self.conn.execute(
                "INSERT INTO files (file_path, file_hash, file_size, total_chunks, updated_at) VALUES (?, ?, ?, ?, ?)",
                (rel, file_hash, len(raw), len(chunks), _now_iso()),
            )
            file_id = cursor.lastrowid
            if vectors is not None:
                self.conn.executemany(
                    "INSERT INTO file_chunks (file_id, chunk_index, start_line, end_line, content, embedding) VALUES (?, ?, ?, ?, ?, ?)",
                    [(file_id, c.index, c.start_line, c.end_line, c.content, _vec_to_bytes(v)) for c, v in zip(chunks, vectors, strict=True)],
                )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return len(chunks)

    # -- Queries ---------------------------------------------------------------

    def _require_index(self) -> None:
        if not self.has_index():
            msg = "No index found. Please run index_codebase first."
            raise IndexMissingError(msg)

    @_locked
    def search(
        self,
        query: str,
        *,
        limit: int = 10,
        file_types: list[str] | None = None,
        min_score: float | None = None,
    ) -> list[CodeSearchHit]:
        """Top *limit* chunks by cosine similarity; ties broken by path then line."""
        self._require_index()
        if not isinstance(query, str) or not query.strip():
            msg = "query must be a non-empty string"
            raise InvalidRequestError(msg)
        if limit <= 0:
            return []

        sql = "SELECT f.file_path, c.start_line, c.end_line, c.content, c.embedding FROM file_chunks c JOIN files f ON f.id = c.file_id"
        if file_types:
            # Literal, case-sensitive suffix match; "ts" must not match ".TS" or ".t_".
            exts = tuple(t if t.startswith(".") else f".{t}" for t in file_types)
            ids = [r["id"] for r in self.conn.execute("SELECT id, file_path FROM files") if r["file_path"].endswith(exts)]
            rows = []
            for start in range(0, len(ids), 400):
                chunk = ids[start : start + 400]
                rows.extend(self.conn.execute(f"{sql} WHERE f.id IN ({_placeholders(chunk)})", chunk).fetchall())
        else:
            rows = self.conn.execute(sql).fetchall()
        if not rows:
            return []

        matrix = np.vstack([_bytes_to_vec(r["embedding"]) for r in rows])
        query_vec = self.embedder.embed(query)
        sims = matrix @ query_vec
        candidates = [i for i in range(len(rows)) if min_score is None or sims[i] >= min_score]
        best = heapq.nsmallest(limit, candidates, key=lambda i: (-float(sims[i]), rows[i]["file_path"], rows[i]["start_line"]))
        return [
            CodeSearchHit(
                file_path=rows[i]["file_path"],
                start_line=rows[i]["start_line"],
                end_line=rows[i]["end_line"],
                content=rows[i]["content"],
                similarity=round(float(sims[i]), 6),
            )
            for i in best
        ]

    def _resolve_project_file(self, file: str) -> tuple[Path, str]:
        candidate = Path(file)
        abs_path = (candidate if candidate.is_absolute() else self.project_root / candidate).resolve()
        try:
            rel = abs_path.relative_to(self.project_root).as_posix()
        except ValueError:
            msg = f"File not found: {file}"
            raise NotFoundError(msg, key=file) from None
        if not abs_path.is_file():
            msg = f"File not found: {file}"
            raise NotFoundError(msg, key=file)
        return abs_path, rel

    @_locked
    def get_related_files(self, file: str, *, depth: int = 1, limit: int = 10) -> list[RelatedFile]:
        """Files whose chunks resemble the substantive lines of *file*.

        Score is the best chunk similarity weighted by ln(matching chunks + 1).
        """
        self._require_index()
        abs_path, rel = self._resolve_project_file(file)
        text = abs_path.read_text(encoding="utf-8", errors="replace")
        lines = representative_lines(text)
        if not lines:
            return []
        hits = self.search("\n".join(lines), limit=_RELATED_CHUNKS_PER_DEPTH * max(depth, 1))

        best: dict[str, float] = {}
        counts: dict[str, int] = {}
        for hit in hits:
            path = hit["file_path"]
            if path == rel:
                continue
            best[path] = max(best.get(path, -1.0), hit["similarity"])
            counts[path] = counts.get(path, 0) + 1
        ranked = [
            RelatedFile(
                file_path=path,
                score=round(best[path] * math.log(counts[path] + 1), 6),
                max_similarity=best[path],
                matching_chunks=counts[path],
            )
            for path in best
        ]
        ranked.sort(key=lambda r: (-r["score"], r["file_path"]))
        return ranked[:limit]

    @_locked
    def get_stats(self) -> IndexStats:
        if self._conn is None and not self.index_path.exists():
            return IndexStats(total_files=0, total_chunks=0, index_size=0, last_updated=None, embedding_dimensions=None)
        total_files = self.conn.execute("SELECT COUNT(*) FROM files").fetchone()[0]
        total_chunks = self.conn.execute("SELECT COUNT(*) FROM file_chunks").fetchone()[0]
        last_updated = self.conn.execute("SELECT MAX(updated_at) FROM files").fetchone()[0]
        size = 0
        for suffix in ("", "-wal"):
            p = Path(str(self.index_path) + suffix)
            if p.exists():
                size += p.stat().st_size
        dims = self._get_meta("dimensions")
        return IndexStats(
            total_files=total_files,
            total_chunks=total_chunks,
            index_size=size,
            last_updated=last_updated or self._get_meta("last_indexed_at"),
            embedding_dimensions=int(dims) if dims else None,
        )


class IndexerPool:
    """One cached FileIndexer per project root, closed together on shutdown."""

    def __init__(self, factory: Callable[[Path], FileIndexer]) -> None:
        self._factory = factory
        self._indexers: dict[Path, FileIndexer] = {}

    def get(self, project_root: Path) -> FileIndexer:
        key = project_root.resolve()
        indexer = self._indexers.get(key)
        if indexer is None:
            indexer = self._factory(key)
            self._indexers[key] = indexer
        return indexer

    def __len__(self) -> int:
        return len(self._indexers)

    def close_all(self) -> None:
        for root, indexer in list(self._indexers.items()):
            try:
                indexer.close()
            except sqlite3.Error:
                logger.warning("Failed to close indexer for %s", root, exc_info=True)
        self._indexers.clear()
