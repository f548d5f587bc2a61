"""SearchMixin: FTS5 item search, title suggestions, and keyword relatedness."""

from __future__ import annotations

import re
import sqlite3
from collections import Counter
from typing import TYPE_CHECKING, Any

from tessera.db_base import DBMixinProtocol, _escape_like, _placeholders
from tessera.errors import NotFoundError
from tessera.types.api import RelatedItem, SearchHit, SearchResult, Suggestion

if TYPE_CHECKING:
    from tessera.models import Item
    from tessera.types.core import ItemSummary

_WORD_RE = re.compile(r"[^\W_][\w-]*[^\W_]|[^\W_]", re.UNICODE)
_MAX_KEYWORDS = 20
_MIN_KEYWORD_LENGTH = 3

STOPWORDS: frozenset[str] = frozenset(
    """
    a about above after again against all also am an and any are as at be because been before being below
    between both but by can could did do does doing down during each few for from further had has have having
    he her here hers herself him himself his how i if in into is it its itself just let me more most my myself
    no nor not now of off on once only or other our ours ourselves out over own same she should so some such
    than that the their theirs them themselves then there these they this those through to too under until up
    use used using very via was we were what when where which while who whom why will with would you your
    yours yourself yourselves
    """.split()
)


def extract_keywords(*texts: str | None, limit: int = _MAX_KEYWORDS) -> dict[str, float]:
    """Return up to *limit* keywords with weights normalized to the most frequent one.

    Ties are broken alphabetically so the result is stable across runs.
    """
    counts: Counter[str] = Counter()
    for text in texts:
        if not text:
            continue
        for match in _WORD_RE.findall(text.lower()):
            if len(match) < _MIN_KEYWORD_LENGTH or match in STOPWORDS or match.isdigit():
                continue
            counts[match] += 1
    if not counts:
        return {}
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:limit]
    top = ranked[0][1]
    return {word: round(count / top, 4) for word, count in ranked}


def build_fts_query(query: str) -> str:
    """Quote each token (prefix match) and AND them, so user text cannot inject FTS5 syntax."""
    sanitized = re.sub(r'[^\w\s*"-]', " ", query)
    tokens = [t.replace('"', "").replace("*", "") for t in sanitized.split()]
    tokens = [t for t in tokens if t.strip("-")]
    return " AND ".join(f'"{t}"*' for t in tokens) if tokens else '""'


class SearchMixin(DBMixinProtocol):
    if TYPE_CHECKING:

        def _summaries_for_rows(self, rows: list[sqlite3.Row], *, include_content: bool = False) -> list[ItemSummary]: ...

    # -- Keywords ------------------------------------------------------------

    def _index_keywords(self, item: Item) -> list[str]:
        """Replace the keyword rows for *item*. Runs inside the caller's transaction."""
        weights = extract_keywords(item.title, item.description, item.content)
        self.conn.execute(
            "DELETE FROM item_keywords WHERE item_type = ? AND item_id = ?",
            (item.type, item.id),
        )
        if not weights:
            return []
        self.conn.executemany("INSERT OR IGNORE INTO keywords (word) VALUES (?)", [(w,) for w in weights])
        words = list(weights)
        rows = self.conn.execute(
            f"SELECT id, word FROM keywords WHERE word IN ({_placeholders(words)})",
            words,
        ).fetchall()
        ids = {r["word"]: r["id"] for r in rows}
        self.conn.executemany(
            "INSERT INTO item_keywords (item_type, item_id, keyword_id, weight) VALUES (?, ?, ?, ?)",
            [(item.type, item.id, ids[w], weight) for w, weight in weights.items()],
        )
        return words

    def get_item_keywords(self, type_name: str, item_id: str) -> list[str]:
        rows = self.conn.execute(
            "SELECT k.word FROM item_keywords ik JOIN keywords k ON k.id = ik.keyword_id "
            "WHERE ik.item_type = ? AND ik.item_id = ? ORDER BY ik.weight DESC, k.word",
            (type_name, item_id),
        ).fetchall()
        return [r["word"] for r in rows]

    def get_related_items_by_keywords(self, type_name: str, item_id: str, *, limit: int = 10) -> list[RelatedItem]:
        """Items sharing weighted keywords with the given item, strongest first."""
        if self.conn.execute("SELECT 1 FROM items WHERE type = ? AND id = ?", (type_name, item_id)).fetchone() is None:
            msg = f"Item not found: {type_name}-{item_id}"
            raise NotFoundError(msg, key=f"{type_name}-{item_id}")
        rows = self.conn.execute(
            "SELECT other.item_type AS type, other.item_id AS id, i.title, "
            "SUM(mine.weight * other.weight) AS score "
            "FROM item_keywords mine "
            "JOIN item_keywords other ON other.keyword_id = mine.keyword_id "
            "JOIN items i ON i.type = other.item_type AND i.id = other.item_id "
            "WHERE mine.item_type = ? AND mine.item_id = ? "
            "AND NOT (other.item_type = ? AND other.item_id = ?) "
            "GROUP BY other.item_type, other.item_id "
            "ORDER BY score DESC, other.item_type, other.item_id LIMIT ?",
            (type_name, item_id, type_name, item_id, limit),
        ).fetchall()
        return [RelatedItem(type=r["type"], id=r["id"], title=r["title"], score=round(r["score"], 4)) for r in rows]

    # -- Full-text search ----------------------------------------------------

    def search_items(
        self,
        query: str,
        *,
        types: list[str] | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> SearchResult:
        """Full-text search over title, description, content and tags, best match first."""
        limit = max(limit, 0)
        offset = max(offset, 0)
        fts_query = build_fts_query(query)
        type_clause = ""
        params: list[Any] = [fts_query]
        if types:
            type_clause = f" AND i.type IN ({_placeholders(types)})"
            params.extend(types)
        try:
            total = self.conn.execute(
                f"SELECT COUNT(*) FROM items i JOIN items_fts ON items_fts.rowid = i.rowid WHERE items_fts MATCH ?{type_clause}",
                params,
            ).fetchone()[0]
            rows = self.conn.execute(
                "SELECT i.*, snippet(items_fts, -1, '[', ']', '...', 12) AS snippet, bm25(items_fts) AS rank "
                f"FROM items i JOIN items_fts ON items_fts.rowid = i.rowid WHERE items_fts MATCH ?{type_clause} "
                "ORDER BY rank, i.updated_at DESC, i.type, i.id LIMIT ? OFFSET ?",
                [*params, limit, offset],
            ).fetchall()
        except sqlite3.OperationalError as exc:
            if "no such table" not in str(exc) and "no such module" not in str(exc):
                raise
            return self._search_items_like(query, types=types, limit=limit, offset=offset)

        summaries = self._summaries_for_rows(rows)
        hits: list[SearchHit] = []
        for summary, row in zip(summaries, rows, strict=True):
            hits.append(SearchHit(**summary, snippet=row["snippet"] or "", score=round(-float(row["rank"]), 4)))
        return SearchResult(results=hits, total=total, limit=limit, offset=offset, has_more=offset + len(hits) < total)

    def _search_items_like(self, query: str, *, types: list[str] | None, limit: int, offset: int) -> SearchResult:
        pattern = f"%{_escape_like(query)}%"
        type_clause = ""
        params: list[Any] = [pattern, pattern, pattern]
        if types:
            type_clause = f" AND type IN ({_placeholders(types)})"
            params.extend(types)
        where = f"(title LIKE ? ESCAPE '\\' OR description LIKE ? ESCAPE '\\' OR content LIKE ? ESCAPE '\\'){type_clause}"
        total = self.conn.execute(f"SELECT COUNT(*) FROM items WHERE {where}", params).fetchone()[0]
        rows = self.conn.execute(
            f"SELECT * FROM items WHERE {where} ORDER BY updated_at DESC, type, id LIMIT ? OFFSET ?",
            [*params, limit, offset],
        ).fetchall()
        hits = [SearchHit(**s, snippet="", score=0.0) for s in self._summaries_for_rows(rows)]
        return SearchResult(results=hits, total=total, limit=limit, offset=offset, has_more=offset + len(hits) < total)

    def search_suggest(self, query: str, *, types: list[str] | None = None, limit: int = 10) -> list[Suggestion]:
        """Title suggestions: prefix matches first, then titles containing a word starting with *query*."""
        query = query.strip()
        if not query:
            return []
        escaped = _escape_like(query)
        type_clause = ""
        type_params: list[Any] = []
        if types:
            type_clause = f" AND type IN ({_placeholders(types)})"
            type_params = list(types)
        rows = self.conn.execute(
            "SELECT type, id, title, "
            "CASE WHEN title LIKE ? ESCAPE '\\' THEN 0 ELSE 1 END AS tier "
            "FROM items WHERE (title LIKE ? ESCAPE '\\' OR title LIKE ? ESCAPE '\\')"
            f"{type_clause} ORDER BY tier, length(title), title, type, id LIMIT ?",
            [f"{escaped}%", f"{escaped}%", f"% {escaped}%", *type_params, limit],
        ).fetchall()
        return [Suggestion(type=r["type"], id=r["id"], title=r["title"]) for r in rows]
