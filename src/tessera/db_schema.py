"""Database schema definitions for the tessera item index.

The markdown files under ``.tessera/data/`` are the source of truth; these
tables mirror them for filtering, tag lookup, relations and full-text search,
and can always be rebuilt from the files.
"""

from __future__ import annotations

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS types (
    name        TEXT PRIMARY KEY,
    base_type   TEXT NOT NULL,
    description TEXT,
    is_builtin  BOOLEAN NOT NULL DEFAULT 0,
    next_seq    INTEGER NOT NULL DEFAULT 1,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL,
    CHECK (base_type IN ('tasks', 'documents'))
);

CREATE TABLE IF NOT EXISTS statuses (
    id          INTEGER PRIMARY KEY,
    name        TEXT NOT NULL UNIQUE,
    is_closed   BOOLEAN NOT NULL DEFAULT 0,
    sort_order  INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS items (
    type        TEXT NOT NULL,
    id          TEXT NOT NULL,
    title       TEXT NOT NULL,
    description TEXT,
    content     TEXT NOT NULL DEFAULT '',
    priority    TEXT,
    status_id   INTEGER REFERENCES statuses(id),
    start_date  TEXT,
    end_date    TEXT,
    start_time  TEXT,
    tags_text   TEXT NOT NULL DEFAULT '',
    file_path   TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL,
    PRIMARY KEY (type, id),
    CHECK (priority IS NULL OR priority IN ('high', 'medium', 'low'))
);

CREATE INDEX IF NOT EXISTS idx_items_type_updated ON items(type, updated_at DESC);
CREATE INDEX IF NOT EXISTS idx_items_type_start ON items(type, start_date DESC, start_time DESC);
CREATE INDEX IF NOT EXISTS idx_items_status ON items(status_id);

CREATE TABLE IF NOT EXISTS tags (
    name        TEXT PRIMARY KEY,
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS item_tags (
    item_type   TEXT NOT NULL,
    item_id     TEXT NOT NULL,
    tag         TEXT NOT NULL REFERENCES tags(name) ON DELETE CASCADE,
    position    INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (item_type, item_id, tag),
    FOREIGN KEY (item_type, item_id) REFERENCES items(type, id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_item_tags_tag ON item_tags(tag);

CREATE TABLE IF NOT EXISTS related_items (
    source_type TEXT NOT NULL,
    source_id   TEXT NOT NULL,
    target_type TEXT NOT NULL,
    target_id   TEXT NOT NULL,
    position    INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (source_type, source_id, target_type, target_id),
    FOREIGN KEY (source_type, source_id) REFERENCES items(type, id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_related_target ON related_items(target_type, target_id);

CREATE TABLE IF NOT EXISTS keywords (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    word        TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS item_keywords (
    item_type   TEXT NOT NULL,
    item_id     TEXT NOT NULL,
    keyword_id  INTEGER NOT NULL REFERENCES keywords(id) ON DELETE CASCADE,
    weight      REAL NOT NULL,
    PRIMARY KEY (item_type, item_id, keyword_id),
    FOREIGN KEY (item_type, item_id) REFERENCES items(type, id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_item_keywords_keyword ON item_keywords(keyword_id);

-- FTS5 full-text search with sync triggers
CREATE VIRTUAL TABLE IF NOT EXISTS items_fts USING fts5(
    title, description, content, tags_text, content='items', content_rowid='rowid'
);

CREATE TRIGGER IF NOT EXISTS items_fts_insert AFTER INSERT ON items BEGIN
    INSERT INTO items_fts(rowid, title, description, content, tags_text)
        VALUES (new.rowid, new.title, coalesce(new.description, ''), new.content, new.tags_text);
END;
CREATE TRIGGER IF NOT EXISTS items_fts_update AFTER UPDATE ON items BEGIN
    INSERT INTO items_fts(items_fts, rowid, title, description, content, tags_text)
        VALUES ('delete', old.rowid, old.title, coalesce(old.description, ''), old.content, old.tags_text);
    INSERT INTO items_fts(rowid, title, description, content, tags_text)
        VALUES (new.rowid, new.title, coalesce(new.description, ''), new.content, new.tags_text);
END;
CREATE TRIGGER IF NOT EXISTS items_fts_delete AFTER DELETE ON items BEGIN
    INSERT INTO items_fts(items_fts, rowid, title, description, content, tags_text)
        VALUES ('delete', old.rowid, old.title, coalesce(old.description, ''), old.content, old.tags_text);
END;
"""

CURRENT_SCHEMA_VERSION = 1
