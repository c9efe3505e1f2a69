"""Table definitions for the genealogy store."""

from __future__ import annotations

import logging

from genealogy_store.storage.database import Database

logger = logging.getLogger(__name__)

# Every tree-owned table references gedcom(gedcom_id) with ON DELETE CASCADE
SCHEMA = """
CREATE TABLE IF NOT EXISTS site_setting (
    setting_name  TEXT PRIMARY KEY,
    setting_value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS gedcom (
    gedcom_id       INTEGER PRIMARY KEY AUTOINCREMENT,
    gedcom_name     TEXT NOT NULL UNIQUE,
    sort_order      INTEGER NOT NULL DEFAULT 0,
    title           TEXT NOT NULL DEFAULT '',
    media_folder    TEXT NOT NULL DEFAULT 'media/',
    gedcom_filename TEXT NOT NULL DEFAULT '',
    imported        INTEGER NOT NULL DEFAULT 1,
    private         INTEGER NOT NULL DEFAULT 0,
    contact_user_id INTEGER,
    support_user_id INTEGER
);

CREATE TABLE IF NOT EXISTS gedcom_setting (
    gedcom_id     INTEGER NOT NULL REFERENCES gedcom (gedcom_id) ON DELETE CASCADE,
    setting_name  TEXT NOT NULL,
    setting_value TEXT NOT NULL,
    PRIMARY KEY (gedcom_id, setting_name)
);

CREATE TABLE IF NOT EXISTS user_gedcom_setting (
    user_id       INTEGER NOT NULL,
    gedcom_id     INTEGER NOT NULL REFERENCES gedcom (gedcom_id) ON DELETE CASCADE,
    setting_name  TEXT NOT NULL,
    setting_value TEXT NOT NULL,
    PRIMARY KEY (user_id, gedcom_id, setting_name)
);

CREATE TABLE IF NOT EXISTS record (
    gedcom_id   INTEGER NOT NULL REFERENCES gedcom (gedcom_id) ON DELETE CASCADE,
    xref        TEXT NOT NULL,
    record_type TEXT NOT NULL,
    gedcom      TEXT NOT NULL,
    PRIMARY KEY (gedcom_id, xref)
);

CREATE INDEX IF NOT EXISTS ix_record_type ON record (gedcom_id, record_type);

CREATE TABLE IF NOT EXISTS name (
    gedcom_id INTEGER NOT NULL REFERENCES gedcom (gedcom_id) ON DELETE CASCADE,
    xref      TEXT NOT NULL,
    n_num     INTEGER NOT NULL,
    n_type    TEXT NOT NULL,
    n_full    TEXT NOT NULL,
    n_givn    TEXT NOT NULL DEFAULT '',
    n_surname TEXT NOT NULL DEFAULT '',
    PRIMARY KEY (gedcom_id, xref, n_num)
);

CREATE INDEX IF NOT EXISTS ix_name_surname ON name (gedcom_id, n_surname);

CREATE TABLE IF NOT EXISTS dates (
    gedcom_id INTEGER NOT NULL REFERENCES gedcom (gedcom_id) ON DELETE CASCADE,
    xref      TEXT NOT NULL,
    d_fact    TEXT NOT NULL,
    d_type    TEXT NOT NULL,
    d_day     INTEGER,
    d_month   INTEGER,
    d_year    INTEGER,
    d_min     INTEGER,
    d_max     INTEGER,
    d_text    TEXT NOT NULL DEFAULT ''
);

CREATE INDEX IF NOT EXISTS ix_dates_xref ON dates (gedcom_id, xref);
CREATE INDEX IF NOT EXISTS ix_dates_range ON dates (gedcom_id, d_min, d_max);

CREATE TABLE IF NOT EXISTS places (
    p_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    p_gedcom_id INTEGER NOT NULL REFERENCES gedcom (gedcom_id) ON DELETE CASCADE,
    p_parent_id INTEGER NOT NULL DEFAULT 0,
    p_place     TEXT NOT NULL,
    UNIQUE (p_gedcom_id, p_parent_id, p_place)
);

CREATE TABLE IF NOT EXISTS placelinks (
    pl_p_id      INTEGER NOT NULL REFERENCES places (p_id) ON DELETE CASCADE,
    pl_gedcom_id INTEGER NOT NULL REFERENCES gedcom (gedcom_id) ON DELETE CASCADE,
    pl_xref      TEXT NOT NULL,
    PRIMARY KEY (pl_p_id, pl_gedcom_id, pl_xref)
);

CREATE INDEX IF NOT EXISTS ix_placelinks_xref ON placelinks (pl_gedcom_id, pl_xref);

CREATE TABLE IF NOT EXISTS link (
    l_gedcom_id INTEGER NOT NULL REFERENCES gedcom (gedcom_id) ON DELETE CASCADE,
    l_from      TEXT NOT NULL,
    l_type      TEXT NOT NULL,
    l_to        TEXT NOT NULL,
    PRIMARY KEY (l_gedcom_id, l_from, l_type, l_to)
);

CREATE INDEX IF NOT EXISTS ix_link_to ON link (l_gedcom_id, l_to);

CREATE TABLE IF NOT EXISTS "change" (
    change_id   INTEGER PRIMARY KEY AUTOINCREMENT,
    gedcom_id   INTEGER NOT NULL REFERENCES gedcom (gedcom_id) ON DELETE CASCADE,
    xref        TEXT NOT NULL,
    old_gedcom  TEXT NOT NULL DEFAULT '',
    new_gedcom  TEXT NOT NULL DEFAULT '',
    status      TEXT NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'accepted', 'rejected')),
    user_id     INTEGER,
    change_time TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS ix_change_xref ON "change" (gedcom_id, xref);

-- At most one unresolved change per record
CREATE UNIQUE INDEX IF NOT EXISTS ix_change_pending
    ON "change" (gedcom_id, xref) WHERE status = 'pending';

CREATE TABLE IF NOT EXISTS gedcom_chunk (
    gedcom_chunk_id INTEGER PRIMARY KEY AUTOINCREMENT,
    gedcom_id       INTEGER NOT NULL REFERENCES gedcom (gedcom_id) ON DELETE CASCADE,
    chunk_data      BLOB NOT NULL,
    imported        INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS ix_chunk_tree ON gedcom_chunk (gedcom_id, imported);

CREATE TABLE IF NOT EXISTS xref_sequence (
    gedcom_id INTEGER NOT NULL REFERENCES gedcom (gedcom_id) ON DELETE CASCADE,
    prefix    TEXT NOT NULL,
    next_id   INTEGER NOT NULL,
    PRIMARY KEY (gedcom_id, prefix)
);

CREATE TABLE IF NOT EXISTS log (
    log_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    log_time    TEXT NOT NULL,
    log_type    TEXT NOT NULL
                CHECK (log_type IN ('auth', 'config', 'debug', 'edit', 'error', 'media', 'search')),
    log_message TEXT NOT NULL,
    ip_address  TEXT NOT NULL DEFAULT '127.0.0.1',
    user_id     INTEGER,
    gedcom_id   INTEGER REFERENCES gedcom (gedcom_id) ON DELETE CASCADE
);
"""

# Tables holding one tree's genealogy data, as opposed to its configuration
GENEALOGY_TABLES = {
    "record": "gedcom_id",
    "name": "gedcom_id",
    "dates": "gedcom_id",
    "placelinks": "pl_gedcom_id",
    "places": "p_gedcom_id",
    "link": "l_gedcom_id",
    "change": "gedcom_id",
    "xref_sequence": "gedcom_id",
}

# Everything a tree owns, children before parents
TREE_TABLES = {
    **GENEALOGY_TABLES,
    "gedcom_chunk": "gedcom_id",
    "gedcom_setting": "gedcom_id",
    "user_gedcom_setting": "gedcom_id",
    "log": "gedcom_id",
}


def create_schema(db: Database) -> None:
    """Create all tables and indexes that do not exist yet."""
    db.executescript(SCHEMA)
    logger.debug("Schema ready in %s", db.path)


def table_columns(db: Database, table: str) -> list[str]:
    return [row["name"] for row in db.execute(f'PRAGMA table_info("{table}")')]
