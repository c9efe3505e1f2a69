"""
Versioned schema migrations.

The current version is kept in the ``schema_version`` site setting. Each
migration runs once, in order, inside its own transaction.
"""

from __future__ import annotations

import logging
from typing import Callable

from genealogy_store.storage.database import Database
from genealogy_store.storage.schema import create_schema, table_columns

logger = logging.getLogger(__name__)

SCHEMA_VERSION_SETTING = "schema_version"

# Tree columns introduced by migration 1, with their column definitions
TREE_COLUMNS = {
    "title": "TEXT NOT NULL DEFAULT ''",
    "media_folder": "TEXT NOT NULL DEFAULT 'media/'",
    "gedcom_filename": "TEXT NOT NULL DEFAULT ''",
    "imported": "INTEGER NOT NULL DEFAULT 1",
    "private": "INTEGER NOT NULL DEFAULT 0",
    "contact_user_id": "INTEGER",
    "support_user_id": "INTEGER",
}

# Legacy gedcom_setting name -> gedcom column
LEGACY_TREE_SETTINGS = {
    "title": "title",
    "gedcom_filename": "gedcom_filename",
    "imported": "imported",
    "REQUIRE_AUTHENTICATION": "private",
    "CONTACT_USER_ID": "contact_user_id",
    "WEBMASTER_USER_ID": "support_user_id",
    "MEDIA_DIRECTORY": "media_folder",
}

OBSOLETE_TREE_SETTINGS = ("LANGUAGE",)

INTEGER_COLUMNS = {"imported", "private", "contact_user_id", "support_user_id"}


def get_schema_version(db: Database) -> int:
    row = db.select_one("site_setting", {"setting_name": SCHEMA_VERSION_SETTING})
    return int(row["setting_value"]) if row else 0


def set_schema_version(db: Database, version: int) -> None:
    db.execute(
        "INSERT INTO site_setting (setting_name, setting_value) VALUES (?, ?) "
        "ON CONFLICT (setting_name) DO UPDATE SET setting_value = excluded.setting_value",
        (SCHEMA_VERSION_SETTING, str(version)),
    )


def _legacy_value(column: str, value: str):
    if column in INTEGER_COLUMNS:
        if value == "":
            return None if column.endswith("_user_id") else 0
        return int(value)
    return value


def move_tree_settings(db: Database) -> None:
    """Move tree attributes out of name/value settings and into gedcom columns."""
    existing = set(table_columns(db, "gedcom"))
    for column, definition in TREE_COLUMNS.items():
        if column not in existing:
            db.execute(f'ALTER TABLE gedcom ADD COLUMN "{column}" {definition}')

    for setting_name, column in LEGACY_TREE_SETTINGS.items():
        rows = db.select("gedcom_setting", {"setting_name": setting_name})
        for row in rows:
            db.update(
                "gedcom",
                {column: _legacy_value(column, row["setting_value"])},
                {"gedcom_id": row["gedcom_id"]},
            )
        db.delete("gedcom_setting", {"setting_name": setting_name})

    for setting_name in OBSOLETE_TREE_SETTINGS:
        db.delete("gedcom_setting", {"setting_name": setting_name})


MIGRATIONS: list[Callable[[Database], None]] = [
    move_tree_settings,
]

SCHEMA_VERSION = len(MIGRATIONS)


def migrate(db: Database) -> int:
    """Bring the database up to SCHEMA_VERSION; returns the number of steps run."""
    create_schema(db)
    current = get_schema_version(db)
    steps = 0

    for version, step in enumerate(MIGRATIONS, start=1):
        if version <= current:
            continue
        with db.transaction():
            logger.info("Applying schema migration %d (%s)", version, step.__name__)
            step(db)
            set_schema_version(db, version)
        steps += 1

    return steps


def open_database(path: str, timeout: float | None = None) -> Database:
    """Connect to a store, creating and migrating its schema as needed."""
    db = Database(path) if timeout is None else Database(path, timeout=timeout)
    db.connect()
    migrate(db)
    return db
