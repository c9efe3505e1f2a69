"""Relational storage for trees, records, changes and import chunks."""

from genealogy_store.storage.database import Database
from genealogy_store.storage.migrations import SCHEMA_VERSION, migrate, open_database
from genealogy_store.storage.schema import create_schema

__all__ = [
    "Database",
    "SCHEMA_VERSION",
    "create_schema",
    "migrate",
    "open_database",
]
