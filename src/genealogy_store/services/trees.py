"""
Tree management.

A tree is an isolated dataset: its records, changes, chunks, settings and
log entries all hang off one ``gedcom`` row and go with it.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import BinaryIO, Iterable

from genealogy_store.core.encoding import EncodingNormalizer
from genealogy_store.core.exceptions import TreeNotFound
from genealogy_store.core.models import Actor, Tree, TreeSettings, format_gedcom_date
from genealogy_store.services.audit import AuditLog, LogType
from genealogy_store.services.canonical import CanonicalStore
from genealogy_store.services.chunks import DEFAULT_CHUNK_SIZE, ChunkStore
from genealogy_store.services.importer import GedcomImportService
from genealogy_store.services.settings import SettingsStore
from genealogy_store.storage.database import Database
from genealogy_store.storage.schema import GENEALOGY_TABLES, TREE_TABLES

logger = logging.getLogger(__name__)

# User preferences pointing at "their" individual, most specific first
USER_ROOT_PREFERENCES = ("gedcomid", "rootid")

TREE_COLUMNS = {"title", "media_folder", "gedcom_filename", "private", "contact_user_id", "support_user_id"}


def default_header(when: datetime | None = None) -> str:
    when = when or datetime.now()
    return "\n".join([
        "0 HEAD",
        "1 SOUR genealogy-store",
        "1 DATE " + format_gedcom_date(when),
        "1 GEDC",
        "2 VERS 5.5.1",
        "2 FORM LINEAGE-LINKED",
        "1 CHAR UTF-8",
    ])


PLACEHOLDER_INDIVIDUAL = "\n".join([
    "0 @@ INDI",
    "1 NAME John /DOE/",
    "1 SEX M",
    "1 BIRT",
    "2 DATE 01 JAN 1850",
])


class TreeService:
    """Creates, finds, imports into and deletes trees."""

    def __init__(self, db: Database, audit: AuditLog | None = None):
        self.db = db
        self.audit = audit or AuditLog(db)
        self.settings = SettingsStore(db, self.audit)
        self.chunks = ChunkStore(db)

    def importer(self) -> GedcomImportService:
        return GedcomImportService(self.db, chunks=self.chunks, settings=self.settings, audit=self.audit)

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def all(self) -> list[Tree]:
        rows = self.db.execute("SELECT * FROM gedcom ORDER BY sort_order, gedcom_name").fetchall()
        return [Tree.from_row(row) for row in rows]

    def find(self, tree_id: int) -> Tree:
        row = self.db.select_one("gedcom", {"gedcom_id": tree_id})
        if row is None:
            raise TreeNotFound(tree_id)
        return Tree.from_row(row)

    def find_by_name(self, name: str) -> Tree:
        row = self.db.select_one("gedcom", {"gedcom_name": name})
        if row is None:
            raise TreeNotFound(name)
        return Tree.from_row(row)

    def titles(self) -> dict[str, str]:
        return {tree.name: tree.title for tree in self.all()}

    def unique_tree_name(self, base: str = "tree") -> str:
        """``base``, or ``base2``, ``base3``... whichever is free."""
        name = base
        number = 1
        while self.db.exists("gedcom", {"gedcom_name": name}):
            number += 1
            name = f"{base}{number}"
        return name

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def create(self, name: str, title: str, actor: Actor, settings: TreeSettings | None = None) -> Tree:
        """Create a tree with default preferences, a header and one placeholder individual."""
        settings = settings or TreeSettings()

        with self.db.transaction():
            tree_id = self.db.insert("gedcom", {
                "gedcom_name": name,
                "title": title,
                "gedcom_filename": name if name.lower().endswith(".ged") else f"{name}.ged",
            })
            self.settings.save(tree_id, settings)

            importer = self.importer()
            importer.import_header(default_header(), tree_id)
            handle = importer.import_record(PLACEHOLDER_INDIVIDUAL, tree_id, actor, auto_accept=True)
            self.settings.set(tree_id, TreeSettings.setting_name("pedigree_root_id"), handle.xref, log=False)

            self.audit.add(f'Tree "{name}" created', tree_id=tree_id, log_type=LogType.CONFIG, user_id=actor.id)

        logger.info("Created tree %s (%d)", name, tree_id)
        return self.find(tree_id)

    def update(self, tree_id: int, **fields) -> Tree:
        """Change tree attributes such as title or media folder."""
        unknown = set(fields) - TREE_COLUMNS
        if unknown:
            raise ValueError(f"Unknown tree attributes: {', '.join(sorted(unknown))}")
        self.find(tree_id)
        self.db.update("gedcom", fields, {"gedcom_id": tree_id})
        return self.find(tree_id)

    def delete(self, tree_id: int) -> None:
        """Delete a tree and everything it owns, atomically."""
        tree = self.find(tree_id)

        with self.db.transaction():
            for table, column in TREE_TABLES.items():
                self.db.delete(table, {column: tree_id})
            self.db.delete("gedcom", {"gedcom_id": tree_id})
            self.audit.add(f'Tree "{tree.name}" deleted', log_type=LogType.CONFIG)

        logger.info("Deleted tree %s (%d)", tree.name, tree_id)

    def delete_genealogy_data(self, tree_id: int) -> None:
        """Remove records, indexes and changes, keeping the tree and its settings."""
        with self.db.transaction():
            for table, column in GENEALOGY_TABLES.items():
                self.db.delete(table, {column: tree_id})

    # -------------------------------------------------------------------------
    # Import
    # -------------------------------------------------------------------------

    def import_gedcom_file(
        self,
        tree_id: int,
        stream: BinaryIO | bytes | Iterable[bytes],
        filename: str,
        encoding: str | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> int:
        """
        Replace a tree's data with an uploaded GEDCOM file.

        The file is converted to UTF-8 and stored as chunks; nothing is
        parsed yet (see ``GedcomImportService.import_chunks``). Returns the
        number of chunks stored.

        Raises:
            UnsupportedEncoding: The declared or detected character set is unknown
        """
        self.find(tree_id)
        normalizer = EncodingNormalizer(encoding)

        with self.db.transaction():
            self.delete_genealogy_data(tree_id)
            count = self.chunks.store(tree_id, normalizer.iter_utf8(stream), chunk_size)
            self.db.update(
                "gedcom",
                {"imported": 0, "gedcom_filename": filename},
                {"gedcom_id": tree_id},
            )

        logger.info(
            "Queued %s for tree %d: %d chunks, source encoding %s",
            filename, tree_id, count, normalizer.detected,
        )
        return count

    # -------------------------------------------------------------------------
    # Preferences
    # -------------------------------------------------------------------------

    def get_settings(self, tree_id: int) -> TreeSettings:
        return self.settings.load(tree_id)

    def get_preference(self, tree_id: int, name: str, default: str = "") -> str:
        return self.settings.get(tree_id, name, default)

    def set_preference(self, tree_id: int, name: str, value: str) -> None:
        self.settings.set(tree_id, name, value)

    def get_user_preference(self, tree_id: int, user_id: int, name: str, default: str = "") -> str:
        return self.settings.get_user(tree_id, user_id, name, default)

    def set_user_preference(self, tree_id: int, user_id: int, name: str, value: str) -> None:
        self.settings.set_user(tree_id, user_id, name, value)

    def significant_record(self, tree_id: int, actor: Actor | None = None) -> str | None:
        """
        The individual to start browsing from.

        The actor's own record or chosen root, then the tree's default root,
        then the first individual in the tree.
        """
        canonical = CanonicalStore(self.db)
        candidates = []
        if actor is not None and actor.id is not None:
            for name in USER_ROOT_PREFERENCES:
                candidates.append(self.get_user_preference(tree_id, actor.id, name))
        candidates.append(self.get_preference(tree_id, TreeSettings.setting_name("pedigree_root_id")))

        for xref in candidates:
            if xref and canonical.exists(tree_id, xref):
                return xref

        individuals = canonical.find_by_type(tree_id, "INDI", limit=1)
        return individuals[0] if individuals else None
