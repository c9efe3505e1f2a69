"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import Generator

import pytest

from genealogy_store.core.models import Actor
from genealogy_store.services.chunks import ChunkStore
from genealogy_store.services.importer import GedcomImportService
from genealogy_store.services.ledger import PendingChangeLedger
from genealogy_store.services.trees import TreeService
from genealogy_store.services.xref import XrefAllocator
from genealogy_store.storage import Database, open_database


# =============================================================================
# Storage Fixtures
# =============================================================================

@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path of a fresh SQLite store."""
    return tmp_path / "store.sqlite"


@pytest.fixture
def db(db_path: Path) -> Generator[Database, None, None]:
    """A migrated database connection."""
    database = open_database(str(db_path))
    yield database
    database.close()


@pytest.fixture
def tree_id(db: Database) -> int:
    """An empty tree, with no header or records."""
    return db.insert("gedcom", {"gedcom_name": "test", "title": "Test tree", "gedcom_filename": "test.ged"})


@pytest.fixture
def other_tree_id(db: Database) -> int:
    """A second empty tree."""
    return db.insert("gedcom", {"gedcom_name": "other", "title": "Other tree"})


# =============================================================================
# Actor Fixtures
# =============================================================================

@pytest.fixture
def actor() -> Actor:
    """An editor whose changes wait for moderation."""
    return Actor(id=7, user_name="editor")


@pytest.fixture
def auto_actor() -> Actor:
    """An editor whose changes are accepted immediately."""
    return Actor(id=8, user_name="trusted", auto_accept_edits=True)


@pytest.fixture
def moderator() -> Actor:
    return Actor(id=1, user_name="moderator")


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def ledger(db: Database) -> PendingChangeLedger:
    return PendingChangeLedger(db)


@pytest.fixture
def importer(db: Database, ledger: PendingChangeLedger) -> GedcomImportService:
    return GedcomImportService(db, ledger=ledger)


@pytest.fixture
def allocator(db: Database) -> XrefAllocator:
    return XrefAllocator(db)


@pytest.fixture
def chunk_store(db: Database) -> ChunkStore:
    return ChunkStore(db)


@pytest.fixture
def tree_service(db: Database) -> TreeService:
    return TreeService(db)


# =============================================================================
# GEDCOM Fixtures
# =============================================================================

@pytest.fixture
def sample_gedcom_content() -> str:
    """Sample minimal GEDCOM file content."""
    return """0 HEAD
1 SOUR Genealogy Store
2 VERS 0.1.0
1 GEDC
2 VERS 5.5.1
2 FORM LINEAGE-LINKED
1 CHAR UTF-8
0 @I001@ INDI
1 NAME Jean Joseph /HERINCKX/
1 BIRT
2 DATE 15 MAR 1895
2 PLAC Tervuren, Brabant, Belgium
1 DEAT
2 DATE 22 AUG 1962
2 PLAC Detroit, Wayne, Michigan, USA
1 FAMS @F001@
0 @I002@ INDI
1 NAME Marie Catherine /DE SMET/
1 FAMS @F001@
0 @I003@ INDI
1 NAME Victor /HERINCKX/
1 FAMC @F001@
0 @F001@ FAM
1 HUSB @I001@
1 WIFE @I002@
1 CHIL @I003@
1 MARR
2 DATE 12 JUN 1890
2 PLAC Overijse, Brabant, Belgium
0 TRLR
"""


@pytest.fixture
def sample_gedcom_file(tmp_path: Path, sample_gedcom_content: str) -> Path:
    """Create a temporary GEDCOM file."""
    gedcom_path = tmp_path / "test_family.ged"
    gedcom_path.write_text(sample_gedcom_content, encoding="utf-8")
    return gedcom_path
