"""Services composing the import pipeline and the change ledger."""

from genealogy_store.services.audit import AuditLog, LogType
from genealogy_store.services.canonical import CanonicalStore
from genealogy_store.services.chunks import ChunkStore, iter_chunks
from genealogy_store.services.export import export_gedcom
from genealogy_store.services.importer import GedcomImportService, ImportResult
from genealogy_store.services.ledger import PendingChangeLedger
from genealogy_store.services.records import TreeRecords, new_record_text
from genealogy_store.services.settings import SettingsStore
from genealogy_store.services.trees import TreeService
from genealogy_store.services.xref import XrefAllocator

__all__ = [
    "AuditLog",
    "CanonicalStore",
    "ChunkStore",
    "GedcomImportService",
    "ImportResult",
    "LogType",
    "PendingChangeLedger",
    "SettingsStore",
    "TreeRecords",
    "TreeService",
    "XrefAllocator",
    "export_gedcom",
    "iter_chunks",
    "new_record_text",
]
