"""Core models and GEDCOM text handling."""

from genealogy_store.core.encoding import EncodingNormalizer, sniff_encoding
from genealogy_store.core.gedcom import GedcomLine, GedcomRecord, split_records
from genealogy_store.core.index import derive_index_rows
from genealogy_store.core.models import (
    Actor,
    ChangeStatus,
    GenealogyDate,
    PendingChange,
    Place,
    RecordHandle,
    RecordKind,
    Tree,
    TreeSettings,
)

__all__ = [
    "Actor",
    "ChangeStatus",
    "EncodingNormalizer",
    "GedcomLine",
    "GedcomRecord",
    "GenealogyDate",
    "PendingChange",
    "Place",
    "RecordHandle",
    "RecordKind",
    "Tree",
    "TreeSettings",
    "derive_index_rows",
    "sniff_encoding",
    "split_records",
]
