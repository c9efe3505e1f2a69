"""
Genealogy Store

GEDCOM import and pending-change moderation on top of SQLite.
"""

__version__ = "0.1.0"

from genealogy_store.core.exceptions import (
    AllocationExhausted,
    ChangeConflict,
    GedcomStoreError,
    MalformedRecord,
    UnsupportedEncoding,
)
from genealogy_store.core.models import Actor, ChangeStatus, RecordKind

__all__ = [
    "Actor",
    "AllocationExhausted",
    "ChangeConflict",
    "ChangeStatus",
    "GedcomStoreError",
    "MalformedRecord",
    "RecordKind",
    "UnsupportedEncoding",
]
