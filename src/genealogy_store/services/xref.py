"""
Record identifier allocation.

Identifiers are a kind prefix followed by digits (``I1``, ``F27``). Each
(tree, prefix) pair has a row in ``xref_sequence`` holding the next number to
try; the row is read and advanced inside a write transaction, so allocators on
different connections never hand out the same token.
"""

from __future__ import annotations

import logging
from typing import Collection

from genealogy_store.core.exceptions import AllocationExhausted
from genealogy_store.core.models import RecordKind
from genealogy_store.storage.database import Database

logger = logging.getLogger(__name__)

MAX_XREF_NUMBER = 999_999_999


class XrefAllocator:
    """Issues unused record identifiers for a tree."""

    def __init__(self, db: Database, max_number: int = MAX_XREF_NUMBER):
        self.db = db
        self.max_number = max_number

    def in_use(self, tree_id: int, xref: str) -> bool:
        """True if a stored record or any change row already uses ``xref``."""
        return (
            self.db.exists("record", {"gedcom_id": tree_id, "xref": xref})
            or self.db.exists("change", {"gedcom_id": tree_id, "xref": xref})
        )

    def make(self, tree_id: int, kind: RecordKind | str, reserved: Collection[str] = ()) -> str:
        """
        Allocate the next free identifier for a record kind or level-0 tag.

        ``reserved`` holds identifiers that are about to be used without yet
        having a row, such as the explicit xrefs of the file being imported.
        """
        if not isinstance(kind, RecordKind):
            kind = RecordKind.for_tag(kind)
        prefix = kind.prefix

        with self.db.transaction():
            row = self.db.select_one("xref_sequence", {"gedcom_id": tree_id, "prefix": prefix})
            number = row["next_id"] if row else 1

            while True:
                if number > self.max_number:
                    raise AllocationExhausted(prefix, tree_id)
                xref = f"{prefix}{number}"
                number += 1
                if xref not in reserved and not self.in_use(tree_id, xref):
                    break

            self.db.execute(
                "INSERT INTO xref_sequence (gedcom_id, prefix, next_id) VALUES (?, ?, ?) "
                "ON CONFLICT (gedcom_id, prefix) DO UPDATE SET next_id = excluded.next_id",
                (tree_id, prefix, number),
            )

        logger.debug("Allocated %s in tree %d", xref, tree_id)
        return xref
