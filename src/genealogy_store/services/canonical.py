"""
Canonical record storage and its search indexes.

Only the ledger (on accept) and the importer (for the header record) write
here. Writing a record always replaces its index rows in the same call, so
callers wrap it in a transaction to keep the two consistent.
"""

from __future__ import annotations

import logging
from typing import Iterator

from genealogy_store.core.gedcom import GedcomRecord
from genealogy_store.core.index import IndexRows, derive_index_rows
from genealogy_store.storage.database import Database

logger = logging.getLogger(__name__)

HEADER_XREF = "HEAD"


class CanonicalStore:
    """Accepted records of every tree."""

    def __init__(self, db: Database):
        self.db = db

    def get(self, tree_id: int, xref: str) -> str | None:
        row = self.db.select_one("record", {"gedcom_id": tree_id, "xref": xref})
        return row["gedcom"] if row else None

    def exists(self, tree_id: int, xref: str) -> bool:
        return self.db.exists("record", {"gedcom_id": tree_id, "xref": xref})

    def put(self, tree_id: int, xref: str, gedcom: str) -> None:
        """Insert or overwrite a record and rebuild its index rows."""
        record = GedcomRecord.parse(gedcom, require_xref=xref != HEADER_XREF)

        with self.db.transaction():
            self.db.execute(
                "INSERT INTO record (gedcom_id, xref, record_type, gedcom) VALUES (?, ?, ?, ?) "
                "ON CONFLICT (gedcom_id, xref) DO UPDATE "
                "SET record_type = excluded.record_type, gedcom = excluded.gedcom",
                (tree_id, xref, record.tag, gedcom),
            )
            self._delete_index_rows(tree_id, xref)
            if xref != HEADER_XREF:
                self._insert_index_rows(tree_id, xref, derive_index_rows(record))

    def remove(self, tree_id: int, xref: str) -> bool:
        """Delete a record and its index rows; False if it was not stored."""
        with self.db.transaction():
            self._delete_index_rows(tree_id, xref)
            return self.db.delete("record", {"gedcom_id": tree_id, "xref": xref}) > 0

    def count(self, tree_id: int, record_type: str | None = None) -> int:
        where = {"gedcom_id": tree_id}
        if record_type:
            where["record_type"] = record_type
        return self.db.count("record", where)

    def iter_records(self, tree_id: int) -> Iterator[tuple[str, str]]:
        """Yield (xref, gedcom) for every record except the header, in xref order."""
        cursor = self.db.execute(
            "SELECT xref, gedcom FROM record WHERE gedcom_id = ? AND xref <> ? "
            "ORDER BY record_type = 'SUBM' DESC, length(xref), xref",
            (tree_id, HEADER_XREF),
        )
        for row in cursor:
            yield row["xref"], row["gedcom"]

    def find_by_type(self, tree_id: int, record_type: str, limit: int | None = None) -> list[str]:
        rows = self.db.select(
            "record",
            {"gedcom_id": tree_id, "record_type": record_type},
            columns=["xref"],
            order_by="xref",
            limit=limit,
        )
        return [row["xref"] for row in rows]

    def _delete_index_rows(self, tree_id: int, xref: str) -> None:
        self.db.delete("name", {"gedcom_id": tree_id, "xref": xref})
        self.db.delete("dates", {"gedcom_id": tree_id, "xref": xref})
        self.db.delete("link", {"l_gedcom_id": tree_id, "l_from": xref})
        self.db.delete("placelinks", {"pl_gedcom_id": tree_id, "pl_xref": xref})

    def _insert_index_rows(self, tree_id: int, xref: str, rows: IndexRows) -> None:
        for name in rows.names:
            self.db.insert("name", {
                "gedcom_id": tree_id,
                "xref": xref,
                "n_num": name.sort_order,
                "n_type": name.name_type,
                "n_full": name.full,
                "n_givn": name.given,
                "n_surname": name.surname,
            })

        for row in rows.dates:
            self.db.insert("dates", {
                "gedcom_id": tree_id,
                "xref": xref,
                "d_fact": row.fact,
                "d_type": row.calendar,
                "d_day": row.day,
                "d_month": row.month,
                "d_year": row.year,
                "d_min": row.min_ordinal,
                "d_max": row.max_ordinal,
                "d_text": row.text,
            })

        place_ids: set[int] = set()
        for place in rows.places:
            place_ids.update(self._place_ids(tree_id, place.hierarchy))
        for place_id in sorted(place_ids):
            self.db.insert("placelinks", {
                "pl_p_id": place_id,
                "pl_gedcom_id": tree_id,
                "pl_xref": xref,
            })

        for link in rows.links:
            self.db.insert("link", {
                "l_gedcom_id": tree_id,
                "l_from": xref,
                "l_type": link.link_type,
                "l_to": link.target,
            })

    def _place_ids(self, tree_id: int, hierarchy: tuple[str, ...]) -> list[int]:
        """Find or create each jurisdiction of a place, largest first."""
        ids = []
        parent_id = 0
        for name in hierarchy:
            where = {"p_gedcom_id": tree_id, "p_parent_id": parent_id, "p_place": name}
            row = self.db.select_one("places", where, columns=["p_id"])
            parent_id = row["p_id"] if row else self.db.insert("places", where)
            ids.append(parent_id)
        return ids
