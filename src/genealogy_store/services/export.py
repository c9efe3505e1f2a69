"""GEDCOM export of a tree's canonical records."""

from __future__ import annotations

from typing import Iterator, TextIO

from genealogy_store.services.canonical import HEADER_XREF, CanonicalStore
from genealogy_store.services.trees import default_header
from genealogy_store.storage.database import Database


def iter_gedcom(db: Database, tree_id: int) -> Iterator[str]:
    """Yield the records of a tree as GEDCOM text: HEAD, each record, TRLR."""
    canonical = CanonicalStore(db)
    yield canonical.get(tree_id, HEADER_XREF) or default_header()
    for _xref, gedcom in canonical.iter_records(tree_id):
        yield gedcom
    yield "0 TRLR"


def export_gedcom(db: Database, tree_id: int, stream: TextIO | None = None) -> str | None:
    """
    Write a tree as GEDCOM.

    Returns the text when no stream is given.
    """
    if stream is None:
        return "\n".join(iter_gedcom(db, tree_id)) + "\n"
    for gedcom in iter_gedcom(db, tree_id):
        stream.write(gedcom + "\n")
    return None
