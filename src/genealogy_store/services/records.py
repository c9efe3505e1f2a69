"""
Record-level API of a tree.

One generic ``create_record`` serves every record kind; the kind supplies the
header marker the payload must carry and the prefix of its identifier.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable

from genealogy_store.core.exceptions import MalformedRecord
from genealogy_store.core.gedcom import GedcomRecord, normalize_newlines, record_header
from genealogy_store.core.models import Actor, PendingChange, RecordHandle, RecordKind
from genealogy_store.services.importer import GedcomImportService
from genealogy_store.storage.database import Database

logger = logging.getLogger(__name__)


def new_record_text(kind: RecordKind, body_lines: Iterable[str] = (), tag: str | None = None) -> str:
    """
    Build the text of a new record with an unallocated identifier.

    >>> new_record_text(RecordKind.INDIVIDUAL, ["1 SEX F"])
    '0 @@ INDI\\n1 SEX F'
    """
    if kind is RecordKind.OTHER:
        if not tag:
            raise ValueError("A tag is required for records of kind OTHER")
        header = kind.marker + tag.upper()
    else:
        header = kind.marker
    return "\n".join([header, *body_lines])


class TreeRecords:
    """Creates, updates and deletes the records of one tree."""

    def __init__(self, db: Database, tree_id: int, importer: GedcomImportService | None = None):
        self.db = db
        self.tree_id = tree_id
        self.importer = importer or GedcomImportService(db)
        self.ledger = self.importer.ledger

    def create_record(
        self,
        gedcom: str,
        actor: Actor,
        kind: RecordKind | None = None,
        when: datetime | None = None,
    ) -> RecordHandle:
        """
        Create a record from ``0 @@ TAG`` text.

        The record is committed at once when the actor has the auto-accept
        preference, otherwise it waits as a pending change.
        """
        gedcom = normalize_newlines(gedcom).strip("\n")
        header = record_header(gedcom)
        if header is None or header[0] != "":
            raise MalformedRecord("A new record must begin 0 @@ TAG", 1, gedcom)
        if kind is not None and RecordKind.for_tag(header[1]) is not kind:
            raise MalformedRecord(f"A new {kind.name.lower()} record must begin {kind.marker!r}", 1, gedcom)

        handle = self.importer.import_record(
            gedcom, self.tree_id, actor, auto_accept=actor.auto_accept_edits, when=when
        )
        logger.info(
            "Created %s %s in tree %d (%s)",
            handle.kind.name.lower(), handle.xref, self.tree_id,
            "committed" if handle.committed else "pending",
        )
        return handle

    def create(self, kind: RecordKind, body_lines: Iterable[str], actor: Actor, tag: str | None = None) -> RecordHandle:
        return self.create_record(new_record_text(kind, body_lines, tag), actor, kind)

    def get(self, xref: str) -> str | None:
        """Canonical text of a record."""
        return self.ledger.canonical.get(self.tree_id, xref)

    def get_latest(self, xref: str) -> str | None:
        """Text of a record including any pending change ("" once deletion is pending)."""
        change = self.ledger.pending_for(self.tree_id, xref)
        if change is not None:
            return change.new_gedcom
        return self.get(xref)

    def update_record(
        self,
        xref: str,
        gedcom: str,
        actor: Actor,
        when: datetime | None = None,
    ) -> PendingChange:
        """Propose new text for an existing record."""
        old_gedcom = self.ledger.current_text(self.tree_id, xref)
        if old_gedcom == "":
            raise MalformedRecord(f"Record {xref} does not exist", None, gedcom)

        record = GedcomRecord.parse(gedcom)
        if record.xref != xref:
            raise MalformedRecord(f"Record text is for {record.xref}, not {xref}", 1, gedcom)
        if not self.importer.settings.load(self.tree_id).no_update_chan:
            record = record.with_trailer(actor.user_name, when)

        return self.ledger.propose(
            self.tree_id, xref, old_gedcom, record.to_gedcom(), actor,
            auto_accept=actor.auto_accept_edits,
        )

    def delete_record(self, xref: str, actor: Actor) -> PendingChange:
        """Propose the deletion of a record."""
        old_gedcom = self.ledger.current_text(self.tree_id, xref)
        if old_gedcom == "":
            raise MalformedRecord(f"Record {xref} does not exist")
        return self.ledger.propose(
            self.tree_id, xref, old_gedcom, "", actor, auto_accept=actor.auto_accept_edits
        )
