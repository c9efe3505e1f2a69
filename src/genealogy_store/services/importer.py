"""
GEDCOM record importer.

Turns level-0 records into pending changes:
- validates that the text is exactly one well-nested record
- allocates an identifier for ``0 @@ TAG`` records
- uppercases tags and stamps a CHAN trailer
- proposes the result to the ledger, optionally accepting it at once

File imports run over the persisted chunks of a tree, one transaction per
chunk, so an interrupted import resumes at the first unimported chunk.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Collection

from genealogy_store.core.exceptions import ChangeConflict, MalformedRecord
from genealogy_store.core.gedcom import (
    GedcomRecord,
    normalize_newlines,
    record_header,
    splice_xref,
    split_records,
)
from genealogy_store.core.models import Actor, ChangeStatus, RecordHandle, RecordKind
from genealogy_store.services.audit import AuditLog, LogType
from genealogy_store.services.canonical import HEADER_XREF, CanonicalStore
from genealogy_store.services.chunks import ChunkStore
from genealogy_store.services.ledger import PendingChangeLedger
from genealogy_store.services.settings import SettingsStore
from genealogy_store.services.xref import XrefAllocator
from genealogy_store.storage.database import Database

logger = logging.getLogger(__name__)


@dataclass
class ImportIssue:
    """A record that could not be imported."""
    message: str
    line_number: int | None = None
    chunk_id: int | None = None
    record_text: str = ""

    def __str__(self) -> str:
        location = []
        if self.chunk_id is not None:
            location.append(f"chunk {self.chunk_id}")
        if self.line_number is not None:
            location.append(f"line {self.line_number}")
        prefix = ", ".join(location)
        return f"{prefix}: {self.message}" if prefix else self.message


@dataclass
class ImportResult:
    """Outcome of importing text or chunks."""
    records: list[RecordHandle] = field(default_factory=list)
    errors: list[ImportIssue] = field(default_factory=list)
    header: bool = False
    chunks: int = 0
    complete: bool = False

    def extend(self, other: ImportResult) -> None:
        self.records.extend(other.records)
        self.errors.extend(other.errors)
        self.header = self.header or other.header
        self.chunks += other.chunks


class GedcomImportService:
    """Imports GEDCOM records and files into a tree."""

    def __init__(
        self,
        db: Database,
        allocator: XrefAllocator | None = None,
        ledger: PendingChangeLedger | None = None,
        chunks: ChunkStore | None = None,
        settings: SettingsStore | None = None,
        audit: AuditLog | None = None,
    ):
        self.db = db
        self.audit = audit or AuditLog(db)
        self.allocator = allocator or XrefAllocator(db)
        self.ledger = ledger or PendingChangeLedger(db, audit=self.audit)
        self.canonical: CanonicalStore = self.ledger.canonical
        self.chunks = chunks or ChunkStore(db)
        self.settings = settings or SettingsStore(db, self.audit)

    def import_record(
        self,
        text: str,
        tree_id: int,
        actor: Actor,
        auto_accept: bool = False,
        update_chan: bool | None = None,
        when: datetime | None = None,
        first_line_number: int = 1,
        reserved: Collection[str] = (),
    ) -> RecordHandle:
        """
        Import one ``0 @XREF@ TAG`` or ``0 @@ TAG`` record.

        Args:
            text: The record, level-0 line first
            tree_id: Target tree
            actor: The user the change is attributed to
            auto_accept: Accept the change in the same transaction
            update_chan: Stamp a CHAN trailer; defaults to the tree's NO_UPDATE_CHAN preference
            when: Timestamp for the trailer (defaults to now)
            first_line_number: Line number of the level-0 line, for error reports
            reserved: Identifiers an allocated xref must not take

        Raises:
            MalformedRecord: The text is not one well-formed record
            ChangeConflict: The record already has a pending change
        """
        text = normalize_newlines(text).strip("\n")
        header = record_header(text)
        if header is None:
            raise MalformedRecord("Record does not begin 0 @XREF@ TAG", first_line_number, text)

        # Validate before taking an identifier
        record = GedcomRecord.parse(text, first_line_number=first_line_number)

        if update_chan is None:
            update_chan = not self.settings.load(tree_id).no_update_chan

        with self.db.transaction():
            xref = record.xref
            if xref == "":
                xref = self.allocator.make(tree_id, record.tag, reserved)
                record = GedcomRecord.parse(splice_xref(text, xref), first_line_number=first_line_number)

            if update_chan:
                record = record.with_trailer(actor.user_name, when)

            new_gedcom = record.to_gedcom()
            old_gedcom = self.ledger.current_text(tree_id, xref)
            change = self.ledger.propose(
                tree_id, xref, old_gedcom, new_gedcom, actor, auto_accept=auto_accept
            )

        return RecordHandle(
            tree_id=tree_id,
            xref=xref,
            kind=RecordKind.for_tag(record.tag),
            gedcom=new_gedcom,
            change_id=change.id,
            committed=change.status is ChangeStatus.ACCEPTED,
        )

    def import_header(self, text: str, tree_id: int) -> None:
        """Store the HEAD record directly; it never goes through the ledger."""
        record = GedcomRecord.parse(text, require_xref=False)
        if record.tag != "HEAD":
            raise MalformedRecord(f"Expected HEAD, found {record.tag}", 1, text)
        self.canonical.put(tree_id, HEADER_XREF, record.to_gedcom())

    def import_text(
        self,
        text: str,
        tree_id: int,
        actor: Actor,
        auto_accept: bool = False,
        strict: bool = False,
        chunk_id: int | None = None,
        allocated: set[str] | None = None,
    ) -> ImportResult:
        """
        Import every record in a block of GEDCOM text.

        Errors are collected per record; with ``strict`` the first one is
        raised and the whole block is rolled back.

        Blank xrefs never take an identifier written explicitly elsewhere in
        the block. ``allocated`` collects the identifiers handed out so far in
        a multi-block import; an explicit xref found there is a conflict, not
        an update of the earlier record.
        """
        result = ImportResult()
        update_chan = not self.settings.load(tree_id).no_update_chan
        if allocated is None:
            allocated = set()

        records = [(line_number, record_text.lstrip()) for line_number, record_text in split_records(text)]
        reserved: set[str] = set()
        for _, record_text in records:
            header = record_header(record_text)
            if header and header[0]:
                reserved.add(header[0])

        with self.db.transaction():
            for line_number, record_text in records:
                try:
                    if record_text.startswith("0 HEAD"):
                        self.import_header(record_text, tree_id)
                        result.header = True
                    elif record_text.startswith("0 TRLR"):
                        continue
                    else:
                        header = record_header(record_text)
                        if header and header[0] in allocated:
                            raise ChangeConflict(
                                f"Record {header[0]} was already allocated to an earlier record of this import",
                                xref=header[0],
                            )
                        handle = self.import_record(
                            record_text,
                            tree_id,
                            actor,
                            auto_accept=auto_accept,
                            update_chan=update_chan,
                            first_line_number=line_number,
                            reserved=reserved,
                        )
                        if header and not header[0]:
                            allocated.add(handle.xref)
                        result.records.append(handle)
                except (MalformedRecord, ChangeConflict) as e:
                    issue = ImportIssue(
                        message=getattr(e, "message", str(e)),
                        line_number=getattr(e, "line_number", line_number),
                        chunk_id=chunk_id,
                        record_text=record_text,
                    )
                    if strict:
                        logger.error("Import of tree %d failed at %s", tree_id, issue)
                        raise
                    logger.warning("Skipped record at %s", issue)
                    result.errors.append(issue)

        return result

    def import_chunks(
        self,
        tree_id: int,
        actor: Actor,
        auto_accept: bool = False,
        strict: bool = False,
        max_chunks: int | None = None,
    ) -> ImportResult:
        """
        Import the stored chunks of a tree, in order.

        Each chunk is imported and marked in one transaction. When the last
        chunk is done the chunk rows are removed and the tree is flagged as
        imported. ``max_chunks`` limits the work done by one call.
        """
        result = ImportResult()
        allocated: set[str] = set()

        for chunk in self.chunks.pending_chunks(tree_id):
            if max_chunks is not None and result.chunks >= max_chunks:
                break
            with self.db.transaction():
                text = chunk.data.decode("utf-8", errors="replace")
                result.extend(
                    self.import_text(
                        text, tree_id, actor,
                        auto_accept=auto_accept,
                        strict=strict,
                        chunk_id=chunk.id,
                        allocated=allocated,
                    )
                )
                self.chunks.mark_imported(chunk.id)
            result.chunks += 1

        if self.chunks.next_pending(tree_id) is None:
            self.finish_import(tree_id, result)

        for issue in result.errors:
            self.audit.add(f"GEDCOM import error at {issue}", tree_id=tree_id, log_type=LogType.ERROR)

        return result

    def finish_import(self, tree_id: int, result: ImportResult) -> None:
        with self.db.transaction():
            self.chunks.clear(tree_id)
            self.db.update("gedcom", {"imported": 1}, {"gedcom_id": tree_id})
        result.complete = True
        logger.info(
            "Import of tree %d complete: %d records, %d errors",
            tree_id, len(result.records), len(result.errors),
        )
