"""Tests for the GEDCOM record importer."""

from __future__ import annotations

from datetime import datetime

import pytest

from genealogy_store.core.exceptions import ChangeConflict, MalformedRecord
from genealogy_store.core.models import Actor, ChangeStatus, RecordKind, TreeSettings
from genealogy_store.services.chunks import ChunkStore
from genealogy_store.services.importer import GedcomImportService
from genealogy_store.services.ledger import PendingChangeLedger
from genealogy_store.services.settings import SettingsStore
from genealogy_store.storage import Database

WHEN = datetime(2024, 5, 17, 9, 30, 0)


class TestImportRecord:
    """Tests for importing single records."""

    def test_blank_xref_allocated(self, importer: GedcomImportService, tree_id: int, actor: Actor):
        handle = importer.import_record("0 @@ INDI\n1 NAME John /DOE/\n1 SEX M", tree_id, actor, when=WHEN)

        assert handle.xref == "I1"
        assert handle.kind is RecordKind.INDIVIDUAL
        assert handle.pending
        assert handle.gedcom.startswith("0 @I1@ INDI\n")
        assert handle.gedcom.endswith("1 CHAN\n2 DATE 17 MAY 2024\n3 TIME 09:30:00\n2 _WT_USER editor")

    def test_explicit_xref_kept(self, importer: GedcomImportService, tree_id: int, actor: Actor):
        handle = importer.import_record("0 @X17@ INDI\n1 SEX F", tree_id, actor)
        assert handle.xref == "X17"

    def test_creation_has_empty_old_text(
        self, importer: GedcomImportService, ledger: PendingChangeLedger, tree_id: int, actor: Actor
    ):
        handle = importer.import_record("0 @@ FAM\n1 MARR Y", tree_id, actor)
        change = ledger.get(handle.change_id)
        assert change.is_creation
        assert change.status is ChangeStatus.PENDING
        assert change.user_id == actor.id

    def test_auto_accept(
        self, importer: GedcomImportService, ledger: PendingChangeLedger, tree_id: int, actor: Actor
    ):
        """Auto-accepted records are never observed as pending."""
        handle = importer.import_record("0 @@ SOUR\n1 TITL Parish register", tree_id, actor, auto_accept=True)

        assert handle.committed
        assert ledger.pending_changes(tree_id) == []
        assert ledger.canonical.get(tree_id, "S1") == handle.gedcom

    def test_tags_uppercased_values_verbatim(self, importer: GedcomImportService, tree_id: int, actor: Actor):
        handle = importer.import_record(
            "0 @@ indi\n1 name  Jean /Smith/\n1 note \n1 _custom Keep Me",
            tree_id, actor, update_chan=False,
        )
        assert handle.gedcom == "0 @I1@ INDI\n1 NAME  Jean /Smith/\n1 NOTE \n1 _CUSTOM Keep Me"

    def test_existing_chan_replaced(self, importer: GedcomImportService, tree_id: int, actor: Actor):
        handle = importer.import_record(
            "0 @@ INDI\n1 CHAN\n2 DATE 1 JAN 1999\n1 SEX M", tree_id, actor, when=WHEN
        )
        assert handle.gedcom.count("1 CHAN") == 1
        assert "1 JAN 1999" not in handle.gedcom

    def test_no_update_chan_preference(
        self, db: Database, importer: GedcomImportService, tree_id: int, actor: Actor
    ):
        SettingsStore(db).save(tree_id, TreeSettings(no_update_chan=True))
        handle = importer.import_record("0 @@ INDI\n1 SEX M", tree_id, actor)
        assert "CHAN" not in handle.gedcom

    @pytest.mark.parametrize("text", [
        "0 HEAD\n1 CHAR UTF-8",
        "1 NAME John",
        "0 INDI\n1 SEX M",
        "",
    ])
    def test_rejects_non_record(self, importer: GedcomImportService, tree_id: int, actor: Actor, text: str):
        with pytest.raises(MalformedRecord):
            importer.import_record(text, tree_id, actor)

    def test_rejects_bad_nesting(
        self, db: Database, importer: GedcomImportService, tree_id: int, actor: Actor
    ):
        """Validation happens before an identifier is taken."""
        with pytest.raises(MalformedRecord) as exc:
            importer.import_record("0 @@ INDI\n1 BIRT\n3 DATE 1900", tree_id, actor, first_line_number=5)
        assert exc.value.line_number == 7
        assert db.count("xref_sequence") == 0
        assert db.count("change") == 0

    def test_second_import_of_pending_xref_conflicts(
        self, importer: GedcomImportService, tree_id: int, actor: Actor
    ):
        importer.import_record("0 @I5@ INDI\n1 SEX M", tree_id, actor)
        with pytest.raises(ChangeConflict):
            importer.import_record("0 @I5@ INDI\n1 SEX F", tree_id, actor)

    def test_update_of_stored_record(
        self, importer: GedcomImportService, ledger: PendingChangeLedger, tree_id: int, actor: Actor
    ):
        """Re-importing a stored xref proposes an update against its current text."""
        first = importer.import_record("0 @I5@ INDI\n1 SEX M", tree_id, actor, auto_accept=True)
        second = importer.import_record("0 @I5@ INDI\n1 SEX F", tree_id, actor)

        change = ledger.get(second.change_id)
        assert change.old_gedcom == first.gedcom
        assert not change.is_creation


class TestImportText:
    """Tests for importing whole GEDCOM texts."""

    def test_head_and_individual(
        self, importer: GedcomImportService, ledger: PendingChangeLedger, tree_id: int, actor: Actor
    ):
        """HEAD is stored directly; the individual becomes one pending change."""
        text = "0 HEAD\n1 CHAR UTF-8\n0 @@ INDI\n1 NAME John /DOE/\n1 SEX M"

        result = importer.import_text(text, tree_id, actor, auto_accept=False)

        assert result.header
        assert result.errors == []
        pending = ledger.pending_changes(tree_id)
        assert len(pending) == 1
        change = pending[0]
        assert change.status is ChangeStatus.PENDING
        assert change.new_gedcom[3:].startswith(change.xref + "@ INDI")
        assert change.new_gedcom.startswith("0 @I1@ INDI\n1 NAME John /DOE/\n1 SEX M\n1 CHAN")
        assert ledger.canonical.get(tree_id, "HEAD") == "0 HEAD\n1 CHAR UTF-8"

    def test_accept_then_reject_conflicts(
        self, importer: GedcomImportService, ledger: PendingChangeLedger,
        tree_id: int, actor: Actor, moderator: Actor,
    ):
        text = "0 HEAD\n1 CHAR UTF-8\n0 @@ INDI\n1 NAME John /DOE/\n1 SEX M"
        importer.import_text(text, tree_id, actor)
        change = ledger.pending_changes(tree_id)[0]

        accepted = ledger.accept_change(change.id, moderator)

        assert accepted.status is ChangeStatus.ACCEPTED
        assert ledger.canonical.get(tree_id, change.xref) == change.new_gedcom
        with pytest.raises(ChangeConflict):
            ledger.reject_change(change.id, moderator)

    def test_errors_are_local(self, importer: GedcomImportService, tree_id: int, actor: Actor):
        text = "0 HEAD\n0 @I1@ INDI\n1 SEX M\n0 @I2@ INDI\n1 BIRT\n3 DATE 1900\n0 @I3@ INDI\n0 TRLR\n"

        result = importer.import_text(text, tree_id, actor, chunk_id=9)

        assert [r.xref for r in result.records] == ["I1", "I3"]
        assert len(result.errors) == 1
        assert result.errors[0].line_number == 6
        assert result.errors[0].chunk_id == 9
        assert str(result.errors[0]).startswith("chunk 9, line 6:")

    def test_day_zero_date_does_not_abort_block(
        self, db: Database, importer: GedcomImportService, ledger: PendingChangeLedger,
        tree_id: int, actor: Actor,
    ):
        """A date the index cannot use is indexed at month precision; later records still import."""
        text = "0 HEAD\n0 @I1@ INDI\n1 BIRT\n2 DATE 0 JAN 1850\n0 @I2@ INDI\n1 SEX F\n0 TRLR\n"

        result = importer.import_text(text, tree_id, actor, auto_accept=True)

        assert [r.xref for r in result.records] == ["I1", "I2"]
        assert result.errors == []
        assert ledger.canonical.get(tree_id, "I2") is not None
        row = db.select_one("dates", {"gedcom_id": tree_id, "xref": "I1"})
        assert (row["d_day"], row["d_month"], row["d_year"]) == (None, 1, 1850)

    def test_allocation_skips_explicit_xrefs_of_block(
        self, importer: GedcomImportService, ledger: PendingChangeLedger, tree_id: int, actor: Actor
    ):
        """A blank record never takes an xref written later in the same text."""
        text = "0 @@ INDI\n1 NAME Alice /A/\n0 @I1@ INDI\n1 NAME Bob /B/\n"

        result = importer.import_text(text, tree_id, actor, auto_accept=True)

        assert [r.xref for r in result.records] == ["I2", "I1"]
        assert result.errors == []
        assert "Alice" in ledger.canonical.get(tree_id, "I2")
        assert "Bob" in ledger.canonical.get(tree_id, "I1")

    def test_explicit_xref_allocated_earlier_in_run_conflicts(
        self, importer: GedcomImportService, ledger: PendingChangeLedger, tree_id: int, actor: Actor
    ):
        allocated: set[str] = set()
        importer.import_text("0 @@ INDI\n1 NAME Alice /A/\n", tree_id, actor, auto_accept=True, allocated=allocated)
        assert allocated == {"I1"}

        result = importer.import_text(
            "0 @I1@ INDI\n1 NAME Bob /B/\n", tree_id, actor, auto_accept=True, allocated=allocated
        )

        assert result.records == []
        assert "already allocated" in result.errors[0].message
        assert "Alice" in ledger.canonical.get(tree_id, "I1")

    def test_strict_rolls_back_block(
        self, db: Database, importer: GedcomImportService, tree_id: int, actor: Actor
    ):
        text = "0 @I1@ INDI\n1 SEX M\n0 @I2@ INDI\n2 DATE 1900\n"
        with pytest.raises(MalformedRecord):
            importer.import_text(text, tree_id, actor, strict=True)
        assert db.count("change") == 0

    def test_sample_file(
        self, importer: GedcomImportService, ledger: PendingChangeLedger,
        tree_id: int, actor: Actor, sample_gedcom_content: str,
    ):
        result = importer.import_text(sample_gedcom_content, tree_id, actor, auto_accept=True)

        assert len(result.records) == 4
        assert ledger.canonical.count(tree_id, "INDI") == 3
        assert ledger.canonical.count(tree_id, "FAM") == 1


class TestImportChunks:
    """Tests for importing stored chunks."""

    def test_import_all_chunks(
        self, db: Database, importer: GedcomImportService, chunk_store: ChunkStore,
        tree_id: int, actor: Actor, sample_gedcom_content: str,
    ):
        db.update("gedcom", {"imported": 0}, {"gedcom_id": tree_id})
        data = sample_gedcom_content.encode("utf-8")
        chunk_store.store(tree_id, [data], chunk_size=64)
        assert len(chunk_store.chunks(tree_id)) > 1

        result = importer.import_chunks(tree_id, actor, auto_accept=True)

        assert result.complete
        assert len(result.records) == 4
        assert chunk_store.chunks(tree_id) == []
        assert db.select_one("gedcom", {"gedcom_id": tree_id})["imported"] == 1

    def test_resumable(
        self, importer: GedcomImportService, chunk_store: ChunkStore,
        tree_id: int, actor: Actor, sample_gedcom_content: str,
    ):
        chunk_store.store(tree_id, [sample_gedcom_content.encode("utf-8")], chunk_size=64)
        total = len(chunk_store.chunks(tree_id))

        first = importer.import_chunks(tree_id, actor, max_chunks=1)
        assert first.chunks == 1
        assert not first.complete
        assert chunk_store.progress(tree_id).imported_chunks == 1

        rest = importer.import_chunks(tree_id, actor)
        assert rest.chunks == total - 1
        assert rest.complete

    def test_allocated_xref_not_overwritten_by_later_chunk(
        self, importer: GedcomImportService, ledger: PendingChangeLedger, chunk_store: ChunkStore,
        tree_id: int, actor: Actor,
    ):
        chunk_store.append(tree_id, b"0 HEAD\n0 @@ INDI\n1 NAME Alice /A/\n")
        chunk_store.append(tree_id, b"0 @I1@ INDI\n1 NAME Bob /B/\n0 TRLR\n")

        result = importer.import_chunks(tree_id, actor, auto_accept=True)

        assert [r.xref for r in result.records] == ["I1"]
        assert len(result.errors) == 1
        assert "Alice" in ledger.canonical.get(tree_id, "I1")

    def test_strict_failure_leaves_chunk_pending(
        self, importer: GedcomImportService, chunk_store: ChunkStore, tree_id: int, actor: Actor
    ):
        chunk_store.append(tree_id, b"0 HEAD\n")
        bad = chunk_store.append(tree_id, b"0 @I1@ INDI\n2 SEX M\n")

        with pytest.raises(MalformedRecord):
            importer.import_chunks(tree_id, actor, strict=True)

        assert chunk_store.next_pending(tree_id).id == bad
