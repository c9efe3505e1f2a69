"""Tests for creating, updating and deleting records of a tree."""

from __future__ import annotations

import pytest

from genealogy_store.core.exceptions import ChangeConflict, MalformedRecord
from genealogy_store.core.models import Actor, ChangeStatus, RecordKind
from genealogy_store.services.importer import GedcomImportService
from genealogy_store.services.records import TreeRecords, new_record_text


@pytest.fixture
def records(importer: GedcomImportService, tree_id: int) -> TreeRecords:
    return TreeRecords(importer.db, tree_id, importer)


class TestNewRecordText:
    """Tests for building new record text."""

    def test_individual(self):
        assert new_record_text(RecordKind.INDIVIDUAL, ["1 SEX F"]) == "0 @@ INDI\n1 SEX F"

    def test_header_only(self):
        assert new_record_text(RecordKind.SOURCE) == "0 @@ SOUR"

    def test_other_needs_tag(self):
        assert new_record_text(RecordKind.OTHER, ["1 CONC x"], tag="note") == "0 @@ NOTE\n1 CONC x"
        with pytest.raises(ValueError):
            new_record_text(RecordKind.OTHER)


class TestCreateRecord:
    """Tests for the generic record constructor."""

    @pytest.mark.parametrize("kind,body,xref", [
        (RecordKind.INDIVIDUAL, ["1 NAME Anna /Berg/"], "I1"),
        (RecordKind.FAMILY, ["1 MARR Y"], "F1"),
        (RecordKind.SOURCE, ["1 TITL Census 1850"], "S1"),
        (RecordKind.MEDIA, ["1 FILE photo.jpg"], "O1"),
    ])
    def test_each_kind(self, records: TreeRecords, actor: Actor, kind: RecordKind, body: list[str], xref: str):
        handle = records.create(kind, body, actor)

        assert handle.xref == xref
        assert handle.kind is kind
        assert handle.pending
        assert records.get(xref) is None
        assert records.get_latest(xref) == handle.gedcom

    def test_other_kind(self, records: TreeRecords, actor: Actor):
        handle = records.create(RecordKind.OTHER, ["1 CONC Research notes"], actor, tag="NOTE")
        assert handle.kind is RecordKind.OTHER
        assert handle.gedcom.startswith(f"0 @{handle.xref}@ NOTE\n")

    def test_kind_mismatch(self, records: TreeRecords, actor: Actor):
        with pytest.raises(MalformedRecord):
            records.create_record("0 @@ FAM\n1 MARR Y", actor, kind=RecordKind.INDIVIDUAL)

    def test_requires_blank_xref(self, records: TreeRecords, actor: Actor):
        with pytest.raises(MalformedRecord):
            records.create_record("0 @I9@ INDI\n1 SEX M", actor)

    def test_auto_accept_actor(self, records: TreeRecords, auto_actor: Actor):
        handle = records.create(RecordKind.INDIVIDUAL, ["1 SEX F"], auto_actor)

        assert handle.committed
        assert records.get(handle.xref) == handle.gedcom
        assert records.ledger.pending_changes(records.tree_id) == []

    def test_pending_then_accepted(self, records: TreeRecords, actor: Actor, moderator: Actor):
        handle = records.create(RecordKind.FAMILY, [], actor)
        records.ledger.accept_change(handle.change_id, moderator)
        assert records.get(handle.xref) == handle.gedcom


class TestUpdateAndDelete:
    """Tests for changing existing records."""

    def test_update(self, records: TreeRecords, actor: Actor, auto_actor: Actor):
        handle = records.create(RecordKind.INDIVIDUAL, ["1 SEX U"], auto_actor)

        change = records.update_record(handle.xref, f"0 @{handle.xref}@ INDI\n1 SEX F", actor)

        assert change.status is ChangeStatus.PENDING
        assert change.old_gedcom == handle.gedcom
        assert change.new_gedcom.startswith(f"0 @{handle.xref}@ INDI\n1 SEX F\n1 CHAN")
        assert records.get(handle.xref) == handle.gedcom

    def test_update_missing_record(self, records: TreeRecords, actor: Actor):
        with pytest.raises(MalformedRecord):
            records.update_record("I404", "0 @I404@ INDI", actor)

    def test_update_wrong_xref(self, records: TreeRecords, auto_actor: Actor):
        handle = records.create(RecordKind.INDIVIDUAL, [], auto_actor)
        with pytest.raises(MalformedRecord):
            records.update_record(handle.xref, "0 @I999@ INDI", auto_actor)

    def test_update_while_pending(self, records: TreeRecords, actor: Actor, auto_actor: Actor):
        handle = records.create(RecordKind.INDIVIDUAL, [], auto_actor)
        records.update_record(handle.xref, f"0 @{handle.xref}@ INDI\n1 SEX M", actor)
        with pytest.raises(ChangeConflict):
            records.update_record(handle.xref, f"0 @{handle.xref}@ INDI\n1 SEX F", actor)

    def test_delete(self, records: TreeRecords, actor: Actor, auto_actor: Actor):
        handle = records.create(RecordKind.SOURCE, ["1 TITL Old letters"], auto_actor)

        change = records.delete_record(handle.xref, actor)

        assert change.is_deletion
        assert records.get_latest(handle.xref) == ""
        records.ledger.accept_change(change.id)
        assert records.get(handle.xref) is None

    def test_delete_missing_record(self, records: TreeRecords, actor: Actor):
        with pytest.raises(MalformedRecord):
            records.delete_record("S404", actor)
