"""
Pending change ledger.

Every create, update or delete of a record is first written as a change row
pairing the record's old and new text. A moderator (or the auto-accept
preference) then accepts it, which writes canonical storage, or rejects it,
which leaves storage untouched.

Lifecycle per (tree, xref):
    (none) --propose--> pending --accept--> accepted
                                --reject--> rejected

Resolved changes are final. Resolution runs inside a write transaction that
re-reads the change, so two moderators acting on the same change cannot both
succeed.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime

from genealogy_store.core.exceptions import ChangeConflict, ChangeNotFound
from genealogy_store.core.models import Actor, ChangeStatus, PendingChange
from genealogy_store.services.audit import AuditLog
from genealogy_store.services.canonical import CanonicalStore
from genealogy_store.storage.database import Database

logger = logging.getLogger(__name__)


class PendingChangeLedger:
    """Proposes, accepts and rejects record changes."""

    def __init__(
        self,
        db: Database,
        canonical: CanonicalStore | None = None,
        audit: AuditLog | None = None,
    ):
        self.db = db
        self.canonical = canonical or CanonicalStore(db)
        self.audit = audit or AuditLog(db)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, change_id: int) -> PendingChange:
        row = self.db.select_one("change", {"change_id": change_id})
        if row is None:
            raise ChangeNotFound(change_id)
        return PendingChange.from_row(row)

    def pending_for(self, tree_id: int, xref: str) -> PendingChange | None:
        row = self.db.select_one(
            "change",
            {"gedcom_id": tree_id, "xref": xref, "status": ChangeStatus.PENDING.value},
        )
        return PendingChange.from_row(row) if row else None

    def pending_changes(self, tree_id: int) -> list[PendingChange]:
        """Unresolved changes of a tree, oldest first."""
        rows = self.db.select(
            "change",
            {"gedcom_id": tree_id, "status": ChangeStatus.PENDING.value},
            order_by="change_id",
        )
        return [PendingChange.from_row(row) for row in rows]

    def history(self, tree_id: int, xref: str) -> list[PendingChange]:
        """Every change ever proposed for one record, oldest first."""
        rows = self.db.select("change", {"gedcom_id": tree_id, "xref": xref}, order_by="change_id")
        return [PendingChange.from_row(row) for row in rows]

    def has_pending_edit(self, tree_id: int) -> bool:
        return self.db.exists("change", {"gedcom_id": tree_id, "status": ChangeStatus.PENDING.value})

    def current_text(self, tree_id: int, xref: str) -> str:
        """Canonical text of a record, or "" if it is not stored."""
        return self.canonical.get(tree_id, xref) or ""

    # -------------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------------

    def propose(
        self,
        tree_id: int,
        xref: str,
        old_gedcom: str,
        new_gedcom: str,
        actor: Actor,
        auto_accept: bool = False,
    ) -> PendingChange:
        """
        Record a proposed change.

        ``old_gedcom`` must equal the record's current canonical text ("" for
        a creation). With ``auto_accept`` the change is accepted in the same
        transaction, so it is never observed as pending.
        """
        if old_gedcom == "" and new_gedcom == "":
            raise ValueError("A change needs old or new text")

        with self.db.transaction():
            existing = self.pending_for(tree_id, xref)
            if existing is not None:
                raise ChangeConflict(
                    f"Record {xref} already has pending change {existing.id}",
                    change_id=existing.id,
                    xref=xref,
                )

            if old_gedcom != self.current_text(tree_id, xref):
                raise ChangeConflict(
                    f"Record {xref} has changed since this edit was started",
                    xref=xref,
                )

            try:
                change_id = self.db.insert("change", {
                    "gedcom_id": tree_id,
                    "xref": xref,
                    "old_gedcom": old_gedcom,
                    "new_gedcom": new_gedcom,
                    "status": ChangeStatus.PENDING.value,
                    "user_id": actor.id,
                    "change_time": datetime.now().isoformat(timespec="seconds"),
                })
            except sqlite3.IntegrityError as e:
                raise ChangeConflict(f"Record {xref} already has a pending change", xref=xref) from e

            logger.debug("Proposed change %d for %s in tree %d", change_id, xref, tree_id)

            if auto_accept:
                return self.accept_change(change_id, actor)

        return self.get(change_id)

    def accept_change(self, change_id: int, actor: Actor | None = None) -> PendingChange:
        """Write a pending change to canonical storage."""
        with self.db.transaction():
            change = self._pending(change_id)

            if change.old_gedcom != self.current_text(change.tree_id, change.xref):
                raise ChangeConflict(
                    f"Record {change.xref} was modified or deleted after change {change.id} was proposed",
                    change_id=change.id,
                    xref=change.xref,
                )

            if change.is_deletion:
                self.canonical.remove(change.tree_id, change.xref)
            else:
                self.canonical.put(change.tree_id, change.xref, change.new_gedcom)

            self._set_status(change, ChangeStatus.ACCEPTED)
            self.audit.add(
                f"Accepted change {change.id} for {change.xref}",
                tree_id=change.tree_id,
                user_id=actor.id if actor else None,
            )

        return change.model_copy(update={"status": ChangeStatus.ACCEPTED})

    def reject_change(self, change_id: int, actor: Actor | None = None) -> PendingChange:
        """Discard a pending change; canonical storage is not touched."""
        with self.db.transaction():
            change = self._pending(change_id)
            self._set_status(change, ChangeStatus.REJECTED)
            self.audit.add(
                f"Rejected change {change.id} for {change.xref}",
                tree_id=change.tree_id,
                user_id=actor.id if actor else None,
            )

        return change.model_copy(update={"status": ChangeStatus.REJECTED})

    def accept_record(self, tree_id: int, xref: str, actor: Actor | None = None) -> PendingChange:
        return self.accept_change(self._pending_id(tree_id, xref), actor)

    def reject_record(self, tree_id: int, xref: str, actor: Actor | None = None) -> PendingChange:
        return self.reject_change(self._pending_id(tree_id, xref), actor)

    def accept_all(self, tree_id: int, actor: Actor | None = None) -> int:
        """Accept every pending change of a tree, in proposal order."""
        with self.db.transaction():
            changes = self.pending_changes(tree_id)
            for change in changes:
                self.accept_change(change.id, actor)
        return len(changes)

    def reject_all(self, tree_id: int, actor: Actor | None = None) -> int:
        with self.db.transaction():
            changes = self.pending_changes(tree_id)
            for change in changes:
                self.reject_change(change.id, actor)
        return len(changes)

    def _pending(self, change_id: int) -> PendingChange:
        change = self.get(change_id)
        if change.status is not ChangeStatus.PENDING:
            raise ChangeConflict(
                f"Change {change.id} is already {change.status.value}",
                change_id=change.id,
                xref=change.xref,
            )
        return change

    def _pending_id(self, tree_id: int, xref: str) -> int:
        change = self.pending_for(tree_id, xref)
        if change is None:
            raise ChangeConflict(f"Record {xref} has no pending change", xref=xref)
        return change.id

    def _set_status(self, change: PendingChange, status: ChangeStatus) -> None:
        updated = self.db.update(
            "change",
            {"status": status.value},
            {"change_id": change.id, "status": ChangeStatus.PENDING.value},
        )
        if updated != 1:
            raise ChangeConflict(
                f"Change {change.id} was resolved concurrently",
                change_id=change.id,
                xref=change.xref,
            )
