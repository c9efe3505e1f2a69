"""
Chunked import reader.

A GEDCOM upload is split into chunks that each end just before a level-0
line, so no record straddles two chunks. The chunks are stored as rows of
``gedcom_chunk`` and processed one at a time; concatenating them in id order
gives back the (UTF-8 normalized) upload.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator

from genealogy_store.core.models import GedcomChunk
from genealogy_store.storage.database import Database

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 65536


def record_boundary(buffer: bytes) -> int:
    """
    Offset just past the last newline that is followed by a level-0 line.

    Returns 0 when the buffer has no such boundary.
    """
    return max(buffer.rfind(b"\r0"), buffer.rfind(b"\n0")) + 1


def next_record_boundary(buffer: bytes, start: int) -> int:
    """Offset just past the first newline at or after ``start`` that precedes a level-0 line, or 0."""
    found = [offset for offset in (buffer.find(b"\r0", start), buffer.find(b"\n0", start)) if offset >= 0]
    return min(found) + 1 if found else 0


def iter_chunks(blocks: Iterable[bytes], chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    """
    Regroup byte blocks into chunks that end at record boundaries.

    Whenever at least ``chunk_size`` bytes are buffered, a chunk is cut at
    the last record boundary within the first ``chunk_size`` bytes, however
    large the incoming blocks are. A chunk is only larger than ``chunk_size``
    when a single record is; it then ends at the first boundary after it.
    """
    buffer = b""
    for block in blocks:
        buffer += block
        start = 0
        while len(buffer) - start >= chunk_size:
            cutoff = start + chunk_size
            # The level-0 line may start exactly at the cutoff
            boundary = record_boundary(buffer[start:cutoff + 1])
            if boundary:
                boundary += start
            else:
                boundary = next_record_boundary(buffer, cutoff)
            if boundary == 0:
                break
            yield buffer[start:boundary]
            start = boundary
        buffer = buffer[start:]

    if buffer:
        yield buffer


@dataclass
class ImportProgress:
    """How far the import of a tree has got, by bytes."""
    imported_bytes: int
    total_bytes: int
    imported_chunks: int
    total_chunks: int

    @property
    def complete(self) -> bool:
        return self.imported_chunks == self.total_chunks

    @property
    def fraction(self) -> float:
        if self.total_bytes == 0:
            return 1.0
        return self.imported_bytes / self.total_bytes


class ChunkStore:
    """Persisted chunks of in-progress imports."""

    def __init__(self, db: Database):
        self.db = db

    def start(self, tree_id: int) -> None:
        """Discard chunks left over from an earlier import of this tree."""
        removed = self.db.delete("gedcom_chunk", {"gedcom_id": tree_id})
        if removed:
            logger.info("Discarded %d chunks of a previous import of tree %d", removed, tree_id)

    def append(self, tree_id: int, data: bytes) -> int:
        return self.db.insert("gedcom_chunk", {"gedcom_id": tree_id, "chunk_data": data})

    def store(self, tree_id: int, blocks: Iterable[bytes], chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
        """Truncate the previous run and persist a new one; returns the chunk count."""
        count = 0
        with self.db.transaction():
            self.start(tree_id)
            for chunk in iter_chunks(blocks, chunk_size):
                self.append(tree_id, chunk)
                count += 1
        logger.info("Stored %d chunks for tree %d", count, tree_id)
        return count

    def next_pending(self, tree_id: int) -> GedcomChunk | None:
        row = self.db.select_one(
            "gedcom_chunk",
            {"gedcom_id": tree_id, "imported": 0},
            order_by="gedcom_chunk_id",
        )
        return self._chunk(row) if row else None

    def pending_chunks(self, tree_id: int) -> Iterator[GedcomChunk]:
        """Yield unimported chunks in order, re-reading after each one."""
        while True:
            chunk = self.next_pending(tree_id)
            if chunk is None:
                return
            yield chunk

    def mark_imported(self, chunk_id: int) -> None:
        self.db.update("gedcom_chunk", {"imported": 1}, {"gedcom_chunk_id": chunk_id})

    def chunks(self, tree_id: int) -> list[GedcomChunk]:
        rows = self.db.select("gedcom_chunk", {"gedcom_id": tree_id}, order_by="gedcom_chunk_id")
        return [self._chunk(row) for row in rows]

    def reassemble(self, tree_id: int) -> bytes:
        return b"".join(chunk.data for chunk in self.chunks(tree_id))

    def progress(self, tree_id: int) -> ImportProgress:
        row = self.db.execute(
            "SELECT"
            " COALESCE(SUM(CASE WHEN imported = 1 THEN length(chunk_data) END), 0) AS imported_bytes,"
            " COALESCE(SUM(length(chunk_data)), 0) AS total_bytes,"
            " COALESCE(SUM(imported), 0) AS imported_chunks,"
            " COUNT(*) AS total_chunks"
            " FROM gedcom_chunk WHERE gedcom_id = ?",
            (tree_id,),
        ).fetchone()
        return ImportProgress(
            imported_bytes=row["imported_bytes"],
            total_bytes=row["total_bytes"],
            imported_chunks=row["imported_chunks"],
            total_chunks=row["total_chunks"],
        )

    def clear(self, tree_id: int) -> int:
        return self.db.delete("gedcom_chunk", {"gedcom_id": tree_id})

    def abandon(self, tree_id: int) -> int:
        """Cancel an import: drop all of its chunks."""
        removed = self.clear(tree_id)
        logger.info("Abandoned import of tree %d (%d chunks)", tree_id, removed)
        return removed

    @staticmethod
    def _chunk(row) -> GedcomChunk:
        return GedcomChunk(
            id=row["gedcom_chunk_id"],
            tree_id=row["gedcom_id"],
            data=bytes(row["chunk_data"]),
            imported=bool(row["imported"]),
        )
