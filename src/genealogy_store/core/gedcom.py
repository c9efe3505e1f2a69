"""
GEDCOM 5.5.1 line and record handling.

Handles:
- Tokenizing GEDCOM lines (level, optional xref, tag, optional value)
- Validating that one record is a single well-nested level-0 tree
- Splitting a text stream into level-0 records
- Splicing newly allocated identifiers into "0 @@ TAG" headers
- Change-tracking (CHAN) trailers
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator

from genealogy_store.core.exceptions import MalformedRecord
from genealogy_store.core.models import format_gedcom_date

LINE_PATTERN = re.compile(r"^\s*(\d+) +(?:@([^@\s]*)@ +)?([A-Za-z0-9_]+)(?: (.*))?$")
RECORD_HEADER = re.compile(r"^0 @([^@\s]*)@ ([_A-Za-z0-9]+)")
POINTER = re.compile(r"^@([^@#\s][^@]*)@$")

# Offset of the blank xref in "0 @@ TAG"
XREF_OFFSET = 3

CHANGE_USER_TAG = "_WT_USER"


@dataclass
class GedcomLine:
    """A single parsed GEDCOM line."""
    level: int
    tag: str
    value: str | None = None  # None: no value; "": empty value after the delimiter
    xref: str | None = None   # I123 style ID, without the @ delimiters
    line_number: int = 0

    @classmethod
    def parse(cls, line: str, line_number: int = 0) -> GedcomLine:
        """
        Parse a GEDCOM line.

        Pattern: level [@xref@] tag [value]
        Examples:
          0 @I1@ INDI
          1 NAME John /Smith/
          2 DATE 15 JAN 1862
        """
        match = LINE_PATTERN.match(line)
        if not match:
            raise MalformedRecord(f"Not a GEDCOM line: {line!r}", line_number)

        return cls(
            level=int(match.group(1)),
            xref=match.group(2),
            tag=match.group(3).upper(),
            value=match.group(4),
            line_number=line_number,
        )

    @property
    def pointer(self) -> str | None:
        """The xref this line points to, if its value is a pointer."""
        if self.value is None:
            return None
        match = POINTER.match(self.value)
        return match.group(1) if match else None

    @property
    def is_custom(self) -> bool:
        return self.tag.startswith("_")

    def to_string(self) -> str:
        """Convert back to GEDCOM format."""
        parts = [str(self.level)]
        if self.xref is not None:
            parts.append(f"@{self.xref}@")
        parts.append(self.tag)
        text = " ".join(parts)
        if self.value is not None:
            text += " " + self.value
        return text


@dataclass
class GedcomRecord:
    """A complete GEDCOM record (level 0 + subordinates)."""
    xref: str | None  # I123 style, "" while unallocated
    tag: str          # INDI, FAM, SOUR, HEAD, etc.
    lines: list[GedcomLine] = field(default_factory=list)

    @classmethod
    def parse(cls, text: str, require_xref: bool = True, first_line_number: int = 1) -> GedcomRecord:
        """
        Parse exactly one level-0-rooted record.

        Raises MalformedRecord when the text does not start with
        ``0 @<xref-or-blank>@ TAG``, contains a second level-0 line, or
        skips a level.
        """
        text = normalize_newlines(text).strip("\n")
        lines: list[GedcomLine] = []
        for offset, raw in enumerate(text.split("\n")):
            line_number = first_line_number + offset
            if not raw.strip():
                continue
            try:
                lines.append(GedcomLine.parse(raw, line_number))
            except MalformedRecord as e:
                raise MalformedRecord(e.message, line_number, text) from None

        if not lines:
            raise MalformedRecord("Empty record", first_line_number, text)

        head = lines[0]
        if head.level != 0:
            raise MalformedRecord("Record does not start at level 0", head.line_number, text)
        if require_xref and head.xref is None:
            raise MalformedRecord("Record does not begin 0 @XREF@ TAG", head.line_number, text)

        previous = 0
        for line in lines[1:]:
            if line.level == 0:
                raise MalformedRecord("Unexpected level-0 line inside record", line.line_number, text)
            if line.level > previous + 1:
                raise MalformedRecord(
                    f"Level jumped from {previous} to {line.level}", line.line_number, text
                )
            if line.xref is not None:
                raise MalformedRecord("Only level-0 lines may carry an xref", line.line_number, text)
            previous = line.level

        return cls(xref=head.xref, tag=head.tag, lines=lines)

    @property
    def is_pseudo(self) -> bool:
        """HEAD and TRLR have no xref and never enter the ledger."""
        return self.xref is None

    def without_fact(self, tag: str) -> GedcomRecord:
        """Copy of this record with every level-1 ``tag`` structure removed."""
        kept: list[GedcomLine] = []
        skipping = False
        for line in self.lines:
            if line.level == 1:
                skipping = line.tag == tag
            if line.level == 0 or not skipping:
                kept.append(line)
        return GedcomRecord(xref=self.xref, tag=self.tag, lines=kept)

    def with_trailer(self, user_name: str, when: datetime | None = None) -> GedcomRecord:
        """Replace any CHAN structure with a fresh change-tracking trailer."""
        record = self.without_fact("CHAN")
        record.lines.extend(change_trailer(user_name, when))
        return record

    def iter_with_parents(self) -> Iterator[tuple[GedcomLine, list[GedcomLine]]]:
        """Yield each line with its chain of ancestors (level 0 first)."""
        stack: list[GedcomLine] = []
        for line in self.lines:
            del stack[line.level:]
            yield line, list(stack)
            stack.append(line)

    def get_all_values(self, tag: str, parent_tag: str | None = None) -> list[str]:
        """Get all values for a tag, optionally only below a level-1 parent."""
        values = []
        for line, parents in self.iter_with_parents():
            if line.tag != tag or line.value is None:
                continue
            if parent_tag is not None and (len(parents) < 2 or parents[1].tag != parent_tag):
                continue
            values.append(line.value)
        return values

    def to_gedcom(self) -> str:
        return "\n".join(line.to_string() for line in self.lines)


def normalize_newlines(text: str) -> str:
    """GEDCOM allows CR, LF and CRLF terminators; store LF only."""
    return text.replace("\r\n", "\n").replace("\r", "\n")


def split_records(text: str) -> Iterator[tuple[int, str]]:
    """
    Split GEDCOM text into level-0 records.

    Yields (line number of the level-0 line, record text).
    """
    text = normalize_newlines(text).lstrip("\ufeff")
    current: list[str] = []
    start = 1

    for line_number, line in enumerate(text.split("\n"), start=1):
        if line.lstrip().startswith("0 ") or line.strip() == "0":
            if current:
                yield start, _join_lines(current)
            current = [line]
            start = line_number
        elif current or line.strip():
            current.append(line)

    if any(line.strip() for line in current):
        yield start, _join_lines(current)


def _join_lines(lines: list[str]) -> str:
    while lines and not lines[-1].strip():
        lines.pop()
    return "\n".join(lines)


def record_header(text: str) -> tuple[str, str] | None:
    """Return (xref, tag) from a ``0 @xref@ TAG`` header, or None."""
    match = RECORD_HEADER.match(text)
    if not match:
        return None
    return match.group(1), match.group(2).upper()


def splice_xref(text: str, xref: str) -> str:
    """Insert an allocated xref into a ``0 @@ TAG`` header."""
    if not text.startswith("0 @@"):
        raise MalformedRecord("Record does not begin 0 @@", 1, text)
    return text[:XREF_OFFSET] + xref + text[XREF_OFFSET:]


def change_trailer(user_name: str, when: datetime | None = None) -> list[GedcomLine]:
    """The ``1 CHAN`` block stamped on every stored edit."""
    when = when or datetime.now()
    return [
        GedcomLine(level=1, tag="CHAN"),
        GedcomLine(level=2, tag="DATE", value=format_gedcom_date(when)),
        GedcomLine(level=3, tag="TIME", value=when.strftime("%H:%M:%S")),
        GedcomLine(level=2, tag=CHANGE_USER_TAG, value=user_name),
    ]
