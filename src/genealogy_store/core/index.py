"""
Search-index rows derived from a record's GEDCOM text.

Derivation is a pure function of the record: running it twice on the same
text gives the same rows, so accepting a change can always delete a record's
old rows and insert the new ones.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from genealogy_store.core.gedcom import GedcomLine, GedcomRecord
from genealogy_store.core.models import GenealogyDate, Place

SURNAME = re.compile(r"/([^/]*)/")


# Larger numbers are typos, not years
MAX_YEAR = 9999


@dataclass(frozen=True)
class NameRow:
    """One indexed name of an individual (or title of a source)."""
    name_type: str
    full: str
    given: str = ""
    surname: str = ""
    sort_order: int = 0


@dataclass(frozen=True)
class DateRow:
    """One indexed event date."""
    fact: str
    calendar: str
    day: int | None
    month: int | None
    year: int | None
    min_ordinal: int | None
    max_ordinal: int | None
    text: str = ""


@dataclass(frozen=True)
class PlaceRow:
    """A place used by the record, jurisdictions largest first."""
    hierarchy: tuple[str, ...]


@dataclass(frozen=True)
class LinkRow:
    """A pointer from the record to another record."""
    link_type: str
    target: str


@dataclass
class IndexRows:
    """Every index row for one record."""
    names: list[NameRow] = field(default_factory=list)
    dates: list[DateRow] = field(default_factory=list)
    places: list[PlaceRow] = field(default_factory=list)
    links: list[LinkRow] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.names or self.dates or self.places or self.links)


def split_name(value: str) -> tuple[str, str, str]:
    """
    Split a GEDCOM personal name into (full, given, surname).

    "John /Smith/ Jr" -> ("John Smith Jr", "John", "Smith")
    """
    match = SURNAME.search(value)
    if match:
        surname = match.group(1).strip()
        given = value[:match.start()].strip()
    else:
        surname = ""
        given = value.strip()
    full = " ".join(value.replace("/", " ").split())
    return full, given, surname


def _children(record: GedcomRecord, index: int) -> list[GedcomLine]:
    """Direct subordinates of the line at ``index``."""
    parent = record.lines[index]
    children = []
    for line in record.lines[index + 1:]:
        if line.level <= parent.level:
            break
        if line.level == parent.level + 1:
            children.append(line)
    return children


def _child_value(children: list[GedcomLine], tag: str) -> str | None:
    for child in children:
        if child.tag == tag and child.value:
            return child.value
    return None


def derive_names(record: GedcomRecord) -> list[NameRow]:
    names: list[NameRow] = []

    if record.tag == "INDI":
        for index, line in enumerate(record.lines):
            if line.level != 1 or line.tag != "NAME" or not line.value:
                continue
            children = _children(record, index)
            full, given, surname = split_name(line.value)
            names.append(NameRow(
                name_type=(_child_value(children, "TYPE") or "NAME").upper(),
                full=full,
                given=_child_value(children, "GIVN") or given,
                surname=_child_value(children, "SURN") or surname,
                sort_order=len(names),
            ))
    elif record.tag in ("SOUR", "REPO", "SUBM", "_LOC"):
        title_tag = "TITL" if record.tag == "SOUR" else "NAME"
        for line in record.lines:
            if line.level == 1 and line.tag == title_tag and line.value:
                names.append(NameRow(name_type=title_tag, full=line.value, sort_order=len(names)))

    return names


def derive_dates(record: GedcomRecord) -> list[DateRow]:
    dates: list[DateRow] = []
    for line, parents in record.iter_with_parents():
        if line.tag != "DATE" or line.level != 2 or not line.value:
            continue
        fact = parents[1].tag
        if fact == "CHAN":
            continue
        parsed = GenealogyDate.from_gedcom(line.value)
        if parsed.year is None or parsed.year > MAX_YEAR:
            continue
        ordinals = parsed.ordinal_range()
        row = DateRow(
            fact=fact,
            calendar=parsed.calendar,
            day=parsed.day,
            month=parsed.month,
            year=parsed.year,
            min_ordinal=ordinals[0] if ordinals else None,
            max_ordinal=ordinals[1] if ordinals else None,
            text=line.value,
        )
        if row not in dates:
            dates.append(row)
    return dates


def derive_places(record: GedcomRecord) -> list[PlaceRow]:
    places: list[PlaceRow] = []
    for line in record.lines:
        if line.tag != "PLAC" or not line.value:
            continue
        hierarchy = tuple(Place.from_string(line.value).hierarchy())
        if hierarchy and PlaceRow(hierarchy) not in places:
            places.append(PlaceRow(hierarchy))
    return places


def derive_links(record: GedcomRecord) -> list[LinkRow]:
    links: list[LinkRow] = []
    for line in record.lines[1:]:
        target = line.pointer
        if target is None:
            continue
        row = LinkRow(link_type=line.tag, target=target)
        if row not in links:
            links.append(row)
    return links


def derive_index_rows(record: GedcomRecord | str) -> IndexRows:
    """Derive name, date, place and link rows for one record."""
    if isinstance(record, str):
        record = GedcomRecord.parse(record)

    return IndexRows(
        names=derive_names(record),
        dates=derive_dates(record),
        places=derive_places(record),
        links=derive_links(record),
    )
