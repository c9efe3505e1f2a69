"""
Core data models for the genealogy store.

These models describe:
- Record kinds and their identifier prefixes
- Trees and their typed settings
- Pending changes and their lifecycle
- Import chunks
- GEDCOM dates and places, as used by the search indexes
"""

from __future__ import annotations

import calendar
from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RecordKind(str, Enum):
    """
    Kinds of level-0 record that can be created.

    Each kind carries its GEDCOM tag and the prefix used for new identifiers.
    """
    INDIVIDUAL = "INDI"
    FAMILY = "FAM"
    SOURCE = "SOUR"
    MEDIA = "OBJE"
    OTHER = "_OTHER"

    @property
    def prefix(self) -> str:
        return _KIND_PREFIXES[self]

    @property
    def marker(self) -> str:
        """Header a new record of this kind must start with."""
        if self is RecordKind.OTHER:
            return "0 @@ "
        return f"0 @@ {self.value}"

    @classmethod
    def for_tag(cls, tag: str) -> RecordKind:
        """Map any level-0 tag onto a record kind."""
        try:
            kind = cls(tag.upper())
        except ValueError:
            return cls.OTHER
        return kind


_KIND_PREFIXES = {
    RecordKind.INDIVIDUAL: "I",
    RecordKind.FAMILY: "F",
    RecordKind.SOURCE: "S",
    RecordKind.MEDIA: "O",
    RecordKind.OTHER: "O",
}


class ChangeStatus(str, Enum):
    """Lifecycle of a pending change."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Actor(BaseModel):
    """The user proposing or moderating an edit."""
    id: int | None = None
    user_name: str = "system"
    auto_accept_edits: bool = False


class SurnameTradition(str, Enum):
    PATERNAL = "paternal"
    PATRILINEAL = "patrilineal"
    MATRILINEAL = "matrilineal"
    SPANISH = "spanish"
    PORTUGUESE = "portuguese"
    ICELANDIC = "icelandic"
    POLISH = "polish"
    LITHUANIAN = "lithuanian"
    NONE = "none"


class TreeSettings(BaseModel):
    """
    Typed tree preferences.

    Stored as name/value rows in the ``gedcom_setting`` table. Unknown rows are
    ignored when loading, so obsolete settings never leak into the model.
    """
    model_config = ConfigDict(validate_assignment=True)

    calendar_format: str = "gregorian"
    expand_sources: bool = False
    gedcom_media_path: str = ""
    generate_uids: bool = False
    hide_gedcom_errors: bool = True
    hide_live_people: bool = True
    keep_alive_years_birth: int | None = None
    keep_alive_years_death: int | None = None
    max_alive_age: int = Field(default=120, ge=0)
    meta_description: str = ""
    meta_title: str = "genealogy-store"
    no_update_chan: bool = False
    pedigree_root_id: str = ""
    quick_required_facts: list[str] = Field(default_factory=lambda: ["BIRT", "DEAT"])
    quick_required_famfacts: list[str] = Field(default_factory=lambda: ["MARR"])
    show_dead_people: int = 2
    show_gedcom_record: bool = False
    surname_tradition: SurnameTradition = SurnameTradition.PATERNAL
    sublist_trigger_i: int = 200
    word_wrapped_notes: bool = False

    @field_validator("keep_alive_years_birth", "keep_alive_years_death", mode="before")
    @classmethod
    def blank_as_none(cls, v):
        if v == "":
            return None
        return v

    @field_validator("quick_required_facts", "quick_required_famfacts", mode="before")
    @classmethod
    def split_tags(cls, v):
        if isinstance(v, str):
            return [tag for tag in v.split(",") if tag]
        return v

    @classmethod
    def setting_name(cls, field_name: str) -> str:
        return field_name.upper()

    @classmethod
    def from_rows(cls, rows: dict[str, str]) -> TreeSettings:
        """Build settings from ``setting_name -> setting_value`` rows."""
        values = {}
        for field_name in cls.model_fields:
            name = cls.setting_name(field_name)
            if name in rows:
                values[field_name] = rows[name]
        return cls(**values)

    def to_rows(self) -> dict[str, str]:
        """Serialise to ``setting_name -> setting_value`` rows."""
        rows = {}
        for field_name in type(self).model_fields:
            rows[self.setting_name(field_name)] = self.serialize_value(field_name)
        return rows

    def serialize_value(self, field_name: str) -> str:
        value = getattr(self, field_name)
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, list):
            return ",".join(value)
        if value is None:
            return ""
        return str(value)


class Tree(BaseModel):
    """An isolated genealogical dataset."""
    id: int
    name: str
    title: str = "tree"
    media_folder: str = "media/"
    gedcom_filename: str = "tree.ged"
    imported: bool = True
    private: bool = False
    contact_user_id: int | None = None
    support_user_id: int | None = None

    @classmethod
    def from_row(cls, row) -> Tree:
        """Create from a ``gedcom`` table row."""
        return cls(
            id=row["gedcom_id"],
            name=row["gedcom_name"],
            title=row["title"],
            media_folder=row["media_folder"],
            gedcom_filename=row["gedcom_filename"],
            imported=bool(row["imported"]),
            private=bool(row["private"]),
            contact_user_id=row["contact_user_id"],
            support_user_id=row["support_user_id"],
        )


class PendingChange(BaseModel):
    """
    A proposed mutation of one record.

    An empty ``old_gedcom`` is a creation, an empty ``new_gedcom`` a deletion.
    """
    id: int
    tree_id: int
    xref: str
    old_gedcom: str = ""
    new_gedcom: str = ""
    status: ChangeStatus = ChangeStatus.PENDING
    user_id: int | None = None
    change_time: datetime | None = None

    @property
    def is_creation(self) -> bool:
        return self.old_gedcom == ""

    @property
    def is_deletion(self) -> bool:
        return self.new_gedcom == ""

    @classmethod
    def from_row(cls, row) -> PendingChange:
        return cls(
            id=row["change_id"],
            tree_id=row["gedcom_id"],
            xref=row["xref"],
            old_gedcom=row["old_gedcom"],
            new_gedcom=row["new_gedcom"],
            status=ChangeStatus(row["status"]),
            user_id=row["user_id"],
            change_time=row["change_time"],
        )


class RecordHandle(BaseModel):
    """Result of creating or importing a record."""
    tree_id: int
    xref: str
    kind: RecordKind
    gedcom: str
    change_id: int | None = None
    committed: bool = False

    @property
    def pending(self) -> bool:
        return not self.committed


class GedcomChunk(BaseModel):
    """One persisted fragment of an in-progress import."""
    id: int
    tree_id: int
    data: bytes
    imported: bool = False


MONTHS = {
    "JAN": 1, "FEB": 2, "MAR": 3, "APR": 4, "MAY": 5, "JUN": 6,
    "JUL": 7, "AUG": 8, "SEP": 9, "OCT": 10, "NOV": 11, "DEC": 12,
}

MONTH_NAMES = {number: name for name, number in MONTHS.items()}

DATE_MODIFIERS = ("ABT", "BEF", "AFT", "BET", "CAL", "EST", "FROM", "TO", "INT")


def format_gedcom_date(when: date) -> str:
    """``05 MAY 2024``, with English month names whatever the locale."""
    return f"{when.day:02d} {MONTH_NAMES[when.month]} {when.year}"


class GenealogyDate(BaseModel):
    """
    A GEDCOM date, reduced to what the date index needs.

    Supports modifiers: ABT, BEF, AFT, BET...AND..., FROM...TO..., CAL, EST, INT
    Format: DD MMM YYYY (e.g., "15 JAN 1862")
    """
    calendar: str = "@#DGREGORIAN@"
    modifier: str | None = None
    year: int | None = None
    month: int | None = Field(None, ge=1, le=12)
    day: int | None = Field(None, ge=1, le=31)
    end_year: int | None = None
    end_month: int | None = None
    end_day: int | None = None
    original_text: str = ""

    @classmethod
    def from_gedcom(cls, date_str: str) -> GenealogyDate:
        """Parse a GEDCOM date string."""
        parts = date_str.upper().replace("(", " ").replace(")", " ").split()
        calendar_escape = "@#DGREGORIAN@"
        modifier = None

        if parts and parts[0].startswith("@#"):
            calendar_escape = parts.pop(0)
            # "@#DFRENCH R@" is split by whitespace
            while calendar_escape[-1] != "@" and parts:
                calendar_escape += " " + parts.pop(0)

        if parts and parts[0] in DATE_MODIFIERS:
            modifier = parts.pop(0)

        first, rest = cls._split_range(parts)
        day, month, year = cls._parse_part(first)
        end_day, end_month, end_year = cls._parse_part(rest)

        return cls(
            calendar=calendar_escape,
            modifier=modifier,
            year=year, month=month, day=day,
            end_year=end_year, end_month=end_month, end_day=end_day,
            original_text=date_str,
        )

    @staticmethod
    def _split_range(parts: list[str]) -> tuple[list[str], list[str]]:
        for separator in ("AND", "TO"):
            if separator in parts:
                index = parts.index(separator)
                return parts[:index], parts[index + 1:]
        return parts, []

    @staticmethod
    def _parse_part(parts: list[str]) -> tuple[int | None, int | None, int | None]:
        day = month = year = None
        for part in parts:
            if part in MONTHS:
                month = MONTHS[part]
            elif part.isdigit():
                num = int(part)
                if month is None and year is None and 1 <= num <= 31 and day is None:
                    day = num
                else:
                    year = num
            elif "/" in part and part.split("/")[0].isdigit():
                # Dual dating, e.g. 1720/21
                year = int(part.split("/")[0])
        if day is not None and month is None:
            # A day needs a month; a lone number is a year
            if year is None:
                year = day
            day = None
        return day, month, year

    @property
    def is_gregorian(self) -> bool:
        return self.calendar == "@#DGREGORIAN@"

    def ordinal_range(self) -> tuple[int, int] | None:
        """First and last day covered, as proleptic Gregorian ordinals."""
        if not self.is_gregorian or self.year is None:
            return None

        start = _first_day(self.year, self.month, self.day)
        if self.end_year is not None:
            end = _last_day(self.end_year, self.end_month, self.end_day)
        else:
            end = _last_day(self.year, self.month, self.day)

        if start is None or end is None:
            return None
        return start.toordinal(), end.toordinal()


def _first_day(year: int, month: int | None, day: int | None) -> date | None:
    try:
        return date(year, month or 1, day or 1)
    except (ValueError, OverflowError):
        return None


def _last_day(year: int, month: int | None, day: int | None) -> date | None:
    try:
        if month is None:
            return date(year, 12, 31)
        if day is None:
            return date(year, month, calendar.monthrange(year, month)[1])
        return date(year, month, day)
    except (ValueError, OverflowError):
        return None


class Place(BaseModel):
    """
    GEDCOM place representation.

    Format: City, County/Province, State, Country
    """
    name: str

    @property
    def parts(self) -> list[str]:
        """Jurisdictions from smallest to largest, blanks removed."""
        return [p.strip() for p in self.name.split(",") if p.strip()]

    def hierarchy(self) -> list[str]:
        """Jurisdictions from largest (country) to smallest."""
        return list(reversed(self.parts))

    @classmethod
    def from_string(cls, place_str: str) -> Place:
        return cls(name=place_str.strip())
