"""Errors raised by the import and pending-change pipeline."""

from __future__ import annotations


class GedcomStoreError(Exception):
    """Base class for all reported store errors."""


class MalformedRecord(GedcomStoreError):
    """A fragment does not parse as one level-0-rooted GEDCOM record."""

    def __init__(self, message: str, line_number: int | None = None, record_text: str = ""):
        self.message = message
        self.line_number = line_number
        self.record_text = record_text
        if line_number is not None:
            message = f"Line {line_number}: {message}"
        super().__init__(message)


class UnsupportedEncoding(GedcomStoreError):
    """The declared or sniffed character set is not recognised."""

    def __init__(self, encoding: str):
        self.encoding = encoding
        super().__init__(f"Unsupported character encoding: {encoding!r}")


class AllocationExhausted(GedcomStoreError):
    """No further identifiers can be issued for a prefix."""

    def __init__(self, prefix: str, tree_id: int):
        self.prefix = prefix
        self.tree_id = tree_id
        super().__init__(f"Identifier space exhausted for prefix {prefix!r} in tree {tree_id}")


class ChangeConflict(GedcomStoreError):
    """A change no longer matches the state of its record lineage."""

    def __init__(self, message: str, change_id: int | None = None, xref: str | None = None):
        self.message = message
        self.change_id = change_id
        self.xref = xref
        super().__init__(message)


class TreeNotFound(GedcomStoreError):
    """No tree exists with the requested id or name."""

    def __init__(self, key: int | str):
        self.key = key
        super().__init__(f"Tree not found: {key}")


class ChangeNotFound(GedcomStoreError):
    """No change row exists with the requested id."""

    def __init__(self, change_id: int):
        self.change_id = change_id
        super().__init__(f"Change not found: {change_id}")
