"""
Character-set detection and conversion of GEDCOM byte streams to UTF-8.

The normalizer works block by block, so a large upload never needs to be held
in memory. The source encoding comes from the caller, from a byte-order mark,
or from the ``1 CHAR`` line of the header record, in that order of
precedence except that a byte-order mark always wins.
"""

from __future__ import annotations

import codecs
import logging
import re
from typing import BinaryIO, Iterable, Iterator

from genealogy_store.core.ansel import AnselIncrementalDecoder
from genealogy_store.core.exceptions import UnsupportedEncoding

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_SIZE = 65536

# Enough bytes to see the whole header record of any reasonable file
SNIFF_SIZE = 4096

# GEDCOM character set names (and common aliases) -> Python codec names
ENCODINGS = {
    "UTF-8": "utf-8",
    "UTF8": "utf-8",
    "UNICODE": "utf-16",
    "UTF-16": "utf-16",
    "UTF16": "utf-16",
    "UTF-16BE": "utf-16-be",
    "UTF-16LE": "utf-16-le",
    "UTF-16-BE": "utf-16-be",
    "UTF-16-LE": "utf-16-le",
    "ANSEL": "ansel",
    "ANSI": "cp1252",
    "WINDOWS-1252": "cp1252",
    "CP1252": "cp1252",
    "IBM WINDOWS": "cp1252",
    "ASCII": "ascii",
    "ISO-8859-1": "latin-1",
    "ISO8859-1": "latin-1",
    "LATIN1": "latin-1",
    "LATIN-1": "latin-1",
    "MACINTOSH": "mac_roman",
    "MACROMAN": "mac_roman",
    "IBMPC": "cp437",
    "CP437": "cp437",
    "MSDOS": "cp850",
    "CP850": "cp850",
}

BYTE_ORDER_MARKS = [
    (codecs.BOM_UTF8, "utf-8"),
    (codecs.BOM_UTF16_LE, "utf-16-le"),
    (codecs.BOM_UTF16_BE, "utf-16-be"),
]

CHAR_LINE = re.compile(rb"^\s*1 +CHAR +([^\r\n]+)", re.MULTILINE)


def resolve_encoding(name: str) -> str:
    """Map a GEDCOM character set name to a codec name."""
    codec = ENCODINGS.get(name.strip().upper())
    if codec is None:
        raise UnsupportedEncoding(name)
    return codec


def detect_bom(head: bytes) -> tuple[str, int] | None:
    """Return (codec, length of the mark) if the data starts with a BOM."""
    for bom, codec in BYTE_ORDER_MARKS:
        if head.startswith(bom):
            return codec, len(bom)
    return None


def sniff_utf16(head: bytes) -> str | None:
    """Recognise BOM-less UTF-16 from the leading ``0`` of the HEAD line."""
    if head[:2] == b"0\x00":
        return "utf-16-le"
    if head[:2] == b"\x000":
        return "utf-16-be"
    return None


def sniff_encoding(head: bytes) -> str:
    """
    Guess the GEDCOM character set name from the first bytes of a file.

    Looks for a byte-order mark, then for UTF-16 without one, then for the
    ``1 CHAR`` line inside the header record. Defaults to UTF-8.
    """
    bom = detect_bom(head)
    if bom:
        return bom[0].upper()

    utf16 = sniff_utf16(head)
    if utf16:
        return utf16.upper()

    # Only the header record: stop at the second level-0 line
    header = head
    second = re.search(rb"[\r\n]\s*0[ \r\n]", head)
    if second:
        header = head[:second.start()]

    match = CHAR_LINE.search(header)
    if match:
        return match.group(1).decode("ascii", errors="replace").strip()

    return "UTF-8"


def make_decoder(codec: str, errors: str = "replace") -> codecs.IncrementalDecoder:
    if codec == "ansel":
        return AnselIncrementalDecoder(errors)
    return codecs.getincrementaldecoder(codec)(errors=errors)


def iter_blocks(source: BinaryIO | bytes | Iterable[bytes], block_size: int = DEFAULT_BLOCK_SIZE) -> Iterator[bytes]:
    """Yield byte blocks from a file object, a bytes value or an iterable of blocks."""
    if isinstance(source, (bytes, bytearray)):
        for start in range(0, len(source), block_size):
            yield bytes(source[start:start + block_size])
    elif hasattr(source, "read"):
        while True:
            block = source.read(block_size)
            if not block:
                break
            yield block
    else:
        for block in source:
            if block:
                yield block


class EncodingNormalizer:
    """
    Streaming conversion of a GEDCOM byte stream to UTF-8.

    Usage:
        normalizer = EncodingNormalizer("ANSEL")
        for block in normalizer.iter_utf8(stream):
            ...

    An unknown encoding name raises UnsupportedEncoding from the constructor
    (declared names) or before the first block is yielded (sniffed names).
    """

    def __init__(
        self,
        encoding: str | None = None,
        block_size: int = DEFAULT_BLOCK_SIZE,
        errors: str = "replace",
    ):
        self.declared = encoding or None
        self.codec = resolve_encoding(encoding) if encoding else None
        self.block_size = block_size
        self.errors = errors
        self.detected: str | None = None

    def choose_codec(self, head: bytes) -> tuple[str, int]:
        """Decide the codec for a stream from its first bytes; returns (codec, bytes to skip)."""
        bom = detect_bom(head)
        if bom:
            codec, skip = bom
            if self.codec and self.codec != codec and not (self.codec == "utf-16" and codec.startswith("utf-16")):
                logger.warning(
                    "Byte-order mark indicates %s, overriding declared encoding %s",
                    codec, self.declared,
                )
            return codec, skip

        codec = self.codec or resolve_encoding(sniff_encoding(head))

        if codec == "utf-16":
            # No BOM: trust the byte pattern, and fall back to UTF-8 when the
            # data is clearly single-byte despite the header.
            codec = sniff_utf16(head) or "utf-8"

        return codec, 0

    def iter_utf8(self, source: BinaryIO | bytes | Iterable[bytes]) -> Iterator[bytes]:
        """Yield UTF-8 encoded blocks."""
        blocks = iter_blocks(source, self.block_size)

        head = b""
        for block in blocks:
            head += block
            if len(head) >= SNIFF_SIZE:
                break

        codec, skip = self.choose_codec(head)
        self.detected = codec
        logger.debug("Decoding GEDCOM stream as %s", codec)

        decoder = make_decoder(codec, self.errors)

        text = decoder.decode(head[skip:])
        if text:
            yield text.encode("utf-8")

        for block in blocks:
            text = decoder.decode(block)
            if text:
                yield text.encode("utf-8")

        text = decoder.decode(b"", final=True)
        if text:
            yield text.encode("utf-8")


def normalize_bytes(data: bytes, encoding: str | None = None) -> bytes:
    """Convert a complete byte string to UTF-8."""
    return b"".join(EncodingNormalizer(encoding).iter_utf8(data))
