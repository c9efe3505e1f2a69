"""Tests for character-set detection and UTF-8 normalization."""

from __future__ import annotations

import codecs
import io

import pytest

from genealogy_store.core.ansel import AnselIncrementalDecoder, decode_ansel
from genealogy_store.core.encoding import (
    EncodingNormalizer,
    normalize_bytes,
    resolve_encoding,
    sniff_encoding,
)
from genealogy_store.core.exceptions import UnsupportedEncoding


def split_blocks(data: bytes, size: int) -> list[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


class TestAnsel:
    """Tests for the ANSEL decoder."""

    def test_plain_ascii(self):
        assert decode_ansel(b"1 NAME John /Smith/") == "1 NAME John /Smith/"

    def test_combining_mark_precedes_letter(self):
        """ANSEL puts the acute accent (0xE2) before the e."""
        assert decode_ansel(b"Jos\xe2e") == "José"

    def test_two_marks(self):
        # Circumflex + dot below on a: Vietnamese "ậ"
        assert decode_ansel(b"\xe3\xf2a") == "\u1ead"

    def test_spacing_characters(self):
        assert decode_ansel(b"\xa5sop \xb2re") == "Æsop øre"

    def test_mark_split_across_blocks(self):
        decoder = AnselIncrementalDecoder()
        assert decoder.decode(b"Mu\xe8") == "Mu"
        assert decoder.decode(b"ller", final=True) == "üller"

    def test_dangling_mark_flushed(self):
        assert decode_ansel(b"x\xe2") == "x\u0301"

    def test_unmapped_byte(self):
        assert decode_ansel(b"a\x80b") == "a\ufffdb"
        with pytest.raises(UnicodeDecodeError):
            decode_ansel(b"a\x80b", errors="strict")


class TestEncodingNames:
    """Tests for resolving GEDCOM character set names."""

    @pytest.mark.parametrize("name,codec", [
        ("UTF-8", "utf-8"),
        ("unicode", "utf-16"),
        ("ANSEL", "ansel"),
        ("ANSI", "cp1252"),
        ("ASCII", "ascii"),
        ("ISO-8859-1", "latin-1"),
        ("MACINTOSH", "mac_roman"),
        ("IBMPC", "cp437"),
        ("MSDOS", "cp850"),
    ])
    def test_resolve(self, name: str, codec: str):
        assert resolve_encoding(name) == codec

    def test_unknown_name(self):
        with pytest.raises(UnsupportedEncoding) as exc:
            resolve_encoding("EBCDIC")
        assert exc.value.encoding == "EBCDIC"

    def test_sniff_char_line(self):
        head = b"0 HEAD\n1 SOUR PAF\n1 CHAR ANSEL\n2 VERS 1985\n0 @I1@ INDI\n"
        assert sniff_encoding(head) == "ANSEL"

    def test_sniff_only_reads_header(self):
        head = b"0 HEAD\n1 SOUR x\n0 @N1@ NOTE\n1 CHAR ANSI\n"
        assert sniff_encoding(head) == "UTF-8"

    def test_sniff_default(self):
        assert sniff_encoding(b"0 HEAD\n0 TRLR\n") == "UTF-8"

    def test_sniff_bom(self):
        assert sniff_encoding(codecs.BOM_UTF16_BE + "0 HEAD".encode("utf-16-be")) == "UTF-16-BE"


class TestEncodingNormalizer:
    """Tests for streaming conversion to UTF-8."""

    def test_utf16le_with_bom(self):
        """A UTF-16LE file with a BOM becomes plain UTF-8."""
        text = "0 HEAD\n1 CHAR UNICODE\n0 @I1@ INDI\n1 NAME José /Pérez/\n0 TRLR\n"
        data = codecs.BOM_UTF16_LE + text.encode("utf-16-le")

        output = b"".join(EncodingNormalizer().iter_utf8(data))

        assert output == text.encode("utf-8")
        assert b"Jos\xc3\xa9" in output
        assert not output.startswith(codecs.BOM_UTF8)

    def test_utf16be_without_bom(self):
        text = "0 HEAD\n1 CHAR UNICODE\n1 NOTE Ærø\n"
        data = text.encode("utf-16-be")
        assert normalize_bytes(data, "UNICODE") == text.encode("utf-8")

    def test_utf16le_sniffed_without_declaration(self):
        text = "0 HEAD\n1 NOTE Ñandú\n"
        assert normalize_bytes(text.encode("utf-16-le")) == text.encode("utf-8")

    def test_unicode_declared_but_single_byte(self):
        """Files that say UNICODE but contain UTF-8 are read as UTF-8."""
        text = "0 HEAD\n1 CHAR UNICODE\n1 NOTE café\n"
        assert normalize_bytes(text.encode("utf-8")) == text.encode("utf-8")

    def test_utf8_bom_removed(self):
        text = "0 HEAD\n1 CHAR UTF-8\n"
        assert normalize_bytes(codecs.BOM_UTF8 + text.encode("utf-8")) == text.encode("utf-8")

    def test_bom_overrides_declared_encoding(self):
        text = "0 HEAD\n1 CHAR ANSEL\n1 NOTE José\n"
        data = codecs.BOM_UTF8 + text.encode("utf-8")
        assert normalize_bytes(data, "ANSEL") == text.encode("utf-8")

    def test_ansel_from_header(self):
        data = b"0 HEAD\n1 CHAR ANSEL\n0 @I1@ INDI\n1 NAME Jos\xe2e /M\xe8uller/\n"
        output = normalize_bytes(data).decode("utf-8")
        assert "1 NAME José /Müller/" in output

    @pytest.mark.parametrize("encoding,raw", [
        ("ANSI", b"\xe9"),
        ("ISO-8859-1", b"\xe9"),
        ("MACINTOSH", b"\x8e"),
        ("IBMPC", b"\x82"),
        ("MSDOS", b"\x82"),
    ])
    def test_single_byte_encodings(self, encoding: str, raw: bytes):
        data = b"0 HEAD\n1 NOTE caf" + raw + b"\n"
        assert normalize_bytes(data, encoding) == "0 HEAD\n1 NOTE café\n".encode("utf-8")

    def test_multibyte_characters_split_across_blocks(self):
        """Blocks may end in the middle of a character."""
        text = "0 HEAD\n" + "1 NOTE José Ærø\n" * 1000
        data = codecs.BOM_UTF16_LE + text.encode("utf-16-le")

        normalizer = EncodingNormalizer("UNICODE", block_size=7)
        output = b"".join(normalizer.iter_utf8(split_blocks(data, 7)))

        assert output == text.encode("utf-8")
        assert normalizer.detected == "utf-16-le"

    def test_reads_file_objects(self):
        text = "0 HEAD\n1 NOTE Zoë\n"
        stream = io.BytesIO(text.encode("cp1252"))
        output = b"".join(EncodingNormalizer("ANSI", block_size=4).iter_utf8(stream))
        assert output == text.encode("utf-8")

    def test_unknown_declared_encoding(self):
        with pytest.raises(UnsupportedEncoding):
            EncodingNormalizer("KLINGON")

    def test_unknown_sniffed_encoding(self):
        """Raised before the first block is produced."""
        blocks = EncodingNormalizer().iter_utf8(b"0 HEAD\n1 CHAR KLINGON\n")
        with pytest.raises(UnsupportedEncoding):
            next(blocks)
