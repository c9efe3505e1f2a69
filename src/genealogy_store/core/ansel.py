"""
ANSEL (ANSI Z39.47) decoding, as used by GEDCOM 5.5 files.

ANSEL writes combining diacritics *before* the letter they modify; Unicode
writes them after. The decoder buffers diacritics until their base letter
arrives, then emits the composed (NFC) text.
"""

from __future__ import annotations

import codecs
import unicodedata

SPACING_CHARACTERS = {
    0xA1: "Ł",  # L with stroke
    0xA2: "Ø",  # O with stroke
    0xA3: "Đ",  # D with stroke
    0xA4: "Þ",  # thorn
    0xA5: "Æ",  # AE
    0xA6: "Œ",  # OE
    0xA7: "ʹ",  # soft sign
    0xA8: "·",  # middle dot
    0xA9: "♭",  # flat
    0xAA: "®",  # registered
    0xAB: "±",  # plus-minus
    0xAC: "Ơ",  # O hook
    0xAD: "Ư",  # U hook
    0xAE: "ʼ",  # alif
    0xB0: "ʻ",  # ayn
    0xB1: "ł",  # l with stroke
    0xB2: "ø",  # o with stroke
    0xB3: "đ",  # d with stroke
    0xB4: "þ",  # thorn
    0xB5: "æ",  # ae
    0xB6: "œ",  # oe
    0xB7: "ʺ",  # hard sign
    0xB8: "ı",  # dotless i
    0xB9: "£",  # pound
    0xBA: "ð",  # eth
    0xBC: "ơ",  # o hook
    0xBD: "ư",  # u hook
    0xBE: "□",  # empty box (GEDCOM extension)
    0xBF: "■",  # black box (GEDCOM extension)
    0xC0: "°",  # degree
    0xC1: "ℓ",  # script l
    0xC2: "℗",  # sound recording copyright
    0xC3: "©",  # copyright
    0xC4: "♯",  # sharp
    0xC5: "¿",  # inverted question mark
    0xC6: "¡",  # inverted exclamation mark
    0xC7: "ß",  # eszett
    0xC8: "€",  # euro
    0xCD: "e",  # midline e (GEDCOM extension)
    0xCE: "o",  # midline o (GEDCOM extension)
    0xCF: "ß",  # eszett (GEDCOM extension)
}

COMBINING_CHARACTERS = {
    0xE0: "\u0309",  # hook above
    0xE1: "\u0300",  # grave
    0xE2: "\u0301",  # acute
    0xE3: "\u0302",  # circumflex
    0xE4: "\u0303",  # tilde
    0xE5: "\u0304",  # macron
    0xE6: "\u0306",  # breve
    0xE7: "\u0307",  # dot above
    0xE8: "\u0308",  # diaeresis
    0xE9: "\u030C",  # caron
    0xEA: "\u030A",  # ring above
    0xEB: "\uFE20",  # ligature, left half
    0xEC: "\uFE21",  # ligature, right half
    0xED: "\u0315",  # comma above right
    0xEE: "\u030B",  # double acute
    0xEF: "\u0310",  # candrabindu
    0xF0: "\u0327",  # cedilla
    0xF1: "\u0328",  # ogonek
    0xF2: "\u0323",  # dot below
    0xF3: "\u0324",  # diaeresis below
    0xF4: "\u0325",  # ring below
    0xF5: "\u0333",  # double underline
    0xF6: "\u0332",  # underline
    0xF7: "\u0326",  # comma below
    0xF8: "\u031C",  # left half ring below
    0xF9: "\u032E",  # breve below
    0xFA: "\uFE22",  # double tilde, left half
    0xFB: "\uFE23",  # double tilde, right half
    0xFE: "\u0313",  # comma above
}


class AnselIncrementalDecoder(codecs.IncrementalDecoder):
    """Incremental ANSEL decoder; diacritics may straddle input blocks."""

    def __init__(self, errors: str = "replace"):
        super().__init__(errors)
        self._marks: list[str] = []

    def decode(self, input: bytes, final: bool = False) -> str:
        out: list[str] = []
        for byte in bytes(input):
            if byte in COMBINING_CHARACTERS:
                self._marks.append(COMBINING_CHARACTERS[byte])
                continue

            if byte < 0x80:
                char = chr(byte)
            elif byte in SPACING_CHARACTERS:
                char = SPACING_CHARACTERS[byte]
            elif self.errors == "strict":
                raise UnicodeDecodeError("ansel", bytes([byte]), 0, 1, "unmapped ANSEL byte")
            else:
                char = "\ufffd"

            if self._marks:
                out.append(unicodedata.normalize("NFC", char + "".join(self._marks)))
                self._marks = []
            else:
                out.append(char)

        if final and self._marks:
            # Diacritics with nothing to modify
            out.append("".join(self._marks))
            self._marks = []

        return "".join(out)

    def reset(self) -> None:
        self._marks = []

    def getstate(self) -> tuple[bytes, int]:
        return b"", len(self._marks)


def decode_ansel(data: bytes, errors: str = "replace") -> str:
    """Decode a complete ANSEL byte string."""
    return AnselIncrementalDecoder(errors).decode(data, final=True)
