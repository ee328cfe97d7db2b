"""Unicode script classification of characters.

Scripts are derived from the character names in the Unicode database.
"""

from __future__ import annotations

import enum
import unicodedata
from functools import lru_cache


class ScriptType(enum.IntEnum):
    """Unicode scripts known to the trainer."""

    ADLAM = 0
    AHOM = enum.auto()
    ANATOLIAN_HIEROGLYPHS = enum.auto()
    ARABIC = enum.auto()
    ARMENIAN = enum.auto()
    AVESTAN = enum.auto()
    BALINESE = enum.auto()
    BAMUM = enum.auto()
    BASSA_VAH = enum.auto()
    BATAK = enum.auto()
    BENGALI = enum.auto()
    BHAIKSUKI = enum.auto()
    BOPOMOFO = enum.auto()
    BRAHMI = enum.auto()
    BRAILLE = enum.auto()
    BUGINESE = enum.auto()
    BUHID = enum.auto()
    CANADIAN_ABORIGINAL = enum.auto()
    CARIAN = enum.auto()
    CAUCASIAN_ALBANIAN = enum.auto()
    CHAKMA = enum.auto()
    CHAM = enum.auto()
    CHEROKEE = enum.auto()
    COMMON = enum.auto()
    COPTIC = enum.auto()
    CUNEIFORM = enum.auto()
    CYPRIOT = enum.auto()
    CYRILLIC = enum.auto()
    DESERET = enum.auto()
    DEVANAGARI = enum.auto()
    DUPLOYAN = enum.auto()
    EGYPTIAN_HIEROGLYPHS = enum.auto()
    ELBASAN = enum.auto()
    ETHIOPIC = enum.auto()
    GEORGIAN = enum.auto()
    GLAGOLITIC = enum.auto()
    GOTHIC = enum.auto()
    GRANTHA = enum.auto()
    GREEK = enum.auto()
    GUJARATI = enum.auto()
    GURMUKHI = enum.auto()
    HAN = enum.auto()
    HANGUL = enum.auto()
    HANUNOO = enum.auto()
    HATRAN = enum.auto()
    HEBREW = enum.auto()
    HIRAGANA = enum.auto()
    IMPERIAL_ARAMAIC = enum.auto()
    INHERITED = enum.auto()
    INSCRIPTIONAL_PAHLAVI = enum.auto()
    INSCRIPTIONAL_PARTHIAN = enum.auto()
    JAVANESE = enum.auto()
    KAITHI = enum.auto()
    KANNADA = enum.auto()
    KATAKANA = enum.auto()
    KAYAH_LI = enum.auto()
    KHAROSHTHI = enum.auto()
    KHMER = enum.auto()
    KHOJKI = enum.auto()
    KHUDAWADI = enum.auto()
    LAO = enum.auto()
    LATIN = enum.auto()
    LEPCHA = enum.auto()
    LIMBU = enum.auto()
    LINEAR_A = enum.auto()
    LINEAR_B = enum.auto()
    LISU = enum.auto()
    LYCIAN = enum.auto()
    LYDIAN = enum.auto()
    MAHAJANI = enum.auto()
    MALAYALAM = enum.auto()
    MANDAIC = enum.auto()
    MANICHAEAN = enum.auto()
    MARCHEN = enum.auto()
    MEETEI_MAYEK = enum.auto()
    MENDE_KIKAKUI = enum.auto()
    MEROITIC_CURSIVE = enum.auto()
    MEROITIC_HIEROGLYPHS = enum.auto()
    MIAO = enum.auto()
    MODI = enum.auto()
    MONGOLIAN = enum.auto()
    MRO = enum.auto()
    MULTANI = enum.auto()
    MYANMAR = enum.auto()
    NABATAEAN = enum.auto()
    NEW_TAI_LUE = enum.auto()
    NEWA = enum.auto()
    NKO = enum.auto()
    OGHAM = enum.auto()
    OL_CHIKI = enum.auto()
    OLD_HUNGARIAN = enum.auto()
    OLD_ITALIC = enum.auto()
    OLD_NORTH_ARABIAN = enum.auto()
    OLD_PERMIC = enum.auto()
    OLD_PERSIAN = enum.auto()
    OLD_SOUTH_ARABIAN = enum.auto()
    OLD_TURKIC = enum.auto()
    ORIYA = enum.auto()
    OSAGE = enum.auto()
    OSMANYA = enum.auto()
    PAHAWH_HMONG = enum.auto()
    PALMYRENE = enum.auto()
    PAU_CIN_HAU = enum.auto()
    PHAGS_PA = enum.auto()
    PHOENICIAN = enum.auto()
    PSALTER_PAHLAVI = enum.auto()
    REJANG = enum.auto()
    RUNIC = enum.auto()
    SAMARITAN = enum.auto()
    SAURASHTRA = enum.auto()
    SHARADA = enum.auto()
    SHAVIAN = enum.auto()
    SIDDHAM = enum.auto()
    SIGNWRITING = enum.auto()
    SINHALA = enum.auto()
    SORA_SOMPENG = enum.auto()
    SUNDANESE = enum.auto()
    SYLOTI_NAGRI = enum.auto()
    SYRIAC = enum.auto()
    TAGALOG = enum.auto()
    TAGBANWA = enum.auto()
    TAI_LE = enum.auto()
    TAI_THAM = enum.auto()
    TAI_VIET = enum.auto()
    TAKRI = enum.auto()
    TAMIL = enum.auto()
    TANGUT = enum.auto()
    TELUGU = enum.auto()
    THAANA = enum.auto()
    THAI = enum.auto()
    TIBETAN = enum.auto()
    TIFINAGH = enum.auto()
    TIRHUTA = enum.auto()
    UGARITIC = enum.auto()
    VAI = enum.auto()
    WARANG_CITI = enum.auto()
    YI = enum.auto()


# Name prefixes that differ from the script's own name.
_EXTRA_PREFIXES: dict[str, ScriptType] = {
    "CJK UNIFIED IDEOGRAPH": ScriptType.HAN,
    "CJK COMPATIBILITY IDEOGRAPH": ScriptType.HAN,
    "CJK RADICAL": ScriptType.HAN,
    "KANGXI RADICAL": ScriptType.HAN,
    "IDEOGRAPHIC ITERATION MARK": ScriptType.HAN,
    "IDEOGRAPHIC CLOSING MARK": ScriptType.HAN,
    "IDEOGRAPHIC NUMBER ZERO": ScriptType.HAN,
    "CANADIAN SYLLABICS": ScriptType.CANADIAN_ABORIGINAL,
    "PHAGS-PA": ScriptType.PHAGS_PA,
    "EGYPTIAN HIEROGLYPH": ScriptType.EGYPTIAN_HIEROGLYPHS,
    "ANATOLIAN HIEROGLYPH": ScriptType.ANATOLIAN_HIEROGLYPHS,
    "MEROITIC HIEROGLYPHIC": ScriptType.MEROITIC_HIEROGLYPHS,
    "KATAKANA-HIRAGANA": ScriptType.COMMON,
    "COMBINING": ScriptType.INHERITED,
    "VARIATION SELECTOR": ScriptType.INHERITED,
}

_WIDTH_PREFIXES = ("FULLWIDTH ", "HALFWIDTH ")


def _build_prefixes() -> list[tuple[str, ScriptType]]:
    table = {
        script.name.replace("_", " "): script
        for script in ScriptType
        if script not in (ScriptType.COMMON, ScriptType.INHERITED)
    }
    table.update(_EXTRA_PREFIXES)
    return sorted(table.items(), key=lambda item: len(item[0]), reverse=True)


_PREFIXES = _build_prefixes()


def _codepoint(c: int | str) -> int:
    if isinstance(c, str):
        if len(c) != 1:
            raise ValueError(f"expected a single character, got {c!r}")
        return ord(c)
    return int(c)


@lru_cache(maxsize=65536)
def _script_of(codepoint: int) -> ScriptType:
    if not 0 <= codepoint <= 0x10FFFF:
        return ScriptType.COMMON
    name = unicodedata.name(chr(codepoint), "")
    for width in _WIDTH_PREFIXES:
        if name.startswith(width):
            name = name[len(width):]
            break
    for prefix, script in _PREFIXES:
        if name == prefix or (
            name.startswith(prefix) and name[len(prefix)] in " -"
        ):
            return script
    return ScriptType.COMMON


def get_script(c: int | str) -> ScriptType:
    """Return the script of a code point or single character; COMMON if unknown."""
    return _script_of(_codepoint(c))