import pytest

from piecetrain.unicode_script import ScriptType, get_script


@pytest.mark.parametrize(
    "char, expected",
    [
        ("京", ScriptType.HAN),
        ("太", ScriptType.HAN),
        ("い", ScriptType.HIRAGANA),
        ("グ", ScriptType.KATAKANA),
        ("ー", ScriptType.COMMON),
        ("a", ScriptType.LATIN),
        ("A", ScriptType.LATIN),
        ("0", ScriptType.COMMON),
        ("$", ScriptType.COMMON),
        ("@", ScriptType.COMMON),
        ("-", ScriptType.COMMON),
    ],
)
def test_get_script_source_cases(char, expected):
    assert get_script(char) is expected


@pytest.mark.parametrize(
    "char, expected",
    [
        ("α", ScriptType.GREEK),
        ("ж", ScriptType.CYRILLIC),
        ("한", ScriptType.HANGUL),
        ("\u0301", ScriptType.INHERITED),
        ("１", ScriptType.COMMON),
        ("Ａ", ScriptType.LATIN),
        ("ｸ", ScriptType.KATAKANA),
        ("\u0660", ScriptType.ARABIC),
        ("ก", ScriptType.THAI),
        (" ", ScriptType.COMMON),
    ],
)
def test_get_script_other_scripts(char, expected):
    assert get_script(char) is expected


def test_get_script_accepts_code_points():
    assert get_script(ord("京")) is ScriptType.HAN
    assert get_script(0x61) is ScriptType.LATIN
    assert get_script(0x30FC) is ScriptType.COMMON


@pytest.mark.parametrize("codepoint", [-1, 0x110000, 0xD800, 0x0000])
def test_invalid_or_unnamed_code_points_are_common(codepoint):
    assert get_script(codepoint) is ScriptType.COMMON


def test_multi_character_string_rejected():
    with pytest.raises(ValueError):
        get_script("ab")


def test_script_values_follow_declaration_order():
    members = list(ScriptType)
    assert members[0] is ScriptType.ADLAM
    assert members[-1] is ScriptType.YI
    assert [m.value for m in members] == list(range(len(members)))
    assert get_script("京").value == 41
    assert get_script("0").value == 23
    assert get_script("a").value == 61