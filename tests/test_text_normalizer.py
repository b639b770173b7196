import pytest

from text_normalizer import (
    apply_plate_pattern,
    collapse_whitespace,
    drop_single_characters,
    fix_ambiguous_glyphs,
    normalize_plate_text,
    split_letter_digit_groups,
    strip_special_characters,
)


def test_strip_special_characters_keeps_alnum_and_spaces():
    assert strip_special_characters("  ab-12|3 c!\n") == "ab123 c"


@pytest.mark.parametrize(
    "text,expected",
    [
        ("O1234", "01234"),
        ("12O", "120"),
        ("I23", "123"),
        ("4I", "41"),
        ("Z9", "29"),
        ("S1", "51"),
        ("B2", "82"),
        ("AB1O", "A810"),  # O after 1 becomes 0, then B before 0 becomes 8
        ("OAK", "OAK"),
        ("9Z", "9Z"),
    ],
)
def test_fix_ambiguous_glyphs(text, expected):
    assert fix_ambiguous_glyphs(text) == expected


@pytest.mark.parametrize(
    "text,expected",
    [
        ("ABC123", "ABC 123"),
        ("123ABC", "123 ABC"),
        ("12AB34", "12AB 34"),
        ("AB", "AB"),
        ("ABCDEF", "ABCDEF"),
        ("AB 123", "AB 123"),
    ],
)
def test_split_letter_digit_groups(text, expected):
    assert split_letter_digit_groups(text) == expected


@pytest.mark.parametrize(
    "text,expected",
    [
        ("ABC123", "ABC 123"),
        ("AB1234", "AB 1234"),
        ("A12345", "A 12345"),
        ("123ABC", "123 ABC"),
        ("AB 123CD", "AB 123CD"),
        ("AB123C", "AB 123C"),
        ("ABCD12", "ABCD12"),
    ],
)
def test_apply_plate_pattern(text, expected):
    assert apply_plate_pattern(text) == expected


def test_drop_single_characters():
    assert collapse_whitespace(drop_single_characters("X AB 7 123")) == "AB 123"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("ABC123", "ABC 123"),
        ("123ABC", "123 ABC"),
        ("O1234", "01234"),
        ("xy-123", "XY 123"),
        ("  ab 1234\n", "AB 1234"),
        ("AB 123CD", "AB 123CD"),
        ("A12345", "12345"),
        ("AB1O", "810"),
        ("X 7 ABC 123", "ABC 123"),
        ("KA 05 MH 1234", "KA 05 MH 1234"),
        ("!!!", ""),
        ("", ""),
        ("   ", ""),
    ],
)
def test_normalize_plate_text(raw, expected):
    assert normalize_plate_text(raw) == expected


def test_ambiguous_letter_before_digit_changes_full_result():
    # B before a digit reads as 8, which leaves a lone A to drop.
    assert normalize_plate_text("AB1234") == "81234"


@pytest.mark.parametrize(
    "raw",
    [
        "ABC123",
        "AB1234",
        "A12345",
        "123ABC",
        "O1234",
        "AB1O",
        "xy-123",
        "Z9 S1 B2",
        "hello world",
        "AB C 123",
        "MH12 AB 1234",
        "AB12CD3",
        "XS12AB4",
        "",
    ],
)
def test_normalize_is_idempotent(raw):
    once = normalize_plate_text(raw)
    assert normalize_plate_text(once) == once


@pytest.mark.parametrize(
    "raw,expected",
    [
        # A lone leading token is dropped, leaving groups that split again.
        ("AB12CD3", "812 CD"),
        ("XS12AB4", "512A 84"),
    ],
)
def test_normalize_repeats_until_stable(raw, expected):
    assert normalize_plate_text(raw) == expected
