"""
Clean up raw OCR output into a plate string.

Each step is a pure function; normalize_plate_text applies them in order.
"""

import logging
import re

logger = logging.getLogger(__name__)

_NON_PLATE_CHARS = re.compile(r"[^A-Za-z0-9\s]")

# Applied once each, in this order
AMBIGUOUS_GLYPHS = (
    (re.compile(r"O(?=\d)"), "0"),
    (re.compile(r"(?<=\d)O"), "0"),
    (re.compile(r"I(?=\d)"), "1"),
    (re.compile(r"(?<=\d)I"), "1"),
    (re.compile(r"Z(?=\d)"), "2"),
    (re.compile(r"S(?=\d)"), "5"),
    (re.compile(r"B(?=\d)"), "8"),
)

_WHITESPACE = re.compile(r"\s")
_LETTERS_THEN_DIGITS = re.compile(r"([A-Z]+)(\d+)")
_DIGITS_THEN_LETTERS = re.compile(r"(\d+)([A-Z]+)")

# (pattern, replacement), first match wins
PLATE_PATTERNS = (
    (re.compile(r"^([A-Z]{2})\s*(\d{3,4})([A-Z]{0,2})$"), r"\1 \2\3"),  # AB 1234, AB 123C
    (re.compile(r"^([A-Z]{1,2})(\d{2,5})$"), r"\1 \2"),  # A12345
    (re.compile(r"^([A-Z]{3})(\d{3})$"), r"\1 \2"),  # ABC123
    (re.compile(r"^(\d{1,3})([A-Z]{3})$"), r"\1 \2"),  # 123ABC
)

_SINGLE_CHAR_TOKEN = re.compile(r"\b[A-Z0-9]\b")
_WHITESPACE_RUN = re.compile(r"\s+")


def strip_special_characters(text):
    return _NON_PLATE_CHARS.sub("", text).strip()


def to_upper(text):
    return text.upper()


def fix_ambiguous_glyphs(text):
    """Swap letters that OCR confuses with digits when next to a digit."""
    for pattern, digit in AMBIGUOUS_GLYPHS:
        text = pattern.sub(digit, text)
    return text


def split_letter_digit_groups(text):
    """Insert a space at the first letter/digit boundary of an unspaced string.

    A letters-then-digits boundary is preferred over digits-then-letters.
    """
    if len(text) <= 2 or _WHITESPACE.search(text):
        return text

    match = _LETTERS_THEN_DIGITS.search(text) or _DIGITS_THEN_LETTERS.search(text)
    if match is None:
        return text

    boundary = match.end(1)
    return f"{text[:boundary]} {text[boundary:]}"


def apply_plate_pattern(text):
    """Reformat text matching a known plate layout as ``GROUP1 GROUP2``."""
    for pattern, replacement in PLATE_PATTERNS:
        match = pattern.match(text)
        if match:
            return match.expand(replacement)
    return text


def drop_single_characters(text):
    """Remove isolated one-character tokens, usually OCR noise."""
    return _SINGLE_CHAR_TOKEN.sub("", text)


def collapse_whitespace(text):
    return _WHITESPACE_RUN.sub(" ", text).strip()


NORMALIZATION_STEPS = (
    strip_special_characters,
    to_upper,
    fix_ambiguous_glyphs,
    split_letter_digit_groups,
    apply_plate_pattern,
    drop_single_characters,
    collapse_whitespace,
)


def normalize_plate_text(text):
    """Turn raw OCR text into a normalized plate string.

    The steps are repeated until the text stops changing, since dropping a
    lone token can leave an unspaced group that splits again.

    Args:
        text: Raw OCR text

    Returns:
        str: Normalized plate text, possibly empty
    """
    if not text or not text.strip():
        return ""

    processed = text
    while True:
        result = processed
        for step in NORMALIZATION_STEPS:
            result = step(result)
        if result == processed:
            break
        processed = result

    logger.debug("Post-processed %r -> %r", text, processed)
    return processed
