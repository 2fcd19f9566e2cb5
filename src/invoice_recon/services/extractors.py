"""
Heuristic field extractors for recognized invoice text.

Each extractor is a small total function: it never raises, and "nothing
plausible found" is returned as None. Extractors normalize their input
themselves (normalization is idempotent), so they accept raw or normalized text.

Strategy shared by the numeric pickers:
1. Keyword-anchored match: a label ("total", "price", Arabic equivalents)
   followed by at most 10 non-digit characters, then a number
2. Statistical fallback over every number in the text
   (largest for totals, smallest for unit prices)
"""

import re
from datetime import date
from typing import Optional

from .text_normalizer import normalize

PRODUCT_MAX_LENGTH = 60

# Digit run with at most one "." or "," part: 7 | 450 | 1,234 | 12.50 | 12,50
_NUMBER = r"[0-9]+(?:[.,][0-9]+)?"
_NUMBER_RE = re.compile(_NUMBER)

# Everything except digits, separators and whitespace is dropped before tokenizing
_NON_NUMERIC_RE = re.compile(r"[^0-9.,\s]")

# Keyword window: up to 10 non-digit characters between label and number
_AMOUNT_KEYWORD_RE = re.compile(
    r"(?:total|amount|الإجمالي|الإجمالى|المجموع|المبلغ)[^0-9]{0,10}(" + _NUMBER + ")",
    re.IGNORECASE,
)
_PRICE_KEYWORD_RE = re.compile(
    r"(?:unit\s*price|price|سعر الوحدة|السعر)[^0-9]{0,10}(" + _NUMBER + ")",
    re.IGNORECASE,
)

# yyyy-mm-dd first: unambiguous, so it can't swap day and month
_ISO_DATE_RE = re.compile(r"([0-9]{4})[/\-]([0-9]{1,2})[/\-]([0-9]{1,2})")
# dd-mm-yy or dd-mm-yyyy
_SHORT_DATE_RE = re.compile(r"([0-9]{1,2})[/\-]([0-9]{1,2})[/\-]([0-9]{2,4})")

_PRODUCT_LABEL_RE = re.compile(r"(?:product|item|اسم المنتج|المنتج)", re.IGNORECASE)
_NUMERIC_LINE_RE = re.compile(r"^[0-9.,\-]+$")


def _to_number(token: str) -> float:
    """Convert a token to float, dropping commas: '1,234' -> 1234, '12,50' -> 1250"""
    return float(token.replace(",", ""))


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def numbers_in_text(text: str | None) -> list[float]:
    """
    Every numeric token in the text, in reading order.

    Letters and symbols are stripped first (OCR often glues currency marks or
    stray glyphs to digits), then integer/decimal tokens are parsed with
    grouping commas removed.
    """
    stripped = _NON_NUMERIC_RE.sub("", normalize(text))
    return [_to_number(token) for token in _NUMBER_RE.findall(stripped)]


def extract_date(text: str | None) -> Optional[date]:
    """
    Find the invoice date.

    Tries yyyy-mm-dd before dd-mm-yy(yy), taking the first occurrence of each
    shape. A shape whose first occurrence is not a real calendar date (e.g.
    2024-13-40) falls through to the next one. Two-digit years mean 20YY.
    """
    t = normalize(text)

    m = _ISO_DATE_RE.search(t)
    if m:
        found = _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        if found:
            return found

    m = _SHORT_DATE_RE.search(t)
    if m:
        day, month, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
        if year < 100:
            year += 2000
        found = _safe_date(year, month, day)
        if found:
            return found

    return None


def extract_amount(text: str | None) -> Optional[float]:
    """Invoice total: labelled number if any, else the largest number present"""
    t = normalize(text)
    m = _AMOUNT_KEYWORD_RE.search(t)
    if m:
        return _to_number(m.group(1))
    numbers = numbers_in_text(t)
    return max(numbers) if numbers else None


def extract_price(text: str | None) -> Optional[float]:
    """Unit price: labelled number if any, else the smallest number present"""
    t = normalize(text)
    m = _PRICE_KEYWORD_RE.search(t)
    if m:
        return _to_number(m.group(1))
    numbers = numbers_in_text(t)
    return min(numbers) if numbers else None


def extract_product(text: str | None) -> Optional[str]:
    """
    Product label of the invoice.

    Pass 1: the line right after a "product"/"item" label, unless that line
    is just a number. Pass 2: the longest non-numeric line (first one wins on
    ties). Results are cut to PRODUCT_MAX_LENGTH characters.
    """
    lines = [line.strip() for line in normalize(text).splitlines()]
    lines = [line for line in lines if line]

    for i, line in enumerate(lines[:-1]):
        if not _PRODUCT_LABEL_RE.search(line):
            continue
        following = lines[i + 1].lstrip(":：").strip()
        if following and not _NUMERIC_LINE_RE.match(following):
            return following[:PRODUCT_MAX_LENGTH]

    longest = ""
    for line in lines:
        if _NUMERIC_LINE_RE.match(line):
            continue
        if len(line) > len(longest):
            longest = line

    return longest[:PRODUCT_MAX_LENGTH] or None
