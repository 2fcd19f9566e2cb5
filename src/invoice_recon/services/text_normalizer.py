"""
Canonicalization of recognized invoice text.

OCR over bilingual (Arabic/Latin) invoices returns a mix of Eastern
Arabic-Indic and ASCII digits, and Arabic separators in place of ASCII ones.
Every extractor runs over the normalized form.
"""

ARABIC_INDIC_DIGITS = "٠١٢٣٤٥٦٧٨٩"

_TRANSLATION = str.maketrans(
    {
        **{digit: str(value) for value, digit in enumerate(ARABIC_INDIC_DIGITS)},
        "٬": ",",  # Arabic thousands separator
        "،": ",",  # Arabic comma
        "٫": ".",  # Arabic decimal separator
    }
)


def normalize(text: str | None) -> str:
    """
    Map Eastern Arabic-Indic digits to ASCII digits and Arabic separators to
    their ASCII equivalents. Nothing else is touched, so the result is stable
    under repeated application.

    Args:
        text: Raw recognized text (None and "" are accepted)

    Returns:
        Normalized text, "" for empty input
    """
    if not text:
        return ""
    return text.translate(_TRANSLATION)
