"""Scalar normalization helpers shared by extractors and column coercion."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any


def _normalize_number_text(text: str) -> str:
    """
    Plain decimal notation for ``text``.

    Italian grouping is accepted: "1.234,56" and "12,5" become "1234.56" and
    "12.5"; "1,234.56" (comma grouping) becomes "1234.56".
    """
    text = text.strip().replace(" ", "").replace("\u00a0", "")
    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            return text.replace(".", "").replace(",", ".")
        return text.replace(",", "")
    if text.count(",") == 1:
        return text.replace(",", ".")
    if text.count(".") > 1:
        return text.replace(".", "")
    return text


def to_decimal(value: Any) -> Decimal | None:
    """Decimal for numbers and numeric strings; None otherwise (bools included)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        number = Decimal(str(value))
        return number if number.is_finite() else None
    if isinstance(value, str) and value.strip():
        try:
            number = Decimal(_normalize_number_text(value))
        except InvalidOperation:
            return None
        return number if number.is_finite() else None
    return None


def as_year(value: Any) -> int | None:
    """Four-digit-ish year from an int or digit string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        year = value
    elif isinstance(value, str) and value.strip().isdigit():
        year = int(value.strip())
    else:
        return None
    return year if 1 <= year <= 9999 else None


def text_value(value: Any) -> str | None:
    """Stripped string for scalar values; None for blanks and containers."""
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text or None
