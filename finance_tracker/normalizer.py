"""Cell value normalization.

Statement exports mix native spreadsheet values with locale-formatted text.
These helpers turn a single cell into a typed value: an ISO date string or a
``Decimal`` amount. They never raise on bad input; unparseable dates become
``None`` and unparseable amounts become zero, leaving the decision to reject
the row to the caller.
"""

from __future__ import annotations

import datetime as dt
import re
import unicodedata
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_AMOUNT_CHARS = re.compile(r"[^0-9.,\-]")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_DMY_DATE = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")

ZERO = Decimal("0")


def normalize_text(value: Any) -> str:
    """Case-fold, strip diacritics and collapse non-alphanumeric runs."""
    if value is None:
        return ""
    text = unicodedata.normalize("NFKD", str(value))
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return _NON_ALNUM.sub(" ", text.casefold()).strip()


def _build_date(year: int, month: int, day: int) -> Optional[dt.date]:
    try:
        return dt.date(year, month, day)
    except ValueError:
        return None


def _to_int(text: str) -> Optional[int]:
    text = text.strip()
    return int(text) if text.isdecimal() else None


def parse_date(value: Any, reference_date: Optional[dt.date] = None) -> Optional[str]:
    """Parse a statement date cell into ``YYYY-MM-DD``.

    ``DD/MM`` values take their year from ``reference_date`` (today when not
    given) and roll back one year when the month lies after the reference
    month. ``DD/MM/YY`` years are read as 2000+YY.
    """

    if value is None or value == "":
        return None
    if isinstance(value, dt.datetime):
        return value.date().isoformat()
    if isinstance(value, dt.date):
        return value.isoformat()

    text = str(value).strip()
    if not text:
        return None
    # Drop a trailing time component, e.g. "15/03/2024 10:22"
    text = text.split()[0]

    if "/" in text:
        parts = text.split("/")
        if len(parts) not in (2, 3):
            return None
        day, month = _to_int(parts[0]), _to_int(parts[1])
        if not day or not month:
            return None
        reference = reference_date or dt.date.today()
        if len(parts) == 3:
            year = _to_int(parts[2])
            if year is None:
                return None
            if year < 100:
                year += 2000
        else:
            year = reference.year
            if month > reference.month:
                year -= 1
        parsed = _build_date(year, month, day)
        return parsed.isoformat() if parsed else None

    return normalize_iso_date(text)


def normalize_iso_date(value: Any) -> Optional[str]:
    """Accept ``YYYY-MM-DD`` or ``DD-MM-YYYY`` (``/`` or ``-`` separated)."""
    if value is None:
        return None
    text = str(value).strip().replace("/", "-")
    match = _ISO_DATE.match(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
    else:
        match = _DMY_DATE.match(text)
        if not match:
            return None
        day, month, year = (int(g) for g in match.groups())
    parsed = _build_date(year, month, day)
    return parsed.isoformat() if parsed else None


def parse_amount(value: Any) -> Decimal:
    """Parse an amount cell, tolerating either decimal separator.

    With both separators present the right-most one is the decimal mark. A
    lone comma is a decimal mark unless it repeats. Parentheses and a trailing
    minus mark negatives. Anything unparseable is zero.
    """

    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        amount = Decimal(str(value))
        return amount if amount.is_finite() else ZERO

    text = str(value).strip()
    if not text:
        return ZERO
    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]
    if text.endswith("-"):
        negative = True
        text = text[:-1]

    cleaned = _AMOUNT_CHARS.sub("", text)
    if cleaned.startswith("-"):
        negative = True
    cleaned = cleaned.replace("-", "")

    has_comma, has_dot = "," in cleaned, "." in cleaned
    if has_comma and has_dot:
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif has_comma:
        if cleaned.count(",") > 1:
            cleaned = cleaned.replace(",", "")
        else:
            cleaned = cleaned.replace(",", ".")
    elif cleaned.count(".") > 1:
        cleaned = cleaned.replace(".", "")

    if not cleaned or cleaned == ".":
        return ZERO
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return ZERO
    return -amount if negative else amount


def count_integer_digits(value: Union[Decimal, int, float, str]) -> int:
    """Number of digits in the integer part, ignoring sign and leading zeros."""
    if isinstance(value, Decimal):
        text = format(value, "f")
    else:
        text = str(value)
    int_part = text.split(".")[0].lstrip("-+")
    int_part = "".join(ch for ch in int_part if ch.isdigit()).lstrip("0")
    return len(int_part) or 1
