"""
Parsing utilities for normalizing extracted data.

Handles date and money parsing from the formats used on Peruvian
government portals (day-first numeric dates, long Spanish dates,
amounts in soles).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

import dateparser

from ..config.heuristics import SPANISH_MONTHS


# =============================================================================
# Date Parsing
# =============================================================================

# dd/mm/yyyy or dd-mm-yyyy with optional hh:mm[:ss]
LOCAL_DATE_RE = re.compile(
    r"(\d{1,2})[/-](\d{1,2})[/-](\d{4})(?:\s+(\d{1,2}):(\d{2})(?::(\d{2}))?)?"
)
ISO_DATE_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})(?:[T\s](\d{2}):(\d{2})(?::(\d{2}))?)?")
SPANISH_LONG_DATE_RE = re.compile(r"(\d{1,2})\s+de\s+(\w+)\s+de\s+(\d{4})", re.IGNORECASE)

# Date (with optional time) as it appears inside schedule cells
CELL_DATE_RE = re.compile(r"(\d{1,2}/\d{1,2}/\d{4}(?:\s+\d{1,2}:\d{2}(?::\d{2})?)?)")
LEADING_DATE_RE = re.compile(r"^\d{1,2}/\d{1,2}/\d{4}")


@dataclass
class ParsedDate:
    """Result of parsing a date string."""

    value: datetime | None
    original: str
    confidence: float  # 0.0 - 1.0
    format_detected: str | None = None


def parse_date(value: str | datetime | date | None) -> ParsedDate:
    """Parse a date/datetime from the formats seen on the source portals.

    Tries, in order:
    - ``dd/mm/yyyy[ hh:mm[:ss]]`` (also with ``-`` separators)
    - ``yyyy-mm-dd[ hh:mm[:ss]]``
    - ``dd de <mes> de yyyy`` with Spanish month names
    - dateparser (Spanish first) for other complete day, month and year forms

    Args:
        value: String or datetime to parse

    Returns:
        ParsedDate with parsed value and metadata (value is None when
        nothing matched)
    """
    if value is None:
        return ParsedDate(value=None, original="", confidence=0.0)

    if isinstance(value, datetime):
        return ParsedDate(value=value, original=value.isoformat(), confidence=1.0, format_detected="datetime")

    if isinstance(value, date):
        return ParsedDate(
            value=datetime.combine(value, time.min),
            original=value.isoformat(),
            confidence=1.0,
            format_detected="date",
        )

    original = str(value).strip()
    text = normalize_whitespace(original)
    if not text:
        return ParsedDate(value=None, original=original, confidence=0.0)

    result = _try_local_patterns(text)
    if result:
        return ParsedDate(value=result[0], original=original, confidence=result[1], format_detected=result[2])

    try:
        parsed = dateparser.parse(
            text,
            languages=["es", "en"],
            settings={
                "DATE_ORDER": "DMY",
                "PREFER_DAY_OF_MONTH": "first",
                "RETURN_AS_TIMEZONE_AWARE": False,
                # Only complete calendar dates; no relative phrases or timestamps
                "STRICT_PARSING": True,
                "PARSERS": ["absolute-time"],
            },
        )
    except (ValueError, TypeError, OverflowError):
        parsed = None

    if parsed:
        return ParsedDate(value=parsed, original=original, confidence=0.6, format_detected="dateparser")

    return ParsedDate(value=None, original=original, confidence=0.0)


def _try_local_patterns(text: str) -> tuple[datetime, float, str] | None:
    """Fast path for the numeric and long Spanish formats."""
    match = LOCAL_DATE_RE.search(text)
    if match:
        day, month, year, hour, minute, second = match.groups()
        try:
            dt = datetime(
                int(year), int(month), int(day),
                int(hour or 0), int(minute or 0), int(second or 0),
            )
            return dt, 0.95 if hour else 0.9, "dmy_time" if hour else "dmy"
        except ValueError:
            pass

    match = ISO_DATE_RE.search(text)
    if match:
        year, month, day, hour, minute, second = match.groups()
        try:
            dt = datetime(
                int(year), int(month), int(day),
                int(hour or 0), int(minute or 0), int(second or 0),
            )
            return dt, 0.95, "iso"
        except ValueError:
            pass

    match = SPANISH_LONG_DATE_RE.search(text)
    if match:
        day, month_name, year = match.groups()
        month = SPANISH_MONTHS.get(month_name.lower())
        if month:
            try:
                return datetime(int(year), month, int(day)), 0.9, "spanish_long"
            except ValueError:
                pass

    return None


def parse_date_or_now(value: str | datetime | date | None, now: datetime | None = None) -> datetime:
    """Parse a publication date, defaulting to ``now`` when nothing matches."""
    parsed = parse_date(value)
    if parsed.value is not None:
        return parsed.value
    return now or datetime.utcnow()


def extract_cell_date(text: str | None) -> str:
    """Return the ``dd/mm/yyyy[ hh:mm[:ss]]`` fragment of a cell, or ``""``."""
    if not text:
        return ""
    match = CELL_DATE_RE.search(text)
    return match.group(1) if match else ""


def looks_like_date(text: str | None) -> bool:
    """Check whether a cell starts with a ``dd/mm/yyyy`` date."""
    return bool(text and LEADING_DATE_RE.match(text.strip()))


# =============================================================================
# Money Parsing
# =============================================================================


@dataclass
class ParsedMoney:
    """Result of parsing a monetary value."""

    amount: Decimal | None
    currency: str
    original: str
    confidence: float


# Longer symbols first so "US$" wins over "$"
CURRENCY_SYMBOLS: list[tuple[str, str]] = [
    ("US$", "USD"),
    ("S/.", "PEN"),
    ("S/", "PEN"),
    ("$", "USD"),
    ("€", "EUR"),
]
CURRENCY_CODES = ["PEN", "USD", "EUR"]


def parse_money(
    value: str | float | Decimal | None,
    *,
    default_currency: str = "PEN",
) -> ParsedMoney:
    """Parse a monetary value such as ``S/ 1,250,000.00`` or ``USD 3.500,50``.

    Args:
        value: String or number to parse
        default_currency: Currency code when not detected

    Returns:
        ParsedMoney with parsed amount and currency
    """
    if value is None:
        return ParsedMoney(amount=None, currency=default_currency, original="", confidence=0.0)

    if isinstance(value, (int, float, Decimal)):
        return ParsedMoney(
            amount=Decimal(str(value)),
            currency=default_currency,
            original=str(value),
            confidence=1.0,
        )

    original = str(value).strip()
    if not original:
        return ParsedMoney(amount=None, currency=default_currency, original=original, confidence=0.0)

    text = original.upper()
    currency = default_currency
    confidence = 0.8

    for code in CURRENCY_CODES:
        if code in text:
            currency = code
            confidence = 0.95
            text = text.replace(code, "")
            break

    for symbol, code in CURRENCY_SYMBOLS:
        if symbol in text:
            currency = code
            confidence = max(confidence, 0.9)
            text = text.replace(symbol, "")
            break

    number_match = re.search(r"\d[\d,.]*", text)
    if number_match:
        amount = _parse_numeric(number_match.group())
        if amount is not None:
            return ParsedMoney(amount=amount, currency=currency, original=original, confidence=confidence)

    return ParsedMoney(amount=None, currency=currency, original=original, confidence=0.0)


def _parse_numeric(text: str) -> Decimal | None:
    """Parse a numeric string, handling both separator conventions."""
    text = text.strip().rstrip(".,")
    if not text:
        return None

    last_comma = text.rfind(",")
    last_period = text.rfind(".")

    if last_comma > last_period:
        # 1.234,56 unless the comma is a thousands separator (1,234)
        if len(text) - last_comma - 1 == 3 and last_period == -1:
            text = text.replace(",", "")
        else:
            text = text.replace(".", "").replace(",", ".")
    else:
        text = text.replace(",", "")

    try:
        return Decimal(text)
    except ArithmeticError:
        return None


# =============================================================================
# Utility Functions
# =============================================================================


def normalize_whitespace(text: Any) -> str:
    """Collapse runs of whitespace (including nbsp) into single spaces."""
    if text is None:
        return ""
    return " ".join(str(text).replace("\xa0", " ").split())


def truncate(text: str | None, limit: int) -> str:
    """Trim text to ``limit`` characters."""
    if not text:
        return ""
    return text[:limit]
