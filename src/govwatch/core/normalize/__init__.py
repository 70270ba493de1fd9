"""Normalization of extracted data into alerts and tender records."""

from .parsing import (
    ParsedDate,
    ParsedMoney,
    parse_date,
    parse_date_or_now,
    parse_money,
    extract_cell_date,
    looks_like_date,
    normalize_whitespace,
    truncate,
)
from .records import (
    NormalizedAlert,
    StageEntry,
    TenderRecord,
    build_tender_alert,
    dedupe_by_title,
    extract_region,
    format_soles,
)

__all__ = [
    # Parsing
    "ParsedDate",
    "ParsedMoney",
    "parse_date",
    "parse_date_or_now",
    "parse_money",
    "extract_cell_date",
    "looks_like_date",
    "normalize_whitespace",
    "truncate",
    # Records
    "NormalizedAlert",
    "StageEntry",
    "TenderRecord",
    "build_tender_alert",
    "dedupe_by_title",
    "extract_region",
    "format_soles",
]
