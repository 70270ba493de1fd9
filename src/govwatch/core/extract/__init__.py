"""Extraction strategies for parsing portal HTML."""

from .base import (
    ExtractionMismatch,
    ExtractionResult,
    ExtractionStrategy,
    ListingItem,
    parse_document,
    resolve_link,
)
from .listing import SelectorCascadeStrategy
from .pipeline import ExtractionPipeline
from .results import ResultRow, ResultsGridParser
from .stages import (
    DateColumnStrategy,
    HeaderMatchStrategy,
    StageRowFilter,
    build_stage_pipeline,
    extract_stages,
)

__all__ = [
    "ExtractionMismatch",
    "ExtractionResult",
    "ExtractionStrategy",
    "ListingItem",
    "parse_document",
    "resolve_link",
    "SelectorCascadeStrategy",
    "ExtractionPipeline",
    "ResultRow",
    "ResultsGridParser",
    "DateColumnStrategy",
    "HeaderMatchStrategy",
    "StageRowFilter",
    "build_stage_pipeline",
    "extract_stages",
]
