"""
Extractor module - fetch a source URL and pull a block height out of it.
"""
from canister_prober.extractor.rules import (
    DEFAULT_CANISTER_HEIGHT_PATTERN,
    ExtractionRule,
    PatternCapture,
    RawInteger,
    parse_height,
)
from canister_prober.extractor.fetcher import HeightFetcher, fetch_height

__all__ = [
    "DEFAULT_CANISTER_HEIGHT_PATTERN",
    "ExtractionRule",
    "PatternCapture",
    "RawInteger",
    "parse_height",
    "HeightFetcher",
    "fetch_height",
]
