"""
Data module.
Format detection and normalization of tabular bar sources.
"""

from replaytrader.data.candles import Bar, TIMEFRAMES
from replaytrader.data.formats import ColumnMapping, TimestampEncoding, detect_format, parse_timestamp
from replaytrader.data.normalizer import IngestResult, normalize_text

__all__ = [
    "Bar",
    "TIMEFRAMES",
    "ColumnMapping",
    "TimestampEncoding",
    "detect_format",
    "parse_timestamp",
    "IngestResult",
    "normalize_text",
]
