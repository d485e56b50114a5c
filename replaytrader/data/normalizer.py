"""
Normalizer module.
Turns raw delimited text into canonical, time-ordered bars.
"""

from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Optional
import math
import re

from loguru import logger

from replaytrader.data.candles import Bar
from replaytrader.data.formats import (
    ColumnMapping,
    TimestampEncoding,
    choose_delimiter,
    detect_format,
    parse_timestamp,
)
from replaytrader.errors import FormatError, RowParseError


MIN_FIELDS = 5
_LINE_SPLIT = re.compile(r"\r?\n")


@dataclass
class IngestResult:
    """Output of one ingestion attempt."""
    bars: list[Bar]
    name: str
    encoding: TimestampEncoding
    delimiter: str
    dropped: list[RowParseError] = field(default_factory=list)

    @property
    def accepted_count(self) -> int:
        return len(self.bars)

    @property
    def dropped_count(self) -> int:
        return len(self.dropped)


def suggest_session_name(source_name: Optional[str], fallback: str = "Dataset") -> str:
    """File name without its last extension, e.g. 'BTCUSDT-1m.csv' -> 'BTCUSDT-1m'."""
    if not source_name:
        return fallback
    stem = PurePath(source_name).name
    if "." in stem.lstrip("."):
        stem = stem.rsplit(".", 1)[0]
    return stem or fallback


def _is_number(value: str) -> bool:
    try:
        float(value.strip().strip('"'))
    except ValueError:
        return False
    return True


def _parse_float(value: str) -> float:
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"Non-finite value: {value!r}")
    return number


def parse_row(fields: list[str], mapping: ColumnMapping, line_number: int) -> Bar:
    """
    Parse one split row into a Bar.

    Raises:
        RowParseError: Too few fields or a required field is not numeric
    """
    if len(fields) < MIN_FIELDS:
        raise RowParseError(line_number, f"expected at least {MIN_FIELDS} fields, got {len(fields)}")
    if max(mapping.required) >= len(fields) or min(mapping.required) < 0:
        raise RowParseError(line_number, "required column missing")

    cells = [f.strip().strip('"') for f in fields]
    try:
        time = parse_timestamp(cells[mapping.time], mapping.encoding)
        open_ = _parse_float(cells[mapping.open])
        high = _parse_float(cells[mapping.high])
        low = _parse_float(cells[mapping.low])
        close = _parse_float(cells[mapping.close])
    except (ValueError, OverflowError) as e:
        raise RowParseError(line_number, str(e)) from e

    volume = 0.0
    if 0 <= mapping.volume < len(cells):
        try:
            volume = max(_parse_float(cells[mapping.volume]), 0.0)
        except ValueError:
            volume = 0.0

    return Bar(time=time, open=open_, high=high, low=low, close=close, volume=volume)


def normalize_text(
    text: str,
    source_name: Optional[str] = None,
    fallback_name: str = "Dataset",
) -> IngestResult:
    """
    Parse delimited bar text into ascending canonical bars.

    Args:
        text: Full file contents
        source_name: Original file name, used to suggest a session name
        fallback_name: Session name used when no source name is given

    Returns:
        IngestResult with sorted bars and the rows that were dropped

    Raises:
        FormatError: Empty input, no column mapping, or no valid rows
    """
    delimiter = choose_delimiter(text)
    lines = [line for line in _LINE_SPLIT.split(text) if line.strip()]
    if len(lines) < 2:
        raise FormatError("File is empty or has no data rows")

    first = lines[0].split(delimiter)
    mapping = detect_format(first)
    has_header = not _is_number(first[0])
    start = 1 if has_header else 0
    logger.info(
        f"Detected format: {mapping.encoding.value} (delimiter={delimiter!r}, "
        f"header={has_header}). Parsing {len(lines) - start} rows..."
    )

    bars: list[Bar] = []
    dropped: list[RowParseError] = []
    for line_number, line in enumerate(lines[start:], start=start + 1):
        try:
            bars.append(parse_row(line.split(delimiter), mapping, line_number))
        except RowParseError as e:
            dropped.append(e)

    if dropped:
        logger.warning(f"Dropped {len(dropped)} unparseable rows (first: {dropped[0]})")
    if not bars:
        raise FormatError("No valid rows found")

    # Replay and aggregation rely on ascending order; sort is stable for duplicates
    bars.sort(key=lambda b: b.time)

    logger.info(f"Parsed {len(bars)} bars from {source_name or 'input'}")

    return IngestResult(
        bars=bars,
        name=suggest_session_name(source_name, fallback_name),
        encoding=mapping.encoding,
        delimiter=delimiter,
        dropped=dropped,
    )
