"""
Format detection for tabular bar sources.

Detection is a priority-ordered list of rules. Each rule inspects the
normalized header tokens and either returns a ColumnMapping or None.
The first rule that matches wins, so more specific layouts (exchange
exports, Stooq, HistData) are listed before the generic fallbacks.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional
import re

import pandas as pd

from replaytrader.errors import FormatError


class TimestampEncoding(str, Enum):
    """How the time column of a source is encoded."""
    UNIX_AUTO = "unix_auto"
    UNIX_MS = "unix_ms"
    ISO = "iso"
    COMPACT_DATE = "compact_date"
    COMPACT_DATETIME = "compact_datetime"


@dataclass
class ColumnMapping:
    """Column indices for one ingestion attempt. volume == -1 means absent."""
    time: int
    open: int
    high: int
    low: int
    close: int
    volume: int
    encoding: TimestampEncoding

    @property
    def required(self) -> tuple[int, ...]:
        return (self.time, self.open, self.high, self.low, self.close)


# Range of the store's BIGINT time column
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

_DECORATION = re.compile(r'[<>"]')
_DATE_SEPARATORS = re.compile(r"[-/.]")


def normalize_headers(tokens: list[str]) -> list[str]:
    """Case-fold header tokens and strip quoting/bracket decoration."""
    return [_DECORATION.sub("", t.strip().lower()).strip() for t in tokens]


def choose_delimiter(text: str) -> str:
    """`;` only when the text has semicolons and no commas."""
    return ";" if ";" in text and "," not in text else ","


def find_column(headers: list[str], names: list[str]) -> int:
    """Index of the first header equal to (or ending with) a candidate name."""
    for name in names:
        for idx, header in enumerate(headers):
            if header == name or header.endswith(name):
                return idx
    return -1


def _or_default(idx: int, default: int) -> int:
    return idx if idx >= 0 else default


# ============ Detection rules ============

def _detect_open_time(headers: list[str]) -> Optional[ColumnMapping]:
    # Binance klines export: open_time, open, high, low, close, volume, ...
    if "open_time" not in headers:
        return None
    return ColumnMapping(
        time=headers.index("open_time"),
        open=find_column(headers, ["open"]),
        high=find_column(headers, ["high"]),
        low=find_column(headers, ["low"]),
        close=find_column(headers, ["close"]),
        volume=find_column(headers, ["volume"]),
        encoding=TimestampEncoding.UNIX_MS,
    )


def _detect_date_open(headers: list[str]) -> Optional[ColumnMapping]:
    # Stooq: Date, Open, High, Low, Close, Volume
    if "date" not in headers or "open" not in headers:
        return None
    return ColumnMapping(
        time=headers.index("date"),
        open=find_column(headers, ["open"]),
        high=find_column(headers, ["high"]),
        low=find_column(headers, ["low"]),
        close=find_column(headers, ["close"]),
        volume=find_column(headers, ["volume", "vol"]),
        encoding=TimestampEncoding.COMPACT_DATE,
    )


def _detect_leading_date(headers: list[str]) -> Optional[ColumnMapping]:
    # HistData: <DTYYYYMMDD>;<TICKTIME>;<OPEN>;<HIGH>;<LOW>;<CLOSE>;<VOL>
    if not ("dtyyyymmdd" in headers or "date" in headers or "dt" in headers[0]):
        return None
    return ColumnMapping(
        time=0,
        open=_or_default(find_column(headers, ["open"]), 2),
        high=_or_default(find_column(headers, ["high"]), 3),
        low=_or_default(find_column(headers, ["low"]), 4),
        close=_or_default(find_column(headers, ["close"]), 5),
        volume=_or_default(find_column(headers, ["vol", "volume"]), 6),
        encoding=TimestampEncoding.COMPACT_DATETIME,
    )


def _detect_named_columns(headers: list[str]) -> Optional[ColumnMapping]:
    ts = find_column(headers, ["timestamp", "time", "datetime", "date"])
    op = find_column(headers, ["open"])
    hi = find_column(headers, ["high"])
    lo = find_column(headers, ["low"])
    cl = find_column(headers, ["close"])
    if min(ts, op, hi, lo, cl) < 0:
        return None
    return ColumnMapping(
        time=ts, open=op, high=hi, low=lo, close=cl,
        volume=find_column(headers, ["volume", "vol"]),
        encoding=TimestampEncoding.ISO,
    )


def _detect_positional(headers: list[str]) -> Optional[ColumnMapping]:
    # Headerless exports (e.g. raw Binance klines): ts, O, H, L, C, [V], ...
    if len(headers) < 5:
        return None
    return ColumnMapping(
        time=0, open=1, high=2, low=3, close=4,
        volume=5 if len(headers) > 5 else -1,
        encoding=TimestampEncoding.UNIX_AUTO,
    )


DetectionRule = Callable[[list[str]], Optional[ColumnMapping]]

DETECTION_RULES: list[DetectionRule] = [
    _detect_open_time,
    _detect_date_open,
    _detect_leading_date,
    _detect_named_columns,
    _detect_positional,
]


def detect_format(
    header_tokens: list[str],
    rules: Optional[list[DetectionRule]] = None,
) -> ColumnMapping:
    """
    Infer column semantics from the first line of a source.

    Args:
        header_tokens: Raw tokens of the first line
        rules: Override the default rule list (first match wins)

    Returns:
        ColumnMapping for the first matching rule

    Raises:
        FormatError: No rule matched
    """
    headers = normalize_headers(header_tokens)
    if headers:
        for rule in rules if rules is not None else DETECTION_RULES:
            mapping = rule(headers)
            if mapping is not None:
                return mapping
    raise FormatError(f"Unable to detect format from header: {header_tokens!r}")


# ============ Timestamp parsing ============

def _epoch_by_magnitude(value: str) -> int:
    """Seconds, milliseconds or microseconds chosen by digit count."""
    try:
        n = int(value)
    except ValueError:
        n = int(float(value))
    digits = len(str(abs(n)))
    if digits <= 10:
        return n
    if digits <= 13:
        return n // 1000
    return n // 1_000_000


def _compact_to_epoch(date_part: str, time_part: str = "") -> int:
    date_digits = _DATE_SEPARATORS.sub("", date_part)
    if len(date_digits) != 8 or not date_digits.isdigit():
        raise ValueError(f"Invalid compact date: {date_part!r}")
    hh = mm = ss = 0
    clock = time_part.replace(":", "")
    if clock:
        if len(clock) < 4 or not clock.isdigit():
            raise ValueError(f"Invalid compact time: {time_part!r}")
        hh, mm = int(clock[0:2]), int(clock[2:4])
        ss = int(clock[4:6]) if len(clock) >= 6 else 0
    dt = datetime(
        int(date_digits[0:4]), int(date_digits[4:6]), int(date_digits[6:8]),
        hh, mm, ss, tzinfo=timezone.utc,
    )
    return int(dt.timestamp())


def parse_timestamp(value: str, encoding: TimestampEncoding) -> int:
    """
    Convert a raw time field to UTC epoch seconds.

    Raises:
        ValueError: The field does not match the encoding, or the time does
            not fit a signed 64-bit integer
    """
    seconds = _to_epoch_seconds(value, encoding)
    if not INT64_MIN <= seconds <= INT64_MAX:
        raise ValueError(f"Timestamp out of range: {value.strip()!r}")
    return seconds


def _to_epoch_seconds(value: str, encoding: TimestampEncoding) -> int:
    value = value.strip()
    if not value:
        raise ValueError("Empty timestamp")

    if encoding == TimestampEncoding.UNIX_AUTO:
        return _epoch_by_magnitude(value)

    if encoding == TimestampEncoding.UNIX_MS:
        return int(float(value)) // 1000

    if encoding == TimestampEncoding.COMPACT_DATE:
        return _compact_to_epoch(value.split()[0])

    if encoding == TimestampEncoding.COMPACT_DATETIME:
        parts = value.replace("T", " ").split()
        return _compact_to_epoch(parts[0], parts[1] if len(parts) > 1 else "")

    # ISO-like text; bare numbers are epochs
    if re.fullmatch(r"\d+(\.\d+)?", value):
        return _epoch_by_magnitude(value)
    ts = pd.Timestamp(value)
    if pd.isna(ts):
        raise ValueError(f"Invalid timestamp: {value!r}")
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return int(ts.timestamp())
