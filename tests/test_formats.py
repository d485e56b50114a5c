"""
Unit tests for format detection and timestamp parsing.
"""

import pytest

from replaytrader.data.formats import (
    ColumnMapping,
    TimestampEncoding,
    choose_delimiter,
    detect_format,
    find_column,
    normalize_headers,
    parse_timestamp,
)
from replaytrader.errors import FormatError


class TestHeaderHelpers:

    def test_normalize_strips_decoration_and_case(self):
        assert normalize_headers(['"Date"', " <OPEN> ", "High"]) == ["date", "open", "high"]

    def test_semicolon_only_without_commas(self):
        assert choose_delimiter("a;b;c\n1;2;3") == ";"
        assert choose_delimiter("a;b,c") == ","
        assert choose_delimiter("a,b,c") == ","

    def test_find_column_matches_suffix(self):
        headers = ["open_time", "price_open", "high"]
        assert find_column(headers, ["open"]) == 1
        assert find_column(headers, ["missing", "high"]) == 2
        assert find_column(headers, ["low"]) == -1


class TestDetectionRules:

    def test_open_time_header_uses_milliseconds(self):
        mapping = detect_format("open_time,open,high,low,close,volume".split(","))
        assert mapping == ColumnMapping(0, 1, 2, 3, 4, 5, TimestampEncoding.UNIX_MS)

    def test_binance_full_header_ignores_close_time(self):
        header = ("open_time,open,high,low,close,volume,close_time,"
                  "quote_volume,count,taker_buy_volume,taker_buy_quote_volume,ignore")
        mapping = detect_format(header.split(","))
        assert (mapping.close, mapping.volume) == (4, 5)

    def test_date_and_open_is_compact_date(self):
        mapping = detect_format("Date,Open,High,Low,Close,Volume".split(","))
        assert mapping.encoding == TimestampEncoding.COMPACT_DATE
        assert mapping.required == (0, 1, 2, 3, 4)
        assert mapping.volume == 5

    def test_histdata_header(self):
        header = "<DTYYYYMMDD>;<TICKTIME>;<OPEN>;<HIGH>;<LOW>;<CLOSE>;<VOL>"
        mapping = detect_format(header.split(";"))
        assert mapping.encoding == TimestampEncoding.COMPACT_DATETIME
        assert mapping.required == (0, 2, 3, 4, 5)
        assert mapping.volume == 6

    def test_generic_names_in_any_order(self):
        mapping = detect_format("close,low,high,open,timestamp".split(","))
        assert mapping.encoding == TimestampEncoding.ISO
        assert mapping.required == (4, 3, 2, 1, 0)
        assert mapping.volume == -1

    def test_headerless_positional(self):
        mapping = detect_format("1700000000,1,2,0.5,1.5,10".split(","))
        assert mapping == ColumnMapping(0, 1, 2, 3, 4, 5, TimestampEncoding.UNIX_AUTO)

    def test_headerless_without_volume(self):
        mapping = detect_format("1700000000,1,2,0.5,1.5".split(","))
        assert mapping.volume == -1

    def test_too_few_columns_is_format_error(self):
        with pytest.raises(FormatError):
            detect_format(["a", "b", "c"])

    @pytest.mark.parametrize("header", [
        "open_time,open,high,low,close,volume",
        "Date,Open,High,Low,Close,Volume",
        "<DTYYYYMMDD>,<TICKTIME>,<OPEN>,<HIGH>,<LOW>,<CLOSE>,<VOL>",
        "timestamp,open,high,low,close,volume",
    ])
    def test_detection_independent_of_trailing_columns(self, header):
        base = detect_format(header.split(","))
        extended = detect_format((header + ",extra_a,extra_b,notes").split(","))
        assert extended == base

    def test_custom_rule_list(self):
        def always_first(headers):
            return ColumnMapping(0, 1, 2, 3, 4, -1, TimestampEncoding.UNIX_AUTO)

        mapping = detect_format(["x"], rules=[always_first])
        assert mapping.encoding == TimestampEncoding.UNIX_AUTO


class TestParseTimestamp:

    @pytest.mark.parametrize("value,expected", [
        ("1700000000", 1700000000),
        ("1700000000000", 1700000000),
        ("1700000000123456", 1700000000),
    ])
    def test_unix_auto_by_magnitude(self, value, expected):
        assert parse_timestamp(value, TimestampEncoding.UNIX_AUTO) == expected

    def test_unix_ms(self):
        assert parse_timestamp("1700000000999", TimestampEncoding.UNIX_MS) == 1700000000

    @pytest.mark.parametrize("value", ["2021-01-05", "20210105", "2021/01/05", "2021.01.05"])
    def test_compact_date_is_utc_midnight(self, value):
        assert parse_timestamp(value, TimestampEncoding.COMPACT_DATE) == 1609804800

    def test_compact_datetime_with_time(self):
        assert parse_timestamp("20210105 170000", TimestampEncoding.COMPACT_DATETIME) == 1609804800 + 17 * 3600
        assert parse_timestamp("20210105 17:05", TimestampEncoding.COMPACT_DATETIME) == 1609804800 + 17 * 3600 + 300

    def test_compact_datetime_date_only(self):
        assert parse_timestamp("20210105", TimestampEncoding.COMPACT_DATETIME) == 1609804800

    def test_iso_naive_is_utc(self):
        assert parse_timestamp("2024-03-01 10:00:00", TimestampEncoding.ISO) == 1709287200

    def test_iso_with_offset(self):
        assert parse_timestamp("2024-03-01T12:00:00+02:00", TimestampEncoding.ISO) == 1709287200

    def test_iso_numeric_falls_back_to_epoch(self):
        assert parse_timestamp("1709287200000", TimestampEncoding.ISO) == 1709287200

    @pytest.mark.parametrize("value,encoding", [
        ("", TimestampEncoding.UNIX_AUTO),
        ("abc", TimestampEncoding.UNIX_MS),
        ("2021-13", TimestampEncoding.COMPACT_DATE),
        ("not a date", TimestampEncoding.ISO),
    ])
    def test_invalid_values_raise(self, value, encoding):
        with pytest.raises(ValueError):
            parse_timestamp(value, encoding)

    @pytest.mark.parametrize("value,encoding", [
        ("99999999999999999999999999", TimestampEncoding.UNIX_MS),
        ("99999999999999999999999999", TimestampEncoding.ISO),
        ("1e30", TimestampEncoding.UNIX_AUTO),
    ])
    def test_times_beyond_64_bits_rejected(self, value, encoding):
        with pytest.raises(ValueError):
            parse_timestamp(value, encoding)
