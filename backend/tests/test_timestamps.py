"""Unit tests for timestamp normalization."""

import datetime as dt
import os
import time

import pandas as pd
import pytest

from cohort_engine.exceptions import TimestampParseError
from cohort_engine.timestamps import normalize_timestamp, sort_key


class TestNormalizeTimestamp:
    """Parsing keeps the wall-clock value as written."""

    def test_date_only_becomes_midnight(self):
        assert normalize_timestamp("2024-01-01") == dt.datetime(2024, 1, 1)

    def test_naive_datetime_keeps_fields(self):
        result = normalize_timestamp("2024-03-10 02:30:00")

        assert result == dt.datetime(2024, 3, 10, 2, 30)
        assert result.tzinfo is None

    def test_explicit_offset_is_converted_to_utc(self):
        result = normalize_timestamp("2024-01-01T10:30:00+02:00")

        assert result == dt.datetime(2024, 1, 1, 8, 30)
        assert result.tzinfo is None

    def test_surrounding_whitespace_is_ignored(self):
        assert normalize_timestamp("  2024-06-01T12:00:00  ") == dt.datetime(2024, 6, 1, 12)

    def test_accepts_parsed_values(self):
        assert normalize_timestamp(dt.datetime(2024, 1, 2, 3, 4)) == dt.datetime(2024, 1, 2, 3, 4)
        assert normalize_timestamp(dt.date(2024, 1, 2)) == dt.datetime(2024, 1, 2)
        assert normalize_timestamp(pd.Timestamp("2024-01-02 05:00")) == dt.datetime(2024, 1, 2, 5)

    @pytest.mark.skipif(not hasattr(time, "tzset"), reason="requires time.tzset")
    @pytest.mark.parametrize("zone", ["UTC", "America/Los_Angeles", "Asia/Tokyo"])
    def test_independent_of_process_timezone(self, monkeypatch, zone):
        monkeypatch.setenv("TZ", zone)
        time.tzset()
        try:
            result = normalize_timestamp("2024-01-01 09:15:00")
        finally:
            monkeypatch.undo()
            time.tzset()

        assert result == dt.datetime(2024, 1, 1, 9, 15)
        assert sort_key(result) == 1704100500000

    @pytest.mark.parametrize("value", ["", "   ", "not-a-date", "2024-13-45", "NaT", None, 12345])
    def test_malformed_input_raises(self, value):
        with pytest.raises(TimestampParseError):
            normalize_timestamp(value)

    @pytest.mark.parametrize("value", ["now", "today", "tomorrow", "yesterday", "NOW", " today "])
    def test_clock_relative_keywords_raise(self, value):
        with pytest.raises(TimestampParseError):
            normalize_timestamp(value)

    def test_error_keeps_offending_value(self):
        with pytest.raises(TimestampParseError) as excinfo:
            normalize_timestamp("yesterday-ish")

        assert excinfo.value.value == "yesterday-ish"


class TestSortKey:
    """Epoch-millisecond keys are deterministic and ordered."""

    def test_epoch_is_zero(self):
        assert sort_key(dt.datetime(1970, 1, 1)) == 0

    def test_milliseconds(self):
        assert sort_key(dt.datetime(1970, 1, 1, 0, 0, 1, 500000)) == 1500

    def test_before_epoch_is_negative(self):
        assert sort_key(dt.datetime(1969, 12, 31, 23, 59, 59)) == -1000

    def test_aware_values_are_read_in_utc(self):
        aware = dt.datetime(1970, 1, 1, 2, tzinfo=dt.timezone(dt.timedelta(hours=2)))

        assert sort_key(aware) == 0

    def test_preserves_ordering(self):
        earlier = normalize_timestamp("2024-01-01")
        later = normalize_timestamp("2024-01-02")

        assert sort_key(earlier) < sort_key(later)
