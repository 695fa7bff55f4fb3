"""Tests for the canonical clock."""

from datetime import date, datetime, timedelta, timezone

import numpy as np
import pandas as pd
import pytest

from tradereview.clock import (
    MILLISECONDS_THRESHOLD,
    EpochUnit,
    TimestampNormalizer,
    normalize_timestamp,
    parse_range,
    parse_range_bound,
)
from tradereview.errors import InvalidRange, MalformedTimestamp, ReviewErrorCode

TS = 1729771800  # 2024-10-24 12:10:00 UTC


class TestNormalizeTimestamp:
    def test_epoch_seconds_idempotent(self):
        assert normalize_timestamp(TS) == TS
        assert normalize_timestamp(normalize_timestamp(TS)) == TS

    def test_epoch_milliseconds(self):
        assert normalize_timestamp(TS * 1000) == TS

    def test_milliseconds_floor(self):
        assert normalize_timestamp(TS * 1000 + 999) == TS

    def test_threshold_boundary(self):
        assert normalize_timestamp(MILLISECONDS_THRESHOLD - 1) == MILLISECONDS_THRESHOLD - 1
        assert normalize_timestamp(MILLISECONDS_THRESHOLD) == MILLISECONDS_THRESHOLD // 1000

    def test_numpy_integer(self):
        assert normalize_timestamp(np.int64(TS)) == TS

    def test_fractional_seconds_floor(self):
        assert normalize_timestamp(TS + 0.75) == TS

    def test_digit_string(self):
        assert normalize_timestamp(str(TS)) == TS
        assert normalize_timestamp(str(TS * 1000)) == TS

    def test_aware_datetime(self):
        dt = datetime(2024, 10, 24, 12, 10, tzinfo=timezone.utc)
        assert normalize_timestamp(dt) == TS

    def test_aware_datetime_other_offset(self):
        dt = datetime(2024, 10, 24, 7, 10, tzinfo=timezone(timedelta(hours=-5)))
        assert normalize_timestamp(dt) == TS

    def test_naive_datetime_uses_source_timezone(self):
        naive = datetime(2024, 10, 24, 8, 10)
        # New York is UTC-4 in October (EDT).
        assert normalize_timestamp(naive, tz="America/New_York") == TS
        assert normalize_timestamp(naive) == TS - 4 * 3600

    def test_pandas_timestamp(self):
        assert normalize_timestamp(pd.Timestamp("2024-10-24 12:10:00", tz="UTC")) == TS
        assert normalize_timestamp(pd.Timestamp("2024-10-24 12:10:00.500")) == TS

    def test_numpy_datetime64(self):
        assert normalize_timestamp(np.datetime64("2024-10-24T12:10:00")) == TS

    def test_iso_strings(self):
        assert normalize_timestamp("2024-10-24T12:10:00Z") == TS
        assert normalize_timestamp("2024-10-24T08:10:00-04:00") == TS
        assert normalize_timestamp("2024-10-24 12:10:00") == TS

    def test_date(self):
        assert normalize_timestamp(date(2024, 10, 24)) == TS - (12 * 3600 + 600)

    @pytest.mark.parametrize("value", [None, float("nan"), float("inf"), True, "not a time", "", pd.NaT])
    def test_malformed(self, value):
        with pytest.raises(MalformedTimestamp) as exc_info:
            normalize_timestamp(value)
        assert exc_info.value.code == ReviewErrorCode.MALFORMED_TIMESTAMP

    def test_unsupported_type(self):
        with pytest.raises(MalformedTimestamp):
            normalize_timestamp(object())

    def test_explicit_unit(self):
        assert normalize_timestamp(60_000, unit=EpochUnit.MILLISECONDS) == 60
        assert normalize_timestamp(60_000) == 60_000


class TestTimestampNormalizer:
    def test_resolves_unit_once(self):
        clock = TimestampNormalizer()
        assert clock(TS * 1000) == TS
        assert clock.unit is EpochUnit.MILLISECONDS
        assert clock(TS * 1000 + 60_000) == TS + 60

    def test_rejects_mixed_units(self):
        clock = TimestampNormalizer()
        clock(TS * 1000)
        with pytest.raises(MalformedTimestamp):
            clock(TS)

    def test_pinned_unit_applies_to_small_values(self):
        clock = TimestampNormalizer(unit=EpochUnit.MILLISECONDS)
        assert clock(0) == 0
        assert clock(120_000) == 120

    def test_calendar_values_do_not_fix_unit(self):
        clock = TimestampNormalizer()
        assert clock("2024-10-24T12:10:00Z") == TS
        assert clock.unit is None
        assert clock(TS) == TS

    def test_first_numeric_value_after_calendar_fixes_unit(self):
        clock = TimestampNormalizer()
        assert clock("2024-10-24") == TS - (12 * 3600 + 10 * 60)
        assert clock(TS * 1000) == TS
        assert clock.unit is EpochUnit.MILLISECONDS
        with pytest.raises(MalformedTimestamp):
            clock(TS)


class TestParseRangeBound:
    def test_none_is_unbounded(self):
        assert parse_range_bound(None) is None

    def test_date_start_and_end(self):
        assert parse_range_bound("2024-10-24") == 1729728000
        assert parse_range_bound("2024-10-24", end=True) == 1729728000 + 86399

    def test_date_object(self):
        assert parse_range_bound(date(2024, 10, 24), end=True) == 1729814399

    def test_epoch_and_iso(self):
        assert parse_range_bound(TS) == TS
        assert parse_range_bound(str(TS)) == TS
        assert parse_range_bound("2024-10-24T12:10:00Z") == TS

    def test_rejects_other_formats(self):
        with pytest.raises(InvalidRange) as exc_info:
            parse_range_bound("10/24/2024")
        assert "Expected YYYY-MM-DD" in str(exc_info.value)
        assert exc_info.value.code == ReviewErrorCode.INVALID_RANGE

    def test_rejects_impossible_date(self):
        with pytest.raises(InvalidRange):
            parse_range_bound("2024-13-40")

    def test_parse_range(self):
        assert parse_range("2024-10-24", "2024-10-24") == (1729728000, 1729814399)
        assert parse_range(None, None) == (None, None)
