"""
Unit tests for calendar-day keys.

Day keys must come out the same whatever the host's UTC offset, so most
tests here run under several fixed-offset time zones. POSIX TZ strings
("PST+8" is UTC-8) are used so no tz database is needed.
"""

import time
from datetime import date, datetime, timedelta, timezone

import pytest

from src.core.tracking.dates import (
    format_day_key,
    parse_day_key,
    start_of_day,
    start_of_day_millis,
    to_day_key,
    to_local_datetime,
)
from src.core.tracking.models import StoreTimestamp

ZONES = ["UTC0", "PST+8", "BRT+3", "JST-9", "LINT-14", "HST+10"]


@pytest.fixture(params=ZONES)
def host_zone(request, monkeypatch):
    """Run the test as if the host were in the given zone."""
    monkeypatch.setenv("TZ", request.param)
    time.tzset()
    yield request.param
    monkeypatch.undo()
    time.tzset()


def _local_millis(*args) -> int:
    return int(datetime(*args).timestamp() * 1000)


# ---------------------------------------------------------------------------
# to_day_key
# ---------------------------------------------------------------------------

class TestDayKeyAcrossZones:
    """The same local moment always lands on the same day key."""

    def test_date_only_string_keeps_its_day(self, host_zone):
        """
        Given a bare "YYYY-MM-DD" string
        When it is keyed on a host in any zone
        Then the key is that same day, not the day before
        """
        assert to_day_key("2024-03-15") == "2024-03-15"

    def test_late_evening_millis_stay_on_local_day(self, host_zone):
        millis = _local_millis(2024, 3, 15, 23, 30)
        assert to_day_key(millis) == "2024-03-15"

    def test_early_morning_millis_stay_on_local_day(self, host_zone):
        millis = _local_millis(2024, 3, 15, 0, 15)
        assert to_day_key(millis) == "2024-03-15"

    def test_store_timestamp_uses_local_day(self, host_zone):
        ts = StoreTimestamp.from_datetime(datetime(2024, 3, 15, 23, 59))
        assert to_day_key(ts) == "2024-03-15"

    def test_serialized_timestamp_mapping(self, host_zone):
        ts = StoreTimestamp.from_datetime(datetime(2024, 3, 15, 6, 0))
        assert to_day_key({"_seconds": ts.seconds, "_nanoseconds": 0}) == "2024-03-15"

    def test_date_object(self, host_zone):
        assert to_day_key(date(2024, 3, 15)) == "2024-03-15"


class TestAwareInputs:
    """Inputs carrying their own offset are converted to host-local time."""

    @pytest.mark.parametrize("zone,expected", [
        ("UTC0", "2024-03-15"),
        ("EST+5", "2024-03-15"),
        ("JST-9", "2024-03-16"),
    ])
    def test_utc_iso_string(self, monkeypatch, zone, expected):
        monkeypatch.setenv("TZ", zone)
        time.tzset()
        try:
            assert to_day_key("2024-03-15T23:30:00Z") == expected
        finally:
            monkeypatch.undo()
            time.tzset()

    def test_aware_datetime(self, monkeypatch):
        monkeypatch.setenv("TZ", "JST-9")
        time.tzset()
        try:
            moment = datetime(2024, 3, 15, 20, 0, tzinfo=timezone(timedelta(hours=-3)))
            # 23:00 UTC is 08:00 the next day in UTC+9
            assert to_day_key(moment) == "2024-03-16"
        finally:
            monkeypatch.undo()
            time.tzset()


class TestUnparsableInput:
    """to_day_key is total: bad input falls back to the current day."""

    @pytest.mark.parametrize("value", [
        "not a date",
        "",
        None,
        "2024-02-30",
        float("nan"),
        True,
        {"nanoseconds": 3},
        object(),
    ])
    def test_falls_back_to_now(self, value):
        now = datetime(2020, 1, 2, 10, 0)
        assert to_day_key(value, now=now) == "2020-01-02"

    def test_out_of_range_millis(self):
        now = datetime(2020, 1, 2, 10, 0)
        assert to_day_key(10 ** 20, now=now) == "2020-01-02"

    def test_without_now_uses_today(self):
        assert to_day_key("garbage") == format_day_key(datetime.now())


# ---------------------------------------------------------------------------
# to_local_datetime
# ---------------------------------------------------------------------------

class TestToLocalDatetime:

    def test_date_only_string_is_local_noon(self):
        assert to_local_datetime("2024-03-15") == datetime(2024, 3, 15, 12, 0)

    def test_naive_datetime_passes_through(self):
        moment = datetime(2024, 3, 15, 7, 45)
        assert to_local_datetime(moment) is moment

    def test_result_is_naive(self):
        result = to_local_datetime("2024-03-15T10:00:00+02:00")
        assert result is not None
        assert result.tzinfo is None

    def test_objects_with_their_own_conversion(self):
        class SdkTimestamp:
            def to_datetime(self):
                return datetime(2024, 3, 15, 9, 0)

        assert to_local_datetime(SdkTimestamp()) == datetime(2024, 3, 15, 9, 0)

    def test_returns_none_for_garbage(self):
        assert to_local_datetime("15/03/2024 oops") is None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestDayKeyHelpers:

    def test_format_pads_month_and_day(self):
        assert format_day_key(date(2024, 3, 5)) == "2024-03-05"

    def test_parse_accepts_unpadded(self):
        assert parse_day_key("2024-3-5") == date(2024, 3, 5)

    @pytest.mark.parametrize("value", ["2024/03/05", "yesterday", "2024-13-01", ""])
    def test_parse_rejects_invalid(self, value):
        with pytest.raises(ValueError):
            parse_day_key(value)

    def test_start_of_day_is_local_midnight(self):
        assert start_of_day(datetime(2024, 3, 15, 17, 20)) == datetime(2024, 3, 15)

    def test_start_of_day_millis_keys_to_same_day(self, host_zone):
        millis = start_of_day_millis(datetime(2024, 3, 15, 17, 20))
        assert to_day_key(millis) == "2024-03-15"
