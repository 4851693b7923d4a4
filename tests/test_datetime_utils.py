from datetime import datetime, time, timezone

from nexusflow.utils.datetime_utils import parse_time_of_day, to_naive_utc, to_utc

from tests.factories import local_time


class TestUtcConversion:
    """Storage is naive UTC; comparisons are aware UTC."""

    def test_naive_is_read_as_utc(self):
        assert to_utc(datetime(2024, 6, 10, 12, 0)) == datetime(
            2024, 6, 10, 12, 0, tzinfo=timezone.utc
        )

    def test_aware_is_converted(self):
        # 09:00 in Sao Paulo is 12:00 UTC
        assert to_utc(local_time(9)) == datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc)

    def test_naive_utc_storage_form(self):
        assert to_naive_utc(local_time(9)) == datetime(2024, 6, 10, 12, 0)
        assert to_naive_utc(datetime(2024, 6, 10, 12, 0)) == datetime(2024, 6, 10, 12, 0)


class TestParseTimeOfDay:
    def test_hours_and_minutes(self):
        assert parse_time_of_day("09:30") == time(9, 30)

    def test_postgres_time_with_seconds(self):
        assert parse_time_of_day("23:05:10") == time(23, 5, 10)

    def test_malformed_values(self):
        for value in (None, "", "nine", "25:00", "09", "09:00:00:00"):
            assert parse_time_of_day(value) is None
