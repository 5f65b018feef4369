from datetime import date, datetime, timedelta, timezone
from pathlib import Path
import sys

sys.path.append(str(Path(__file__).resolve().parents[1]))

from datetime_utils import (
    UTC,
    ensure_utc,
    midnight_utc,
    start_of_week,
    to_rfc3339_utc,
)


def test_day_boundaries():
    day = date(2024, 2, 29)
    assert midnight_utc(day) == datetime(2024, 2, 29, tzinfo=UTC)


def test_start_of_week_is_monday():
    assert start_of_week(date(2024, 3, 6)) == date(2024, 3, 4)
    assert start_of_week(date(2024, 3, 4)) == date(2024, 3, 4)
    assert start_of_week(date(2024, 3, 10)) == date(2024, 3, 4)


def test_ensure_utc_handles_naive_and_offsets():
    assert ensure_utc(None) is None
    assert ensure_utc(datetime(2024, 1, 1, 12)).tzinfo == UTC
    plus_three = timezone(timedelta(hours=3))
    assert ensure_utc(datetime(2024, 1, 1, 12, tzinfo=plus_three)) == datetime(2024, 1, 1, 9, tzinfo=UTC)


def test_to_rfc3339_utc_drops_microseconds():
    value = datetime(2024, 3, 1, 10, 0, 0, 123456, tzinfo=UTC)
    assert to_rfc3339_utc(value) == "2024-03-01T10:00:00Z"
    assert to_rfc3339_utc(None) is None
