from datetime import date

import pytest

from services import recurrence
from services.recurrence import RecurrenceError, compute_next_occurrence


@pytest.fixture()
def fixed_today(monkeypatch):
    day = date(2024, 3, 6)  # Wednesday
    monkeypatch.setattr(recurrence, "today", lambda: day)
    return day


def test_first_occurrence_on_or_after_today(fixed_today):
    assert compute_next_occurrence("FREQ=WEEKLY;BYDAY=MO") == date(2024, 3, 11)


def test_today_counts_when_rule_matches(fixed_today):
    assert compute_next_occurrence("FREQ=DAILY") == fixed_today


def test_rrule_prefix_is_accepted(fixed_today):
    assert compute_next_occurrence("RRULE:FREQ=WEEKLY;BYDAY=FR") == date(2024, 3, 8)


def test_exclude_date_skips_that_day(fixed_today):
    start = date(2024, 3, 1)
    assert compute_next_occurrence("FREQ=WEEKLY;BYDAY=FR", start, start) == date(2024, 3, 8)
    assert compute_next_occurrence("FREQ=DAILY", start, start) == date(2024, 3, 2)


def test_exclude_date_ignores_today(fixed_today):
    # Completing an overdue task advances from its own due date.
    start = date(2024, 2, 1)
    assert compute_next_occurrence("FREQ=MONTHLY;BYMONTHDAY=1", start, start) == date(2024, 3, 1)


def test_exhausted_rule_returns_none(fixed_today):
    start = date(2024, 3, 1)
    assert compute_next_occurrence("FREQ=DAILY;COUNT=1", start, start) is None


def test_falls_back_to_start_when_no_future_occurrence(fixed_today):
    start = date(2024, 1, 1)
    assert compute_next_occurrence("FREQ=DAILY;COUNT=1", start) == start


@pytest.mark.parametrize("rule", ["", "   ", "RRULE:", "FREQ=SOMETIMES"])
def test_invalid_rules_raise(rule, fixed_today):
    with pytest.raises(RecurrenceError):
        compute_next_occurrence(rule)


@pytest.mark.parametrize(
    "rule",
    [
        "FREQ=DAILY;UNTIL=20240310T000000",
        "FREQ=DAILY;UNTIL=20240310",
        "FREQ=DAILY;UNTIL=20240310T000000Z",
    ],
)
def test_until_with_or_without_utc_marker(rule, fixed_today):
    start = date(2024, 3, 1)
    assert compute_next_occurrence(rule, start, start) == date(2024, 3, 2)
    assert compute_next_occurrence(rule, start, date(2024, 3, 9)) == date(2024, 3, 10)
    assert compute_next_occurrence(rule, start, date(2024, 3, 10)) is None
