"""Next-occurrence computation for recurring tasks."""
from __future__ import annotations

from datetime import date, datetime, time
from typing import Optional

from dateutil.rrule import rrulestr

from datetime_utils import today


class RecurrenceError(ValueError):
    pass


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min)


def _day_end(day: date) -> datetime:
    return datetime.combine(day, time.max)


def _normalize_body(rrule: str) -> str:
    body = (rrule or "").strip()
    if body.upper().startswith("RRULE:"):
        body = body[len("RRULE:"):]
    parts = []
    for part in body.split(";"):
        name, sep, value = part.partition("=")
        # Rules run on floating calendar days, so a UTC UNTIL drops its "Z".
        if name.strip().upper() == "UNTIL" and value.upper().endswith("Z"):
            value = value[:-1]
        parts.append(f"{name}{sep}{value}")
    return ";".join(parts).strip()


def _build_rule(rrule: str, start: date):
    body = _normalize_body(rrule)
    if not body:
        raise RecurrenceError("Empty recurrence rule")
    try:
        return rrulestr(body, dtstart=_day_start(start))
    except (ValueError, TypeError) as exc:
        raise RecurrenceError(f"Invalid recurrence rule {rrule!r}: {exc}") from exc


def compute_next_occurrence(
    rrule: str,
    from_date: Optional[date] = None,
    exclude_date: Optional[date] = None,
) -> Optional[date]:
    """Return the next due date produced by ``rrule``.

    The rule starts at ``from_date`` (today when omitted). With
    ``exclude_date`` the result is the first occurrence strictly after that
    day, or ``None`` when the rule has run out. Without it the result is the
    first occurrence on or after today, falling back to the start date.
    """

    start = from_date or today()
    rule = _build_rule(rrule, start)

    if exclude_date is not None:
        nxt = rule.after(_day_end(exclude_date), inc=False)
        return nxt.date() if nxt else None

    nxt = rule.after(_day_start(today()), inc=True)
    if nxt:
        return nxt.date()
    return start


__all__ = ["RecurrenceError", "compute_next_occurrence"]
