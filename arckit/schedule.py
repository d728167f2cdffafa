"""Matching of one-time and recurring time periods."""

from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass

from dateutil import rrule

_FREQUENCIES = {
    "Daily": (rrule.DAILY, 0, 0, 1),
    "Weekly": (rrule.WEEKLY, 0, 0, 7),
    "Monthly": (rrule.MONTHLY, 0, 1, 0),
    "Yearly": (rrule.YEARLY, 1, 0, 0),
}

_SMALLEST_STEP = _dt.timedelta(microseconds=1)


@dataclass(frozen=True)
class RecurrenceRule:
    """How often a period repeats, and until when.

    An empty ``frequency`` means the period happens once; ``until_time``
    of None means it repeats forever.
    """

    frequency: str = ""
    until_time: _dt.datetime | None = None


def _format_rfc3339(moment: _dt.datetime) -> str:
    text = moment.replace(microsecond=0).isoformat()
    if moment.utcoffset() == _dt.timedelta(0):
        text = text.removesuffix("+00:00") + "Z"
    return text


@dataclass(frozen=True)
class Period:
    """A span of time between two instants."""

    start_time: _dt.datetime
    end_time: _dt.datetime

    def __str__(self) -> str:
        return f"{_format_rfc3339(self.start_time)}-{_format_rfc3339(self.end_time)}"


def _add_date(moment: _dt.datetime, years: int, months: int, days: int) -> _dt.datetime:
    """Add calendar units, letting overflowing days roll into the next month."""
    month_index = moment.month - 1 + months
    year = moment.year + years + month_index // 12
    month = month_index % 12 + 1
    first = moment.replace(year=year, month=month, day=1)
    return first + _dt.timedelta(days=moment.day - 1 + days)


def match_schedule(
    now: _dt.datetime,
    start_time: _dt.datetime,
    end_time: _dt.datetime,
    recurrence_rule: RecurrenceRule,
) -> tuple[Period | None, Period | None]:
    """Return the period active at ``now`` and the next upcoming one.

    Either may be None. Raises ValueError for an unknown frequency or for
    a period longer than its frequency.
    """
    frequency = recurrence_rule.frequency

    if frequency == "":
        if now < start_time:
            return None, Period(start_time, end_time)
        if now < end_time:
            return Period(start_time, end_time), None
        return None, None

    try:
        freq_value, years, months, days = _FREQUENCIES[frequency]
    except KeyError:
        raise ValueError(
            f'invalid freq {frequency!r}: It must be one of "Daily", "Weekly", '
            '"Monthly", and "Yearly"'
        ) from None

    freq_later = _add_date(now, years, months, days)
    freq_duration = freq_later - now

    override_duration = end_time - start_time
    if override_duration > freq_duration:
        raise ValueError(
            f"override's duration {override_duration} must be equal to or shorter "
            f"than the duration implied by freq {frequency!r} ({freq_duration})"
        )

    rule = rrule.rrule(freq_value, dtstart=start_time, until=recurrence_rule.until_time)

    active_starts = rule.between(
        now - override_duration + _SMALLEST_STEP, now, inc=True
    )
    if len(active_starts) > 1:
        raise RuntimeError(
            f"[bug] unexpected number of active overrides found: {active_starts}"
        )

    active = None
    if active_starts:
        begin = active_starts[0]
        active = Period(begin, begin + override_duration)

    upcoming_starts = rule.between(now + _SMALLEST_STEP, freq_later, inc=True)
    upcoming = None
    if upcoming_starts:
        begin = upcoming_starts[0]
        upcoming = Period(begin, begin + override_duration)

    return active, upcoming