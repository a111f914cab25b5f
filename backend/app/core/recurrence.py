"""
Recurrence Rules

Events store their recurrence as an opaque string. This module parses that
string into a ``RecurrenceRule`` and expands it into occurrence start times.

Accepted grammar (a subset of RFC 5545 RRULE, case-insensitive, optional
``RRULE:`` prefix, parts separated by ``;``):

    FREQ=DAILY|WEEKLY|MONTHLY     required
    INTERVAL=n                    n >= 1, default 1
    BYDAY=MO,TU,WE,TH,FR,SA,SU    WEEKLY only; default: weekday of the series start
    BYMONTHDAY=d                  MONTHLY only, 1..31; default: day of the series start
    UNTIL=YYYYMMDD[THHMMSSZ]      inclusive upper bound
    COUNT=n                       total occurrences, counted from the series start

UNTIL and COUNT are mutually exclusive. The bare words ``daily``, ``weekly``
and ``monthly`` are shorthand for the matching FREQ. Months that lack
BYMONTHDAY are skipped rather than clamped.
"""

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Dict, Iterator, Optional, Tuple

from app.core import ensure_utc
from app.core.errors import MalformedRecurrenceRule

WEEKDAY_CODES: Dict[str, int] = {
    "MO": 0,
    "TU": 1,
    "WE": 2,
    "TH": 3,
    "FR": 4,
    "SA": 5,
    "SU": 6,
}

_KNOWN_KEYS = frozenset({"FREQ", "INTERVAL", "BYDAY", "BYMONTHDAY", "UNTIL", "COUNT"})


class Frequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: Frequency
    interval: int = 1
    # WEEKLY: 0=Monday..6=Sunday; empty means "weekday of the series start"
    weekdays: Tuple[int, ...] = ()
    # MONTHLY: None means "day of the series start"
    month_day: Optional[int] = None
    until: Optional[datetime] = None
    count: Optional[int] = None

    @property
    def is_bounded(self) -> bool:
        return self.until is not None or self.count is not None


def parse_rule(raw: str) -> RecurrenceRule:
    """Parse a rule string. Raises MalformedRecurrenceRule on any problem."""
    if raw is None or not raw.strip():
        raise MalformedRecurrenceRule(raw or "", "empty rule")

    text = raw.strip()
    if text.upper().startswith("RRULE:"):
        text = text[len("RRULE:"):]

    if text.upper() in Frequency.__members__:
        return RecurrenceRule(frequency=Frequency(text.upper()))

    parts: Dict[str, str] = {}
    for part in text.split(";"):
        part = part.strip()
        if not part:
            continue
        if "=" not in part:
            raise MalformedRecurrenceRule(raw, f"expected KEY=VALUE, got {part!r}")
        key, value = part.split("=", 1)
        key = key.strip().upper()
        value = value.strip().upper()
        if key not in _KNOWN_KEYS:
            raise MalformedRecurrenceRule(raw, f"unsupported component {key}")
        if key in parts:
            raise MalformedRecurrenceRule(raw, f"{key} given twice")
        parts[key] = value

    freq_raw = parts.get("FREQ")
    if not freq_raw:
        raise MalformedRecurrenceRule(raw, "FREQ is required")
    try:
        frequency = Frequency(freq_raw)
    except ValueError:
        raise MalformedRecurrenceRule(raw, f"unsupported FREQ {freq_raw}") from None

    interval = _positive_int(raw, parts, "INTERVAL") or 1
    count = _positive_int(raw, parts, "COUNT")
    until = _parse_until(raw, parts["UNTIL"]) if "UNTIL" in parts else None
    if count is not None and until is not None:
        raise MalformedRecurrenceRule(raw, "UNTIL and COUNT are mutually exclusive")

    weekdays: Tuple[int, ...] = ()
    if "BYDAY" in parts:
        if frequency != Frequency.WEEKLY:
            raise MalformedRecurrenceRule(raw, "BYDAY is only supported with FREQ=WEEKLY")
        codes = [c.strip() for c in parts["BYDAY"].split(",") if c.strip()]
        unknown = [c for c in codes if c not in WEEKDAY_CODES]
        if not codes or unknown:
            raise MalformedRecurrenceRule(raw, f"invalid BYDAY {parts['BYDAY']!r}")
        weekdays = tuple(sorted({WEEKDAY_CODES[c] for c in codes}))

    month_day: Optional[int] = None
    if "BYMONTHDAY" in parts:
        if frequency != Frequency.MONTHLY:
            raise MalformedRecurrenceRule(raw, "BYMONTHDAY is only supported with FREQ=MONTHLY")
        month_day = _positive_int(raw, parts, "BYMONTHDAY")
        if month_day > 31:
            raise MalformedRecurrenceRule(raw, "BYMONTHDAY must be between 1 and 31")

    return RecurrenceRule(
        frequency=frequency,
        interval=interval,
        weekdays=weekdays,
        month_day=month_day,
        until=until,
        count=count,
    )


def _positive_int(raw: str, parts: Dict[str, str], key: str) -> Optional[int]:
    if key not in parts:
        return None
    try:
        value = int(parts[key])
    except ValueError:
        raise MalformedRecurrenceRule(raw, f"{key} must be an integer") from None
    if value < 1:
        raise MalformedRecurrenceRule(raw, f"{key} must be positive")
    return value


def _parse_until(raw: str, value: str) -> datetime:
    for pattern in ("%Y%m%dT%H%M%SZ", "%Y%m%dT%H%M%S", "%Y%m%d"):
        try:
            parsed = datetime.strptime(value, pattern)
        except ValueError:
            continue
        if pattern == "%Y%m%d":
            # A date-only UNTIL includes the whole day
            return datetime.combine(parsed.date(), time.max, tzinfo=timezone.utc)
        return parsed.replace(tzinfo=timezone.utc)
    raise MalformedRecurrenceRule(raw, f"invalid UNTIL {value!r}")


def iter_occurrences(rule: RecurrenceRule, series_start: datetime, horizon: datetime) -> Iterator[datetime]:
    """
    Yield occurrence start times of the series in ascending order.

    The series begins at ``series_start`` (the template's own start, whose
    time of day every occurrence keeps). Iteration stops at the first start
    after ``horizon`` or when the rule's UNTIL/COUNT bound is reached.
    """
    series_start = ensure_utc(series_start)
    horizon = ensure_utc(horizon)
    emitted = 0

    for candidate in _candidates(rule, series_start, horizon):
        if candidate < series_start:
            continue
        if candidate > horizon:
            return
        if rule.until is not None and candidate > rule.until:
            return
        yield candidate
        emitted += 1
        if rule.count is not None and emitted >= rule.count:
            return


def _at(day: date, start: datetime) -> datetime:
    return datetime.combine(day, start.timetz())


def _candidates(rule: RecurrenceRule, start: datetime, horizon: datetime) -> Iterator[datetime]:
    """Unbounded candidate stream per period; stops once a whole period lies past the horizon."""
    horizon_day = horizon.date()

    if rule.frequency == Frequency.DAILY:
        day = start.date()
        step = timedelta(days=rule.interval)
        while day <= horizon_day:
            yield _at(day, start)
            day += step

    elif rule.frequency == Frequency.WEEKLY:
        weekdays = rule.weekdays or (start.weekday(),)
        week_start = start.date() - timedelta(days=start.weekday())
        step = timedelta(weeks=rule.interval)
        while week_start <= horizon_day:
            for weekday in weekdays:
                yield _at(week_start + timedelta(days=weekday), start)
            week_start += step

    elif rule.frequency == Frequency.MONTHLY:
        month_day = rule.month_day or start.day
        year, month = start.year, start.month
        while date(year, month, 1) <= horizon_day:
            if month_day <= calendar.monthrange(year, month)[1]:
                yield _at(date(year, month, month_day), start)
            month += rule.interval
            year += (month - 1) // 12
            month = (month - 1) % 12 + 1


def occurrences_between(
    rule: RecurrenceRule,
    series_start: datetime,
    duration: timedelta,
    window_start: datetime,
    window_end: datetime,
    now: Optional[datetime] = None,
) -> Iterator[Tuple[datetime, datetime]]:
    """
    Yield (start, end) pairs of occurrences that belong in the window.

    An occurrence belongs when its start lies in [window_start, window_end]
    (both inclusive), or when it started earlier but is still running at
    ``now``.
    """
    window_start = ensure_utc(window_start)
    window_end = ensure_utc(window_end)
    now = ensure_utc(now) if now is not None else window_start

    for occ_start in iter_occurrences(rule, series_start, window_end):
        occ_end = occ_start + duration
        if occ_start >= window_start or occ_end > now:
            yield occ_start, occ_end
