"""Occurrence generation for happenings_lite.

Turns a ``NormalizedRecurrence`` into concrete date keys: the next
occurrence relative to a given today, and every occurrence inside an
expansion window. Recurrence text is never parsed here; all schedule
knowledge comes from ``interpret_recurrence``.
"""

from __future__ import annotations

import calendar
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from itertools import islice
from typing import Any, Optional

from dateutil.relativedelta import FR, MO, SA, SU, TH, TU, WE, relativedelta
from dateutil.rrule import DAILY, YEARLY, rrule

from ..core.date_keys import add_days, coerce_date_key, parse_date_key, weekday_index
from .lite_models import (
    ExpandedOccurrence,
    ExpansionWindow,
    Frequency,
    HappeningEvent,
    NextOccurrence,
    NormalizedRecurrence,
)
from .recurrence import assert_recurrence_invariant, custom_dates_for, interpret_recurrence

logger = logging.getLogger(__name__)

# relativedelta weekday constants indexed 0=Sunday .. 6=Saturday
_RD_WEEKDAYS = (SU, MO, TU, WE, TH, FR, SA)

# Consecutive months without a candidate date before a monthly scan gives up.
# Next-occurrence searches walk forward through this many months rather than
# stopping after the current month and the two that follow, so sparse
# patterns such as a 5th weekday still resolve.
_MAX_EMPTY_MONTHS = 120

DEFAULT_MAX_EVENTS = 200
DEFAULT_MAX_TOTAL_OCCURRENCES = 500
DEFAULT_MAX_OCCURRENCES_PER_EVENT = 40
DEFAULT_WINDOW_DAYS = 90
DEFAULT_SERIES_PREVIEW_LIMIT = 12


@dataclass(frozen=True)
class ExpansionCaps:
    """Limits applied while expanding a batch of events.

    Consolidates expansion limits with explicit defaults.
    """

    max_events: int = DEFAULT_MAX_EVENTS
    max_total_occurrences: int = DEFAULT_MAX_TOTAL_OCCURRENCES
    max_occurrences_per_event: int = DEFAULT_MAX_OCCURRENCES_PER_EVENT
    window_days: int = DEFAULT_WINDOW_DAYS
    series_preview_limit: int = DEFAULT_SERIES_PREVIEW_LIMIT

    @classmethod
    def from_settings(cls, settings: Any) -> "ExpansionCaps":
        """Extract expansion limits from a settings object.

        Args:
            settings: Configuration object with expansion settings

        Returns:
            ExpansionCaps with values from settings or defaults
        """
        return cls(
            max_events=getattr(settings, "max_events", DEFAULT_MAX_EVENTS),
            max_total_occurrences=getattr(
                settings, "max_total_occurrences", DEFAULT_MAX_TOTAL_OCCURRENCES
            ),
            max_occurrences_per_event=getattr(
                settings, "max_occurrences_per_event", DEFAULT_MAX_OCCURRENCES_PER_EVENT
            ),
            window_days=getattr(settings, "window_days", DEFAULT_WINDOW_DAYS),
            series_preview_limit=getattr(
                settings, "series_preview_limit", DEFAULT_SERIES_PREVIEW_LIMIT
            ),
        )


def nth_weekday_of_month(year: int, month: int, day_index: int, n: int) -> Optional[date]:
    """Return the nth given weekday of a month, or None if it does not exist.

    Args:
        year: Calendar year
        month: Month 1-12
        day_index: Weekday, 0=Sunday .. 6=Saturday
        n: 1..5 counts from the start of the month, -1 is the last one

    Returns:
        The date, or None when the month has fewer than ``n`` such weekdays
    """
    if n == 0:
        return None
    first = date(year, month, 1)
    try:
        if n > 0:
            candidate = first + relativedelta(weekday=_RD_WEEKDAYS[day_index](+n))
        else:
            candidate = first + relativedelta(day=31, weekday=_RD_WEEKDAYS[day_index](n))
    except OverflowError:
        # Only reachable in December of the last representable year
        return None
    if candidate.month != month or candidate.year != year:
        return None
    return candidate


def _month_day(year: int, month: int, day: int) -> Optional[date]:
    length = calendar.monthrange(year, month)[1]
    resolved = day if day > 0 else length + day + 1
    if 1 <= resolved <= length:
        return date(year, month, resolved)
    return None


def _iter_stride(
    rec: NormalizedRecurrence, origin: date, lower: date, end: Optional[date]
) -> Iterator[date]:
    if rec.day_of_week_index is None:
        return
    step = 14 if rec.frequency == Frequency.BIWEEKLY else 7 * max(rec.interval, 1)
    # First matching weekday on or after the series origin fixes the phase
    offset = (rec.day_of_week_index - weekday_index(origin)) % 7
    if (date.max - origin).days < offset:
        return
    current = origin + timedelta(days=offset)
    if lower > current:
        strides = -(-(lower - current).days // step)
        if (date.max - current).days < strides * step:
            return
        current += timedelta(days=strides * step)
    while end is None or current <= end:
        yield current
        if (date.max - current).days < step:
            return
        current += timedelta(days=step)


def _iter_monthly(
    rec: NormalizedRecurrence, origin: date, lower: date, end: Optional[date]
) -> Iterator[date]:
    use_ordinals = bool(rec.ordinals) and rec.day_of_week_index is not None
    if not use_ordinals and not rec.month_days:
        return

    step = max(rec.interval, 1)
    origin_index = origin.year * 12 + origin.month - 1
    lower_index = lower.year * 12 + lower.month - 1
    index = origin_index + max(lower_index - origin_index, 0) // step * step

    empty_months = 0
    while True:
        year, month = divmod(index, 12)
        month += 1
        if year > date.max.year:
            return
        if end is not None and date(year, month, 1) > end:
            return
        if use_ordinals:
            found = (
                nth_weekday_of_month(year, month, rec.day_of_week_index, n)
                for n in rec.ordinals
            )
        else:
            found = (_month_day(year, month, d) for d in rec.month_days)
        candidates = sorted({d for d in found if d is not None})

        empty_months = 0 if candidates else empty_months + 1
        if empty_months > _MAX_EMPTY_MONTHS:
            logger.debug("Monthly scan found no dates for %d months, stopping", empty_months)
            return

        for candidate in candidates:
            if candidate < lower:
                continue
            if end is not None and candidate > end:
                return
            yield candidate
        index += step


def _iter_rrule(
    rec: NormalizedRecurrence, origin: date, lower: date, end: Optional[date]
) -> Iterator[date]:
    rule = rrule(
        DAILY if rec.frequency == Frequency.DAILY else YEARLY,
        interval=max(rec.interval, 1),
        dtstart=datetime.combine(origin, time()),
        until=datetime.combine(end, time()) if end is not None else None,
    )
    for occurrence in rule.xafter(datetime.combine(lower, time()), inc=True):
        yield occurrence.date()


def iter_series_dates(
    rec: NormalizedRecurrence, start: date, end: Optional[date] = None
) -> Iterator[date]:
    """Yield series dates on or after ``start`` (and the anchor), ascending.

    Dates stay phase-aligned to the anchor when the series has one; without
    an anchor the series is taken to begin at ``start``. With ``end`` None
    the iterator is unbounded, so callers slice it.
    """
    anchor = parse_date_key(rec.start_date) if rec.start_date else None
    origin = anchor or start
    lower = max(start, origin)

    if rec.frequency in (Frequency.WEEKLY, Frequency.BIWEEKLY):
        yield from _iter_stride(rec, origin, lower, end)
    elif rec.frequency == Frequency.MONTHLY:
        yield from _iter_monthly(rec, origin, lower, end)
    elif rec.frequency in (Frequency.DAILY, Frequency.YEARLY):
        yield from _iter_rrule(rec, origin, lower, end)


def _series_last_date(
    rec: NormalizedRecurrence, fallback_start: date, horizon: date
) -> Optional[date]:
    """Last date a bounded series may produce, or None if unbounded.

    The count is walked from the anchor only until a date reaches
    ``horizon``. A count still unspent there cannot end the series at or
    before the horizon, so only the end date applies.
    """
    last = parse_date_key(rec.end_date) if rec.end_date else None
    if rec.count:
        origin = parse_date_key(rec.start_date) if rec.start_date else fallback_start
        for position, current in enumerate(iter_series_dates(rec, origin, last), start=1):
            if position == rec.count:
                return current
            if current >= horizon:
                break
    return last


def build_next_occurrence(date_key: str, today: str, is_confident: bool = True) -> NextOccurrence:
    return NextOccurrence(
        date=date_key,
        is_today=date_key == today,
        is_tomorrow=date_key == add_days(today, 1),
        is_confident=is_confident,
    )


def compute_next_occurrence(
    event: HappeningEvent | Any,
    today_key: str,
    recurrence: Optional[NormalizedRecurrence] = None,
) -> NextOccurrence:
    """Compute an event's next occurrence on or after ``today_key``.

    Recurring series search from the later of today and the anchor date, so
    a series never reports a date before it starts. Non-recurring events
    return their anchor date even when it is in the past. When nothing can
    be computed the result is today with ``is_confident=False``.

    Args:
        event: Event carrying scheduling fields
        today_key: Today's date key in the civil timezone
        recurrence: Pre-computed interpretation of ``event``

    Returns:
        NextOccurrence
    """
    rec = recurrence or interpret_recurrence(event)
    anchor = rec.start_date

    if rec.frequency == Frequency.CUSTOM:
        dates = custom_dates_for(event) or ([anchor] if anchor else [])
        if not dates:
            return build_next_occurrence(today_key, today_key, is_confident=False)
        upcoming = [d for d in dates if d >= today_key]
        return build_next_occurrence(upcoming[0] if upcoming else dates[-1], today_key)

    if not rec.is_recurring:
        if anchor:
            return build_next_occurrence(anchor, today_key)
        return build_next_occurrence(today_key, today_key, is_confident=False)

    if rec.is_confident:
        today = parse_date_key(today_key)
        last = _series_last_date(rec, today, horizon=today)
        upcoming = next(iter_series_dates(rec, today, last), None)
        if upcoming is not None:
            return build_next_occurrence(upcoming.isoformat(), today_key)
        if last is not None and (not anchor or last.isoformat() >= anchor):
            # Bounded series that has already ended
            return build_next_occurrence(last.isoformat(), today_key)

    logger.debug("No computable next occurrence for event %s", _event_label(event))
    return build_next_occurrence(today_key, today_key, is_confident=False)


def _event_label(event: Any) -> str:
    label = getattr(event, "label", None)
    return label if isinstance(label, str) else str(getattr(event, "id", "unknown"))


def expand_occurrences_for_event(
    event: HappeningEvent | Any,
    window: ExpansionWindow,
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES_PER_EVENT,
    recurrence: Optional[NormalizedRecurrence] = None,
) -> list[ExpandedOccurrence]:
    """Expand an event into every occurrence inside ``window``.

    Args:
        event: Event carrying scheduling fields
        window: Inclusive expansion window
        max_occurrences: Per-event cap on returned occurrences
        recurrence: Pre-computed interpretation of ``event``

    Returns:
        Occurrences sorted ascending by date key; empty for unknown or
        unconfident schedules
    """
    rec = recurrence or interpret_recurrence(event)
    if max_occurrences <= 0:
        return []

    if not rec.is_recurring:
        if rec.start_date and window.contains(rec.start_date):
            return [ExpandedOccurrence(date_key=rec.start_date)]
        return []

    if not rec.is_confident or rec.frequency == Frequency.UNKNOWN:
        return []

    if rec.frequency == Frequency.CUSTOM:
        return _expand_custom(event, rec, window, max_occurrences)

    start = parse_date_key(window.start_key)
    end = parse_date_key(window.end_key)
    series_last = _series_last_date(rec, start, horizon=end)
    if series_last is not None and series_last < end:
        end = series_last
    if end < start:
        return []

    dates = list(islice(iter_series_dates(rec, start, end), max_occurrences + 1))
    if len(dates) > max_occurrences:
        dates = dates[:max_occurrences]
    else:
        # A result cut by the per-event cap says nothing about the generator
        assert_recurrence_invariant(
            rec,
            len(dates),
            event_label=_event_label(event),
            window_days=window.day_count,
            window_start=window.start_key,
            window_end=window.end_key,
        )
    return [ExpandedOccurrence(date_key=d.isoformat(), is_confident=rec.is_confident) for d in dates]


def _expand_custom(
    event: Any, rec: NormalizedRecurrence, window: ExpansionWindow, max_occurrences: int
) -> list[ExpandedOccurrence]:
    dates = custom_dates_for(event) or ([rec.start_date] if rec.start_date else [])
    if rec.count:
        dates = dates[: rec.count]
    if rec.end_date:
        dates = [d for d in dates if d <= rec.end_date]
    in_window = [d for d in dates if window.contains(d)]
    return [ExpandedOccurrence(date_key=d) for d in in_window[:max_occurrences]]


def compute_occurrences_for_events(
    events: Iterable[HappeningEvent],
    today_key: str,
    window_days: int = DEFAULT_WINDOW_DAYS,
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES_PER_EVENT,
) -> dict[str, list[ExpandedOccurrence]]:
    """Expand several events over a rolling window from today, keyed by event ID."""
    window = ExpansionWindow.rolling(today_key, window_days)
    return {
        event.id: expand_occurrences_for_event(event, window, max_occurrences) for event in events
    }


def group_events_by_next_occurrence(
    events: Iterable[HappeningEvent], today_key: str
) -> dict[str, list[HappeningEvent]]:
    """Group events under their next occurrence date, ascending by date.

    Events without a confident next date are left out.
    """
    groups: dict[str, list[HappeningEvent]] = {}
    for event in events:
        next_occurrence = compute_next_occurrence(event, today_key)
        if not next_occurrence.is_confident:
            continue
        groups.setdefault(next_occurrence.date, []).append(event)
    return {key: groups[key] for key in sorted(groups)}


def normalize_today(value: Any) -> str:
    """Validate a caller-supplied today key.

    Raises:
        ValueError: If ``value`` is not a valid date key
    """
    key = coerce_date_key(value)
    if key is None:
        raise ValueError(f"Invalid today key: {value!r}")
    return key
