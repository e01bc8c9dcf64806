"""Batch window orchestration for happenings_lite.

Expands many events over one window and shapes the result either as a
date-grouped timeline or as one entry per series. Work is bounded by
``ExpansionCaps``; no input structure is mutated.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Optional

from ..calendar.lite_models import (
    ExpandedOccurrence,
    ExpansionWindow,
    HappeningEvent,
    NextOccurrence,
    NormalizedRecurrence,
    OccurrenceEntry,
    OccurrenceOverride,
    SeriesEntry,
    SeriesOccurrence,
    SeriesViewResult,
    TimelineMetrics,
    TimelineResult,
)
from ..calendar.occurrence_generator import (
    DEFAULT_MAX_OCCURRENCES_PER_EVENT,
    ExpansionCaps,
    build_next_occurrence,
    compute_next_occurrence,
    expand_occurrences_for_event,
    normalize_today,
)
from ..calendar.recurrence import interpret_recurrence, label_from_recurrence
from ..core.date_keys import add_days
from .override_engine import (
    apply_occurrence_override,
    apply_reschedules_to_timeline,
    build_override_key,
    get_display_date_for_occurrence,
    occurrence_sort_key,
)

logger = logging.getLogger(__name__)

# Cancelled dates skipped while looking for a series' next live occurrence
_MAX_CANCELLED_SKIPS = DEFAULT_MAX_OCCURRENCES_PER_EVENT


def _resolve_window(today: str, window: Optional[ExpansionWindow], caps: ExpansionCaps) -> ExpansionWindow:
    return window or ExpansionWindow.rolling(today, caps.window_days)


def _build_entry(
    event: HappeningEvent,
    occurrence: ExpandedOccurrence,
    overrides: Mapping[str, OccurrenceOverride],
) -> OccurrenceEntry:
    override = overrides.get(build_override_key(event.id, occurrence.date_key))
    return OccurrenceEntry(
        event=apply_occurrence_override(event, override),
        date_key=occurrence.date_key,
        display_date=occurrence.date_key,
        is_confident=occurrence.is_confident,
        override=override,
        is_cancelled=override is not None and override.is_cancelled,
    )


def _next_live_occurrence(
    event: HappeningEvent,
    rec: NormalizedRecurrence,
    today: str,
    overrides: Mapping[str, OccurrenceOverride],
) -> NextOccurrence:
    """Next occurrence on or after ``today`` that is not cancelled.

    Used when no live date fell inside the window. When every candidate is
    cancelled, or the series has ended on a cancelled date, the result is
    today with ``is_confident=False``.
    """
    search = today
    for _ in range(_MAX_CANCELLED_SKIPS):
        candidate = compute_next_occurrence(event, search, recurrence=rec)
        override = overrides.get(build_override_key(event.id, candidate.date))
        if override is None or not override.is_cancelled:
            return build_next_occurrence(candidate.date, today, candidate.is_confident)
        if candidate.date < search:
            break
        search = add_days(candidate.date, 1)
    logger.debug("No live occurrence found for event %s", event.label)
    return build_next_occurrence(today, today, is_confident=False)


def expand_and_group_events(
    events: Iterable[HappeningEvent],
    today_key: str,
    window: Optional[ExpansionWindow] = None,
    overrides: Optional[Mapping[str, OccurrenceOverride]] = None,
    caps: Optional[ExpansionCaps] = None,
) -> TimelineResult:
    """Expand events into a date-grouped timeline.

    Args:
        events: Events to expand, in priority order
        today_key: Today's date key, shared by every computation in the call
        window: Expansion window; defaults to ``caps.window_days`` from today
        overrides: Override map from ``build_override_map``
        caps: Expansion limits

    Returns:
        TimelineResult with groups ordered by display date, cancelled
        occurrences on the side, and events that produced nothing listed
        as unknown
    """
    caps = caps or ExpansionCaps()
    overrides = overrides or {}
    today = normalize_today(today_key)
    window = _resolve_window(today, window, caps)

    event_list = list(events)
    selected = event_list[: caps.max_events]
    metrics = TimelineMetrics(events_skipped=len(event_list) - len(selected))
    metrics.was_capped = metrics.events_skipped > 0

    grouped: dict[str, list[OccurrenceEntry]] = {}
    cancelled: list[OccurrenceEntry] = []
    unknown_events: list[HappeningEvent] = []

    for position, event in enumerate(selected):
        if metrics.total_occurrences >= caps.max_total_occurrences:
            remaining = len(selected) - position
            metrics.events_skipped += remaining
            metrics.was_capped = True
            logger.info(
                "Total occurrence cap %d reached, skipping %d remaining events",
                caps.max_total_occurrences,
                remaining,
            )
            break

        metrics.events_processed += 1
        rec = interpret_recurrence(event)
        occurrences = expand_occurrences_for_event(
            event, window, caps.max_occurrences_per_event, recurrence=rec
        )

        if not occurrences:
            unknown_events.append(event)
            continue

        for occurrence in occurrences:
            if metrics.total_occurrences >= caps.max_total_occurrences:
                metrics.was_capped = True
                break
            entry = _build_entry(event, occurrence, overrides)
            metrics.total_occurrences += 1
            if entry.is_cancelled:
                cancelled.append(entry)
                metrics.cancelled_count += 1
            else:
                grouped.setdefault(entry.date_key, []).append(entry)

    for entries in grouped.values():
        entries.sort(key=occurrence_sort_key)
    ordered = {key: grouped[key] for key in sorted(grouped)}
    rescheduled = apply_reschedules_to_timeline(ordered)
    metrics.rescheduled_count = sum(
        1 for entries in rescheduled.values() for entry in entries if entry.is_rescheduled
    )
    cancelled.sort(key=lambda entry: (entry.date_key, occurrence_sort_key(entry)))

    logger.debug(
        "Timeline %s..%s: %d events, %d occurrences, %d cancelled, %d unknown",
        window.start_key,
        window.end_key,
        metrics.events_processed,
        metrics.total_occurrences,
        metrics.cancelled_count,
        len(unknown_events),
    )
    return TimelineResult(
        grouped=rescheduled,
        cancelled=cancelled,
        unknown_events=unknown_events,
        metrics=metrics,
    )


def group_events_as_series_view(
    events: Iterable[HappeningEvent],
    today_key: str,
    window: Optional[ExpansionWindow] = None,
    overrides: Optional[Mapping[str, OccurrenceOverride]] = None,
    caps: Optional[ExpansionCaps] = None,
) -> SeriesViewResult:
    """Build one entry per event with its next date and upcoming dates.

    The summary label and the dates come from the same interpretation of
    each event. Entries are ordered by next occurrence; events whose next
    date is not confident go last.
    """
    caps = caps or ExpansionCaps()
    overrides = overrides or {}
    today = normalize_today(today_key)
    window = _resolve_window(today, window, caps)

    event_list = list(events)
    selected = event_list[: caps.max_events]
    metrics = TimelineMetrics(events_skipped=len(event_list) - len(selected))
    metrics.was_capped = metrics.events_skipped > 0

    series: list[SeriesEntry] = []
    for position, event in enumerate(selected):
        if metrics.total_occurrences >= caps.max_total_occurrences:
            metrics.events_skipped += len(selected) - position
            metrics.was_capped = True
            break

        metrics.events_processed += 1
        rec = interpret_recurrence(event)
        occurrences = expand_occurrences_for_event(
            event, window, caps.max_occurrences_per_event, recurrence=rec
        )
        remaining = caps.max_total_occurrences - metrics.total_occurrences
        if len(occurrences) > remaining:
            occurrences = occurrences[:remaining]
            metrics.was_capped = True
        metrics.total_occurrences += len(occurrences)

        upcoming: list[SeriesOccurrence] = []
        active: list[str] = []
        for occurrence in occurrences:
            override = overrides.get(build_override_key(event.id, occurrence.date_key))
            is_cancelled = override is not None and override.is_cancelled
            if is_cancelled:
                metrics.cancelled_count += 1
            else:
                active.append(occurrence.date_key)
            display = get_display_date_for_occurrence(occurrence.date_key, override)
            if display.is_rescheduled:
                metrics.rescheduled_count += 1
            if len(upcoming) < caps.series_preview_limit:
                upcoming.append(
                    SeriesOccurrence(
                        date_key=occurrence.date_key,
                        display_date=display.display_date,
                        is_cancelled=is_cancelled,
                        is_rescheduled=display.is_rescheduled,
                    )
                )

        if active:
            next_occurrence = build_next_occurrence(active[0], today)
        else:
            next_occurrence = _next_live_occurrence(event, rec, today, overrides)

        series.append(
            SeriesEntry(
                event=event,
                next_occurrence=next_occurrence,
                upcoming_occurrences=upcoming,
                recurrence_summary=label_from_recurrence(rec),
                is_one_time=not rec.is_recurring,
                total_upcoming_count=len(active),
            )
        )

    series.sort(key=lambda entry: (not entry.next_occurrence.is_confident, entry.next_occurrence.date))
    return SeriesViewResult(series=series, metrics=metrics)
