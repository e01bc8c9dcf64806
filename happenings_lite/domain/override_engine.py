"""Per-occurrence override application for happenings_lite.

An override is keyed by ``(event_id, date_key)`` where ``date_key`` is the
occurrence's original generated date. Overrides may cancel an occurrence,
patch allow-listed presentation fields, or move it to another display
date. Series-level scheduling fields can never be patched.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any, NamedTuple, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from ..calendar.lite_models import OccurrenceEntry, OccurrenceOverride
from ..core.date_keys import coerce_date_key

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Fields an override patch may change on a single occurrence
ALLOWED_OVERRIDE_FIELDS = frozenset(
    {
        "title",
        "description",
        "start_time",
        "end_time",
        "venue_id",
        "location_mode",
        "custom_location_name",
        "custom_address",
        "custom_city",
        "custom_state",
        "online_url",
        "location_notes",
        "capacity",
        "has_timeslots",
        "total_slots",
        "slot_duration_minutes",
        "signup_time",
        "is_free",
        "cost_label",
        "signup_url",
        "signup_deadline",
        "age_policy",
        "external_url",
        "categories",
        "cover_image_url",
        "host_notes",
        "is_published",
    }
)

# Series-level fields; patching these would change the series itself
BLOCKED_OVERRIDE_FIELDS = frozenset(
    {
        "event_type",
        "recurrence_rule",
        "day_of_week",
        "custom_dates",
        "max_occurrences",
        "series_mode",
        "is_dsc_event",
        "event_date",
    }
)

# Sorts untimed entries after every timed entry of the same day
UNTIMED_SORT_KEY = "99:99"


class DisplayDate(NamedTuple):
    """Where an occurrence is shown, relative to its identity date."""

    display_date: str
    is_rescheduled: bool
    original_date_key: Optional[str] = None


def build_override_key(event_id: str, date_key: str) -> str:
    """Lookup key for an override: ``"<event_id>:<date_key>"``."""
    return f"{event_id}:{date_key}"


def build_override_map(
    overrides: Iterable[OccurrenceOverride | Mapping[str, Any]],
) -> dict[str, OccurrenceOverride]:
    """Index overrides by ``build_override_key``.

    Raw rows are converted with ``OccurrenceOverride.from_row``; rows that
    fail validation are logged and skipped. A later row for the same key
    replaces an earlier one.
    """
    result: dict[str, OccurrenceOverride] = {}
    for item in overrides:
        if isinstance(item, OccurrenceOverride):
            override = item
        else:
            try:
                override = OccurrenceOverride.from_row(dict(item))
            except ValidationError as e:
                logger.warning("Skipping malformed override row %r: %s", item, e)
                continue
        result[build_override_key(override.event_id, override.date_key)] = override
    return result


def filter_override_patch(patch: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Keep only allow-listed keys of ``patch``.

    Null values are kept; applying them clears the field for the occurrence.
    """
    if not patch:
        return {}
    allowed: dict[str, Any] = {}
    for key, value in patch.items():
        if key in ALLOWED_OVERRIDE_FIELDS:
            allowed[key] = value
        elif key not in BLOCKED_OVERRIDE_FIELDS:
            logger.debug("Ignoring unknown override field %r", key)
    return allowed


def apply_occurrence_override(event: ModelT, override: Optional[OccurrenceOverride]) -> ModelT:
    """Return a copy of ``event`` with the override's allowed patch applied.

    The input is never mutated. Blocked and unknown keys are dropped. If the
    patched data no longer validates, the unpatched copy is returned.
    """
    if override is None:
        return event.model_copy(deep=True)

    patch = filter_override_patch(override.patch)
    if not patch:
        return event.model_copy(deep=True)

    try:
        return type(event).model_validate({**event.model_dump(), **patch})
    except ValidationError as e:
        logger.warning(
            "Override %s produced an invalid event, ignoring patch: %s",
            build_override_key(override.event_id, override.date_key),
            e,
        )
        return event.model_copy(deep=True)


def get_display_date_for_occurrence(
    date_key: str, override: Optional[OccurrenceOverride] = None
) -> DisplayDate:
    """Resolve where an occurrence should be displayed.

    A rescheduled occurrence carries ``event_date`` in its override patch.
    Malformed or unchanged values leave the occurrence on its own date.
    """
    if override is None:
        return DisplayDate(display_date=date_key, is_rescheduled=False)

    raw = override.patch.get("event_date")
    target = coerce_date_key(raw) if isinstance(raw, str) else None
    if raw is not None and target is None:
        logger.debug("Ignoring malformed reschedule target %r for %s", raw, date_key)
    if target is None or target == date_key:
        return DisplayDate(display_date=date_key, is_rescheduled=False)
    return DisplayDate(display_date=target, is_rescheduled=True, original_date_key=date_key)


def occurrence_sort_key(entry: OccurrenceEntry) -> str:
    """Sort key within a date group: start time, untimed last."""
    return entry.effective_start_time or UNTIMED_SORT_KEY


def apply_reschedules_to_timeline(
    groups: Mapping[str, list[OccurrenceEntry]],
) -> dict[str, list[OccurrenceEntry]]:
    """Move rescheduled entries to the date group of their display date.

    The input mapping and its entries are not modified. Moved entries keep
    their ``date_key`` identity. Groups left empty are removed and the
    result is ordered by date.
    """
    result: dict[str, list[OccurrenceEntry]] = {key: [] for key in groups}
    moved_into: set[str] = set()

    for group_key, entries in groups.items():
        for entry in entries:
            display = get_display_date_for_occurrence(entry.date_key, entry.override)
            if not display.is_rescheduled:
                result[group_key].append(entry)
                continue
            moved = entry.model_copy(
                update={
                    "display_date": display.display_date,
                    "is_rescheduled": True,
                    "original_date_key": display.original_date_key,
                }
            )
            result.setdefault(display.display_date, []).append(moved)
            moved_into.add(display.display_date)

    for key in moved_into:
        result[key].sort(key=occurrence_sort_key)

    return {key: result[key] for key in sorted(result) if result[key]}
