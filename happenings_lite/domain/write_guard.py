"""Single-occurrence date-key resolution for write endpoints.

Signup, comment and slot-claim handlers call ``validate_date_key_for_write``
before writing anything scoped to an occurrence. The result is either a
write-safe date key or a typed ``DateKeyContractError``.
"""

from __future__ import annotations

import logging
from typing import NamedTuple, Optional

from ..calendar.occurrence_generator import compute_next_occurrence
from ..core.date_keys import is_valid_date_key
from ..exceptions import EventNotFoundError, InvalidDateKeyError, OccurrenceCancelledError
from ..protocols import EventRepository

logger = logging.getLogger(__name__)


class ResolvedDateKey(NamedTuple):
    """A date key accepted for a write."""

    date_key: str
    was_computed: bool


def resolve_effective_date_key(
    event_id: str,
    date_key: Optional[str],
    repo: EventRepository,
    today_key: str,
) -> ResolvedDateKey:
    """Resolve the occurrence a write targets.

    A supplied key is only format-checked. Without one, the event's next
    occurrence relative to ``today_key`` is used.

    Args:
        event_id: Event identifier
        date_key: Caller-supplied date key, or None
        repo: Event lookup
        today_key: Today's date key in the civil timezone

    Returns:
        ResolvedDateKey

    Raises:
        InvalidDateKeyError: If a supplied key is not a valid date key
        EventNotFoundError: If no key was supplied and the event does not exist
    """
    if date_key is not None:
        if not is_valid_date_key(date_key):
            raise InvalidDateKeyError(
                f"Invalid date_key format: {date_key}. Expected YYYY-MM-DD.",
                date_key=date_key,
            )
        return ResolvedDateKey(date_key=date_key, was_computed=False)

    event = repo.get_event(event_id)
    if event is None:
        raise EventNotFoundError(f"Event not found: {event_id}", event_id=event_id)

    occurrence = compute_next_occurrence(event, today_key)
    if not occurrence.is_confident:
        logger.debug(
            "Computed date key %s for event %s is not confident", occurrence.date, event_id
        )
    return ResolvedDateKey(date_key=occurrence.date, was_computed=True)


def is_occurrence_cancelled(event_id: str, date_key: str, repo: EventRepository) -> bool:
    """True if the occurrence has a cancelled override."""
    override = repo.get_override(event_id, date_key)
    return override is not None and override.is_cancelled


def validate_date_key_for_write(
    event_id: str,
    date_key: Optional[str],
    repo: EventRepository,
    today_key: str,
) -> ResolvedDateKey:
    """Resolve a write's date key and reject cancelled occurrences.

    Raises:
        InvalidDateKeyError: If a supplied key is malformed
        EventNotFoundError: If the key had to be computed for a missing event
        OccurrenceCancelledError: If the resolved occurrence is cancelled
    """
    resolved = resolve_effective_date_key(event_id, date_key, repo, today_key)
    if is_occurrence_cancelled(event_id, resolved.date_key, repo):
        logger.info("Rejected write to cancelled occurrence %s:%s", event_id, resolved.date_key)
        raise OccurrenceCancelledError(
            f"This occurrence ({resolved.date_key}) has been cancelled.",
            event_id=event_id,
            date_key=resolved.date_key,
        )
    return resolved
