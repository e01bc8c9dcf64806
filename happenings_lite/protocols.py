"""Protocol definitions for upstream collaborators.

The engine never touches storage itself; callers hand it objects that
satisfy these interfaces.
"""

from __future__ import annotations

from typing import Optional, Protocol

from .calendar.lite_models import HappeningEvent, OccurrenceOverride


class EventRepository(Protocol):
    """Protocol for event and override lookup used by the write guard."""

    def get_event(self, event_id: str) -> Optional[HappeningEvent]:
        """Fetch an event by ID.

        Args:
            event_id: Event identifier

        Returns:
            The event, or None if it does not exist
        """
        ...

    def get_override(self, event_id: str, date_key: str) -> Optional[OccurrenceOverride]:
        """Fetch the override stored for one occurrence.

        Args:
            event_id: Event identifier
            date_key: Identity date key of the occurrence

        Returns:
            The override, or None if the occurrence has none
        """
        ...
