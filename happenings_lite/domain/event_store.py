"""In-memory event repository for happenings_lite.

Backs the CLI and tests. Loads events and override rows from a plain
mapping, typically read from a JSON file.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from ..calendar.lite_models import HappeningEvent, OccurrenceOverride
from .override_engine import build_override_key, build_override_map

logger = logging.getLogger(__name__)


class InMemoryEventRepository:
    """Event and override lookup held in memory.

    Satisfies ``protocols.EventRepository``.
    """

    def __init__(
        self,
        events: Iterable[HappeningEvent] = (),
        overrides: Iterable[OccurrenceOverride] = (),
    ) -> None:
        self._events: dict[str, HappeningEvent] = {event.id: event for event in events}
        self._overrides: dict[str, OccurrenceOverride] = build_override_map(overrides)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> InMemoryEventRepository:
        """Build a repository from ``{"events": [...], "overrides": [...]}``.

        Event rows that fail validation are logged and skipped. Override rows
        may use the legacy column format.
        """
        events: list[HappeningEvent] = []
        for row in data.get("events") or []:
            try:
                events.append(HappeningEvent.model_validate(row))
            except ValidationError as e:
                logger.warning("Skipping malformed event row %r: %s", row, e)
        repo = cls(events)
        repo._overrides = build_override_map(data.get("overrides") or [])
        logger.debug(
            "Loaded %d events and %d overrides", len(repo._events), len(repo._overrides)
        )
        return repo

    @classmethod
    def from_json_file(cls, path: str | Path) -> InMemoryEventRepository:
        """Load a repository from a JSON file.

        Raises:
            ValueError: If the JSON root is not an object
        """
        with Path(path).open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(f"Event file root must be an object: {path}")
        return cls.from_mapping(data)

    @property
    def events(self) -> list[HappeningEvent]:
        return list(self._events.values())

    @property
    def overrides(self) -> dict[str, OccurrenceOverride]:
        return dict(self._overrides)

    def add_event(self, event: HappeningEvent) -> None:
        self._events[event.id] = event

    def add_override(self, override: OccurrenceOverride) -> None:
        self._overrides[build_override_key(override.event_id, override.date_key)] = override

    def get_event(self, event_id: str) -> Optional[HappeningEvent]:
        return self._events.get(event_id)

    def get_override(self, event_id: str, date_key: str) -> Optional[OccurrenceOverride]:
        return self._overrides.get(build_override_key(event_id, date_key))
