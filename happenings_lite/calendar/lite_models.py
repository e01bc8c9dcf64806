"""Data models for recurrence and occurrence processing - happenings_lite."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..core.date_keys import add_days, days_between, is_valid_date_key

logger = logging.getLogger(__name__)

# Legacy override columns and the event field each one patches
LEGACY_OVERRIDE_COLUMNS: dict[str, str] = {
    "override_start_time": "start_time",
    "override_cover_image_url": "cover_image_url",
    "override_notes": "host_notes",
}


class Frequency(str, Enum):
    """Canonical recurrence frequencies."""

    ONE_TIME = "one-time"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    DAILY = "daily"
    YEARLY = "yearly"
    CUSTOM = "custom"
    UNKNOWN = "unknown"


class OccurrenceStatus(str, Enum):
    """Per-occurrence status stored on an override row."""

    NORMAL = "normal"
    CANCELLED = "cancelled"


# Scheduling input


class SchedulingInput(BaseModel):
    """Raw per-event scheduling fields as supplied by the event store."""

    event_date: Optional[str] = Field(default=None, description="Anchor date (YYYY-MM-DD)")
    day_of_week: Optional[str] = Field(default=None, description="Day label, e.g. 'Monday'")
    recurrence_rule: Optional[str] = Field(
        default=None, description="RRULE text or legacy token such as '2nd/4th'"
    )
    recurrence_end_date: Optional[str] = Field(default=None, description="Series end date")
    max_occurrences: Optional[int] = Field(default=None, description="Series occurrence bound")
    custom_dates: Optional[list[str]] = Field(default=None, description="Explicit date list")


class HappeningEvent(SchedulingInput):
    """An event row: scheduling fields plus presentation fields.

    Extra columns are kept as-is so allow-listed per-occurrence patches can
    target fields this model does not declare.
    """

    id: str = Field(..., description="Event ID")
    title: Optional[str] = Field(default=None, description="Event title")
    start_time: Optional[str] = Field(default=None, description="Start time, HH:MM[:SS]")
    end_time: Optional[str] = Field(default=None, description="End time, HH:MM[:SS]")

    model_config = ConfigDict(extra="allow")

    @property
    def label(self) -> str:
        """Identifier used in diagnostics: id plus quoted title when known."""
        return f'{self.id} "{self.title}"' if self.title else self.id


# Recurrence


class ByDayEntry(BaseModel):
    """One BYDAY token: optional ordinal plus two-letter day abbreviation."""

    ordinal: Optional[int] = None
    day: str

    model_config = ConfigDict(frozen=True)


class ParsedRRule(BaseModel):
    """Structured components of an RFC 5545 style rule."""

    freq: str
    interval: int = 1
    byday: list[ByDayEntry] = Field(default_factory=list)
    bymonthday: list[int] = Field(default_factory=list)
    count: Optional[int] = None
    until: Optional[str] = Field(default=None, description="UNTIL as a date key")

    model_config = ConfigDict(frozen=True)


class NormalizedRecurrence(BaseModel):
    """Canonical recurrence descriptor.

    Built once per event by ``interpret_recurrence`` and consumed by the
    generator, the label formatter and the invariant check.
    """

    is_recurring: bool = False
    frequency: Frequency = Frequency.ONE_TIME
    day_of_week_index: Optional[int] = Field(default=None, description="0=Sunday .. 6=Saturday")
    day_abbrev: Optional[str] = None
    day_name: Optional[str] = None
    ordinals: list[int] = Field(default_factory=list, description="1..5, or -1 for last")
    month_days: list[int] = Field(default_factory=list, description="BYMONTHDAY values")
    interval: int = 1
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    count: Optional[int] = None
    parsed_rrule: Optional[ParsedRRule] = None
    is_confident: bool = True

    model_config = ConfigDict(frozen=True)

    @property
    def is_bounded(self) -> bool:
        """True when the series carries an explicit count or end date."""
        return bool(self.count) or bool(self.end_date)


# Occurrences


class ExpandedOccurrence(BaseModel):
    """One generated occurrence date."""

    date_key: str
    is_confident: bool = True

    model_config = ConfigDict(frozen=True)


class NextOccurrence(BaseModel):
    """Result of next-occurrence computation relative to a given today."""

    date: str
    is_today: bool = False
    is_tomorrow: bool = False
    is_confident: bool = True


class OccurrenceOverride(BaseModel):
    """A per-occurrence exception keyed by (event_id, date_key).

    Legacy single-field columns are folded into ``patch`` when a row is
    loaded; keys from an explicit ``override_patch`` win over them.
    """

    event_id: str
    date_key: str
    status: OccurrenceStatus = OccurrenceStatus.NORMAL
    patch: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _translate_legacy_columns(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        row = dict(data)
        if not is_valid_date_key(row.get("date_key")):
            raise ValueError(f"Override date_key must be YYYY-MM-DD, got {row.get('date_key')!r}")
        merged: dict[str, Any] = {}
        for column, field_name in LEGACY_OVERRIDE_COLUMNS.items():
            value = row.pop(column, None)
            if value is not None:
                merged[field_name] = value
        explicit = row.pop("override_patch", None)
        if explicit is None:
            explicit = row.pop("patch", None)
        if isinstance(explicit, dict):
            merged.update(explicit)
        elif explicit is not None:
            logger.warning(
                "Ignoring non-mapping override patch for %s:%s",
                row.get("event_id"),
                row.get("date_key"),
            )
        row["patch"] = merged
        if row.get("status") is None:
            row["status"] = OccurrenceStatus.NORMAL
        return row

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> OccurrenceOverride:
        """Build an override from a stored row (legacy or patch format)."""
        return cls.model_validate(row)

    @property
    def is_cancelled(self) -> bool:
        return self.status == OccurrenceStatus.CANCELLED


class OccurrenceEntry(BaseModel):
    """An occurrence placed on the timeline.

    ``date_key`` is the permanent identity used for relational lookups;
    ``display_date`` is where the entry is shown and differs only after a
    reschedule.
    """

    event: HappeningEvent
    date_key: str
    display_date: str
    is_confident: bool = True
    override: Optional[OccurrenceOverride] = None
    is_cancelled: bool = False
    is_rescheduled: bool = False
    original_date_key: Optional[str] = None

    @property
    def effective_start_time(self) -> Optional[str]:
        return self.event.start_time or None


class TimelineMetrics(BaseModel):
    """Counters reported by a timeline expansion."""

    events_processed: int = 0
    events_skipped: int = 0
    total_occurrences: int = 0
    cancelled_count: int = 0
    rescheduled_count: int = 0
    was_capped: bool = False


class TimelineResult(BaseModel):
    """Date-grouped timeline output."""

    grouped: dict[str, list[OccurrenceEntry]] = Field(default_factory=dict)
    cancelled: list[OccurrenceEntry] = Field(default_factory=list)
    unknown_events: list[HappeningEvent] = Field(default_factory=list)
    metrics: TimelineMetrics = Field(default_factory=TimelineMetrics)


class SeriesOccurrence(BaseModel):
    """One upcoming date of a series, as shown in a date pill."""

    date_key: str
    display_date: str
    is_cancelled: bool = False
    is_rescheduled: bool = False


class SeriesEntry(BaseModel):
    """One event in series view."""

    event: HappeningEvent
    next_occurrence: NextOccurrence
    upcoming_occurrences: list[SeriesOccurrence] = Field(default_factory=list)
    recurrence_summary: str
    is_one_time: bool = False
    total_upcoming_count: int = 0


class SeriesViewResult(BaseModel):
    """Per-event series output."""

    series: list[SeriesEntry] = Field(default_factory=list)
    metrics: TimelineMetrics = Field(default_factory=TimelineMetrics)


class ExpansionWindow(BaseModel):
    """Inclusive date range ``[start_key, end_key]`` for expansion."""

    start_key: str
    end_key: str

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_bounds(self) -> ExpansionWindow:
        if not is_valid_date_key(self.start_key) or not is_valid_date_key(self.end_key):
            raise ValueError("Window bounds must be YYYY-MM-DD date keys")
        if self.end_key < self.start_key:
            raise ValueError("Window end precedes window start")
        return self

    @classmethod
    def rolling(cls, today: str, days: int = 90) -> ExpansionWindow:
        """Window from ``today`` through ``today + days``."""
        return cls(start_key=today, end_key=add_days(today, days))

    def contains(self, date_key: str) -> bool:
        return self.start_key <= date_key <= self.end_key

    @property
    def day_count(self) -> int:
        """Inclusive number of days in the window."""
        return days_between(self.start_key, self.end_key) + 1
