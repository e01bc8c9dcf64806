"""Recurrence interpretation for happenings_lite.

``interpret_recurrence`` is the only place recurrence text is parsed. The
occurrence generator, the label formatter and the invariant check all
consume the ``NormalizedRecurrence`` it returns, so a label can never
describe a schedule the generator does not produce.

Two rule syntaxes are accepted:
    - Structured RRULE-like text: ``FREQ=MONTHLY;BYDAY=2TU``
    - Legacy free text: ``weekly``, ``biweekly``, ``3rd``, ``1st/3rd``,
      ``2nd & last``, ``custom``, ``seasonal``, ``none``
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any, Optional

from ..core.date_keys import (
    DAY_ABBREVS,
    DAY_NAMES,
    coerce_date_key,
    parse_date_key,
    weekday_index,
)
from .lite_models import ByDayEntry, Frequency, NormalizedRecurrence, ParsedRRule

logger = logging.getLogger(__name__)

LEGACY_ORDINAL_TO_NUMBER: dict[str, int] = {
    "1st": 1,
    "2nd": 2,
    "3rd": 3,
    "4th": 4,
    "5th": 5,
    "first": 1,
    "second": 2,
    "third": 3,
    "fourth": 4,
    "fifth": 5,
    "last": -1,
}

# Inverse of LEGACY_ORDINAL_TO_NUMBER used when writing rules back out
NUMBER_TO_ORDINAL: dict[int, str] = {1: "1st", 2: "2nd", 3: "3rd", 4: "4th", 5: "5th", -1: "last"}

_LABEL_ORDINALS: dict[int, str] = {1: "1st", 2: "2nd", 3: "3rd", 4: "4th", 5: "5th", -1: "Last"}

_ORDINAL_WORD_RE = re.compile(r"\b(1st|2nd|3rd|4th|5th|first|second|third|fourth|fifth|last)\b")
_COMPOSITE_SPLIT_RE = re.compile(r"[/&,]|\band\b")
_BYDAY_RE = re.compile(r"^([+-]?\d{1,2})?([A-Z]{2})$")
_RULE_PART_SPLIT_RE = re.compile(r"[;\n]+")

RRULE_FREQUENCIES = frozenset({"DAILY", "WEEKLY", "MONTHLY", "YEARLY"})

# Days in one full cycle of each frequency; wider windows must yield 2+ dates
CYCLE_DAYS: dict[Frequency, int] = {
    Frequency.DAILY: 1,
    Frequency.WEEKLY: 7,
    Frequency.BIWEEKLY: 14,
    Frequency.MONTHLY: 28,
    Frequency.YEARLY: 366,
}


class RRuleParseError(ValueError):
    """Raised when text is not a structured recurrence rule."""


def _read(source: Any, name: str) -> Any:
    if isinstance(source, Mapping):
        return source.get(name)
    return getattr(source, name, None)


def resolve_day_index(label: Optional[str]) -> Optional[int]:
    """Map a day label ("Monday", "mon", "Mondays") to 0=Sunday .. 6=Saturday."""
    if not isinstance(label, str):
        return None
    text = label.strip().lower()
    if not text:
        return None
    for index, name in enumerate(DAY_NAMES):
        full = name.lower()
        if text in (full, full + "s", full[:3]):
            return index
    return None


def _day_fields(index: Optional[int]) -> dict[str, Any]:
    if index is None:
        return {"day_of_week_index": None, "day_abbrev": None, "day_name": None}
    return {
        "day_of_week_index": index,
        "day_abbrev": DAY_ABBREVS[index],
        "day_name": DAY_NAMES[index],
    }


def _unique(values: Iterable[int]) -> list[int]:
    seen: list[int] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def _positive_int(raw: Any) -> Optional[int]:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


# Structured rule parsing


def parse_rrule(text: Optional[str]) -> ParsedRRule:
    """Parse RRULE text into its components.

    Args:
        text: Rule text, optionally prefixed with ``RRULE:``

    Returns:
        ParsedRRule with FREQ, INTERVAL, BYDAY, BYMONTHDAY, COUNT and UNTIL

    Raises:
        RRuleParseError: If the text has no supported FREQ component
    """
    if not text or not text.strip():
        raise RRuleParseError("Empty recurrence rule")

    body = re.sub(r"^RRULE:", "", text.strip(), flags=re.IGNORECASE)
    freq: Optional[str] = None
    interval = 1
    byday: list[ByDayEntry] = []
    bymonthday: list[int] = []
    count: Optional[int] = None
    until: Optional[str] = None

    for part in _RULE_PART_SPLIT_RE.split(body):
        if "=" not in part:
            continue
        key, value = part.split("=", 1)
        key = key.strip().upper()
        value = value.strip()
        if not key or not value:
            continue

        if key == "FREQ":
            freq = value.upper()
        elif key == "INTERVAL":
            interval = _positive_int(value) or 1
        elif key == "BYDAY":
            for token in value.upper().split(","):
                match = _BYDAY_RE.match(token.strip())
                if not match or match.group(2) not in DAY_ABBREVS:
                    logger.debug("Skipping unrecognized BYDAY token %r", token)
                    continue
                ordinal = int(match.group(1)) if match.group(1) else None
                byday.append(ByDayEntry(ordinal=ordinal or None, day=match.group(2)))
        elif key == "BYMONTHDAY":
            for token in value.split(","):
                try:
                    day = int(token)
                except ValueError:
                    continue
                if 1 <= abs(day) <= 31:
                    bymonthday.append(day)
        elif key == "COUNT":
            count = _positive_int(value)
        elif key == "UNTIL":
            digits = value[:8]
            if digits.isdigit():
                until = coerce_date_key(f"{digits[:4]}-{digits[4:6]}-{digits[6:8]}")

    if freq not in RRULE_FREQUENCIES:
        raise RRuleParseError(f"Unsupported or missing FREQ in rule: {text!r}")

    return ParsedRRule(
        freq=freq,
        interval=interval,
        byday=byday,
        bymonthday=bymonthday,
        count=count,
        until=until,
    )


# Legacy ordinal text


def is_multi_ordinal_pattern(rule: Optional[str]) -> bool:
    """True if legacy text names more than one monthly ordinal."""
    if not rule:
        return False
    text = rule.lower().strip()
    if any(sep in text for sep in ("/", "&", ",")):
        return True
    if re.search(r"\band\b", text):
        return True
    return len(_ORDINAL_WORD_RE.findall(text)) > 1


def parse_ordinals_from_recurrence_rule(rule: Optional[str]) -> list[int]:
    """Extract numeric ordinals from legacy text such as "2nd and 4th".

    Order of appearance is preserved; unrecognized parts are ignored.
    """
    if not rule:
        return []
    text = rule.lower().strip()
    if text in ("weekly", "biweekly", "custom", "monthly", "none", ""):
        return []

    ordinals: list[int] = []
    for part in _COMPOSITE_SPLIT_RE.split(text):
        for word in part.split():
            ordinal = LEGACY_ORDINAL_TO_NUMBER.get(word)
            if ordinal is not None:
                ordinals.append(ordinal)
    return _unique(ordinals)


def canonical_ordinal_order(ordinals: Iterable[int]) -> list[int]:
    """Sort ordinals ascending with "last" (-1) forced to the end."""
    return sorted(_unique(ordinals), key=lambda o: (o < 0, o if o > 0 else -o))


def build_recurrence_rule_from_ordinals(ordinals: Iterable[int]) -> str:
    """Serialize ordinals to canonical legacy text, e.g. ``1st/3rd`` or ``2nd/last``."""
    return "/".join(NUMBER_TO_ORDINAL.get(o, f"{o}th") for o in canonical_ordinal_order(ordinals))


# Interpretation


def interpret_recurrence(source: Any) -> NormalizedRecurrence:
    """Normalize raw scheduling fields into one recurrence descriptor.

    Resolution order: structured rule, legacy text, day-of-week label,
    anchor date. Never raises; anything unresolvable comes back as
    ``frequency=unknown`` with ``is_confident=False``.

    Args:
        source: Event model or mapping carrying the scheduling fields

    Returns:
        NormalizedRecurrence
    """
    anchor = coerce_date_key(_read(source, "event_date"))
    end_date = coerce_date_key(_read(source, "recurrence_end_date"))
    count = _positive_int(_read(source, "max_occurrences"))
    custom_dates = custom_dates_for(source)
    rule_raw = _read(source, "recurrence_rule")
    rule = rule_raw.strip() if isinstance(rule_raw, str) else ""
    labeled_day = resolve_day_index(_read(source, "day_of_week"))

    base: dict[str, Any] = {"start_date": anchor, "end_date": end_date, "count": count}

    if rule:
        try:
            parsed = parse_rrule(rule)
        except RRuleParseError:
            return _interpret_legacy(rule, labeled_day, anchor, custom_dates, base)
        return _interpret_rrule(parsed, labeled_day, anchor, base)

    if custom_dates:
        return NormalizedRecurrence(
            **base, is_recurring=True, frequency=Frequency.CUSTOM, is_confident=True
        )

    if labeled_day is not None:
        return NormalizedRecurrence(
            **base, **_day_fields(labeled_day), is_recurring=True, frequency=Frequency.WEEKLY
        )

    if anchor:
        return NormalizedRecurrence(
            **base,
            **_day_fields(weekday_index(parse_date_key(anchor))),
            is_recurring=False,
            frequency=Frequency.ONE_TIME,
        )

    return NormalizedRecurrence(**base, frequency=Frequency.UNKNOWN, is_confident=False)


def custom_dates_for(source: Any) -> list[str]:
    """Valid, sorted, de-duplicated custom dates of an event."""
    raw = _read(source, "custom_dates")
    if not isinstance(raw, (list, tuple)):
        return []
    return sorted({key for key in (coerce_date_key(v) for v in raw) if key})


def _anchor_day(anchor: Optional[str]) -> Optional[int]:
    return weekday_index(parse_date_key(anchor)) if anchor else None


def _anchor_ordinal(anchor: Optional[str], day_index: Optional[int]) -> list[int]:
    """The anchor's own nth-weekday position when it falls on ``day_index``."""
    if not anchor or day_index is None:
        return []
    anchor_date = parse_date_key(anchor)
    if weekday_index(anchor_date) != day_index:
        return []
    return [(anchor_date.day - 1) // 7 + 1]


def _interpret_rrule(
    parsed: ParsedRRule,
    labeled_day: Optional[int],
    anchor: Optional[str],
    base: dict[str, Any],
) -> NormalizedRecurrence:
    ordinals: list[int] = []
    if parsed.byday:
        day_index: Optional[int] = DAY_ABBREVS.index(parsed.byday[0].day)
        first_day = parsed.byday[0].day
        for entry in parsed.byday:
            if entry.ordinal is None:
                continue
            if entry.day != first_day:
                logger.debug("Ignoring BYDAY %s%s: mixed weekdays", entry.ordinal, entry.day)
                continue
            ordinals.append(entry.ordinal)
        ordinals = _unique(ordinals)
    else:
        day_index = labeled_day if labeled_day is not None else _anchor_day(anchor)

    end_date = base["end_date"]
    if parsed.until and (not end_date or parsed.until < end_date):
        end_date = parsed.until
    fields: dict[str, Any] = {
        **base,
        "end_date": end_date,
        "count": parsed.count or base["count"],
        "interval": parsed.interval,
        "parsed_rrule": parsed,
        "is_recurring": True,
    }

    if parsed.freq == "DAILY":
        return NormalizedRecurrence(
            **fields, **_day_fields(day_index), frequency=Frequency.DAILY, is_confident=True
        )

    if parsed.freq == "YEARLY":
        return NormalizedRecurrence(
            **fields,
            **_day_fields(day_index),
            frequency=Frequency.YEARLY,
            is_confident=anchor is not None,
        )

    if parsed.freq == "WEEKLY":
        frequency = Frequency.BIWEEKLY if parsed.interval == 2 else Frequency.WEEKLY
        return NormalizedRecurrence(
            **fields,
            **_day_fields(day_index),
            frequency=frequency,
            is_confident=day_index is not None,
        )

    # MONTHLY
    if parsed.byday and not ordinals and not parsed.bymonthday:
        # Every listed weekday of every month is a weekly pattern
        fields["interval"] = 1
        return NormalizedRecurrence(
            **fields, **_day_fields(day_index), frequency=Frequency.WEEKLY, is_confident=True
        )
    if parsed.bymonthday:
        return NormalizedRecurrence(
            **fields,
            **_day_fields(day_index if parsed.byday else None),
            frequency=Frequency.MONTHLY,
            month_days=_unique(parsed.bymonthday),
            is_confident=True,
        )
    if not ordinals:
        ordinals = _anchor_ordinal(anchor, day_index)
    return NormalizedRecurrence(
        **fields,
        **_day_fields(day_index),
        frequency=Frequency.MONTHLY,
        ordinals=ordinals,
        is_confident=day_index is not None and bool(ordinals),
    )


def _interpret_legacy(
    rule: str,
    labeled_day: Optional[int],
    anchor: Optional[str],
    custom_dates: list[str],
    base: dict[str, Any],
) -> NormalizedRecurrence:
    text = rule.lower().strip()
    day_index = labeled_day if labeled_day is not None else _anchor_day(anchor)
    day = _day_fields(day_index)

    if text == "none":
        # Only an explicit day label turns a rule-less row into a weekly series
        if labeled_day is not None:
            return NormalizedRecurrence(
                **base, **day, is_recurring=True, frequency=Frequency.WEEKLY
            )
        if anchor:
            return NormalizedRecurrence(**base, **day, frequency=Frequency.ONE_TIME)
        return NormalizedRecurrence(**base, frequency=Frequency.UNKNOWN, is_confident=False)

    if text == "weekly":
        return NormalizedRecurrence(
            **base,
            **day,
            is_recurring=True,
            frequency=Frequency.WEEKLY,
            is_confident=day_index is not None,
        )

    if text in ("biweekly", "every other week"):
        return NormalizedRecurrence(
            **base,
            **day,
            is_recurring=True,
            frequency=Frequency.BIWEEKLY,
            interval=2,
            is_confident=day_index is not None,
        )

    if text == "custom":
        return NormalizedRecurrence(
            **base,
            is_recurring=True,
            frequency=Frequency.CUSTOM,
            is_confident=bool(custom_dates) or anchor is not None,
        )

    if text == "daily":
        return NormalizedRecurrence(
            **base, **day, is_recurring=True, frequency=Frequency.DAILY, is_confident=True
        )

    if text in ("yearly", "annually"):
        return NormalizedRecurrence(
            **base,
            **day,
            is_recurring=True,
            frequency=Frequency.YEARLY,
            is_confident=anchor is not None,
        )

    if text == "monthly":
        ordinals = _anchor_ordinal(anchor, day_index)
        return NormalizedRecurrence(
            **base,
            **day,
            is_recurring=True,
            frequency=Frequency.MONTHLY,
            ordinals=ordinals,
            is_confident=day_index is not None and bool(ordinals),
        )

    if text == "seasonal":
        return NormalizedRecurrence(
            **base, is_recurring=True, frequency=Frequency.UNKNOWN, is_confident=False
        )

    if is_multi_ordinal_pattern(text):
        ordinals = parse_ordinals_from_recurrence_rule(text)
        return NormalizedRecurrence(
            **base,
            **day,
            is_recurring=True,
            frequency=Frequency.MONTHLY,
            ordinals=ordinals,
            is_confident=bool(ordinals) and day_index is not None,
        )

    single = LEGACY_ORDINAL_TO_NUMBER.get(text)
    if single is not None:
        return NormalizedRecurrence(
            **base,
            **day,
            is_recurring=True,
            frequency=Frequency.MONTHLY,
            ordinals=[single],
            is_confident=day_index is not None,
        )

    # Unrecognized text: keep the weekday for labels but do not generate dates
    logger.debug("Unrecognized recurrence rule %r", rule)
    if day_index is not None:
        return NormalizedRecurrence(
            **base, **day, is_recurring=True, frequency=Frequency.WEEKLY, is_confident=False
        )
    return NormalizedRecurrence(**base, frequency=Frequency.UNKNOWN, is_confident=False)


# Labels


def _month_day_label(day: int) -> str:
    if day < 0:
        return "last day" if day == -1 else f"{-day}th-to-last day"
    if 11 <= day % 100 <= 13:
        return f"{day}th"
    suffix = {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
    return f"{day}{suffix}"


def label_from_recurrence(rec: NormalizedRecurrence) -> str:
    """Human-readable schedule label derived only from ``rec``."""
    if not rec.is_recurring:
        return "One-time" if rec.frequency == Frequency.ONE_TIME else "Schedule TBD"

    day_name = rec.day_name

    if rec.frequency == Frequency.WEEKLY:
        if rec.interval > 1:
            return f"Every {rec.interval} Weeks on {day_name}" if day_name else f"Every {rec.interval} Weeks"
        return f"Every {day_name}" if day_name else "Weekly"

    if rec.frequency == Frequency.BIWEEKLY:
        return f"Every Other {day_name}" if day_name else "Every Other Week"

    if rec.frequency == Frequency.MONTHLY:
        if rec.ordinals and day_name:
            words = [_LABEL_ORDINALS.get(o, f"{o}th") for o in canonical_ordinal_order(rec.ordinals)]
            if len(words) == 1:
                return f"{words[0]} {day_name} of the Month"
            return f"{' & '.join(words)} {day_name}s"
        if rec.month_days:
            return "Monthly on the " + " & ".join(_month_day_label(d) for d in rec.month_days)
        return f"{day_name} (Monthly)" if day_name else "Monthly"

    if rec.frequency == Frequency.DAILY:
        return "Every Day" if rec.interval == 1 else f"Every {rec.interval} Days"

    if rec.frequency == Frequency.YEARLY:
        return "Yearly" if rec.interval == 1 else f"Every {rec.interval} Years"

    if rec.frequency == Frequency.CUSTOM:
        return "Custom Schedule"

    return f"Every {day_name}" if day_name else "Recurring"


# Invariant check


def should_expand_to_multiple(rec: NormalizedRecurrence) -> bool:
    """True for confidently recurring series with a stride-based frequency."""
    return rec.is_recurring and rec.is_confident and rec.frequency in CYCLE_DAYS


def cycle_days(rec: NormalizedRecurrence) -> int:
    """Days spanned by one full cycle of ``rec``'s frequency."""
    base = CYCLE_DAYS.get(rec.frequency, 7)
    if rec.frequency in (Frequency.WEEKLY, Frequency.DAILY, Frequency.YEARLY):
        return base * max(rec.interval, 1)
    return base


def assert_recurrence_invariant(
    rec: NormalizedRecurrence,
    occurrence_count: int,
    event_label: Optional[str] = None,
    window_days: Optional[int] = None,
    window_start: Optional[str] = None,
    window_end: Optional[str] = None,
) -> bool:
    """Log a diagnostic if a recurring series produced a single occurrence.

    Bounded series (count or end date) and windows no wider than one cycle
    are exempt. This never raises.

    Returns:
        True if a violation was logged
    """
    if rec.is_bounded or not should_expand_to_multiple(rec):
        return False
    if window_days is not None and window_days <= cycle_days(rec):
        return False
    if occurrence_count != 1:
        return False

    window = f" in window [{window_start}→{window_end}]" if window_start and window_end else ""
    logger.warning(
        "[RECURRENCE INVARIANT VIOLATION] Event %s is recurring (%s) but only produced "
        "1 occurrence%s. This indicates a generator bug.",
        event_label or "unknown",
        rec.frequency.value,
        window,
    )
    return True
