"""Command-line entry for happenings_lite.

Reads events and override rows from a JSON file and prints timeline, series,
next-occurrence or write-guard results as JSON.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import os
import sys
import uuid
from typing import Any, Optional

from . import _init_logging
from .calendar.occurrence_generator import ExpansionCaps, compute_next_occurrence
from .calendar.recurrence import interpret_recurrence, label_from_recurrence
from .config_loader import Config, load_config
from .core.date_keys import is_valid_date_key, today_key
from .domain.event_store import InMemoryEventRepository
from .domain.window_orchestrator import expand_and_group_events, group_events_as_series_view
from .domain.write_guard import validate_date_key_for_write
from .exceptions import DateKeyContractError, EventNotFoundError, InvalidDateKeyError
from .lite_logging import configure_lite_logging, set_request_id

logger = logging.getLogger(__name__)

EXIT_CONTRACT_ERROR = 2


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for happenings_lite CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="happenings_lite",
        description="Happenings Lite - recurrence and occurrence engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m happenings_lite timeline events.json --today 2026-01-05
  python -m happenings_lite series events.json --days 60
  python -m happenings_lite next events.json --event open-mic-1
  python -m happenings_lite resolve events.json --event open-mic-1 --date 2026-01-12
        """,
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("file", help="JSON file with 'events' and optional 'overrides' lists")
    common.add_argument("--today", metavar="YYYY-MM-DD", help="Today's date key (default: now)")
    common.add_argument("--config", metavar="PATH", help="YAML or JSON config file")
    common.add_argument("--debug", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("timeline", "Date-grouped occurrences across all events"),
        ("series", "One entry per event with upcoming dates"),
    ):
        cmd = sub.add_parser(name, parents=[common], help=help_text)
        cmd.add_argument("--days", type=int, metavar="N", help="Window length in days")

    next_cmd = sub.add_parser("next", parents=[common], help="Next occurrence of one event")
    next_cmd.add_argument("--event", required=True, metavar="ID", help="Event ID")

    resolve_cmd = sub.add_parser(
        "resolve", parents=[common], help="Resolve a write-safe date key for one event"
    )
    resolve_cmd.add_argument("--event", required=True, metavar="ID", help="Event ID")
    resolve_cmd.add_argument("--date", metavar="YYYY-MM-DD", help="Caller-supplied date key")

    return parser


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=False))


def _load_settings(args: argparse.Namespace) -> Config:
    configure_lite_logging(debug_mode=args.debug)
    cfg = load_config(args.config) if args.config else Config()
    if not args.debug:
        logger.debug("Applying configured log_level=%s", cfg.log_level)
        logging.getLogger().setLevel(getattr(logging, cfg.log_level, logging.INFO))
    return cfg


def _run(args: argparse.Namespace, cfg: Config) -> int:
    today = args.today or today_key(tz_name=cfg.timezone)
    if not is_valid_date_key(today):
        _emit(InvalidDateKeyError(f"Invalid --today value: {today}. Expected YYYY-MM-DD.").to_dict())
        return EXIT_CONTRACT_ERROR

    repo = InMemoryEventRepository.from_json_file(args.file)
    caps = ExpansionCaps.from_settings(cfg)
    days = getattr(args, "days", None)
    if days is not None:
        caps = dataclasses.replace(caps, window_days=max(days, 1))

    if args.command == "timeline":
        result = expand_and_group_events(repo.events, today, overrides=repo.overrides, caps=caps)
        _emit(result.model_dump(mode="json"))
        return 0

    if args.command == "series":
        series = group_events_as_series_view(
            repo.events, today, overrides=repo.overrides, caps=caps
        )
        _emit(series.model_dump(mode="json"))
        return 0

    if args.command == "next":
        event = repo.get_event(args.event)
        if event is None:
            _emit(EventNotFoundError(f"Event not found: {args.event}").to_dict())
            return EXIT_CONTRACT_ERROR
        rec = interpret_recurrence(event)
        next_occurrence = compute_next_occurrence(event, today, recurrence=rec)
        _emit(
            {
                "event_id": event.id,
                "recurrence_summary": label_from_recurrence(rec),
                **next_occurrence.model_dump(mode="json"),
            }
        )
        return 0

    try:
        resolved = validate_date_key_for_write(args.event, args.date, repo, today)
    except DateKeyContractError as e:
        logger.info("Write guard rejected %s: %s", args.event, e.code)
        _emit(e.to_dict())
        return EXIT_CONTRACT_ERROR
    _emit({"date_key": resolved.date_key, "was_computed": resolved.was_computed})
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Run the happenings_lite CLI.

    Returns:
        Process exit code: 0 on success, 2 on date-key contract errors
    """
    _init_logging(os.environ.get("HAPPENINGS_LOG_LEVEL"))
    parser = _create_parser()
    args = parser.parse_args(argv)

    set_request_id(uuid.uuid4().hex[:12])
    cfg = _load_settings(args)
    return _run(args, cfg)


if __name__ == "__main__":
    sys.exit(main())
