"""Fixtures shared by the happenings_lite tests."""

import logging
from collections.abc import Generator
from typing import Any, Callable

import pytest

from happenings_lite.calendar.lite_models import ExpansionWindow, HappeningEvent
from happenings_lite.lite_logging import PACKAGE_MODULES, request_id_var


@pytest.fixture
def today() -> str:
    """A fixed Monday used as "today" so date math is deterministic."""
    return "2026-01-05"


@pytest.fixture
def make_event() -> Callable[..., HappeningEvent]:
    """Factory for events; scheduling fields default to empty.

    Usage:
        make_event("e1", recurrence_rule="weekly", day_of_week="Monday")
    """

    def _make(event_id: str = "evt-1", **fields: Any) -> HappeningEvent:
        fields.setdefault("title", f"Event {event_id}")
        return HappeningEvent(id=event_id, **fields)

    return _make


@pytest.fixture
def make_window() -> Callable[[str, str], ExpansionWindow]:
    """Factory for inclusive expansion windows."""

    def _make(start_key: str, end_key: str) -> ExpansionWindow:
        return ExpansionWindow(start_key=start_key, end_key=end_key)

    return _make


@pytest.fixture(autouse=True)
def restore_logging_state(monkeypatch: Any) -> Generator[None, Any, None]:
    """Undo logging changes made by CLI and logging tests.

    configure_lite_logging and _init_logging touch the root logger, which
    would otherwise leak levels, handlers and filters into later tests.
    """
    monkeypatch.delenv("HAPPENINGS_DEBUG", raising=False)
    monkeypatch.delenv("HAPPENINGS_LOG_LEVEL", raising=False)

    root = logging.getLogger()
    root_level = root.level
    root_handlers = list(root.handlers)
    handler_filters = {handler: list(handler.filters) for handler in root_handlers}
    module_levels = {name: logging.getLogger(name).level for name in PACKAGE_MODULES}
    token = request_id_var.set("")

    yield

    request_id_var.reset(token)
    for handler in list(root.handlers):
        if handler not in root_handlers:
            root.removeHandler(handler)
    for handler, filters in handler_filters.items():
        handler.filters = filters
    root.setLevel(root_level)
    for name, level in module_levels.items():
        logging.getLogger(name).setLevel(level)
