"""happenings_lite.config_loader

Config loader for happenings_lite.

- Reads YAML (PyYAML) or JSON, chosen by file suffix.
- Exposes a typed dataclass `Config` and a `load_config()` helper that accepts
  an optional path override.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .core.date_keys import DEFAULT_TIMEZONE, is_known_timezone

logger = logging.getLogger(__name__)


@dataclass
class Config:
    """Typed configuration for happenings_lite.

    Fields:
        timezone: civil IANA zone all date keys are expressed in
        window_days: default expansion window length from today
        max_events: events processed per batch
        max_occurrences_per_event: occurrences generated per event
        max_total_occurrences: occurrences generated per batch
        series_preview_limit: upcoming dates listed per series entry
        log_level: logging level name
    """

    timezone: str = DEFAULT_TIMEZONE
    window_days: int = 90
    max_events: int = 200
    max_occurrences_per_event: int = 40
    max_total_occurrences: int = 500
    series_preview_limit: int = 12
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Config:
        """Create Config from a plain mapping, applying defaults and validation.

        Numeric-like values are coerced to int and clamped to at least 1; an
        unknown timezone falls back to the default. Every coercion is logged.
        """
        if data is None:
            data = {}

        def _coerce_int(key: str, default: int) -> int:
            raw = data.get(key, default)
            try:
                value = int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default
            if value < 1:
                logger.warning("Config %s=%d below minimum; coercing to 1", key, value)
                return 1
            return value

        timezone = data.get("timezone", DEFAULT_TIMEZONE)
        timezone = str(timezone) if timezone is not None else DEFAULT_TIMEZONE
        if not is_known_timezone(timezone):
            logger.warning("Config timezone %r is unknown; using %s", timezone, DEFAULT_TIMEZONE)
            timezone = DEFAULT_TIMEZONE

        log_level = data.get("log_level", "INFO")
        log_level = str(log_level).upper() if log_level is not None else "INFO"

        return cls(
            timezone=timezone,
            window_days=_coerce_int("window_days", 90),
            max_events=_coerce_int("max_events", 200),
            max_occurrences_per_event=_coerce_int("max_occurrences_per_event", 40),
            max_total_occurrences=_coerce_int("max_total_occurrences", 500),
            series_preview_limit=_coerce_int("series_preview_limit", 12),
            log_level=log_level,
        )


def _load_yaml_or_json(path: Path) -> Any:
    """Load a YAML or JSON document; ``.json`` files are read as JSON."""
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        return json.loads(text)
    loaded = yaml.safe_load(text)
    # safe_load returns None for empty files
    return {} if loaded is None else loaded


def load_config(path: str | Path | None = None) -> Config:
    """Load configuration from a YAML/JSON file and return a Config instance.

    Args:
        path: Optional path to the config file. Defaults to
              ./happenings_lite/config.yaml (relative to current working dir).

    Returns:
        Config dataclass instance with values from file (or defaults).

    Behavior:
    - If file is missing: returns Config() with defaults.
    - If file exists but top-level is not a mapping: raises ValueError.
    """
    p = Path(path) if path else Path.cwd() / "happenings_lite" / "config.yaml"
    logger.debug("Attempting to load config from %s", p)
    if not p.exists():
        logger.info("Config file %s not found; using defaults", p)
        return Config()

    raw = _load_yaml_or_json(p)
    if not isinstance(raw, dict):
        logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, raw)
        raise ValueError("Config file must contain a mapping at top level")  # noqa: TRY004
    cfg = Config.from_dict(raw)
    logger.info("Loaded configuration from %s", p)
    logger.debug("Configuration values: %s", cfg)
    return cfg
