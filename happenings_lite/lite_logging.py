"""
Central logging configuration for happenings_lite.

Sets package logger levels, honors debug overrides from the environment and
stamps every record with the current request's correlation ID so that one
batch expansion can be followed through the logs.
"""

import logging
import os
from contextvars import ContextVar
from typing import Optional

DEFAULT_REQUEST_ID = "no-request-id"

# Context variable for the correlation ID of the current request
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

PACKAGE_MODULES = [
    "happenings_lite",
    "happenings_lite.calendar.recurrence",
    "happenings_lite.calendar.occurrence_generator",
    "happenings_lite.calendar.lite_models",
    "happenings_lite.domain.override_engine",
    "happenings_lite.domain.window_orchestrator",
    "happenings_lite.domain.write_guard",
    "happenings_lite.domain.event_store",
]


def set_request_id(request_id: str) -> None:
    """Bind a correlation ID to the current context."""
    request_id_var.set(request_id)


def get_request_id() -> str:
    """Return the current correlation ID, or a placeholder outside a request."""
    return request_id_var.get() or DEFAULT_REQUEST_ID


class CorrelationIdFilter(logging.Filter):
    """Add correlation ID to all log records for request tracing."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add correlation ID to log record.

        Args:
            record: Log record to enhance

        Returns:
            True to allow record to be logged
        """
        record.request_id = get_request_id()
        return True


def configure_lite_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for happenings_lite.

    Args:
        debug_mode: Whether to enable debug logging for happenings_lite modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        HAPPENINGS_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        HAPPENINGS_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("HAPPENINGS_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("HAPPENINGS_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    # Keep handlers installed by _init_logging so the colored formatter survives
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    correlation_filter = CorrelationIdFilter()

    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(root_level)
        formatter = logging.Formatter(
            "[%(asctime)s] [%(request_id)s] %(levelname)s - %(name)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.addFilter(correlation_filter)
        root_logger.addHandler(handler)
    else:
        for existing_handler in root_logger.handlers:
            if not any(isinstance(f, CorrelationIdFilter) for f in existing_handler.filters):
                existing_handler.addFilter(correlation_filter)

    package_level = logging.DEBUG if final_debug else logging.INFO
    for module in PACKAGE_MODULES:
        logging.getLogger(module).setLevel(package_level)

    if final_debug:
        root_logger.info("Debug logging enabled for happenings_lite modules.")
    else:
        root_logger.info("Production logging configuration applied.")


def reset_logging_to_debug() -> None:
    """
    Reset the root and package loggers to DEBUG level for troubleshooting.
    """
    logging.getLogger().setLevel(logging.DEBUG)
    for module in PACKAGE_MODULES:
        logging.getLogger(module).setLevel(logging.DEBUG)

    logging.getLogger().info("All loggers reset to DEBUG level for troubleshooting")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in PACKAGE_MODULES:
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
