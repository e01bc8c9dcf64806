"""Exception hierarchy for occurrence write-path errors.

Only the write guard raises these. Each error carries a stable code and an
HTTP status so endpoint handlers can turn it into a response without
inspecting the message.
"""

from __future__ import annotations

from typing import Any


class DateKeyContractError(Exception):
    """Base exception for date-key contract failures on write endpoints.

    Handlers should catch this base class and return ``to_dict()`` with
    ``http_status``.
    """

    code = "DATE_KEY_CONTRACT_ERROR"
    http_status = 400

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-ready error body."""
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = dict(self.details)
        return body


class InvalidDateKeyError(DateKeyContractError):
    """A caller-supplied date key is not a valid ``YYYY-MM-DD`` date.

    Should result in HTTP 400 Bad Request response.
    """

    code = "INVALID_DATE_KEY"
    http_status = 400


class EventNotFoundError(DateKeyContractError):
    """The event needed to compute a date key does not exist.

    Should result in HTTP 404 Not Found response.
    """

    code = "EVENT_NOT_FOUND"
    http_status = 404


class OccurrenceCancelledError(DateKeyContractError):
    """The target occurrence is cancelled and accepts no writes.

    Distinct from validation failures. Should result in HTTP 409 Conflict
    response.
    """

    code = "OCCURRENCE_CANCELLED"
    http_status = 409
