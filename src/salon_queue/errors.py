"""Queue error taxonomy.

Every failure of a lifecycle operation is one of these exceptions. They carry a
stable ``code`` so the HTTP and MQTT surfaces can report them in the same
envelope.
"""

from __future__ import annotations

from typing import Any


class QueueError(Exception):
    """Base class for all queue failures."""

    code: str = "queue_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_message(self) -> dict[str, Any]:
        return {"type": "error", "code": self.code, "message": self.message}


class NotFound(QueueError):
    """Unknown entry, salon, service or customer."""

    code = "not_found"


class Unauthorized(QueueError):
    """The actor lacks rights for the operation."""

    code = "unauthorized"


class InvalidTransition(QueueError):
    """The operation is not valid for the entry's current status."""

    code = "invalid_transition"


class InvalidServiceSelection(QueueError):
    """Service not in the salon's catalog, or an offer that cannot be applied."""

    code = "invalid_service_selection"


class StorageUnavailable(QueueError):
    """The underlying database could not be reached."""

    code = "storage_unavailable"
