"""Error taxonomy shared by the dispatcher, executor and auto-move detector.

Every error carries a ``kind`` so it can be turned into a structured,
human-readable result instead of escaping to the caller.
"""
from typing import Any, Optional


class TicketflowError(Exception):
    """Base error with a machine-readable kind and optional details."""

    kind = "error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        data = {"error": self.message, "error_kind": self.kind}
        data.update(self.details)
        return data


class ValidationError(TicketflowError):
    """Malformed or placeholder-laden input, rejected before any side effect."""

    kind = "validation_error"


class NotFoundError(TicketflowError):
    """A ticket or column reference did not resolve."""

    kind = "not_found"


class DependencyUnavailable(TicketflowError):
    """Datastore or remote service unreachable or timed out."""

    kind = "dependency_unavailable"


class PolicyDenied(TicketflowError):
    """Tool intentionally disabled or unimplemented for this agent."""

    kind = "policy_denied"


class AmbiguousSignal(TicketflowError):
    """Ticket id or verdict could not be determined from free text."""

    kind = "ambiguous_signal"


__all__ = [
    "TicketflowError",
    "ValidationError",
    "NotFoundError",
    "DependencyUnavailable",
    "PolicyDenied",
    "AmbiguousSignal",
]
