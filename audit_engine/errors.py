"""
Engine Errors

Every rejected operation raises one of these. Callers get the message
verbatim; nothing is retried or partially applied.
"""

from typing import Any, Dict, Optional


class AuditEngineError(Exception):
    """Base class for all engine errors."""

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def code(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        payload = {'error': self.message, 'code': self.code}
        payload.update(self.details)
        return payload


class InvalidState(AuditEngineError):
    """Transition not permitted from the current status."""
    status_code = 409


class ValidationError(AuditEngineError):
    """Missing required field, comment too short, empty mandatory reason."""
    status_code = 400


class EmptyScope(ValidationError):
    """Audit cannot start without at least one scoped line item."""


class Conflict(AuditEngineError):
    """Concurrent mutation lost the race, or a unique key already exists."""
    status_code = 409


class NotFound(AuditEngineError):
    """Referenced record is missing or belongs to another company."""
    status_code = 404


class Forbidden(AuditEngineError):
    """Actor's role is insufficient for the action."""
    status_code = 403
