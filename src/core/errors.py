"""
Analytics error taxonomy.

Every error raised by the analytics engine derives from AnalyticsError so
the API layer can map it to a status code in one place.
"""

from typing import Any, Dict, Optional


class AnalyticsError(Exception):
    """Base error for the wallet analytics engine."""

    kind: str = "analytics_error"
    http_status: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "message": self.message, "details": self.details}


class NotFoundError(AnalyticsError):
    """Wallet, project or cohort id has no matching row."""

    kind = "not_found"
    http_status = 404


class ValidationError(AnalyticsError):
    """Malformed input (bad date range, unknown enum value, bad weights)."""

    kind = "validation_error"
    http_status = 400


class InsufficientDataError(AnalyticsError):
    """An explicit minimum was violated for a single-entity calculation."""

    kind = "insufficient_data"
    http_status = 422


class ComputationError(AnalyticsError):
    """Unexpected internal fault while computing a metric."""

    kind = "computation_error"
    http_status = 500
