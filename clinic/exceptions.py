"""
Domain errors raised by the service layer.

Routers never build HTTP errors for these themselves; the handlers registered
in main.py turn them into the standard error envelope.
"""

from typing import Any, Optional


class ClinicError(Exception):
    """Base class for errors that map to an HTTP response"""

    status_code = 500

    def __init__(self, message: str, errors: Optional[list[Any]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []


class ValidationError(ClinicError):
    """Malformed or missing input. Never retried."""

    status_code = 400


class InvalidTransitionError(ValidationError):
    """Requested appointment status change is not allowed from the current status"""

    status_code = 409


class NotFoundError(ClinicError):
    status_code = 404


class DependencyError(ClinicError):
    """Storage or required external call failed. Safe for the caller to retry."""

    status_code = 503
