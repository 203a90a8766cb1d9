"""
auth/errors.py -- Error taxonomy shared by the auth layer and the HTTP layer.

Every error carries the HTTP status it maps to and a client-safe message.
api/main.py registers one exception handler for the base class and renders
{"message": exc.message}. Internal detail (storage paths, driver errors) goes
to the log through the chained __cause__, never into the message.

Layer rule: stdlib only. api/ imports from here, not the other way around.
"""

from __future__ import annotations


class AuthGatewayError(Exception):
    """Base class for errors that have a defined HTTP rendering."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AuthGatewayError):
    """Missing or malformed input."""

    status_code = 400
    default_message = "Invalid request"


class ConflictError(AuthGatewayError):
    """An identity with the same key already exists."""

    status_code = 409
    default_message = "Conflict"


class AuthError(AuthGatewayError):
    """Missing, invalid or expired credential or token."""

    status_code = 401
    default_message = "Unauthorized"


class InternalError(AuthGatewayError):
    """Storage unreadable or signing misconfigured.

    The message is for the log only. The HTTP handler always answers with the
    generic default_message.
    """

    status_code = 500
