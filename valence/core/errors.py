"""
Error taxonomy for the marketplace API.

Services raise these; the handlers registered in ``valence.main`` render every
``AppError`` as ``{"error": message}`` with the class's status code. Internal
detail stays in the logs.
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base for all errors that map to an HTTP response."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class Unauthorized(AppError):
    """Missing or invalid caller credential."""

    status_code = 401


class Forbidden(AppError):
    """Authenticated, but not allowed to touch this resource."""

    status_code = 403


class ValidationError(AppError):
    """Missing or malformed request fields."""

    status_code = 400


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    status_code = 409


class IllegalTransition(ConflictError):
    """A booking status change that the state machine does not allow."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(
            f"Illegal booking transition {current} -> {target}",
            details={"from": current, "to": target},
        )


class SignatureError(AppError):
    """Webhook signature could not be verified."""

    status_code = 400


class UpstreamError(AppError):
    """A call to the payment platform failed."""

    status_code = 500
