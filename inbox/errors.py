"""
Exception taxonomy for the inbox.

Every error carries a stable error code and the HTTP status it maps to, so
the API layer can translate it without changing its meaning.
"""

from typing import Any, Dict, Optional


class InboxError(Exception):
    """Base exception for inbox operations."""

    error_code = "INBOX_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(InboxError):
    """Empty or oversized content, or empty reply text."""

    error_code = "VALIDATION_ERROR"
    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, details)


class NotFoundError(InboxError):
    """No message exists with the requested id."""

    error_code = "NOT_FOUND"
    status_code = 404

    def __init__(self, message_id: int):
        self.message_id = message_id
        super().__init__(f"message not found: {message_id}", {"id": message_id})


class UnauthorizedError(InboxError):
    """The caller holds no valid operator session."""

    error_code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str = "operator session required"):
        super().__init__(message)


class StoreError(InboxError):
    """The message store could not complete the operation."""

    error_code = "STORE_ERROR"
    status_code = 503

    def __init__(self, message: str = "message store unavailable"):
        super().__init__(message)


class AuthError(InboxError):
    """
    The credential check itself is broken (e.g. no operator secret configured).

    Kept distinct from a wrong secret, which is a plain ``False`` from the
    validator.
    """

    error_code = "AUTH_ERROR"
    status_code = 503

    def __init__(self, message: str = "authentication unavailable"):
        super().__init__(message)
