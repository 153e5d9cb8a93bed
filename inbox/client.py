"""HTTP client for the inbox API.

Holds the operator session locally and keeps a read-through copy of the
message list. The copy is never authoritative: every write drops it and the
next read goes back to the server.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from inbox.errors import (
    AuthError,
    InboxError,
    NotFoundError,
    StoreError,
    UnauthorizedError,
    ValidationError,
)
from inbox.limits import MESSAGE_MAX_LENGTH, REPLY_MAX_LENGTH

logger = logging.getLogger(__name__)


def _check_text(value: str, field: str, max_length: int) -> None:
    # Same bounds the server applies, measured after trimming
    cleaned = value.strip()
    if not cleaned:
        raise ValidationError(f"{field} must not be empty", field=field)
    if len(cleaned) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters", field=field)


class InboxClient:
    """Client for submitting, reading replies and moderating."""

    def __init__(self, http: httpx.Client):
        """
        Args:
            http: Configured httpx client (base_url and timeout set by the caller)
        """
        self._http = http
        self._token: Optional[str] = None
        self._expires_at: Optional[datetime] = None
        self._messages: Optional[list[dict[str, Any]]] = None

    @classmethod
    def connect(cls, base_url: str, timeout: float = 10.0) -> "InboxClient":
        return cls(httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout))

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "InboxClient":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._http.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise StoreError("request timed out") from e
        except httpx.RequestError as e:
            logger.error(f"Inbox request failed: {e}")
            raise StoreError("inbox service unreachable") from e

        if response.is_success:
            return response
        raise self._error_for(response)

    def _error_for(self, response: httpx.Response) -> InboxError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        message = body.get("message") if isinstance(body, dict) else None
        detail = message or response.reason_phrase

        code = response.status_code
        if code == 401:
            return UnauthorizedError(detail)
        if code == 404:
            message_id = body.get("details", {}).get("id") if isinstance(body, dict) else None
            return NotFoundError(message_id)
        if code == 422:
            return ValidationError(detail)
        if code == 503 and isinstance(body, dict) and body.get("error") == AuthError.error_code:
            return AuthError(detail)
        return StoreError(detail)

    def _operator_request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if not self.is_authenticated():
            raise UnauthorizedError()
        headers = {"Authorization": f"Bearer {self._token}"}
        try:
            return self._request(method, path, headers=headers, **kwargs)
        except UnauthorizedError:
            # Server no longer accepts the token (expired or revoked)
            self._clear_session()
            raise

    # -------------------------------------------------------------------------
    # Public surface
    # -------------------------------------------------------------------------

    def submit(self, content: str) -> dict[str, Any]:
        """Send an anonymous message. Empty or oversized content fails without a round trip."""
        _check_text(content, "content", MESSAGE_MAX_LENGTH)
        self._messages = None
        return self._request("POST", "/messages", json={"content": content}).json()

    def recent_replies(self, limit: int = 20) -> list[dict[str, Any]]:
        response = self._request("GET", "/replies", params={"limit": limit})
        return response.json()["data"]

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    def authenticate(self, secret: str) -> bool:
        """
        Log in as the operator.

        Returns False for a wrong secret and leaves any current session alone.
        AuthError (server misconfigured) and StoreError propagate.
        """
        try:
            response = self._request("POST", "/auth/login", json={"secret": secret})
        except (UnauthorizedError, ValidationError):
            return False

        body = response.json()
        self._token = body["access_token"]
        self._expires_at = datetime.fromisoformat(body["expires_at"].replace("Z", "+00:00"))
        self._messages = None
        return True

    def is_authenticated(self) -> bool:
        if self._token is None or self._expires_at is None:
            return False
        return datetime.now(timezone.utc) < self._expires_at

    def logout(self) -> None:
        """Drop the local session and ask the server to revoke it. Idempotent."""
        token = self._token
        self._clear_session()
        if token is None:
            return
        try:
            self._request("POST", "/auth/logout", headers={"Authorization": f"Bearer {token}"})
        except StoreError as e:
            logger.warning(f"Logout could not reach the server: {e}")

    def _clear_session(self) -> None:
        self._token = None
        self._expires_at = None
        self._messages = None

    # -------------------------------------------------------------------------
    # Moderation
    # -------------------------------------------------------------------------

    def list_messages(self, refresh: bool = False) -> list[dict[str, Any]]:
        """All messages, newest first. Served from the local copy unless stale."""
        if self._messages is None or refresh:
            response = self._operator_request("GET", "/admin/messages")
            self._messages = response.json()["data"]
        return list(self._messages)

    def get_message(self, message_id: int) -> dict[str, Any]:
        return self._operator_request("GET", f"/admin/messages/{message_id}").json()

    def mark_read(self, message_id: int) -> dict[str, Any]:
        self._messages = None
        return self._operator_request("POST", f"/admin/messages/{message_id}/read").json()

    def reply(self, message_id: int, text: str) -> dict[str, Any]:
        _check_text(text, "reply", REPLY_MAX_LENGTH)
        self._messages = None
        return self._operator_request(
            "PUT", f"/admin/messages/{message_id}/reply", json={"reply": text}
        ).json()

    def delete(self, message_id: int) -> bool:
        """
        Delete a message.

        Returns False when it was already gone, which is not treated as an error.
        """
        self._messages = None
        try:
            self._operator_request("DELETE", f"/admin/messages/{message_id}")
        except NotFoundError:
            logger.info(f"Message {message_id} already deleted")
            return False
        return True

    def stats(self) -> dict[str, int]:
        return self._operator_request("GET", "/admin/stats").json()
