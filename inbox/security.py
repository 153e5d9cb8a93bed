"""
Operator authentication: credential check and session tokens.

The session marker is a signed, expiring JWT issued by the server. Holding
one is not enough on its own: every privileged request presents it again and
it is re-verified (signature, expiry, revocation).
"""

import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from jose import JWTError, jwt
from sqlalchemy.orm import Session

from inbox.config import settings
from inbox.errors import AuthError, UnauthorizedError
from inbox.limits import SECRET_MAX_LENGTH
from inbox.storage import is_session_revoked, revoke_session, utc_timestamp

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
OPERATOR_SUBJECT = "operator"


def validate_secret(secret: str) -> bool:
    """
    Check a submitted secret against the configured operator secret.

    Args:
        secret: Secret as typed by the operator (no normalization applied)

    Returns:
        True on exact match, False otherwise

    Raises:
        AuthError: no operator secret is configured
    """
    reference = settings.OPERATOR_SECRET
    if not reference:
        logger.error("OPERATOR_SECRET is not configured")
        raise AuthError("operator secret not configured")

    if len(secret) > SECRET_MAX_LENGTH:
        logger.info("Credential check: rejected oversized secret")
        return False

    # Constant-time comparison
    is_valid = hmac.compare_digest(secret.encode("utf-8"), reference.encode("utf-8"))
    logger.info(f"Credential check: {'valid' if is_valid else 'invalid'}")
    return is_valid


@dataclass(frozen=True)
class SessionState:
    """An issued operator session."""

    token: str
    jti: str
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now(timezone.utc)) >= self.expires_at


@dataclass(frozen=True)
class AuthFailed:
    """Result of authenticate() with a wrong secret."""

    reason: str = "invalid secret"


def _signing_key() -> str:
    key = settings.SESSION_SECRET
    if not key:
        logger.error("SESSION_SECRET is not configured")
        raise AuthError("session signing key not configured")
    return key


def create_session_token(now: Optional[datetime] = None) -> SessionState:
    """Issue a signed operator token valid for SESSION_TTL_MINUTES."""
    issued_at = now or datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(minutes=settings.SESSION_TTL_MINUTES)
    jti = secrets.token_urlsafe(16)
    claims = {
        "sub": OPERATOR_SUBJECT,
        "jti": jti,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    token = jwt.encode(claims, _signing_key(), algorithm=ALGORITHM)
    return SessionState(
        token=token,
        jti=jti,
        expires_at=datetime.fromtimestamp(claims["exp"], timezone.utc),
    )


def decode_session_token(token: str) -> SessionState:
    """
    Verify signature and expiry of an operator token.

    Raises:
        UnauthorizedError: token is malformed, tampered with or expired
    """
    try:
        payload = jwt.decode(token, _signing_key(), algorithms=[ALGORITHM])
    except JWTError as e:
        logger.info(f"Session token rejected: {type(e).__name__}")
        raise UnauthorizedError("invalid or expired session") from e

    jti = payload.get("jti")
    exp = payload.get("exp")
    if payload.get("sub") != OPERATOR_SUBJECT or not jti or not isinstance(exp, int):
        raise UnauthorizedError("invalid or expired session")

    return SessionState(
        token=token,
        jti=jti,
        expires_at=datetime.fromtimestamp(exp, timezone.utc),
    )


class SessionGate:
    """
    Holds the operator session marker and gates moderation on it.

    The gate only ever trusts a marker it issued itself through
    ``authenticate`` or one that passed ``resume`` verification.
    """

    def __init__(self, db: Optional[Session] = None):
        self._db = db
        self._state: Optional[SessionState] = None

    @property
    def state(self) -> Optional[SessionState]:
        return self._state

    def authenticate(self, secret: str) -> Union[SessionState, AuthFailed]:
        """
        Exchange the operator secret for a session.

        A wrong secret returns AuthFailed and leaves the current marker as it
        was. A broken validator raises AuthError.
        """
        if not validate_secret(secret):
            return AuthFailed()
        self._state = create_session_token()
        logger.info("Operator session issued")
        return self._state

    def resume(self, token: str) -> SessionState:
        """
        Adopt a previously issued token presented by a client.

        Raises:
            UnauthorizedError: token invalid, expired or revoked
        """
        state = decode_session_token(token)
        if self._db is not None and is_session_revoked(self._db, state.jti):
            logger.info("Session token rejected: revoked")
            raise UnauthorizedError("session has been logged out")
        self._state = state
        return state

    def is_authenticated(self) -> bool:
        return self._state is not None and not self._state.is_expired()

    def logout(self) -> None:
        """Clear the marker. Safe to call repeatedly."""
        state, self._state = self._state, None
        if state is None or state.is_expired() or self._db is None:
            return
        revoke_session(self._db, state.jti, utc_timestamp(state.expires_at))
