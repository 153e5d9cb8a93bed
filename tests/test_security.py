"""Unit tests for the credential validator and the session gate."""

import os
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from inbox.config import settings
from inbox.errors import AuthError, UnauthorizedError
from inbox.security import (
    AuthFailed,
    SessionGate,
    SessionState,
    create_session_token,
    decode_session_token,
    validate_secret,
)


OPERATOR_SECRET = os.environ["OPERATOR_SECRET"]


class TestValidateSecret:
    """Test cases for validate_secret."""

    def test_correct_secret(self):
        assert validate_secret(OPERATOR_SECRET) is True

    def test_wrong_secret(self):
        assert validate_secret("wrong") is False

    def test_no_normalization(self):
        assert validate_secret(f" {OPERATOR_SECRET} ") is False
        assert validate_secret(OPERATOR_SECRET.upper()) is False

    def test_empty_secret(self):
        assert validate_secret("") is False

    def test_oversized_secret(self):
        assert validate_secret("x" * 10_000) is False

    def test_unconfigured_raises_auth_error(self, monkeypatch):
        monkeypatch.setattr(settings, "OPERATOR_SECRET", "")

        with pytest.raises(AuthError):
            validate_secret("anything")


class TestSessionTokens:
    """Test token issue and verification."""

    def test_round_trip(self):
        state = create_session_token()
        decoded = decode_session_token(state.token)

        assert decoded.jti == state.jti
        assert decoded.expires_at == state.expires_at

    def test_expiry_follows_ttl(self):
        now = datetime.now(timezone.utc)
        state = create_session_token(now)

        expected = now + timedelta(minutes=settings.SESSION_TTL_MINUTES)
        assert abs((state.expires_at - expected).total_seconds()) < 1

    def test_each_token_unique(self):
        assert create_session_token().jti != create_session_token().jti

    def test_expired_token_rejected(self):
        past = datetime.now(timezone.utc) - timedelta(minutes=settings.SESSION_TTL_MINUTES + 5)
        state = create_session_token(past)

        with pytest.raises(UnauthorizedError):
            decode_session_token(state.token)

    def test_tampered_token_rejected(self):
        state = create_session_token()
        forged = jwt.encode(
            {"sub": "operator", "jti": "x", "exp": int(state.expires_at.timestamp())},
            "not-the-signing-key",
            algorithm="HS256",
        )

        with pytest.raises(UnauthorizedError):
            decode_session_token(forged)

    def test_garbage_rejected(self):
        with pytest.raises(UnauthorizedError):
            decode_session_token("not-a-token")

    def test_wrong_subject_rejected(self):
        token = jwt.encode(
            {"sub": "visitor", "jti": "x", "exp": int(datetime.now(timezone.utc).timestamp()) + 60},
            settings.SESSION_SECRET,
            algorithm="HS256",
        )

        with pytest.raises(UnauthorizedError):
            decode_session_token(token)

    def test_missing_signing_key(self, monkeypatch):
        monkeypatch.setattr(settings, "SESSION_SECRET", "")

        with pytest.raises(AuthError):
            create_session_token()


class TestSessionGate:
    """Test cases for SessionGate."""

    def test_starts_closed(self):
        assert SessionGate().is_authenticated() is False

    def test_authenticate_success(self):
        gate = SessionGate()
        outcome = gate.authenticate(OPERATOR_SECRET)

        assert isinstance(outcome, SessionState)
        assert gate.is_authenticated() is True
        assert gate.state == outcome

    def test_authenticate_failure(self):
        gate = SessionGate()
        outcome = gate.authenticate("wrong")

        assert isinstance(outcome, AuthFailed)
        assert gate.is_authenticated() is False

    def test_failure_keeps_existing_marker(self):
        gate = SessionGate()
        state = gate.authenticate(OPERATOR_SECRET)

        gate.authenticate("wrong")
        assert gate.state == state
        assert gate.is_authenticated() is True

    def test_authenticate_auth_error(self, monkeypatch):
        monkeypatch.setattr(settings, "OPERATOR_SECRET", "")
        gate = SessionGate()

        with pytest.raises(AuthError):
            gate.authenticate("anything")
        assert gate.is_authenticated() is False

    def test_logout_idempotent(self):
        gate = SessionGate()
        gate.authenticate(OPERATOR_SECRET)

        gate.logout()
        gate.logout()
        assert gate.is_authenticated() is False

    def test_expired_marker_not_authenticated(self):
        past = datetime.now(timezone.utc) - timedelta(days=1)
        gate = SessionGate()
        gate._state = create_session_token(past)

        assert gate.is_authenticated() is False

    def test_resume_valid_token(self, db):
        token = SessionGate(db).authenticate(OPERATOR_SECRET).token

        gate = SessionGate(db)
        gate.resume(token)
        assert gate.is_authenticated() is True

    def test_resume_after_logout_rejected(self, db):
        issuing = SessionGate(db)
        token = issuing.authenticate(OPERATOR_SECRET).token
        issuing.logout()

        with pytest.raises(UnauthorizedError):
            SessionGate(db).resume(token)

    def test_resume_invalid_leaves_gate_closed(self, db):
        gate = SessionGate(db)

        with pytest.raises(UnauthorizedError):
            gate.resume("not-a-token")
        assert gate.is_authenticated() is False
