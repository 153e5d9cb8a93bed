"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming data validation
- Response models for API responses
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from inbox.limits import MESSAGE_MAX_LENGTH, REPLY_MAX_LENGTH, SECRET_MAX_LENGTH


def _require_text(value: str, max_length: int) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be empty")
    if len(value) > max_length:
        raise ValueError(f"must be at most {max_length} characters")
    return value


# =============================================================================
# Pydantic Request Models
# =============================================================================

class SubmitMessageRequest(BaseModel):
    """
    Anonymous submission. `content` is the only writable field.

    Validates:
    - content: 1-500 characters after trimming
    """
    model_config = ConfigDict(extra="forbid")

    content: str = Field(..., description="Message text")

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        return _require_text(v, MESSAGE_MAX_LENGTH)


class ReplyRequest(BaseModel):
    """Operator reply to a message."""
    model_config = ConfigDict(extra="forbid")

    reply: str = Field(..., description="Reply text")

    @field_validator("reply")
    @classmethod
    def validate_reply(cls, v: str) -> str:
        return _require_text(v, REPLY_MAX_LENGTH)


class LoginRequest(BaseModel):
    """Operator login. The secret is compared verbatim."""
    model_config = ConfigDict(extra="forbid")

    secret: str = Field(..., min_length=1, max_length=SECRET_MAX_LENGTH)


# =============================================================================
# Pydantic Response Models
# =============================================================================

class SubmitMessageResponse(BaseModel):
    """Acknowledgement of a stored submission."""
    id: int = Field(..., description="Message identifier")
    created_at: str = Field(..., description="Server timestamp (ISO-8601 UTC)")


class MessageResponse(BaseModel):
    """Full message record, operator view."""
    id: int
    content: str
    created_at: str
    is_read: bool
    reply: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class MessagesListResponse(BaseModel):
    """All messages, newest first."""
    data: list[MessageResponse] = Field(default_factory=list)
    total: int = Field(..., ge=0)


class PublicReplyResponse(BaseModel):
    """
    Answered message as shown on the public feed.

    Deliberately omits id and is_read.
    """
    content: str
    reply: str
    created_at: str

    model_config = ConfigDict(from_attributes=True)


class PublicReplyListResponse(BaseModel):
    data: list[PublicReplyResponse] = Field(default_factory=list)


class StatsResponse(BaseModel):
    """Operator dashboard counters."""
    total_messages: int = Field(..., ge=0)
    unread_messages: int = Field(..., ge=0)
    replied_messages: int = Field(..., ge=0)


class TokenResponse(BaseModel):
    """Issued operator session."""
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime


class ErrorResponse(BaseModel):
    """Body of every domain error response."""
    error: str = Field(..., description="Stable error code")
    message: str = Field(..., description="Error description")
    detail: str = Field(..., description="Same as message")
    details: dict = Field(default_factory=dict, description="Structured context, e.g. the message id")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
