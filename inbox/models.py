"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import Boolean, Column, Integer, String, Text

from inbox.storage import Base


class Message(Base):
    """
    One anonymously submitted message and its optional operator reply.

    Table: messages
    Primary Key: id (autoincrement, doubles as insertion order)
    """
    __tablename__ = "messages"
    # Never hand a deleted message's id to a new submission
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    content = Column(Text, nullable=False)
    created_at = Column(String, nullable=False, index=True)  # ISO-8601 UTC, microseconds
    is_read = Column(Boolean, nullable=False, default=False)
    reply = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, is_read={self.is_read}, replied={self.reply is not None})>"


class RevokedSession(Base):
    """
    Operator session tokens invalidated by logout before their expiry.

    Table: revoked_sessions
    Primary Key: jti (token id claim)
    """
    __tablename__ = "revoked_sessions"

    jti = Column(String, primary_key=True)
    expires_at = Column(String, nullable=False, index=True)  # ISO-8601 UTC
