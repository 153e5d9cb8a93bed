"""
Service façades over the message store.

- SubmissionService: public write path, no authentication
- ModerationService: operator-only read/update/delete path
- ReplyFeed: public read path limited to answered messages
"""

import logging
from functools import wraps

from sqlalchemy.orm import Session

from inbox import storage
from inbox.errors import UnauthorizedError
from inbox.security import SessionGate

logger = logging.getLogger(__name__)


class SubmissionService:
    """Accepts anonymous messages."""

    def __init__(self, db: Session):
        self.db = db

    def submit(self, content: str):
        # The store re-validates content regardless of what the caller checked.
        return storage.insert_message(self.db, content)


def requires_operator(method):
    """Reject the call before any store access unless the gate is open."""

    @wraps(method)
    def wrapper(self, *args, **kwargs):
        if not self.gate.is_authenticated():
            logger.warning(f"Unauthorized moderation attempt: {method.__name__}")
            raise UnauthorizedError()
        return method(self, *args, **kwargs)

    return wrapper


class ModerationService:
    """
    Operator operations on the inbox.

    NotFoundError, ValidationError and StoreError from the store propagate
    unchanged.
    """

    def __init__(self, db: Session, gate: SessionGate):
        self.db = db
        self.gate = gate

    @requires_operator
    def list(self) -> list:
        return storage.list_messages(self.db)

    @requires_operator
    def get(self, message_id: int):
        return storage.get_message(self.db, message_id)

    @requires_operator
    def mark_read(self, message_id: int):
        return storage.mark_read(self.db, message_id)

    @requires_operator
    def reply(self, message_id: int, reply_text: str):
        return storage.set_reply(self.db, message_id, reply_text)

    @requires_operator
    def delete(self, message_id: int) -> None:
        storage.delete_message(self.db, message_id)

    @requires_operator
    def stats(self) -> dict:
        return storage.get_stats(self.db)


class ReplyFeed:
    """Public list of answered messages."""

    def __init__(self, db: Session):
        self.db = db

    def recent(self, limit: int) -> list:
        messages = storage.list_replied(self.db, limit)
        # Never publish an unanswered message, whatever the store returned.
        return [m for m in messages if m.reply is not None][:max(limit, 0)]
