import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Generator, Iterator, Optional

from sqlalchemy import create_engine, func, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from inbox.config import settings
from inbox.errors import NotFoundError, StoreError, ValidationError
from inbox.limits import MESSAGE_MAX_LENGTH, REPLY_MAX_LENGTH

logger = logging.getLogger(__name__)

connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    # check_same_thread=False is required for SQLite to work with FastAPI's threadpool.
    # timeout bounds how long a statement waits on a locked database.
    connect_args = {
        "check_same_thread": False,
        "timeout": settings.STORE_TIMEOUT_SECONDS,
    }

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args, echo=False)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def utc_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO-8601 UTC with microseconds and a Z suffix. Defaults to server time."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug("Initializing database")
    try:
        # Import models to register them with Base.metadata
        from inbox import models  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and both tables exist, False otherwise.
    """
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        inspector = inspect(engine)
        for table in ("messages", "revoked_sessions"):
            if not inspector.has_table(table):
                logger.error(f"Database schema not applied: '{table}' table not found")
                return False
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


@contextmanager
def store_operation(db: Session, operation: str) -> Iterator[None]:
    """
    Run a store round trip, translating driver failures into StoreError.

    The session is rolled back on failure so it stays usable.
    """
    try:
        yield
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Store operation failed: {operation}: {e}")
        raise StoreError() from e


def _clean_text(value: str, field: str, max_length: int) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    cleaned = value.strip()
    if not cleaned:
        raise ValidationError(f"{field} must not be empty", field=field)
    if len(cleaned) > max_length:
        raise ValidationError(
            f"{field} must be at most {max_length} characters", field=field
        )
    return cleaned


# =============================================================================
# Message Repository Functions
# =============================================================================

def insert_message(db: Session, content: str):
    """
    Persist a newly submitted message.

    Args:
        db: Database session
        content: Message text, 1-500 characters after trimming

    Returns:
        The stored Message with id and created_at assigned

    Raises:
        ValidationError: content is empty or too long
        StoreError: the database rejected the write
    """
    from inbox.models import Message

    cleaned = _clean_text(content, "content", MESSAGE_MAX_LENGTH)
    message = Message(
        content=cleaned,
        created_at=utc_timestamp(),
        is_read=False,
        reply=None,
    )
    with store_operation(db, "insert"):
        db.add(message)
        db.commit()
        db.refresh(message)
    logger.info(f"Message stored: id={message.id}")
    return message


def list_messages(db: Session) -> list:
    """
    Return every message, newest first.

    Ordering is re-derived on each call: created_at DESC, then id ASC so that
    messages sharing a timestamp keep their insertion order.
    """
    from inbox.models import Message

    with store_operation(db, "list"):
        messages = (
            db.query(Message)
            .order_by(Message.created_at.desc(), Message.id.asc())
            .all()
        )
    logger.debug(f"Listed {len(messages)} messages")
    return messages


def get_message(db: Session, message_id: int):
    """Return one message or raise NotFoundError."""
    from inbox.models import Message

    with store_operation(db, "get"):
        message = db.get(Message, message_id)
    if message is None:
        raise NotFoundError(message_id)
    return message


def mark_read(db: Session, message_id: int):
    """
    Set is_read on a message. Calling it again is a no-op.

    Returns:
        The current record

    Raises:
        NotFoundError: no message with this id
    """
    from inbox.models import Message

    with store_operation(db, "mark_read"):
        updated = (
            db.query(Message)
            .filter(Message.id == message_id)
            .update({Message.is_read: True}, synchronize_session=False)
        )
        db.commit()
    if not updated:
        raise NotFoundError(message_id)
    logger.info(f"Message marked read: id={message_id}")
    return get_message(db, message_id)


def set_reply(db: Session, message_id: int, reply_text: str):
    """
    Store the operator's reply and mark the message read.

    Both columns are written by one UPDATE, so no reader can observe a reply
    on an unread message. A later reply overwrites the earlier one.

    Raises:
        ValidationError: reply text is empty or too long
        NotFoundError: no message with this id
    """
    from inbox.models import Message

    cleaned = _clean_text(reply_text, "reply", REPLY_MAX_LENGTH)
    with store_operation(db, "set_reply"):
        updated = (
            db.query(Message)
            .filter(Message.id == message_id)
            .update(
                {Message.reply: cleaned, Message.is_read: True},
                synchronize_session=False,
            )
        )
        db.commit()
    if not updated:
        raise NotFoundError(message_id)
    logger.info(f"Reply stored: id={message_id}")
    return get_message(db, message_id)


def delete_message(db: Session, message_id: int) -> None:
    """
    Remove a message permanently.

    Raises:
        NotFoundError: no message with this id (callers may treat a repeated
            delete as benign)
    """
    from inbox.models import Message

    with store_operation(db, "delete"):
        deleted = (
            db.query(Message)
            .filter(Message.id == message_id)
            .delete(synchronize_session=False)
        )
        db.commit()
    if not deleted:
        raise NotFoundError(message_id)
    logger.info(f"Message deleted: id={message_id}")


def list_replied(db: Session, limit: int) -> list:
    """Answered messages only, newest first, at most `limit` of them."""
    from inbox.models import Message

    if limit <= 0:
        return []
    with store_operation(db, "list_replied"):
        return (
            db.query(Message)
            .filter(Message.reply.isnot(None))
            .order_by(Message.created_at.desc(), Message.id.asc())
            .limit(limit)
            .all()
        )


def get_stats(db: Session) -> dict:
    """
    Counters for the operator dashboard.

    Returns:
        Dictionary with total_messages, unread_messages and replied_messages
    """
    from inbox.models import Message

    with store_operation(db, "stats"):
        total_messages = db.query(func.count(Message.id)).scalar() or 0
        unread_messages = (
            db.query(func.count(Message.id))
            .filter(Message.is_read == False)  # noqa: E712
            .scalar()
            or 0
        )
        replied_messages = (
            db.query(func.count(Message.id))
            .filter(Message.reply.isnot(None))
            .scalar()
            or 0
        )

    logger.debug(
        f"Stats computed: total={total_messages}, unread={unread_messages}, replied={replied_messages}"
    )
    return {
        "total_messages": total_messages,
        "unread_messages": unread_messages,
        "replied_messages": replied_messages,
    }


# =============================================================================
# Session Revocation
# =============================================================================

def revoke_session(db: Session, jti: str, expires_at: str) -> None:
    """
    Record a session token id as revoked until its expiry.

    Idempotent. Rows for tokens that have already expired are pruned.
    """
    from inbox.models import RevokedSession

    with store_operation(db, "revoke_session"):
        db.query(RevokedSession).filter(
            RevokedSession.expires_at < utc_timestamp()
        ).delete(synchronize_session=False)
        db.merge(RevokedSession(jti=jti, expires_at=expires_at))
        db.commit()
    logger.info("Operator session revoked")


def is_session_revoked(db: Session, jti: str) -> bool:
    from inbox.models import RevokedSession

    with store_operation(db, "is_session_revoked"):
        return db.get(RevokedSession, jti) is not None
