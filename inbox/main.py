import logging
from contextlib import asynccontextmanager
from typing import Annotated, Callable, Optional

from fastapi import Depends, FastAPI, Query, Request, Response, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from inbox.config import settings
from inbox.errors import AuthError, InboxError, StoreError, UnauthorizedError, ValidationError
from inbox.logging_utils import RequestLoggingMiddleware, log_action_data, setup_logging
from inbox.metrics import (
    get_metrics,
    get_metrics_content_type,
    record_login,
    record_moderation,
    record_submission,
)
from inbox.schemas import (
    ErrorResponse,
    HealthResponse,
    LoginRequest,
    MessageResponse,
    MessagesListResponse,
    PublicReplyListResponse,
    PublicReplyResponse,
    ReplyRequest,
    StatsResponse,
    SubmitMessageRequest,
    SubmitMessageResponse,
    TokenResponse,
)
from inbox.security import AuthFailed, SessionGate
from inbox.services import ModerationService, ReplyFeed, SubmissionService
from inbox.storage import check_db_health, get_db, init_db


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and create tables
    """
    init_db()
    yield


app = FastAPI(
    title="Anonymous Inbox API",
    description="Anonymous message submission with a single moderating operator",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)

bearer_scheme = HTTPBearer(auto_error=False)

ERROR_RESPONSES = {
    401: {"model": ErrorResponse, "description": "No valid operator session"},
    503: {"model": ErrorResponse, "description": "Store or authentication unavailable"},
}


# =============================================================================
# Error Handling
# =============================================================================

@app.exception_handler(InboxError)
async def inbox_exception_handler(request: Request, exc: InboxError) -> JSONResponse:
    """Translate domain errors into JSON responses without changing their meaning."""
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code}: {exc.message}")
    else:
        logger.info(f"{exc.error_code}: {exc.message}")

    headers = None
    if isinstance(exc, UnauthorizedError):
        headers = {"WWW-Authenticate": "Bearer"}

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "message": exc.message,
            "detail": exc.message,
            "details": exc.details,
        },
        headers=headers,
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "INTERNAL_SERVER_ERROR",
            "message": "An unexpected error occurred",
            "detail": "An unexpected error occurred",
        },
    )


# =============================================================================
# Dependencies
# =============================================================================

def get_session_gate(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
    db: Session = Depends(get_db),
) -> SessionGate:
    """
    Build the gate for this request from the presented bearer token.

    An absent or rejected token yields a closed gate; moderation then fails
    with Unauthorized before touching the store.
    """
    gate = SessionGate(db)
    if credentials is not None:
        try:
            gate.resume(credentials.credentials)
        except UnauthorizedError:
            pass
    return gate


def get_moderation_service(
    db: Session = Depends(get_db),
    gate: SessionGate = Depends(get_session_gate),
) -> ModerationService:
    return ModerationService(db, gate)


def moderate(request: Request, action: str, operation: Callable, message_id: int = None):
    """Run a moderation operation, recording its outcome for logs and metrics."""
    try:
        result = operation()
    except InboxError as e:
        outcome = e.error_code.lower()
        record_moderation(action, outcome)
        log_action_data(request, action, message_id=message_id, result=outcome)
        raise
    record_moderation(action, "ok")
    log_action_data(request, action, message_id=message_id, result="ok")
    return result


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if:
    1. OPERATOR_SECRET and SESSION_SECRET are set
    2. DB is reachable and schema is applied

    Otherwise returns 503 (Service Unavailable).
    """
    if not settings.OPERATOR_SECRET or not settings.SESSION_SECRET:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="OPERATOR_SECRET or SESSION_SECRET not configured"
        )

    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Public Routes
# =============================================================================

@app.post(
    "/messages",
    response_model=SubmitMessageResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"description": "Validation error"}, 503: ERROR_RESPONSES[503]},
)
def submit_message(
    request: Request,
    body: SubmitMessageRequest,
    db: Session = Depends(get_db),
) -> SubmitMessageResponse:
    """
    Store an anonymous message.

    No authentication and no identifying metadata: only `content` is accepted.
    """
    try:
        message = SubmissionService(db).submit(body.content)
    except ValidationError:
        record_submission("validation_error")
        log_action_data(request, "submit", result="validation_error")
        raise
    except StoreError:
        record_submission("store_error")
        log_action_data(request, "submit", result="store_error")
        raise

    record_submission("created")
    log_action_data(request, "submit", message_id=message.id, result="created")
    return SubmitMessageResponse(id=message.id, created_at=message.created_at)


@app.get("/replies", response_model=PublicReplyListResponse)
def recent_replies(
    request: Request,
    limit: Annotated[
        int,
        Query(ge=1, le=settings.FEED_MAX_LIMIT, description="Maximum number of replies to return"),
    ] = settings.FEED_DEFAULT_LIMIT,
    db: Session = Depends(get_db),
) -> PublicReplyListResponse:
    """Answered messages, newest first. Exposes only content, reply and created_at."""
    messages = ReplyFeed(db).recent(limit)
    log_action_data(request, "feed", result="ok")
    return PublicReplyListResponse(
        data=[PublicReplyResponse.model_validate(m) for m in messages]
    )


# =============================================================================
# Operator Session Routes
# =============================================================================

@app.post(
    "/auth/login",
    response_model=TokenResponse,
    responses={401: ERROR_RESPONSES[401], 503: ERROR_RESPONSES[503]},
)
def login(
    request: Request,
    body: LoginRequest,
    db: Session = Depends(get_db),
) -> TokenResponse:
    """
    Exchange the operator secret for a signed, expiring session token.

    A wrong secret is 401; a misconfigured validator is 503 so the two can be
    told apart.
    """
    gate = SessionGate(db)
    try:
        outcome = gate.authenticate(body.secret)
    except AuthError:
        record_login("auth_error")
        log_action_data(request, "login", result="auth_error")
        raise

    if isinstance(outcome, AuthFailed):
        record_login("invalid_secret")
        log_action_data(request, "login", result="invalid_secret")
        raise UnauthorizedError(outcome.reason)

    record_login("success")
    log_action_data(request, "login", result="success")
    return TokenResponse(access_token=outcome.token, expires_at=outcome.expires_at)


@app.post("/auth/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    request: Request,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
    db: Session = Depends(get_db),
) -> Response:
    """
    Revoke the presented session. Always succeeds, even without a valid token.

    If the revocation table is unreachable the token is left to expire on its
    own; the caller has already dropped it.
    """
    result = "ok"
    gate = SessionGate(db)
    if credentials is not None:
        try:
            gate.resume(credentials.credentials)
            gate.logout()
        except UnauthorizedError:
            pass
        except StoreError:
            logger.warning("Session revocation unavailable, logout not recorded")
            result = "store_error"
    log_action_data(request, "logout", result=result)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Moderation Routes
# =============================================================================

@app.get("/admin/messages", response_model=MessagesListResponse, responses=ERROR_RESPONSES)
def list_messages(
    request: Request,
    service: ModerationService = Depends(get_moderation_service),
) -> MessagesListResponse:
    """All messages, newest first (ties keep submission order)."""
    messages = moderate(request, "list", service.list)
    return MessagesListResponse(
        data=[MessageResponse.model_validate(m) for m in messages],
        total=len(messages),
    )


@app.get("/admin/messages/{message_id}", response_model=MessageResponse, responses=ERROR_RESPONSES)
def get_message(
    request: Request,
    message_id: int,
    service: ModerationService = Depends(get_moderation_service),
) -> MessageResponse:
    message = moderate(request, "get", lambda: service.get(message_id), message_id)
    return MessageResponse.model_validate(message)


@app.post(
    "/admin/messages/{message_id}/read",
    response_model=MessageResponse,
    responses=ERROR_RESPONSES,
)
def mark_message_read(
    request: Request,
    message_id: int,
    service: ModerationService = Depends(get_moderation_service),
) -> MessageResponse:
    """Mark a message read. Repeating the call returns the same record."""
    message = moderate(request, "mark_read", lambda: service.mark_read(message_id), message_id)
    return MessageResponse.model_validate(message)


@app.put(
    "/admin/messages/{message_id}/reply",
    response_model=MessageResponse,
    responses=ERROR_RESPONSES,
)
def reply_to_message(
    request: Request,
    message_id: int,
    body: ReplyRequest,
    service: ModerationService = Depends(get_moderation_service),
) -> MessageResponse:
    """Set (or overwrite) the reply; the message is marked read in the same write."""
    message = moderate(
        request, "reply", lambda: service.reply(message_id, body.reply), message_id
    )
    return MessageResponse.model_validate(message)


@app.delete(
    "/admin/messages/{message_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=ERROR_RESPONSES,
)
def delete_message(
    request: Request,
    message_id: int,
    service: ModerationService = Depends(get_moderation_service),
) -> Response:
    """Delete permanently. A repeated delete answers 404."""
    moderate(request, "delete", lambda: service.delete(message_id), message_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/admin/stats", response_model=StatsResponse, responses=ERROR_RESPONSES)
def get_statistics(
    request: Request,
    service: ModerationService = Depends(get_moderation_service),
) -> StatsResponse:
    """Total, unread and replied counts."""
    stats = moderate(request, "stats", service.stats)
    return StatsResponse(**stats)


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
