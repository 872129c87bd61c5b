import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse

from .agent import AssistantService, MessageValidationError, get_assistant_service_async
from .models import Requester
from .schemas import (
    ActiveSessionRequest,
    CreateSessionRequest,
    SendMessageRequest,
    session_created_body,
    transcript_body,
    turn_body,
)
from .services.rate_limit import RateLimiter, RateLimitExceededError
from .services.transcript_store import SessionNotFoundError, get_shared_redis
from .settings import get_settings

logger = logging.getLogger(__name__)

_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter, Redis-backed when the transcript store is."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter(get_shared_redis())
    return _rate_limiter


def reset_rate_limiter() -> None:
    global _rate_limiter
    _rate_limiter = None


async def get_service() -> AssistantService:
    return await get_assistant_service_async()


def get_requester(
    x_user_id: str | None = Header(default=None),
    x_anonymous_id: str | None = Header(default=None),
) -> Requester:
    """Identity from the upstream auth layer (user id) or the visitor token header."""
    return Requester(user_id=x_user_id or None, anonymous_id=x_anonymous_id or None)


def caller_key(request: Request, requester: Requester) -> str:
    """Rate-limit bucket: user id, then anonymous id, then client address."""
    owner = requester.owner_key()
    if owner:
        return owner
    host = request.client.host if request.client else "unknown"
    return f"ip:{host}"


async def limit_api(
    request: Request,
    requester: Requester = Depends(get_requester),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> None:
    await limiter.hit("api", caller_key(request, requester))


router = APIRouter(prefix=get_settings().api_prefix, dependencies=[Depends(limit_api)])


def _with_body_identity(requester: Requester, anonymous_id: str | None) -> Requester:
    if requester.user_id or not anonymous_id:
        return requester
    return Requester(anonymous_id=anonymous_id)


@router.post("/sessions", status_code=201)
async def create_session(
    request: Request,
    body: CreateSessionRequest,
    requester: Requester = Depends(get_requester),
    service: AssistantService = Depends(get_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> Dict[str, Any]:
    """Start a conversation for the authenticated user or the anonymous visitor."""
    requester = _with_body_identity(requester, body.anonymous_id)
    await limiter.hit("sessions", caller_key(request, requester))
    context = body.context.to_context() if body.context else None
    session = await service.create_session(requester, context)
    return session_created_body(session)


@router.get("/sessions/active")
async def find_active_session(
    body: ActiveSessionRequest | None = None,
    anonymous_id: str | None = Query(default=None, alias="anonymousId"),
    requester: Requester = Depends(get_requester),
    service: AssistantService = Depends(get_service),
) -> Dict[str, Any]:
    """Most recent active session of the caller, with its messages.

    The visitor token may come in the body, as ``?anonymousId=`` or in the header.
    """
    requester = _with_body_identity(requester, (body.anonymous_id if body else None) or anonymous_id)
    transcript = await service.find_active_session(requester)
    if transcript is None:
        return {"session": None}
    return {"session": transcript_body(transcript, include_created=False)}


@router.get("/sessions/{session_id}")
async def get_session(
    session_id: str,
    requester: Requester = Depends(get_requester),
    service: AssistantService = Depends(get_service),
) -> Dict[str, Any]:
    transcript = await service.get_session(session_id, requester)
    return transcript_body(transcript)


@router.post("/sessions/{session_id}/messages")
async def send_message(
    request: Request,
    session_id: str,
    body: SendMessageRequest,
    requester: Requester = Depends(get_requester),
    service: AssistantService = Depends(get_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> Dict[str, Any]:
    """Send a user message and return the assistant's reply for this turn."""
    await limiter.hit("messages", caller_key(request, requester))
    result = await service.send_message(
        session_id,
        requester,
        body.message,
        locale=body.locale,
        current_page=body.current_page,
    )
    if result.degraded:
        logger.info("Degraded reply for session %s", session_id)
    return turn_body(result.response, result.rich_content, result.suggested_actions)


@router.delete("/sessions/{session_id}")
async def close_session(
    session_id: str,
    requester: Requester = Depends(get_requester),
    service: AssistantService = Depends(get_service),
) -> Dict[str, Any]:
    await service.close_session(session_id, requester)
    return {"message": "Session closed"}


async def _session_not_found(request: Request, exc: SessionNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def _message_invalid(request: Request, exc: MessageValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


async def _rate_limited(request: Request, exc: RateLimitExceededError) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"detail": "Too many requests"},
        headers={"Retry-After": str(exc.retry_after)},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain errors onto HTTP status codes."""
    app.add_exception_handler(SessionNotFoundError, _session_not_found)
    app.add_exception_handler(MessageValidationError, _message_invalid)
    app.add_exception_handler(RateLimitExceededError, _rate_limited)
