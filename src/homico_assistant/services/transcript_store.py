import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..models import (
    ChatMessage,
    ChatSession,
    MessageMetadata,
    Requester,
    SessionContext,
    SessionStatus,
    SessionTranscript,
)
from ..rich_content import RICH_CONTENT_LIST, SUGGESTED_ACTION_LIST
from ..settings import get_settings
from .redis import RedisCrudService, get_redis_crud_service

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "chat:session:"
MESSAGES_KEY_PREFIX = "chat:messages:"
OWNER_KEY_PREFIX = "chat:owner:"


class SessionNotFoundError(LookupError):
    """Raised for missing sessions and for sessions owned by someone else."""

    def __init__(self, session_id: str) -> None:
        super().__init__("Chat session not found")
        self.session_id = session_id


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _session_to_dict(session: ChatSession) -> Dict[str, Any]:
    """Serialize ChatSession to a JSON-serializable dict."""
    return {
        "session_id": session.session_id,
        "user_id": session.user_id,
        "anonymous_id": session.anonymous_id,
        "status": session.status.value,
        "message_count": session.message_count,
        "last_message_at": session.last_message_at.isoformat() if session.last_message_at else None,
        "context": {
            "page": session.context.page,
            "user_role": session.context.user_role,
            "preferred_locale": session.context.preferred_locale,
        },
        "created_at": session.created_at.isoformat(),
    }


def _dict_to_session(data: Dict[str, Any]) -> ChatSession:
    """Build ChatSession from a dict (e.g. from Redis)."""
    context = data.get("context") or {}
    return ChatSession(
        session_id=data["session_id"],
        user_id=data.get("user_id"),
        anonymous_id=data.get("anonymous_id"),
        status=SessionStatus(data.get("status", SessionStatus.ACTIVE.value)),
        message_count=int(data.get("message_count", 0)),
        last_message_at=_dt(data.get("last_message_at")),
        context=SessionContext(
            page=context.get("page"),
            user_role=context.get("user_role"),
            preferred_locale=context.get("preferred_locale"),
        ),
        created_at=_dt(data["created_at"]),
    )


def _message_to_dict(message: ChatMessage) -> Dict[str, Any]:
    metadata = None
    if message.metadata is not None:
        metadata = {
            "tokens_used": message.metadata.tokens_used,
            "model_id": message.metadata.model_id,
            "processing_time_ms": message.metadata.processing_time_ms,
            "rich_content": RICH_CONTENT_LIST.dump_python(
                message.metadata.rich_content, mode="json", by_alias=True, exclude_none=True
            ),
            "suggested_actions": SUGGESTED_ACTION_LIST.dump_python(
                message.metadata.suggested_actions, mode="json", by_alias=True, exclude_none=True
            ),
        }
    return {
        "session_id": message.session_id,
        "role": message.role,
        "content": message.content,
        "created_at": message.created_at.isoformat(),
        "metadata": metadata,
    }


def _dict_to_message(data: Dict[str, Any]) -> ChatMessage:
    raw_meta = data.get("metadata")
    metadata = None
    if raw_meta is not None:
        metadata = MessageMetadata(
            tokens_used=raw_meta.get("tokens_used"),
            model_id=raw_meta.get("model_id"),
            processing_time_ms=raw_meta.get("processing_time_ms"),
            rich_content=RICH_CONTENT_LIST.validate_python(raw_meta.get("rich_content") or []),
            suggested_actions=SUGGESTED_ACTION_LIST.validate_python(
                raw_meta.get("suggested_actions") or []
            ),
        )
    return ChatMessage(
        session_id=data["session_id"],
        role=data["role"],
        content=data["content"],
        created_at=_dt(data["created_at"]),
        metadata=metadata,
    )


class TranscriptStore(ABC):
    """Durable sessions plus an append-only message log per session."""

    async def create_session(
        self, requester: Requester, context: SessionContext | None = None
    ) -> ChatSession:
        session = ChatSession(
            session_id=uuid.uuid4().hex,
            user_id=requester.user_id,
            anonymous_id=None if requester.user_id else requester.anonymous_id,
            context=context or SessionContext(),
        )
        await self._insert_session(session, requester.owner_key())
        logger.info("Created chat session %s", session.session_id)
        return session

    async def require_session(self, session_id: str, requester: Requester) -> ChatSession:
        """Load a session the requester may see, else raise SessionNotFoundError."""
        session = await self._load_session(session_id)
        if session is None or not session.is_visible_to(requester):
            raise SessionNotFoundError(session_id)
        return session

    async def get_session(self, session_id: str, requester: Requester) -> SessionTranscript:
        session = await self.require_session(session_id, requester)
        return SessionTranscript(session=session, messages=await self.list_messages(session_id))

    async def close_session(self, session_id: str, requester: Requester) -> None:
        session = await self.require_session(session_id, requester)
        session.status = SessionStatus.CLOSED
        await self.update_session(session)
        logger.info("Closed chat session %s", session_id)

    async def find_active_session(self, requester: Requester) -> ChatSession | None:
        """Most recently created active session for the requester, if any."""
        owner_key = requester.owner_key()
        if owner_key is None:
            return None
        for session_id in reversed(await self._owner_session_ids(owner_key)):
            session = await self._load_session(session_id)
            if session is not None and session.status == SessionStatus.ACTIVE:
                return session
        return None

    @abstractmethod
    async def append_message(self, message: ChatMessage) -> None: ...

    @abstractmethod
    async def list_messages(self, session_id: str) -> List[ChatMessage]: ...

    @abstractmethod
    async def recent_messages(self, session_id: str, limit: int) -> List[ChatMessage]:
        """The `limit` most recent messages, oldest first."""

    @abstractmethod
    async def update_session(self, session: ChatSession) -> None: ...

    @abstractmethod
    async def record_turn(self, session_id: str, at: datetime) -> ChatSession | None:
        """Count one completed turn (two messages) on the stored session.

        Only ``message_count`` and ``last_message_at`` change; status and
        context keep whatever the store holds now. Returns the updated session,
        or None if it no longer exists.
        """

    @abstractmethod
    async def _insert_session(self, session: ChatSession, owner_key: str | None) -> None: ...

    @abstractmethod
    async def _load_session(self, session_id: str) -> ChatSession | None: ...

    @abstractmethod
    async def _owner_session_ids(self, owner_key: str) -> List[str]: ...


class InMemoryTranscriptStore(TranscriptStore):
    """Process-local transcript store, used when Redis is not configured."""

    def __init__(self) -> None:
        self._sessions: Dict[str, ChatSession] = {}
        self._messages: Dict[str, List[ChatMessage]] = {}
        self._owners: Dict[str, List[str]] = {}

    async def append_message(self, message: ChatMessage) -> None:
        self._messages.setdefault(message.session_id, []).append(message)

    async def list_messages(self, session_id: str) -> List[ChatMessage]:
        return list(self._messages.get(session_id, []))

    async def recent_messages(self, session_id: str, limit: int) -> List[ChatMessage]:
        if limit <= 0:
            return []
        return list(self._messages.get(session_id, [])[-limit:])

    async def update_session(self, session: ChatSession) -> None:
        self._sessions[session.session_id] = session

    async def record_turn(self, session_id: str, at: datetime) -> ChatSession | None:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        session.message_count += 2
        session.last_message_at = at
        return session

    async def _insert_session(self, session: ChatSession, owner_key: str | None) -> None:
        self._sessions[session.session_id] = session
        if owner_key:
            self._owners.setdefault(owner_key, []).append(session.session_id)

    async def _load_session(self, session_id: str) -> ChatSession | None:
        return self._sessions.get(session_id)

    async def _owner_session_ids(self, owner_key: str) -> List[str]:
        return list(self._owners.get(owner_key, []))


class RedisTranscriptStore(TranscriptStore):
    """Transcript store on Redis: JSON session records and RPUSH message lists."""

    def __init__(self, redis_crud: RedisCrudService, ttl_seconds: int = 0) -> None:
        self._redis = redis_crud
        self._ttl = ttl_seconds or None

    def _session_key(self, session_id: str) -> str:
        return f"{SESSION_KEY_PREFIX}{session_id}"

    def _messages_key(self, session_id: str) -> str:
        return f"{MESSAGES_KEY_PREFIX}{session_id}"

    def _owner_index_key(self, session: ChatSession) -> str | None:
        owner_key = Requester(user_id=session.user_id, anonymous_id=session.anonymous_id).owner_key()
        return f"{OWNER_KEY_PREFIX}{owner_key}" if owner_key else None

    async def _extend_ttl(self, *keys: str | None) -> None:
        """Give list keys the session's TTL so they expire together with it."""
        if self._ttl is None:
            return
        for key in keys:
            if key:
                await self._redis.expire(key, self._ttl)

    async def append_message(self, message: ChatMessage) -> None:
        key = self._messages_key(message.session_id)
        payload = json.dumps(_message_to_dict(message))
        if not await self._redis.rpush(key, payload):
            raise ConnectionError(f"Could not append message to session {message.session_id}")
        await self._extend_ttl(key)

    async def list_messages(self, session_id: str) -> List[ChatMessage]:
        return self._decode_messages(await self._redis.lrange(self._messages_key(session_id)))

    async def recent_messages(self, session_id: str, limit: int) -> List[ChatMessage]:
        if limit <= 0:
            return []
        raw = await self._redis.lrange(self._messages_key(session_id), -limit, -1)
        return self._decode_messages(raw)

    async def update_session(self, session: ChatSession) -> None:
        payload = json.dumps(_session_to_dict(session))
        if not await self._redis.set(
            self._session_key(session.session_id), payload, ttl_seconds=self._ttl
        ):
            raise ConnectionError(f"Could not save session {session.session_id}")
        await self._extend_ttl(
            self._messages_key(session.session_id), self._owner_index_key(session)
        )

    async def record_turn(self, session_id: str, at: datetime) -> ChatSession | None:
        # Reload so a close (or any other change) made during the turn is kept.
        session = await self._load_session(session_id)
        if session is None:
            return None
        session.message_count += 2
        session.last_message_at = at
        await self.update_session(session)
        return session

    async def _insert_session(self, session: ChatSession, owner_key: str | None) -> None:
        if owner_key:
            await self._redis.rpush(f"{OWNER_KEY_PREFIX}{owner_key}", session.session_id)
        await self.update_session(session)

    async def _load_session(self, session_id: str) -> ChatSession | None:
        raw = await self._redis.get(self._session_key(session_id))
        if raw is None:
            return None
        try:
            return _dict_to_session(json.loads(raw))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Invalid session data for %s: %s", session_id, e)
            return None

    async def _owner_session_ids(self, owner_key: str) -> List[str]:
        return await self._redis.lrange(f"{OWNER_KEY_PREFIX}{owner_key}")

    def _decode_messages(self, raw_messages: List[str]) -> List[ChatMessage]:
        messages: List[ChatMessage] = []
        for raw in raw_messages:
            try:
                messages.append(_dict_to_message(json.loads(raw)))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping unreadable chat message: %s", e)
        return messages


# Lazy singleton, Redis-backed when configured
_transcript_store_instance: TranscriptStore | None = None
_redis_crud_instance: RedisCrudService | None = None


async def get_transcript_store_async() -> TranscriptStore:
    """Return the transcript store, connecting to Redis when configured. Cached."""
    global _transcript_store_instance, _redis_crud_instance
    if _transcript_store_instance is not None:
        return _transcript_store_instance
    redis_crud = get_redis_crud_service()
    if redis_crud is None:
        logger.info("REDIS_URL not set; using in-memory transcript store")
        _transcript_store_instance = InMemoryTranscriptStore()
        return _transcript_store_instance
    try:
        await redis_crud.connect()
    except (RedisConnectionError, RedisTimeoutError, ConnectionError, TimeoutError) as e:
        logger.warning("Transcript store unavailable (Redis): %s; using in-memory store", e)
        _transcript_store_instance = InMemoryTranscriptStore()
        return _transcript_store_instance
    _redis_crud_instance = redis_crud
    _transcript_store_instance = RedisTranscriptStore(
        redis_crud, ttl_seconds=get_settings().session_ttl_seconds
    )
    return _transcript_store_instance


def get_shared_redis() -> RedisCrudService | None:
    """The connected Redis service behind the transcript store, if any."""
    return _redis_crud_instance


async def close_transcript_store() -> None:
    """Close the Redis connection used by the transcript store. Idempotent."""
    global _transcript_store_instance, _redis_crud_instance
    if _redis_crud_instance is not None:
        await _redis_crud_instance.close()
        logger.debug("Transcript store (Redis) closed")
    _redis_crud_instance = None
    _transcript_store_instance = None
