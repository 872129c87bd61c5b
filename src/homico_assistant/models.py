from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal

from .rich_content import RichContent, SuggestedAction

Locale = Literal["en", "ka", "ru"]
UserRole = Literal["client", "pro", "guest"]
MessageRole = Literal["user", "assistant"]

LOCALES: tuple = ("en", "ka", "ru")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


@dataclass(frozen=True)
class Requester:
    """Who is calling: an authenticated user, an anonymous visitor, or neither."""

    user_id: str | None = None
    anonymous_id: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    def owner_key(self) -> str | None:
        """Index key used to look up this requester's sessions."""
        if self.user_id:
            return f"user:{self.user_id}"
        if self.anonymous_id:
            return f"anon:{self.anonymous_id}"
        return None


@dataclass
class SessionContext:
    page: str | None = None
    user_role: UserRole | None = None
    preferred_locale: Locale | None = None


@dataclass
class ChatSession:
    """A conversation with the assistant, owned by a user XOR an anonymous visitor."""

    session_id: str
    user_id: str | None = None
    anonymous_id: str | None = None
    status: SessionStatus = SessionStatus.ACTIVE
    message_count: int = 0
    last_message_at: datetime | None = None
    context: SessionContext = field(default_factory=SessionContext)
    created_at: datetime = field(default_factory=utcnow)

    def is_visible_to(self, requester: Requester) -> bool:
        """Ownership rule shared by every session lookup.

        An authenticated requester must match the owning user. A visitor token
        is only compared against anonymous sessions.
        """
        if requester.is_authenticated:
            return self.user_id is None or self.user_id == requester.user_id
        if requester.anonymous_id and self.user_id is None and self.anonymous_id:
            return self.anonymous_id == requester.anonymous_id
        return True


@dataclass
class MessageMetadata:
    tokens_used: int | None = None
    model_id: str | None = None
    processing_time_ms: int | None = None
    rich_content: List[RichContent] = field(default_factory=list)
    suggested_actions: List[SuggestedAction] = field(default_factory=list)


@dataclass
class ChatMessage:
    """One half of a turn. Immutable once appended to the transcript."""

    session_id: str
    role: MessageRole
    content: str
    created_at: datetime = field(default_factory=utcnow)
    metadata: MessageMetadata | None = None


@dataclass
class SessionTranscript:
    session: ChatSession
    messages: List[ChatMessage] = field(default_factory=list)
