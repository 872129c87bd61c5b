"""Request and response bodies of the assistant HTTP API (camelCase on the wire)."""

from datetime import datetime
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import ChatMessage, ChatSession, SessionContext, SessionTranscript


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SessionContextIn(ApiModel):
    page: str | None = None
    user_role: Literal["client", "pro", "guest"] | None = None
    preferred_locale: Literal["en", "ka", "ru"] | None = None

    def to_context(self) -> SessionContext:
        return SessionContext(
            page=self.page, user_role=self.user_role, preferred_locale=self.preferred_locale
        )


class CreateSessionRequest(ApiModel):
    anonymous_id: str | None = None
    context: SessionContextIn | None = None


class ActiveSessionRequest(ApiModel):
    anonymous_id: str | None = None


class SendMessageRequest(ApiModel):
    message: str = Field(min_length=1, max_length=2000)
    locale: Literal["en", "ka", "ru"] | None = None
    current_page: str | None = None


def _wire_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def session_created_body(session: ChatSession) -> Dict[str, Any]:
    return {
        "sessionId": session.session_id,
        "status": session.status.value,
        "createdAt": _wire_datetime(session.created_at),
    }


def message_body(message: ChatMessage) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "role": message.role,
        "content": message.content,
        "createdAt": _wire_datetime(message.created_at),
    }
    if message.metadata is not None:
        if message.metadata.suggested_actions:
            body["suggestedActions"] = [a.to_wire() for a in message.metadata.suggested_actions]
        if message.metadata.rich_content:
            body["richContent"] = [c.to_wire() for c in message.metadata.rich_content]
    return body


def transcript_body(transcript: SessionTranscript, include_created: bool = True) -> Dict[str, Any]:
    session = transcript.session
    body: Dict[str, Any] = {
        "sessionId": session.session_id,
        "status": session.status.value,
        "messageCount": session.message_count,
        "messages": [message_body(m) for m in transcript.messages],
    }
    if include_created:
        body["createdAt"] = _wire_datetime(session.created_at)
        body["lastMessageAt"] = _wire_datetime(session.last_message_at)
    return body


def turn_body(response: str, rich_content: List[Any], suggested_actions: List[Any]) -> Dict[str, Any]:
    body: Dict[str, Any] = {"response": response}
    if rich_content:
        body["richContent"] = [c.to_wire() for c in rich_content]
    if suggested_actions:
        body["suggestedActions"] = [a.to_wire() for a in suggested_actions]
    return body
