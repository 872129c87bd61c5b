import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List

from openai import AsyncOpenAI, OpenAIError

from ..models import (
    LOCALES,
    ChatMessage,
    ChatSession,
    MessageMetadata,
    Requester,
    SessionContext,
    SessionTranscript,
)
from ..rich_content import RichContent, SuggestedAction
from ..services.marketplace import get_marketplace
from ..services.transcript_store import TranscriptStore, get_transcript_store_async
from ..settings import Settings, get_settings
from .actions import suggest_actions
from .context import build_context
from .prompts import EMPTY_REPLY, PROVIDER_FAILURE_REPLY, UNAVAILABLE_REPLY, localized
from .tools import MarketplaceTools, ToolArgumentError, UnknownToolError, get_tool_schemas

logger = logging.getLogger(__name__)

PROVIDER_ERRORS = (OpenAIError, TimeoutError, ConnectionError)


class MessageValidationError(ValueError):
    """Inbound chat message is empty or too long."""


class TurnState(str, Enum):
    RECEIVED = "received"
    FIRST_MODEL_CALL = "first_model_call"
    TOOL_EXECUTION = "tool_execution"
    SECOND_MODEL_CALL = "second_model_call"
    SYNTHESIZED = "synthesized"
    PERSISTED = "persisted"
    DEGRADED = "degraded"


TERMINAL_STATES = frozenset({TurnState.PERSISTED, TurnState.DEGRADED})
MODEL_CALL_STATES = frozenset({TurnState.FIRST_MODEL_CALL, TurnState.SECOND_MODEL_CALL})


@dataclass
class TurnResult:
    """What the caller gets back for one user message."""

    response: str
    rich_content: List[RichContent] = field(default_factory=list)
    suggested_actions: List[SuggestedAction] = field(default_factory=list)
    state: TurnState = TurnState.PERSISTED
    tokens_used: int = 0

    @property
    def degraded(self) -> bool:
        return self.state == TurnState.DEGRADED


@dataclass
class _Turn:
    """Working state of one turn while it moves through the state machine."""

    session: ChatSession
    user_text: str
    locale: str
    current_page: str | None = None
    state: TurnState = TurnState.RECEIVED
    started: float = field(default_factory=time.perf_counter)
    messages: List[Dict[str, Any]] = field(default_factory=list)
    tool_calls: List[Any] = field(default_factory=list)
    rich_content: List[RichContent] = field(default_factory=list)
    suggested_actions: List[SuggestedAction] = field(default_factory=list)
    text: str = ""
    tokens_used: int = 0
    model_id: str | None = None

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started) * 1000)


def _make_client(settings: Settings) -> AsyncOpenAI | None:
    """OpenAI client from settings, or None when no API key is configured."""
    if not settings.openai_api_key:
        return None
    return AsyncOpenAI(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        timeout=settings.request_timeout_seconds,
        max_retries=0,
    )


def _tool_call_record(tool_call: Any) -> Dict[str, Any]:
    return {
        "id": tool_call.id,
        "type": "function",
        "function": {
            "name": tool_call.function.name,
            "arguments": tool_call.function.arguments or "",
        },
    }


class AssistantService:
    """Runs assistant turns: context, two model calls around the tools, synthesis, persistence."""

    def __init__(
        self,
        store: TranscriptStore,
        tools: MarketplaceTools,
        client: AsyncOpenAI | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._tools = tools
        self._settings = settings or get_settings()
        self._client = client
        self._handlers: Dict[TurnState, Callable[[_Turn], Awaitable[TurnState]]] = {
            TurnState.RECEIVED: self._receive,
            TurnState.FIRST_MODEL_CALL: self._first_model_call,
            TurnState.TOOL_EXECUTION: self._execute_tools,
            TurnState.SECOND_MODEL_CALL: self._second_model_call,
            TurnState.SYNTHESIZED: self._persist,
        }

    @property
    def store(self) -> TranscriptStore:
        return self._store

    async def create_session(
        self, requester: Requester, context: SessionContext | None = None
    ) -> ChatSession:
        return await self._store.create_session(requester, context)

    async def get_session(self, session_id: str, requester: Requester) -> SessionTranscript:
        return await self._store.get_session(session_id, requester)

    async def find_active_session(self, requester: Requester) -> SessionTranscript | None:
        session = await self._store.find_active_session(requester)
        if session is None:
            return None
        return SessionTranscript(session, await self._store.list_messages(session.session_id))

    async def close_session(self, session_id: str, requester: Requester) -> None:
        await self._store.close_session(session_id, requester)

    def resolve_locale(self, explicit: str | None, session: ChatSession) -> str:
        for candidate in (explicit, session.context.preferred_locale, self._settings.default_locale):
            if candidate in LOCALES:
                return candidate
        return "en"

    def validate_message(self, message: str) -> str:
        text = (message or "").strip()
        if not text:
            raise MessageValidationError("Message must not be empty")
        if len(text) > self._settings.max_message_length:
            raise MessageValidationError(
                f"Message must be at most {self._settings.max_message_length} characters"
            )
        return text

    async def send_message(
        self,
        session_id: str,
        requester: Requester,
        message: str,
        locale: str | None = None,
        current_page: str | None = None,
    ) -> TurnResult:
        """Run one turn and return the reply, its rich content and follow-up actions.

        Args:
            session_id: Session to post into; must be visible to ``requester``.
            requester: Caller identity used for the ownership check.
            message: User text, at most ``max_message_length`` characters.
            locale: Reply language; falls back to the session's preferred locale.
            current_page: Page the user is on, passed to the model as a note.

        Raises:
            MessageValidationError: The message is empty or too long.
            SessionNotFoundError: The session is missing or not the requester's.
        """
        text = self.validate_message(message)
        session = await self._store.require_session(session_id, requester)
        turn = _Turn(
            session=session,
            user_text=text,
            locale=self.resolve_locale(locale, session),
            current_page=current_page,
        )
        logger.info("Turn start session=%s locale=%s", session_id, turn.locale)

        while turn.state not in TERMINAL_STATES:
            try:
                turn.state = await self._handlers[turn.state](turn)
            except PROVIDER_ERRORS as e:
                if turn.state not in MODEL_CALL_STATES:
                    raise
                logger.exception("Language model call failed in %s: %s", turn.state.value, e)
                turn.text = localized(PROVIDER_FAILURE_REPLY, turn.locale)
                turn.rich_content, turn.suggested_actions = [], []
                turn.state = TurnState.DEGRADED

        return TurnResult(
            response=turn.text,
            rich_content=turn.rich_content,
            suggested_actions=turn.suggested_actions,
            state=turn.state,
            tokens_used=turn.tokens_used,
        )

    async def _receive(self, turn: _Turn) -> TurnState:
        if self._client is None:
            logger.warning("No language model configured; session %s gets the unavailable reply",
                           turn.session.session_id)
            turn.text = localized(UNAVAILABLE_REPLY, turn.locale)
            return TurnState.DEGRADED
        await self._store.append_message(
            ChatMessage(session_id=turn.session.session_id, role="user", content=turn.user_text)
        )
        turn.messages = await build_context(
            self._store,
            turn.session.session_id,
            locale=turn.locale,
            user_role=turn.session.context.user_role,
            current_page=turn.current_page,
            window=self._settings.history_window,
        )
        return TurnState.FIRST_MODEL_CALL

    async def _complete(self, turn: _Turn, **kwargs: Any) -> Any:
        response = await self._client.chat.completions.create(
            model=self._settings.model,
            messages=list(turn.messages),
            temperature=self._settings.temperature,
            max_tokens=self._settings.max_tokens,
            **kwargs,
        )
        if response.usage is not None:
            turn.tokens_used += response.usage.total_tokens or 0
        turn.model_id = response.model or self._settings.model
        if not response.choices:
            raise OpenAIError("Language model returned no choices")
        return response.choices[0].message

    async def _first_model_call(self, turn: _Turn) -> TurnState:
        reply = await self._complete(turn, tools=get_tool_schemas(), tool_choice="auto")
        turn.tool_calls = list(reply.tool_calls or [])
        if not turn.tool_calls:
            turn.text = reply.content or ""
            return TurnState.SYNTHESIZED
        turn.messages.append(
            {
                "role": "assistant",
                "content": reply.content,
                "tool_calls": [_tool_call_record(tc) for tc in turn.tool_calls],
            }
        )
        return TurnState.TOOL_EXECUTION

    async def _execute_tools(self, turn: _Turn) -> TurnState:
        """Run requested tools one at a time; a failing tool only fails its own call."""
        for tool_call in turn.tool_calls:
            name = tool_call.function.name
            try:
                result = await self._tools.execute(name, tool_call.function.arguments, turn.locale)
                summary = result.summary
                if result.rich_content is not None:
                    turn.rich_content.append(result.rich_content)
                logger.info("Tool %s succeeded", name)
            except (ToolArgumentError, UnknownToolError) as e:
                logger.warning("Tool %s rejected: %s", name, e)
                summary = {"error": str(e)}
            except Exception as e:
                logger.exception("Tool %s failed: %s", name, e)
                summary = {"error": f"{name} failed: {e}"}
            turn.messages.append(
                {
                    "role": "tool",
                    "tool_call_id": tool_call.id,
                    "content": json.dumps(summary, ensure_ascii=False, default=str),
                }
            )
        logger.info(
            "Session %s: tools called in order: %s",
            turn.session.session_id,
            ", ".join(tc.function.name for tc in turn.tool_calls),
        )
        return TurnState.SECOND_MODEL_CALL

    async def _second_model_call(self, turn: _Turn) -> TurnState:
        reply = await self._complete(turn)
        turn.text = reply.content or ""
        return TurnState.SYNTHESIZED

    async def _persist(self, turn: _Turn) -> TurnState:
        if not turn.text.strip():
            turn.text = localized(EMPTY_REPLY, turn.locale)
        turn.suggested_actions = suggest_actions(turn.rich_content, turn.text, turn.locale)

        assistant_message = ChatMessage(
            session_id=turn.session.session_id,
            role="assistant",
            content=turn.text,
            metadata=MessageMetadata(
                tokens_used=turn.tokens_used,
                model_id=turn.model_id,
                processing_time_ms=turn.elapsed_ms(),
                rich_content=list(turn.rich_content),
                suggested_actions=list(turn.suggested_actions),
            ),
        )
        await self._store.append_message(assistant_message)

        session = await self._store.record_turn(
            turn.session.session_id, assistant_message.created_at
        )
        if session is not None:
            turn.session = session

        logger.info(
            "Turn done session=%s tokens=%d elapsed_ms=%d",
            turn.session.session_id,
            turn.tokens_used,
            assistant_message.metadata.processing_time_ms,
        )
        return TurnState.PERSISTED


_SERVICE: AssistantService | None = None


async def get_assistant_service_async() -> AssistantService:
    """Return the process-wide AssistantService, building it on first use."""
    global _SERVICE
    if _SERVICE is None:
        settings = get_settings()
        _SERVICE = AssistantService(
            store=await get_transcript_store_async(),
            tools=MarketplaceTools(get_marketplace(), currency=settings.currency),
            client=_make_client(settings),
            settings=settings,
        )
    return _SERVICE


def reset_assistant_service() -> None:
    """Drop the cached service so the next call rebuilds it (used on shutdown)."""
    global _SERVICE
    _SERVICE = None


__all__ = [
    "AssistantService",
    "MessageValidationError",
    "PROVIDER_ERRORS",
    "TurnResult",
    "TurnState",
    "get_assistant_service_async",
    "reset_assistant_service",
]
