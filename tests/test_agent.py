import json
from types import SimpleNamespace
from typing import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest
from openai import OpenAIError

from homico_assistant.agent import AssistantService, MessageValidationError, TurnState
from homico_assistant.agent.pricing import NOTE_CONTACT_DIRECTLY
from homico_assistant.agent.prompts import (
    EMPTY_REPLY,
    PROVIDER_FAILURE_REPLY,
    UNAVAILABLE_REPLY,
)
from homico_assistant.agent.tools import MarketplaceTools
from homico_assistant.models import Requester, SessionContext, SessionStatus
from homico_assistant.rich_content import RichContentType
from homico_assistant.services.transcript_store import (
    InMemoryTranscriptStore,
    RedisTranscriptStore,
    SessionNotFoundError,
)
from homico_assistant.settings import Settings

VISITOR = Requester(anonymous_id="visitor-1")


@pytest.fixture
def build_service(
    store: InMemoryTranscriptStore, tools: MarketplaceTools, settings: Settings
) -> Callable[[MagicMock | None], AssistantService]:
    """AssistantService over the in-memory store, seeded marketplace and a given client."""

    def _build(client: MagicMock | None) -> AssistantService:
        return AssistantService(store=store, tools=tools, client=client, settings=settings)

    return _build


def _call_messages(client: MagicMock, index: int) -> list:
    return client.chat.completions.create.call_args_list[index].kwargs["messages"]


@pytest.mark.asyncio
async def test_reply_without_tools(build_service, fake_openai, make_completion, store) -> None:
    """Zero tool calls: one model call, no rich content, both halves persisted."""
    client = fake_openai(make_completion("Hi! How can I help you today?", total_tokens=25))
    service = build_service(client)
    session = await service.create_session(VISITOR)

    result = await service.send_message(session.session_id, VISITOR, "Hello")

    assert result.state == TurnState.PERSISTED
    assert result.response == "Hi! How can I help you today?"
    assert result.rich_content == []
    assert result.suggested_actions == []
    assert client.chat.completions.create.await_count == 1
    first_call = client.chat.completions.create.call_args_list[0].kwargs
    assert first_call["tool_choice"] == "auto"
    assert len(first_call["tools"]) == 6

    transcript = await store.get_session(session.session_id, VISITOR)
    assert [m.role for m in transcript.messages] == ["user", "assistant"]
    assistant = transcript.messages[1]
    assert assistant.metadata.tokens_used == 25
    assert assistant.metadata.model_id == "gpt-4o-mini"
    assert assistant.metadata.processing_time_ms >= 0
    assert transcript.session.message_count == 2
    assert transcript.session.last_message_at == assistant.created_at


@pytest.mark.asyncio
async def test_find_plumber_scenario(
    build_service, fake_openai, make_completion, make_tool_call, store
) -> None:
    """Plumber search: three professionals, a reply about them, two follow-up actions."""
    call = make_tool_call(
        "call_1", "search_professionals", {"category": "plumbing", "minRating": 4, "sort": "rating"}
    )
    client = fake_openai(
        make_completion(None, tool_calls=[call], total_tokens=120),
        make_completion("I found 3 plumbers rated above 4, led by Giorgi Beridze.", total_tokens=80),
    )
    service = build_service(client)
    session = await service.create_session(VISITOR)

    result = await service.send_message(
        session.session_id, VISITOR, "Find me a plumber with rating above 4"
    )

    assert [p.id for p in result.rich_content[0].data] == ["pro_001", "pro_002", "pro_003"]
    assert [a.label for a in result.suggested_actions] == ["View All Professionals", "Post a Job"]
    assert "3 plumbers" in result.response
    assert result.tokens_used == 200

    second_call = client.chat.completions.create.call_args_list[1].kwargs
    assert "tools" not in second_call
    assistant_record, tool_message = second_call["messages"][-2:]
    assert assistant_record["tool_calls"][0]["function"]["name"] == "search_professionals"
    assert tool_message["role"] == "tool"
    assert tool_message["tool_call_id"] == "call_1"
    assert json.loads(tool_message["content"])["count"] == 3

    stored = (await store.get_session(session.session_id, VISITOR)).messages[-1].metadata
    assert stored.rich_content == result.rich_content
    assert stored.suggested_actions == result.suggested_actions
    assert stored.tokens_used == 200


@pytest.mark.asyncio
async def test_painting_price_scenario(build_service, fake_openai, make_completion, make_tool_call) -> None:
    """No priced painters: PRICE_INFO with empty bands still yields Get Quotes."""
    client = fake_openai(
        make_completion(tool_calls=[make_tool_call("c1", "get_price_ranges", {"category": "painting"})]),
        make_completion("Painters on Homico price by agreement; contact them directly."),
    )
    service = build_service(client)
    session = await service.create_session(VISITOR)

    result = await service.send_message(session.session_id, VISITOR, "What's the price for painting?")

    assert len(result.rich_content) == 1
    price_info = result.rich_content[0]
    assert price_info.type == RichContentType.PRICE_INFO
    assert price_info.data.price_ranges == []
    assert price_info.data.note == NOTE_CONTACT_DIRECTLY["en"]
    assert [a.label for a in result.suggested_actions] == ["Get Quotes"]


@pytest.mark.asyncio
async def test_failing_tool_does_not_abort_turn(
    build_service, fake_openai, make_completion, make_tool_call, marketplace
) -> None:
    """One tool throws; the others still contribute rich content and the reply is produced."""
    marketplace.find_reviews = AsyncMock(side_effect=RuntimeError("reviews offline"))
    client = fake_openai(
        make_completion(
            tool_calls=[
                make_tool_call("c1", "get_professional_reviews", {"proId": "pro_001"}),
                make_tool_call("c2", "get_categories", {}),
            ]
        ),
        make_completion("Reviews are unavailable right now, but here are our categories."),
    )
    service = build_service(client)
    session = await service.create_session(VISITOR)

    result = await service.send_message(session.session_id, VISITOR, "Reviews and categories please")

    assert result.state == TurnState.PERSISTED
    assert result.response
    assert [c.type for c in result.rich_content] == [RichContentType.CATEGORY_LIST]
    tool_messages = [m for m in _call_messages(client, 1) if m["role"] == "tool"]
    assert [m["tool_call_id"] for m in tool_messages] == ["c1", "c2"]
    assert "reviews offline" in json.loads(tool_messages[0]["content"])["error"]
    assert "categories" in json.loads(tool_messages[1]["content"])


@pytest.mark.asyncio
async def test_unknown_tool_and_bad_arguments_become_errors(
    build_service, fake_openai, make_completion, make_tool_call
) -> None:
    client = fake_openai(
        make_completion(
            tool_calls=[
                make_tool_call("c1", "book_appointment", {}),
                make_tool_call("c2", "search_professionals", {"limit": 50}),
                make_tool_call("c3", "get_professional_details", "{broken"),
            ]
        ),
        make_completion("Sorry, I could not look that up."),
    )
    service = build_service(client)
    session = await service.create_session(VISITOR)

    result = await service.send_message(session.session_id, VISITOR, "Book a plumber")

    assert result.rich_content == []
    errors = [json.loads(m["content"]) for m in _call_messages(client, 1) if m["role"] == "tool"]
    assert len(errors) == 3
    assert all("error" in e for e in errors)


@pytest.mark.asyncio
async def test_provider_failure_on_first_call(build_service, fake_openai, store) -> None:
    """The user message stays, no assistant message is written, counters are untouched."""
    client = fake_openai(OpenAIError("upstream unavailable"))
    service = build_service(client)
    session = await service.create_session(VISITOR)

    result = await service.send_message(session.session_id, VISITOR, "Hello")

    assert result.degraded
    assert result.response == PROVIDER_FAILURE_REPLY["en"]
    transcript = await store.get_session(session.session_id, VISITOR)
    assert [m.role for m in transcript.messages] == ["user"]
    assert transcript.session.message_count == 0
    assert transcript.session.last_message_at is None


@pytest.mark.asyncio
async def test_provider_failure_on_second_call(
    build_service, fake_openai, make_completion, make_tool_call, store
) -> None:
    client = fake_openai(
        make_completion(tool_calls=[make_tool_call("c1", "get_categories", {})]),
        TimeoutError("read timed out"),
    )
    service = build_service(client)
    session = await service.create_session(VISITOR, SessionContext(preferred_locale="ka"))

    result = await service.send_message(session.session_id, VISITOR, "კატეგორიები")

    assert result.state == TurnState.DEGRADED
    assert result.response == PROVIDER_FAILURE_REPLY["ka"]
    assert result.rich_content == []
    assert result.suggested_actions == []
    assert len((await store.get_session(session.session_id, VISITOR)).messages) == 1


@pytest.mark.asyncio
async def test_missing_configuration_persists_nothing(build_service, store) -> None:
    service = build_service(None)
    session = await service.create_session(VISITOR)

    result = await service.send_message(session.session_id, VISITOR, "Hello", locale="ru")

    assert result.degraded
    assert result.response == UNAVAILABLE_REPLY["ru"]
    assert (await store.get_session(session.session_id, VISITOR)).messages == []


@pytest.mark.asyncio
async def test_counters_after_several_turns(build_service, fake_openai, make_completion, store) -> None:
    client = fake_openai(*(make_completion(f"answer {i}") for i in range(3)))
    service = build_service(client)
    session = await service.create_session(VISITOR)

    for i in range(3):
        await service.send_message(session.session_id, VISITOR, f"question {i}")

    transcript = await store.get_session(session.session_id, VISITOR)
    assert transcript.session.message_count == 6
    assert transcript.session.last_message_at == transcript.messages[-1].created_at
    assert [m.content for m in transcript.messages[-2:]] == ["question 2", "answer 2"]


@pytest.mark.asyncio
async def test_context_sent_to_the_model(build_service, fake_openai, make_completion) -> None:
    """History includes the new user message; the page note comes last."""
    client = fake_openai(make_completion("Sure."))
    service = build_service(client)
    session = await service.create_session(VISITOR, SessionContext(user_role="pro"))

    await service.send_message(session.session_id, VISITOR, "Help me", current_page="dashboard")

    messages = _call_messages(client, 0)
    assert messages[0]["role"] == "system"
    assert "professional/contractor" in messages[0]["content"]
    assert messages[-2] == {"role": "user", "content": "Help me"}
    assert messages[-1]["content"] == "The user is currently on the dashboard page."


@pytest.mark.asyncio
async def test_empty_model_reply_is_replaced(build_service, fake_openai, make_completion) -> None:
    client = fake_openai(make_completion(""))
    service = build_service(client)
    session = await service.create_session(VISITOR)

    result = await service.send_message(session.session_id, VISITOR, "Hello")

    assert result.response == EMPTY_REPLY["en"]


@pytest.mark.asyncio
async def test_invalid_messages_are_rejected_before_any_call(build_service, fake_openai, store) -> None:
    client = fake_openai()
    service = build_service(client)
    session = await service.create_session(VISITOR)

    with pytest.raises(MessageValidationError):
        await service.send_message(session.session_id, VISITOR, "   ")
    with pytest.raises(MessageValidationError):
        await service.send_message(session.session_id, VISITOR, "x" * 2001)

    client.chat.completions.create.assert_not_called()
    assert (await store.get_session(session.session_id, VISITOR)).messages == []


@pytest.mark.asyncio
async def test_foreign_session_is_not_found(build_service, fake_openai) -> None:
    service = build_service(fake_openai())
    session = await service.create_session(Requester(user_id="alice"))

    with pytest.raises(SessionNotFoundError):
        await service.send_message(session.session_id, Requester(user_id="bob"), "Hi")


@pytest.mark.asyncio
async def test_find_active_session_includes_messages(
    build_service, fake_openai, make_completion
) -> None:
    service = build_service(fake_openai(make_completion("Hello!")))
    session = await service.create_session(VISITOR)
    await service.send_message(session.session_id, VISITOR, "Hi")

    transcript = await service.find_active_session(VISITOR)

    assert transcript.session.session_id == session.session_id
    assert len(transcript.messages) == 2
    await service.close_session(session.session_id, VISITOR)
    assert await service.find_active_session(VISITOR) is None


@pytest.mark.asyncio
async def test_session_closed_during_turn_stays_closed(
    tools: MarketplaceTools, settings: Settings, dict_redis: MagicMock, make_completion
) -> None:
    """Finishing a turn updates the counters without re-opening a session closed meanwhile."""
    store = RedisTranscriptStore(redis_crud=dict_redis)
    client = MagicMock()
    service = AssistantService(store=store, tools=tools, client=client, settings=settings)
    session = await service.create_session(VISITOR)

    async def close_then_reply(**kwargs):
        await store.close_session(session.session_id, VISITOR)
        return make_completion("Goodbye!")

    client.chat.completions.create = AsyncMock(side_effect=close_then_reply)

    result = await service.send_message(session.session_id, VISITOR, "Thanks, bye")

    assert result.state == TurnState.PERSISTED
    stored = (await store.get_session(session.session_id, VISITOR)).session
    assert stored.status == SessionStatus.CLOSED
    assert stored.message_count == 2
    assert stored.last_message_at is not None


@pytest.mark.asyncio
async def test_empty_choices_degrade_the_turn(build_service, fake_openai, store) -> None:
    client = fake_openai(SimpleNamespace(choices=[], usage=None, model="gpt-4o-mini"))
    service = build_service(client)
    session = await service.create_session(VISITOR)

    result = await service.send_message(session.session_id, VISITOR, "Hello")

    assert result.state == TurnState.DEGRADED
    assert result.response == PROVIDER_FAILURE_REPLY["en"]
    assert [m.role for m in (await store.get_session(session.session_id, VISITOR)).messages] == ["user"]
