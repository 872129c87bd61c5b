import pytest

from homico_assistant.agent.context import build_context
from homico_assistant.agent.prompts import system_prompt
from homico_assistant.models import ChatMessage, Requester
from homico_assistant.services.transcript_store import InMemoryTranscriptStore


@pytest.mark.asyncio
async def test_window_keeps_ten_most_recent_in_order(store: InMemoryTranscriptStore) -> None:
    """With 25 stored messages only the last 10 are sent, oldest first, after the system prompt."""
    session = await store.create_session(Requester(anonymous_id="v"))
    for i in range(25):
        role = "user" if i % 2 == 0 else "assistant"
        await store.append_message(ChatMessage(session.session_id, role, f"message {i}"))

    messages = await build_context(store, session.session_id)

    assert len(messages) == 11
    assert messages[0] == {"role": "system", "content": system_prompt("en", None)}
    assert [m["content"] for m in messages[1:]] == [f"message {i}" for i in range(15, 25)]
    assert messages[1]["role"] == "assistant"
    assert messages[-1]["role"] == "user"


@pytest.mark.asyncio
async def test_page_note_goes_last(store: InMemoryTranscriptStore) -> None:
    session = await store.create_session(Requester(anonymous_id="v"))
    await store.append_message(ChatMessage(session.session_id, "user", "hi"))

    messages = await build_context(store, session.session_id, current_page="pricing")

    assert messages[-1] == {"role": "system", "content": "The user is currently on the pricing page."}
    assert messages[-2]["content"] == "hi"


@pytest.mark.asyncio
async def test_prompt_follows_locale_and_role(store: InMemoryTranscriptStore) -> None:
    session = await store.create_session(Requester(anonymous_id="v"))
    messages = await build_context(store, session.session_id, locale="ka", user_role="pro")
    assert len(messages) == 1
    assert "პროფესიონალი/კონტრაქტორი" in messages[0]["content"]


def test_system_prompt_lists_every_tool_and_falls_back() -> None:
    prompt = system_prompt("ru", "client")
    for name in (
        "search_professionals",
        "get_professional_details",
        "get_professional_reviews",
        "get_categories",
        "get_price_ranges",
        "explain_feature",
    ):
        assert name in prompt
    assert "домовладелец" in prompt
    assert system_prompt("de", "admin") == system_prompt("en", "guest")
