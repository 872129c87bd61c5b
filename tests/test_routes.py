from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from homico_assistant.agent import AssistantService
from homico_assistant.main import app
from homico_assistant.routes import get_rate_limiter, get_service
from homico_assistant.services.rate_limit import RateLimiter
from homico_assistant.settings import Settings, get_settings

PREFIX = get_settings().api_prefix
ANON = {"X-Anonymous-Id": "visitor-1"}


@pytest.fixture
def limiter() -> RateLimiter:
    return RateLimiter(None, Settings(_env_file=None, message_rate_limit=2, session_rate_limit=3))


@pytest.fixture
def service(store, tools, settings, fake_openai, make_completion) -> AssistantService:
    client = fake_openai(*(make_completion("Happy to help with your renovation.") for _ in range(5)))
    return AssistantService(store=store, tools=tools, client=client, settings=settings)


@pytest.fixture
def client(service: AssistantService, limiter: RateLimiter) -> Iterator[TestClient]:
    """TestClient with the assistant and limiter swapped for test instances."""
    app.dependency_overrides[get_service] = lambda: service
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create(client: TestClient, headers=None, body=None) -> str:
    response = client.post(f"{PREFIX}/sessions", json=body or {}, headers=headers or {})
    assert response.status_code == 201
    return response.json()["sessionId"]


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_create_and_read_session(client: TestClient) -> None:
    response = client.post(
        f"{PREFIX}/sessions",
        json={"anonymousId": "visitor-1", "context": {"page": "home", "preferredLocale": "ka"}},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "active"
    assert body["createdAt"]

    session = client.get(f"{PREFIX}/sessions/{body['sessionId']}", headers=ANON).json()
    assert session["sessionId"] == body["sessionId"]
    assert session["messageCount"] == 0
    assert session["messages"] == []


def test_invalid_context_is_rejected(client: TestClient) -> None:
    response = client.post(f"{PREFIX}/sessions", json={"context": {"userRole": "admin"}})
    assert response.status_code == 422


def test_not_found_is_indistinguishable(client: TestClient) -> None:
    """Another user's session and a missing id produce identical 404 responses."""
    session_id = _create(client, headers={"X-User-Id": "alice"})
    bob = {"X-User-Id": "bob"}

    foreign = client.get(f"{PREFIX}/sessions/{session_id}", headers=bob)
    missing = client.get(f"{PREFIX}/sessions/no-such-session", headers=bob)

    assert foreign.status_code == missing.status_code == 404
    assert foreign.json() == missing.json() == {"detail": "Chat session not found"}
    assert client.delete(f"{PREFIX}/sessions/{session_id}", headers=bob).status_code == 404
    assert client.get(f"{PREFIX}/sessions/{session_id}", headers={"X-User-Id": "alice"}).status_code == 200


def test_send_message_returns_reply(client: TestClient) -> None:
    session_id = _create(client, headers=ANON)

    response = client.post(
        f"{PREFIX}/sessions/{session_id}/messages",
        json={"message": "Do you have painters?", "locale": "en", "currentPage": "home"},
        headers=ANON,
    )

    assert response.status_code == 200
    assert response.json() == {"response": "Happy to help with your renovation."}
    messages = client.get(f"{PREFIX}/sessions/{session_id}", headers=ANON).json()["messages"]
    assert [m["role"] for m in messages] == ["user", "assistant"]


def test_send_message_validation(client: TestClient) -> None:
    session_id = _create(client, headers=ANON)
    url = f"{PREFIX}/sessions/{session_id}/messages"

    assert client.post(url, json={"message": ""}, headers=ANON).status_code == 422
    assert client.post(url, json={"message": "x" * 2001}, headers=ANON).status_code == 422
    assert client.post(url, json={"message": "hi", "locale": "de"}, headers=ANON).status_code == 422
    blank = client.post(url, json={"message": "   "}, headers=ANON)
    assert blank.status_code == 400


def test_active_session_lookup_and_close(client: TestClient) -> None:
    assert client.get(f"{PREFIX}/sessions/active", params={"anonymousId": "visitor-9"}).json() == {
        "session": None
    }

    session_id = _create(client, body={"anonymousId": "visitor-9"})
    by_query = client.get(f"{PREFIX}/sessions/active", params={"anonymousId": "visitor-9"}).json()
    by_body = client.request("GET", f"{PREFIX}/sessions/active", json={"anonymousId": "visitor-9"}).json()
    assert by_query["session"]["sessionId"] == by_body["session"]["sessionId"] == session_id
    assert by_query["session"]["messages"] == []

    closed = client.delete(f"{PREFIX}/sessions/{session_id}", headers={"X-Anonymous-Id": "visitor-9"})
    assert closed.json() == {"message": "Session closed"}
    assert client.get(
        f"{PREFIX}/sessions/active", headers={"X-Anonymous-Id": "visitor-9"}
    ).json() == {"session": None}


def test_message_rate_limit(client: TestClient) -> None:
    """The message scope has its own, tighter limit per caller."""
    session_id = _create(client, headers=ANON)
    url = f"{PREFIX}/sessions/{session_id}/messages"

    for _ in range(2):
        assert client.post(url, json={"message": "hi"}, headers=ANON).status_code == 200
    limited = client.post(url, json={"message": "hi"}, headers=ANON)

    assert limited.status_code == 429
    assert limited.headers["Retry-After"] == "60"
    # Counters are per caller; anonymous sessions stay reachable by signed-in users.
    other = client.post(url, json={"message": "hi"}, headers={"X-User-Id": "someone-else"})
    assert other.status_code == 200
