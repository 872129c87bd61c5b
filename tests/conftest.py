import json
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Dict, List
from unittest.mock import AsyncMock, MagicMock

import pytest


_root = Path(__file__).resolve().parents[1]
_src = _root / "src"
if _src.exists() and str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from homico_assistant.agent.tools import MarketplaceTools  # noqa: E402
from homico_assistant.services.marketplace import SqliteMarketplace  # noqa: E402
from homico_assistant.services.redis import RedisCrudService  # noqa: E402
from homico_assistant.services.transcript_store import InMemoryTranscriptStore  # noqa: E402
from homico_assistant.settings import Settings  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    """Settings with a fake API key and no .env lookups."""
    return Settings(_env_file=None, openai_api_key="test-key", redis_url=None)


@pytest.fixture
def marketplace(tmp_path: Path) -> SqliteMarketplace:
    """Seeded SQLite marketplace in a temp directory."""
    return SqliteMarketplace(tmp_path / "marketplace.db")


@pytest.fixture
def tools(marketplace: SqliteMarketplace) -> MarketplaceTools:
    return MarketplaceTools(marketplace, currency="GEL")


@pytest.fixture
def store() -> InMemoryTranscriptStore:
    return InMemoryTranscriptStore()


@pytest.fixture
def dict_redis() -> MagicMock:
    """Redis CRUD mock that keeps values and lists in dicts, so writes are readable."""
    values: Dict[str, str] = {}
    lists: Dict[str, List[str]] = {}

    async def _set(key: str, value: str, ttl_seconds: int | None = None) -> bool:
        values[key] = value
        return True

    async def _rpush(key: str, value: str) -> bool:
        lists.setdefault(key, []).append(value)
        return True

    async def _lrange(key: str, start: int = 0, end: int = -1) -> List[str]:
        items = lists.get(key, [])
        return items[start:] if end == -1 else items[start : end + 1]

    m = MagicMock(spec=RedisCrudService)
    m.get = AsyncMock(side_effect=lambda key: values.get(key))
    m.set = AsyncMock(side_effect=_set)
    m.rpush = AsyncMock(side_effect=_rpush)
    m.lrange = AsyncMock(side_effect=_lrange)
    m.expire = AsyncMock(return_value=True)
    return m


@pytest.fixture
def make_tool_call() -> Callable[..., SimpleNamespace]:
    """Build an object shaped like an OpenAI tool call."""

    def _make(call_id: str, name: str, arguments: Any) -> SimpleNamespace:
        raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
        return SimpleNamespace(
            id=call_id, type="function", function=SimpleNamespace(name=name, arguments=raw)
        )

    return _make


@pytest.fixture
def make_completion() -> Callable[..., SimpleNamespace]:
    """Build an object shaped like an OpenAI chat completion."""

    def _make(
        content: str | None = None,
        tool_calls: List[SimpleNamespace] | None = None,
        total_tokens: int = 10,
        model: str = "gpt-4o-mini",
    ) -> SimpleNamespace:
        message = SimpleNamespace(content=content, tool_calls=tool_calls)
        return SimpleNamespace(
            choices=[SimpleNamespace(message=message)],
            usage=SimpleNamespace(total_tokens=total_tokens),
            model=model,
        )

    return _make


@pytest.fixture
def fake_openai() -> Callable[..., MagicMock]:
    """OpenAI client mock whose completions return (or raise) the given items in order."""

    def _make(*responses: Any) -> MagicMock:
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=list(responses))
        return client

    return _make

