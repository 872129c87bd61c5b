from typing import Any, Dict, List

from ..services.transcript_store import TranscriptStore
from .prompts import CURRENT_PAGE_NOTE, system_prompt

HISTORY_WINDOW = 10


async def build_context(
    store: TranscriptStore,
    session_id: str,
    locale: str = "en",
    user_role: str | None = None,
    current_page: str | None = None,
    window: int = HISTORY_WINDOW,
) -> List[Dict[str, Any]]:
    """Chat messages for a model call: system prompt, recent history, optional page note.

    Only the ``window`` most recent transcript messages are included, oldest
    first. The page note goes last so it is the most recent thing the model sees.
    """
    messages: List[Dict[str, Any]] = [
        {"role": "system", "content": system_prompt(locale, user_role)}
    ]
    for message in await store.recent_messages(session_id, window):
        messages.append({"role": message.role, "content": message.content})
    if current_page:
        messages.append({"role": "system", "content": CURRENT_PAGE_NOTE.format(page=current_page)})
    return messages
