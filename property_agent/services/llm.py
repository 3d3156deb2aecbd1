from __future__ import annotations

import logging
import os
from typing import Dict, List, Optional, Sequence

from openai import AsyncOpenAI

from property_agent.models.session import ConversationTurn

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"


class CompletionClient:
    """Thin wrapper over an OpenAI-compatible chat completions endpoint.

    ``complete_text`` raises on any transport or response problem; callers
    own the fallback.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 15.0,
    ) -> None:
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.model = model or os.getenv("OPENAI_MODEL") or DEFAULT_MODEL
        self.base_url = base_url or os.getenv("OPENAI_BASE_URL") or None
        self._client: Optional[AsyncOpenAI] = None
        if self.api_key:
            self._client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url, timeout=timeout)

    def is_available(self) -> bool:
        return self._client is not None

    async def complete_text(
        self,
        system_context: Sequence[str],
        history: Sequence[ConversationTurn],
        turn: str,
        *,
        max_tokens: int = 150,
        temperature: float = 0.7,
    ) -> str:
        if not self._client:
            raise RuntimeError("completion client is not configured")

        messages: List[Dict[str, str]] = [{"role": "system", "content": system_context[0]}]
        messages.extend({"role": item.role, "content": item.content} for item in history)
        messages.extend({"role": "system", "content": extra} for extra in system_context[1:])
        messages.append({"role": "user", "content": turn})

        response = await self._client.chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        if not response.choices:
            raise RuntimeError("completion returned no choices")
        content = (response.choices[0].message.content or "").strip()
        if not content:
            raise RuntimeError("completion returned empty content")
        return content


def trailing_window(history: Sequence[ConversationTurn], turn: str, size: int = 10) -> List[ConversationTurn]:
    """Recent history without the in-flight user utterance, which is sent separately."""
    window = list(history)
    if window and window[-1].role == "user" and window[-1].content == turn:
        window = window[:-1]
    return window[-size:]
