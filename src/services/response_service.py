"""
Character response service (OpenAI chat completions, SSE streaming).

Tokens are buffered into sentences as they arrive so synthesis can start
on the first sentence while the model is still generating the rest.
"""

import re
from collections.abc import AsyncIterator
from typing import Any

import httpx
import orjson

from core.logger import get_logger
from core.settings import Settings, get_settings

from .base import ResponseGenerator
from .profile_context_service import format_instructions

logger = get_logger(__name__)

# Sentence (or clause) ending punctuation, including the Hebrew sof pasuq.
# Breaking on commas gives shorter chunks and an earlier first audio.
_SENTENCE_END = re.compile(r"^(.*?[.!?,\u05C3])\s*", re.DOTALL)

_EMOJI = re.compile(
    r"["
    r"\U0001F1E0-\U0001F1FF"
    r"\U0001F300-\U0001F5FF"
    r"\U0001F600-\U0001F64F"
    r"\U0001F680-\U0001F6FF"
    r"\U0001F900-\U0001F9FF"
    r"\U0001FA70-\U0001FAFF"
    r"\u2600-\u26FF"
    r"\u2700-\u27BF"
    r"]+"
)
_PUNCTUATION = re.compile(r"[\s.,!?;:\-–—'\"()\[\]{}…׃]+")


def has_speakable_content(text: str) -> bool:
    """True when text holds something other than emoji, punctuation and whitespace."""
    stripped = _PUNCTUATION.sub("", _EMOJI.sub("", text))
    return bool(stripped)


def extract_sentences(buffer: str) -> tuple[list[str], str]:
    """
    Split complete sentences off the front of *buffer*.

    Returns ``(sentences, remaining_buffer)``. Segments with nothing to say
    are dropped.
    """
    sentences: list[str] = []
    remaining = buffer.lstrip()

    while True:
        match = _SENTENCE_END.match(remaining)
        if match is None:
            break
        sentence = match.group(1).strip()
        if sentence and has_speakable_content(sentence):
            sentences.append(sentence)
        remaining = remaining[match.end() :]

    return sentences, remaining


class OpenAIResponseGenerator(ResponseGenerator):
    """Streams replies from ``/v1/chat/completions``."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._http_client: httpx.AsyncClient | None = None

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            s = self._settings
            self._http_client = httpx.AsyncClient(
                base_url=s.openai_base_url,
                headers={
                    "Authorization": f"Bearer {s.openai_api_key}",
                    "Content-Type": "application/json",
                },
                timeout=httpx.Timeout(
                    connect=s.openai_connect_timeout,
                    read=s.openai_read_timeout,
                    write=10.0,
                    pool=5.0,
                ),
                transport=httpx.AsyncHTTPTransport(retries=max(0, s.openai_max_retries)),
            )
        return self._http_client

    def build_messages(self, user_text: str, history: list[dict[str, str]], context: str = "") -> list[dict[str, str]]:
        system_prompt = format_instructions(self._settings.character_prompt, context)
        return [
            {"role": "system", "content": system_prompt},
            *history,
            {"role": "user", "content": user_text},
        ]

    async def stream_sentences(
        self,
        user_text: str,
        history: list[dict[str, str]],
        context: str = "",
    ) -> AsyncIterator[str]:
        s = self._settings
        payload: dict[str, Any] = {
            "model": s.openai_chat_model,
            "messages": self.build_messages(user_text, history, context),
            "max_tokens": s.openai_max_tokens,
            "temperature": s.openai_temperature,
            "stream": True,
        }

        buffer = ""
        async with self._client().stream("POST", "/v1/chat/completions", json=payload) as response:
            if response.status_code != 200:
                body = await response.aread()
                raise RuntimeError(
                    f"Chat completion failed ({response.status_code}): {body.decode('utf-8', errors='replace')}"
                )

            async for line in response.aiter_lines():
                if not line.startswith("data: "):
                    continue
                data = line[6:]
                if data == "[DONE]":
                    break

                try:
                    chunk = orjson.loads(data)
                except orjson.JSONDecodeError:
                    continue

                choices = chunk.get("choices", [])
                if not choices:
                    continue
                content = choices[0].get("delta", {}).get("content")
                if not content:
                    continue

                buffer += content
                sentences, buffer = extract_sentences(buffer)
                for sentence in sentences:
                    yield sentence

        # Flush whatever is left once the stream ends
        remaining = buffer.strip()
        if remaining and has_speakable_content(remaining):
            yield remaining

    async def aclose(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
