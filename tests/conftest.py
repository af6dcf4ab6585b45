"""Shared fakes and fixtures for the voice pipeline tests."""

import base64
import sys
from collections.abc import AsyncIterator
from pathlib import Path

import pytest

# Add project src to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from conversation import ConversationCache  # noqa: E402
from core.settings import Settings  # noqa: E402
from services import (  # noqa: E402
    Collaborators,
    ProfileContextProvider,
    ResponseGenerator,
    SpeechSynthesizer,
    SynthesisResult,
    Transcriber,
)
from sessions import SessionQueueManager, VoicePipeline  # noqa: E402


class FakeTranscriber(Transcriber):
    def __init__(self, text: str = "hello there") -> None:
        self.text = text
        self.calls: list[tuple[bytes, str]] = []

    async def transcribe(self, audio: bytes, filename: str = "audio.webm") -> str:
        self.calls.append((audio, filename))
        return self.text


class FakeResponder(ResponseGenerator):
    def __init__(self, sentences: list[str] | None = None, fail_after: int | None = None) -> None:
        self.sentences = sentences if sentences is not None else ["Hi!", "How are you?"]
        self.fail_after = fail_after
        self.calls: list[tuple[str, list[dict[str, str]], str]] = []

    async def stream_sentences(
        self,
        user_text: str,
        history: list[dict[str, str]],
        context: str = "",
    ) -> AsyncIterator[str]:
        self.calls.append((user_text, list(history), context))
        for i, sentence in enumerate(self.sentences):
            if self.fail_after is not None and i >= self.fail_after:
                raise RuntimeError("model went away")
            yield sentence


class FakeSynthesizer(SpeechSynthesizer):
    """Returns fixed alignment for every sentence; can fail on chosen texts."""

    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.fail_on = fail_on or set()
        self.calls: list[dict] = []

    async def synthesize(
        self,
        text: str,
        voice_id: str | None = None,
        speed: float = 1.0,
        with_timestamps: bool = False,
    ) -> SynthesisResult:
        self.calls.append({"text": text, "voice_id": voice_id, "speed": speed, "with_timestamps": with_timestamps})
        if text in self.fail_on:
            raise RuntimeError("tts unavailable")

        audio = f"audio:{text}".encode()
        alignment = None
        if with_timestamps:
            alignment = {
                "characters": list(text),
                "character_start_times_seconds": [i * 0.05 for i in range(len(text))],
                "character_end_times_seconds": [(i + 1) * 0.05 for i in range(len(text))],
            }
        return SynthesisResult(
            audio=audio,
            audio_base64=base64.b64encode(audio).decode(),
            alignment=alignment,
        )


class FakeProfiles(ProfileContextProvider):
    def __init__(self, context: str = "") -> None:
        self.context = context
        self.calls: list[str | None] = []

    async def get_context(self, subject_id: str | None) -> str:
        self.calls.append(subject_id)
        return self.context if subject_id else ""


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, openai_api_key="test", elevenlabs_api_key="test")


@pytest.fixture
def collaborators() -> Collaborators:
    return Collaborators(
        transcriber=FakeTranscriber(),
        responder=FakeResponder(),
        synthesizer=FakeSynthesizer(),
        profiles=FakeProfiles(),
    )


@pytest.fixture
def conversation_cache() -> ConversationCache:
    return ConversationCache(ttl_seconds=60, max_pairs=10)


@pytest.fixture
def manager(collaborators, conversation_cache, settings) -> SessionQueueManager:
    pipeline = VoicePipeline(collaborators=collaborators, conversation_cache=conversation_cache, settings=settings)
    return SessionQueueManager(pipeline)
