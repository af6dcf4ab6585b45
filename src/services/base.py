"""
Abstract Collaborator Interfaces

Defines the contracts the voice pipeline consumes. Concrete adapters talk
to hosted providers; tests substitute in-memory fakes.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any


@dataclass
class SynthesisResult:
    """Audio for one sentence, with optional character alignment."""

    audio: bytes
    audio_base64: str
    alignment: dict[str, Any] | None = None
    audio_format: str = "mp3"


class Transcriber(ABC):
    """Speech-to-text."""

    @abstractmethod
    async def transcribe(self, audio: bytes, filename: str = "audio.webm") -> str:
        """
        Transcribe a complete utterance.

        Args:
            audio: Encoded audio bytes (webm, mp3, wav, ...)
            filename: Original filename; its extension tells the provider the format

        Returns:
            Transcribed text (may be empty)
        """
        pass

    async def aclose(self) -> None:
        return


class ResponseGenerator(ABC):
    """Streaming, sentence-segmented character responses."""

    @abstractmethod
    def stream_sentences(
        self,
        user_text: str,
        history: list[dict[str, str]],
        context: str = "",
    ) -> AsyncIterator[str]:
        """
        Generate a reply and yield it one sentence at a time.

        Args:
            user_text: The user's transcribed message
            history: Prior turns as {"role", "content"} dicts, oldest first
            context: Opaque profile context appended to the system prompt
        """
        pass

    async def aclose(self) -> None:
        return


class SpeechSynthesizer(ABC):
    """Text-to-speech, optionally with character timing."""

    @abstractmethod
    async def synthesize(
        self,
        text: str,
        voice_id: str | None = None,
        speed: float = 1.0,
        with_timestamps: bool = False,
    ) -> SynthesisResult:
        """
        Synthesize one sentence.

        Args:
            text: Sentence to speak
            voice_id: Provider voice, None for the configured default
            speed: Speaking rate multiplier
            with_timestamps: Request character alignment alongside the audio
        """
        pass

    async def aclose(self) -> None:
        return


class ProfileContextProvider(ABC):
    """Opaque per-subject context for the character prompt."""

    @abstractmethod
    async def get_context(self, subject_id: str | None) -> str:
        pass

    async def aclose(self) -> None:
        return
