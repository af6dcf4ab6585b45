"""
Session records for the polling voice pipeline.

A VoiceSession is written only by its producer task and drained only by
poll(). Every mutation is a single statement with no await in between, so
the two sides never observe a half-applied change.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Literal

LipSyncMethod = Literal["timestamps", "amplitude"]

LIP_SYNC_METHODS: tuple[str, ...] = ("timestamps", "amplitude")


@dataclass
class SessionOptions:
    """Per-request knobs passed through to the producer pipeline."""

    mouth_shape_count: int = 6
    lip_sync_method: LipSyncMethod = "timestamps"
    voice_id: str | None = None
    participant_id: str | None = None
    speed: float = 1.0
    subject_id: str | None = None
    filename: str = "audio.webm"


@dataclass(frozen=True)
class TextChunk:
    text: str
    sentence_index: int

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "sentenceIndex": self.sentence_index}


@dataclass(frozen=True)
class AudioChunk:
    audio: str  # base64
    lip_sync_data: list[dict[str, Any]] | None
    sentence_index: int
    # Reserved for sub-sentence streaming; one final chunk per sentence today
    chunk_index: int = 0
    is_final: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "audio": self.audio,
            "lipSyncData": self.lip_sync_data,
            "sentenceIndex": self.sentence_index,
            "chunkIndex": self.chunk_index,
            "isFinal": self.is_final,
        }


@dataclass(frozen=True)
class Transcript:
    user_text: str
    transcribe_time_ms: float

    def to_dict(self) -> dict[str, Any]:
        return {"userText": self.user_text, "transcribeTimeMs": self.transcribe_time_ms}


@dataclass(frozen=True)
class SessionMetrics:
    transcribe_time_ms: float
    first_audio_latency_ms: float | None
    total_time_ms: float
    sentence_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "transcribeTimeMs": self.transcribe_time_ms,
            "firstAudioLatencyMs": self.first_audio_latency_ms,
            "totalTimeMs": self.total_time_ms,
            "sentenceCount": self.sentence_count,
        }


@dataclass
class VoiceSession:
    """
    Server-side record of one voice turn.

    Holds the two output queues, the terminal scalars and the producer task.
    """

    session_id: str
    options: SessionOptions = field(default_factory=SessionOptions)
    created_at: float = field(default_factory=time.time)
    started_at: float = field(default_factory=time.perf_counter)

    text_chunks: list[TextChunk] = field(default_factory=list)
    audio_chunks: list[AudioChunk] = field(default_factory=list)

    is_complete: bool = False
    transcript: Transcript | None = None
    error: str | None = None
    metrics: SessionMetrics | None = None

    # Producer task; kept so it is not garbage collected mid-run and as a
    # handle for cancellation should it ever be needed
    task: asyncio.Task | None = None

    def elapsed_ms(self) -> float:
        return round((time.perf_counter() - self.started_at) * 1000, 1)

    def drain(self) -> tuple[list[TextChunk], list[AudioChunk]]:
        """Take everything queued so far and leave both queues empty."""
        text_chunks, audio_chunks, self.text_chunks, self.audio_chunks = self.text_chunks, self.audio_chunks, [], []
        return text_chunks, audio_chunks

    @property
    def is_drained(self) -> bool:
        return not self.text_chunks and not self.audio_chunks
