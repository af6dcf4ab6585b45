from .errors import EmptyAudioError, SessionNotFoundError
from .manager import SessionQueueManager, get_session_manager
from .models import AudioChunk, SessionMetrics, SessionOptions, TextChunk, Transcript, VoiceSession
from .pipeline import TRANSCRIPTION_FAILED, VoicePipeline

__all__ = [
    "TRANSCRIPTION_FAILED",
    "AudioChunk",
    "EmptyAudioError",
    "SessionMetrics",
    "SessionNotFoundError",
    "SessionOptions",
    "SessionQueueManager",
    "TextChunk",
    "Transcript",
    "VoicePipeline",
    "VoiceSession",
    "get_session_manager",
]
