import asyncio
import secrets
import time
from collections.abc import Callable
from functools import lru_cache
from typing import Any

from conversation import get_conversation_cache
from core.logger import get_logger, get_session_logger
from core.settings import get_settings
from services import get_collaborators

from .errors import EmptyAudioError, SessionNotFoundError
from .models import SessionOptions, VoiceSession
from .pipeline import VoicePipeline

logger = get_logger(__name__)


class SessionQueueManager:
    """
    Registry for in-flight voice sessions.

    start() registers a session and detaches its producer; poll() drains it.
    A session is removed by the poll that finds it complete with nothing
    left to deliver.
    """

    def __init__(self, pipeline: VoicePipeline, clock: Callable[[], float] = time.time) -> None:
        self.pipeline = pipeline
        self._clock = clock
        self.sessions: dict[str, VoiceSession] = {}

    def __len__(self) -> int:
        return len(self.sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self.sessions

    def _new_session_id(self) -> str:
        # Short-lived lookup key, not a secret
        return f"{int(self._clock() * 1000)}-{secrets.token_hex(4)}"

    def start(self, audio: bytes, options: SessionOptions | None = None) -> str:
        """
        Register a session and launch its pipeline without waiting for it.

        Must be called from a running event loop.

        Raises:
            EmptyAudioError: if ``audio`` is empty; no session is created
        """
        if not audio:
            raise EmptyAudioError()

        session_id = self._new_session_id()
        while session_id in self.sessions:
            session_id = self._new_session_id()

        session = VoiceSession(session_id=session_id, options=options or SessionOptions(), created_at=self._clock())
        self.sessions[session_id] = session
        session.task = asyncio.create_task(self.pipeline.run(session, audio), name=f"voice-session-{session_id}")

        get_session_logger(logger, session_id).info(f"started ({len(audio)} bytes)")
        return session_id

    def poll(self, session_id: str | None) -> dict[str, Any]:
        """
        Drain everything a session has produced since the last poll.

        Raises:
            SessionNotFoundError: if the id is missing, unknown or already reaped
        """
        session = self.sessions.get(session_id) if session_id else None
        if session is None:
            raise SessionNotFoundError(session_id)

        text_chunks, audio_chunks = session.drain()

        result = {
            "transcript": session.transcript.to_dict() if session.transcript else None,
            "textChunks": [chunk.to_dict() for chunk in text_chunks],
            "audioChunks": [chunk.to_dict() for chunk in audio_chunks],
            "isComplete": session.is_complete,
            "error": session.error,
            "metrics": session.metrics.to_dict() if session.metrics else None,
        }

        if session.is_complete and session.is_drained:
            del self.sessions[session.session_id]
            get_session_logger(logger, session.session_id).info("reaped")

        return result

    def sweep_expired(self, max_age_seconds: float) -> int:
        """
        Drop completed sessions older than ``max_age_seconds``.

        Covers clients that stop polling before the final drain. Sessions
        still producing are never removed.
        """
        if max_age_seconds <= 0:
            return 0

        now = self._clock()
        expired = [
            sid
            for sid, session in self.sessions.items()
            if session.is_complete and now - session.created_at > max_age_seconds
        ]
        for sid in expired:
            del self.sessions[sid]

        if expired:
            logger.info(f"Swept {len(expired)} abandoned session(s)")
        return len(expired)

    async def run_sweeper(self, max_age_seconds: float, interval_seconds: float) -> None:
        """Periodically sweep abandoned sessions until cancelled."""
        while True:
            await asyncio.sleep(interval_seconds)
            self.sweep_expired(max_age_seconds)


@lru_cache
def get_session_manager() -> SessionQueueManager:
    """
    Get the singleton session manager.
    LRU cache ensures we always get the same instance.
    """
    pipeline = VoicePipeline(
        collaborators=get_collaborators(),
        conversation_cache=get_conversation_cache(),
        settings=get_settings(),
    )
    return SessionQueueManager(pipeline)
