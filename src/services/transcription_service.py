"""Transcription service (OpenAI Whisper over HTTP)."""

import mimetypes

import httpx

from core.logger import get_logger
from core.settings import Settings, get_settings

from .base import Transcriber

logger = get_logger(__name__)


class WhisperTranscriber(Transcriber):
    """Sends whole utterances to ``/v1/audio/transcriptions``."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._http_client: httpx.AsyncClient | None = None

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            s = self._settings
            self._http_client = httpx.AsyncClient(
                base_url=s.openai_base_url,
                headers={"Authorization": f"Bearer {s.openai_api_key}"},
                timeout=httpx.Timeout(
                    connect=s.openai_connect_timeout,
                    read=s.openai_read_timeout,
                    write=30.0,
                    pool=5.0,
                ),
                transport=httpx.AsyncHTTPTransport(retries=max(0, s.openai_max_retries)),
            )
        return self._http_client

    async def transcribe(self, audio: bytes, filename: str = "audio.webm") -> str:
        s = self._settings
        content_type = mimetypes.guess_type(filename)[0] or "audio/webm"

        data = {"model": s.openai_transcription_model}
        if s.openai_transcription_language:
            data["language"] = s.openai_transcription_language

        response = await self._client().post(
            "/v1/audio/transcriptions",
            data=data,
            files={"file": (filename, audio, content_type)},
        )
        if response.status_code != 200:
            raise RuntimeError(f"Transcription failed ({response.status_code}): {response.text}")

        text = response.json().get("text", "")
        logger.info(f"Transcribed {len(audio)} bytes -> {len(text)} chars")
        return text

    async def aclose(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
