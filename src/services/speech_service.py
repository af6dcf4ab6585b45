"""Speech synthesis service (ElevenLabs over HTTP)."""

import base64
from typing import Any

import httpx

from core.logger import get_logger
from core.settings import Settings, get_settings

from .base import SpeechSynthesizer, SynthesisResult

logger = get_logger(__name__)


class ElevenLabsSynthesizer(SpeechSynthesizer):
    """
    ElevenLabs text-to-speech.

    Plain mode returns the raw audio body. Timestamp mode calls the
    ``/with-timestamps`` variant, which returns base64 audio plus
    character-level alignment used for lip-sync.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._http_client: httpx.AsyncClient | None = None

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            s = self._settings
            self._http_client = httpx.AsyncClient(
                base_url=s.elevenlabs_base_url,
                headers={
                    "xi-api-key": s.elevenlabs_api_key,
                    "Content-Type": "application/json",
                },
                timeout=httpx.Timeout(
                    connect=s.elevenlabs_connect_timeout,
                    read=s.elevenlabs_read_timeout,
                    write=10.0,
                    pool=5.0,
                ),
                transport=httpx.AsyncHTTPTransport(retries=max(0, s.elevenlabs_max_retries)),
            )
        return self._http_client

    @property
    def audio_format(self) -> str:
        return self._settings.elevenlabs_output_format

    def _payload(self, text: str, speed: float) -> dict[str, Any]:
        s = self._settings
        return {
            "text": text,
            "model_id": s.elevenlabs_model_id,
            "voice_settings": {
                "speed": speed,
                "stability": s.elevenlabs_stability,
                "similarity_boost": s.elevenlabs_similarity_boost,
            },
        }

    async def synthesize(
        self,
        text: str,
        voice_id: str | None = None,
        speed: float = 1.0,
        with_timestamps: bool = False,
    ) -> SynthesisResult:
        text = text.strip()
        if not text:
            raise ValueError("Cannot synthesize empty text")

        voice = voice_id or self._settings.elevenlabs_default_voice_id
        path = f"/v1/text-to-speech/{voice}"
        if with_timestamps:
            path += "/with-timestamps"

        params: dict[str, Any] = {"output_format": self.audio_format}
        if speed != 1.0:
            params["speed"] = speed

        logger.debug(f"TTS request voice={voice} speed={speed} timestamps={with_timestamps}: {text!r}")
        response = await self._client().post(path, params=params, json=self._payload(text, speed))
        if response.status_code != 200:
            raise RuntimeError(f"ElevenLabs error ({response.status_code}): {response.text}")

        if with_timestamps:
            data = response.json()
            audio_base64 = data.get("audio_base64", "")
            return SynthesisResult(
                audio=base64.b64decode(audio_base64),
                audio_base64=audio_base64,
                alignment=data.get("alignment"),
                audio_format=self.audio_format,
            )

        audio = response.content
        return SynthesisResult(
            audio=audio,
            audio_base64=base64.b64encode(audio).decode("utf-8"),
            alignment=None,
            audio_format=self.audio_format,
        )

    async def aclose(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
