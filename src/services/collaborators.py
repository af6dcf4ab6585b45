"""
Collaborator Service

Builds the set of provider adapters used by the voice pipeline.
"""

from dataclasses import dataclass
from functools import lru_cache

from core.logger import get_logger
from core.settings import Settings, get_settings

from .base import ProfileContextProvider, ResponseGenerator, SpeechSynthesizer, Transcriber
from .profile_context_service import ProfileContextService
from .response_service import OpenAIResponseGenerator
from .speech_service import ElevenLabsSynthesizer
from .transcription_service import WhisperTranscriber

logger = get_logger(__name__)


@dataclass
class Collaborators:
    transcriber: Transcriber
    responder: ResponseGenerator
    synthesizer: SpeechSynthesizer
    profiles: ProfileContextProvider

    async def aclose(self) -> None:
        for service in (self.transcriber, self.responder, self.synthesizer, self.profiles):
            await service.aclose()


def create_collaborators(settings: Settings | None = None) -> Collaborators:
    """
    Create a fresh set of provider adapters from configuration.

    Missing API keys are reported but not fatal; the first call to the
    affected provider fails and is handled by the pipeline.
    """
    settings = settings or get_settings()

    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set; transcription and responses will fail")
    if not settings.elevenlabs_api_key:
        logger.warning("ELEVENLABS_API_KEY is not set; speech synthesis will fail")

    return Collaborators(
        transcriber=WhisperTranscriber(settings),
        responder=OpenAIResponseGenerator(settings),
        synthesizer=ElevenLabsSynthesizer(settings),
        profiles=ProfileContextService(settings),
    )


@lru_cache
def get_collaborators() -> Collaborators:
    """
    Get the process-wide collaborator set.
    LRU cache ensures we always get the same instance.
    """
    return create_collaborators()
