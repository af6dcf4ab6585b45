"""
Services Package

Adapters for the external collaborators the voice pipeline consumes:
- Transcription: OpenAI Whisper
- Response generation: OpenAI chat completions (sentence streaming)
- Speech synthesis: ElevenLabs (plain or with character timestamps)
- Profile context: URL template or local directory
"""

from services.base import (
    ProfileContextProvider,
    ResponseGenerator,
    SpeechSynthesizer,
    SynthesisResult,
    Transcriber,
)
from services.collaborators import Collaborators, create_collaborators, get_collaborators

__all__ = [
    "Collaborators",
    "ProfileContextProvider",
    "ResponseGenerator",
    "SpeechSynthesizer",
    "SynthesisResult",
    "Transcriber",
    "create_collaborators",
    "get_collaborators",
]
