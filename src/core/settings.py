"""
Application Configuration

Centralized configuration using Pydantic Settings for type-safe
environment variable management with validation.

Provider keys (OpenAI, ElevenLabs) live here too; the collaborator
adapters read them through get_settings().
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Get the directory containing this file, then go up to the project root
_CONFIG_DIR = Path(__file__).parent.parent.parent


DEFAULT_CHARACTER_PROMPT = (
    "You are Dino, a cute and friendly dinosaur who helps children with their daily tasks. "
    "Speak in short, simple sentences (one or two at most). Always be warm and encouraging. "
    "Your answer is read aloud, so never use emojis, lists, headings or special symbols, "
    "and write numbers out as words."
)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables or .env file.
    """

    model_config = SettingsConfigDict(
        env_file=_CONFIG_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Character Configuration
    character_prompt: str = DEFAULT_CHARACTER_PROMPT

    # Profile context source for subjectId lookups.
    # Either a URL template containing "{subject_id}" or a local directory
    # holding "<subject_id>.md" / "<subject_id>.txt" files.
    profile_context_source: str | None = None

    # Server Configuration
    server_host: str = "0.0.0.0"
    server_port: int = 3001
    debug: bool = False
    cors_allowed_origins: str = "*"

    # OpenAI (transcription + response generation)
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com"
    openai_chat_model: str = "gpt-4o-mini"
    openai_transcription_model: str = "whisper-1"
    openai_transcription_language: str | None = "he"
    openai_max_tokens: int = 150
    openai_temperature: float = 0.7
    openai_connect_timeout: float = 5.0
    openai_read_timeout: float = 60.0
    openai_max_retries: int = 2

    # ElevenLabs (speech synthesis)
    elevenlabs_api_key: str = ""
    elevenlabs_base_url: str = "https://api.elevenlabs.io"
    elevenlabs_model_id: str = "eleven_v3"
    elevenlabs_default_voice_id: str = "EXAVITQu4vr4xnSDxMaL"
    elevenlabs_stability: float = 0.5
    elevenlabs_similarity_boost: float = 0.75
    # "mp3_44100_128" for browser playback, "pcm_24000" for raw PCM16
    elevenlabs_output_format: str = "mp3_44100_128"
    elevenlabs_connect_timeout: float = 5.0
    elevenlabs_read_timeout: float = 30.0
    elevenlabs_max_retries: int = 2

    # Lip-sync Configuration
    default_mouth_shape_count: int = 6
    lipsync_cadence_ms: int = 100  # Duration-based fallback cue length
    lipsync_amplitude_interval_ms: int = 50  # Energy envelope frame length
    lipsync_ms_per_char: int = 80  # Crude speech duration estimate

    # Conversation Cache Configuration
    conversation_ttl_seconds: int = 24 * 60 * 60
    conversation_max_pairs: int = 10

    # Session Configuration
    # 0 disables the age-based sweep; completed sessions are then only
    # reaped by the poll that drains them.
    session_max_age_seconds: int = 0
    session_sweep_interval_seconds: int = 60

    @property
    def resolved_profile_context_source(self) -> str | None:
        """Return the profile context source with local paths made absolute.

        URL templates are returned unchanged. Relative directories are
        resolved against the project root when they exist there.
        """
        source = self.profile_context_source
        if not source or source.startswith(("http://", "https://")):
            return source
        raw = Path(source)
        if raw.is_absolute():
            return str(raw)
        candidate = (_CONFIG_DIR / raw).resolve()
        if candidate.exists():
            return str(candidate)
        return str(raw)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once
    and reused throughout the application lifecycle.
    """
    return Settings()


def get_allowed_origins() -> list[str]:
    """Parse allowed CORS origins from comma-separated string."""
    settings = get_settings()
    if not settings.cors_allowed_origins:
        return []
    return [origin.strip() for origin in settings.cors_allowed_origins.split(",") if origin.strip()]
