import random
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, Field

from core.logger import get_logger
from core.settings import Settings, get_settings
from lipsync import generate_lip_sync
from services import Collaborators, get_collaborators
from sessions import (
    EmptyAudioError,
    SessionNotFoundError,
    SessionOptions,
    SessionQueueManager,
    get_session_manager,
)
from sessions.models import LIP_SYNC_METHODS

logger = get_logger(__name__)


avatar_router = APIRouter(prefix="/api/avatar", tags=["avatar"])


def _error(status_code: int, message: str) -> ORJSONResponse:
    return ORJSONResponse(status_code=status_code, content={"error": message})


@avatar_router.post("/start-session")
async def start_session(
    request: Request,
    mouth_shape_count: int | None = Query(None, alias="mouthShapeCount"),
    lip_sync_method: str = Query("timestamps", alias="lipSyncMethod"),
    voice_id: str | None = Query(None, alias="voiceId"),
    participant_id: str | None = Query(None, alias="participantId"),
    speed: float = Query(1.0),
    subject_id: str | None = Query(None, alias="subjectId"),
    filename: str = Query("audio.webm"),
    manager: SessionQueueManager = Depends(get_session_manager),
    settings: Settings = Depends(get_settings),
):
    """
    Start a voice turn from a raw audio body.

    Returns immediately with a session id; results are collected with
    ``poll-session``.
    """
    audio = await request.body()

    options = SessionOptions(
        mouth_shape_count=mouth_shape_count or settings.default_mouth_shape_count,
        lip_sync_method=lip_sync_method if lip_sync_method in LIP_SYNC_METHODS else "timestamps",
        voice_id=voice_id or None,
        participant_id=participant_id or None,
        speed=speed,
        subject_id=subject_id or None,
        filename=filename,
    )

    try:
        session_id = manager.start(audio, options)
    except EmptyAudioError as e:
        return _error(400, str(e))

    return {"sessionId": session_id}


@avatar_router.get("/poll-session")
async def poll_session(
    session_id: str | None = Query(None, alias="sessionId"),
    manager: SessionQueueManager = Depends(get_session_manager),
):
    """Collect everything the session produced since the previous poll."""
    if not session_id:
        return _error(400, "sessionId is required")

    try:
        return manager.poll(session_id)
    except SessionNotFoundError as e:
        return _error(404, str(e))


class SpeakRequest(BaseModel):
    text: str = ""
    voice_id: str | None = Field(None, alias="voiceId")
    mouth_shape_count: int = Field(4, alias="mouthShapeCount")
    lip_sync_method: str = Field("amplitude", alias="lipSyncMethod")
    speed: float = 1.0


class GreetRequest(BaseModel):
    name: str = ""
    voice_id: str | None = Field(None, alias="voiceId")
    mouth_shape_count: int = Field(4, alias="mouthShapeCount")
    lip_sync_method: str = Field("amplitude", alias="lipSyncMethod")


GREETING_TEMPLATES: tuple[str, ...] = (
    "שלום {name}! מה נשמע?",
    "היי {name}! איזה כיף לראות אותך!",
    "שלום {name}! בוא נשחק ביחד!",
)


def get_greeting(name: str) -> str:
    """Pick a greeting addressed to ``name``."""
    return random.choice(GREETING_TEMPLATES).format(name=name)


async def _render_speech(
    text: str,
    voice_id: str | None,
    mouth_shape_count: int,
    lip_sync_method: str,
    speed: float,
    settings: Settings,
    collaborators: Collaborators,
) -> dict[str, Any] | ORJSONResponse:
    """Synthesize ``text`` and attach lip-sync data, outside of any session."""
    method = lip_sync_method if lip_sync_method in LIP_SYNC_METHODS else "amplitude"

    try:
        result = await collaborators.synthesizer.synthesize(
            text,
            voice_id=voice_id,
            speed=speed,
            with_timestamps=method == "timestamps",
        )
    except Exception as e:
        logger.error(f"Error generating speech: {e}")
        return _error(502, str(e))

    try:
        lip_sync_data = generate_lip_sync(
            text,
            result.audio,
            result.alignment,
            mouth_shape_count,
            audio_format=result.audio_format,
            cadence_ms=settings.lipsync_cadence_ms,
            amplitude_interval_ms=settings.lipsync_amplitude_interval_ms,
            ms_per_char=settings.lipsync_ms_per_char,
        )
    except Exception as e:
        logger.warning(f"Lip-sync failed, returning audio only: {e}")
        lip_sync_data = None

    return {"audioBase64": result.audio_base64, "lipSyncData": lip_sync_data, "method": method}


@avatar_router.post("/speak")
async def speak(
    body: SpeakRequest,
    settings: Settings = Depends(get_settings),
    collaborators: Collaborators = Depends(get_collaborators),
):
    """Synthesize a single utterance with lip-sync data, without a session."""
    text = body.text.strip()
    if not text:
        return _error(400, "Text is required")

    return await _render_speech(
        text,
        body.voice_id,
        body.mouth_shape_count,
        body.lip_sync_method,
        body.speed,
        settings,
        collaborators,
    )


@avatar_router.post("/greet")
async def greet(
    body: GreetRequest,
    settings: Settings = Depends(get_settings),
    collaborators: Collaborators = Depends(get_collaborators),
):
    """Speak a greeting addressed to a child by name."""
    name = body.name.strip()
    if not name:
        return _error(400, "Name is required")

    greeting = get_greeting(name)
    response = await _render_speech(
        greeting,
        body.voice_id,
        body.mouth_shape_count,
        body.lip_sync_method,
        1.0,
        settings,
        collaborators,
    )
    if isinstance(response, ORJSONResponse):
        return response

    return {**response, "text": greeting}


async def validation_error_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    """Report unparseable query or body values as ``{"error"}`` with status 400."""
    errors = exc.errors()
    if not errors:
        return _error(400, "Invalid request")

    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ())[1:]) or "request"
    return _error(400, f"Invalid {field}: {first.get('msg', 'invalid value')}")


def add_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_error_handler)
