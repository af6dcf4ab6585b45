"""
Talking Avatar - Polling Voice Server

FastAPI application for voice conversations with a 2D talking character.
Speech is transcribed, answered sentence by sentence, synthesized, and
delivered with mouth-shape cues through a polling API.

Usage:
    uvicorn main:app --host 0.0.0.0 --port 3001 --reload

Or run directly:
    python main.py
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from core.logger import get_logger, setup_logging
from core.settings import get_allowed_origins, get_settings
from routers import add_error_handlers, avatar_router
from services import get_collaborators
from sessions import get_session_manager

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events for proper resource management.
    """
    settings = get_settings()

    setup_logging("DEBUG" if settings.debug else "INFO")

    logger.info("=" * 60)
    logger.info("Talking Avatar Starting")
    logger.info("=" * 60)
    logger.info(f"Endpoints: http://{settings.server_host}:{settings.server_port}/api/avatar")
    logger.info(f"Chat model: {settings.openai_chat_model}")
    logger.info(f"TTS model: {settings.elevenlabs_model_id} ({settings.elevenlabs_output_format})")
    logger.info(f"Profile context: {settings.profile_context_source or 'disabled'}")
    logger.info(f"Debug: {settings.debug}")
    logger.info("=" * 60)

    collaborators = get_collaborators()
    manager = get_session_manager()

    sweeper: asyncio.Task | None = None
    if settings.session_max_age_seconds > 0:
        sweeper = asyncio.create_task(
            manager.run_sweeper(settings.session_max_age_seconds, settings.session_sweep_interval_seconds)
        )
        logger.info(f"Session sweep enabled (max age {settings.session_max_age_seconds}s)")

    yield

    logger.info("Shutting down...")
    if sweeper:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
    await collaborators.aclose()


app = FastAPI(
    title="Talking Avatar",
    description="""
    Voice conversation server for a lip-synced 2D character.

    ## Flow

    1. `POST /api/avatar/start-session` with the recorded audio as the body
       (query: `mouthShapeCount`, `lipSyncMethod`, `voiceId`, `participantId`,
       `speed`, `subjectId`) → `{"sessionId": "..."}`
    2. `GET /api/avatar/poll-session?sessionId=...` until `isComplete` is true.
       Each poll returns only the chunks produced since the previous one:

    - `transcript` - `{"userText", "transcribeTimeMs"}` once transcription is done
    - `textChunks` - `[{"text", "sentenceIndex"}]`
    - `audioChunks` - `[{"audio", "lipSyncData", "sentenceIndex", "chunkIndex", "isFinal"}]`
    - `isComplete`, `error`, `metrics`

    A completed session may carry an `error`; always check it.
    """,
    version="1.0.0",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(avatar_router)
add_error_handlers(app)


@app.get("/inf")
async def root():
    """Root endpoint with server information."""
    settings = get_settings()
    response = {
        "name": "Talking Avatar",
        "version": app.version,
        "status": "running",
    }

    if settings.debug:
        response["active_sessions"] = len(get_session_manager())

    return response


@app.get("/health")
async def health_check():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


if __name__ == "__main__":
    settings = get_settings()

    # Configure logging BEFORE uvicorn starts
    setup_logging("DEBUG" if settings.debug else "INFO")

    uvicorn.run(
        app,
        host=settings.server_host,
        port=settings.server_port,
        reload=False,  # Reload doesn't work with app object, use uvicorn CLI for dev
        log_level="debug" if settings.debug else "info",
        log_config=None,  # Prevent uvicorn from overwriting our logging config
    )
