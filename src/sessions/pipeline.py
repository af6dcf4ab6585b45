"""
Voice Pipeline

The producer side of a polling session:

    audio → transcription → character response (sentence stream)
          → per sentence: text chunk → speech synthesis → lip-sync → audio chunk
          → conversation cache → metrics

Sentences are handled strictly one after another, so a sentence's text
chunk is always queued before its audio chunk and indices stay contiguous.
"""

import time

from conversation import ConversationCache
from core.logger import SessionLoggerAdapter, get_logger, get_session_logger
from core.settings import Settings
from lipsync import generate_lip_sync
from services import Collaborators

from .models import AudioChunk, SessionMetrics, TextChunk, Transcript, VoiceSession

logger = get_logger(__name__)

TRANSCRIPTION_FAILED = "Could not transcribe audio"


class VoicePipeline:
    """Runs one voice turn and writes its output into a VoiceSession."""

    def __init__(
        self,
        collaborators: Collaborators,
        conversation_cache: ConversationCache,
        settings: Settings,
    ) -> None:
        self.collaborators = collaborators
        self.conversation_cache = conversation_cache
        self.settings = settings

    async def run(self, session: VoiceSession, audio: bytes) -> None:
        """
        Produce a session's output. Never raises.

        Any failure is written to ``session.error``; ``session.is_complete``
        is always set on exit so pollers observe a terminal state.
        """
        log = get_session_logger(logger, session.session_id)
        try:
            await self._produce(session, audio, log)
        except Exception as exc:
            log.error(f"pipeline failed: {exc}", exc_info=True)
            session.error = str(exc) or exc.__class__.__name__
        finally:
            session.is_complete = True

    async def _produce(self, session: VoiceSession, audio: bytes, log: SessionLoggerAdapter) -> None:
        options = session.options

        # 1. Transcribe
        transcribe_start = time.perf_counter()
        user_text = (await self.collaborators.transcriber.transcribe(audio, options.filename) or "").strip()
        transcribe_ms = round((time.perf_counter() - transcribe_start) * 1000, 1)

        if not user_text:
            log.info("empty transcription")
            session.error = TRANSCRIPTION_FAILED
            return

        session.transcript = Transcript(user_text=user_text, transcribe_time_ms=transcribe_ms)
        log.info(f"user said {user_text!r} ({transcribe_ms}ms)")

        # 2-3. Prior turns and profile context
        history = self.conversation_cache.to_messages(options.participant_id)
        context = await self.collaborators.profiles.get_context(options.subject_id)

        # 4. Stream sentences, synthesizing each before reading the next
        full_response = ""
        sentence_count = 0
        first_audio_ms: float | None = None

        async for sentence in self.collaborators.responder.stream_sentences(user_text, history, context):
            sentence = sentence.strip()
            if not sentence:
                continue

            full_response = f"{full_response} {sentence}" if full_response else sentence
            index = sentence_count
            sentence_count += 1

            session.text_chunks.append(TextChunk(text=sentence, sentence_index=index))

            synthesized = await self._synthesize_sentence(session, sentence, index, log)
            if synthesized is None:
                continue

            audio_chunk, synthesized_at_ms = synthesized
            if first_audio_ms is None:
                first_audio_ms = synthesized_at_ms
            session.audio_chunks.append(audio_chunk)

        # 5. Remember the exchange
        self.conversation_cache.append(options.participant_id, user_text, full_response)

        # 6. Metrics
        session.metrics = SessionMetrics(
            transcribe_time_ms=transcribe_ms,
            first_audio_latency_ms=first_audio_ms,
            total_time_ms=session.elapsed_ms(),
            sentence_count=sentence_count,
        )
        self._log_turn_metrics(log, session.metrics)

    async def _synthesize_sentence(
        self,
        session: VoiceSession,
        sentence: str,
        index: int,
        log: SessionLoggerAdapter,
    ) -> tuple[AudioChunk, float] | None:
        """
        Synthesize one sentence and derive its lip-sync data.

        Returns the audio chunk with the session offset at which synthesis
        finished, or None when synthesis fails.
        """
        options = session.options
        try:
            result = await self.collaborators.synthesizer.synthesize(
                sentence,
                voice_id=options.voice_id,
                speed=options.speed,
                with_timestamps=options.lip_sync_method == "timestamps",
            )
        except Exception as exc:
            log.warning(f"synthesis failed for sentence {index}, skipping audio: {exc}")
            return None

        synthesized_at_ms = session.elapsed_ms()

        s = self.settings
        try:
            lip_sync_data = generate_lip_sync(
                sentence,
                result.audio,
                result.alignment,
                options.mouth_shape_count,
                audio_format=result.audio_format,
                cadence_ms=s.lipsync_cadence_ms,
                amplitude_interval_ms=s.lipsync_amplitude_interval_ms,
                ms_per_char=s.lipsync_ms_per_char,
            )
        except Exception as exc:
            log.warning(f"lip-sync failed for sentence {index}: {exc}")
            lip_sync_data = None

        chunk = AudioChunk(audio=result.audio_base64, lip_sync_data=lip_sync_data, sentence_index=index)
        return chunk, synthesized_at_ms

    @staticmethod
    def _log_turn_metrics(log: SessionLoggerAdapter, metrics: SessionMetrics) -> None:
        first_audio = "n/a" if metrics.first_audio_latency_ms is None else f"{metrics.first_audio_latency_ms:.1f}"
        log.info(
            f"TURN_METRIC transcribe_ms={metrics.transcribe_time_ms:.1f} "
            f"first_audio_ms={first_audio} total_ms={metrics.total_time_ms:.1f} "
            f"sentences={metrics.sentence_count}"
        )
