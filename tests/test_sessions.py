"""
Session lifecycle: start, incremental polling, completion and reaping.
"""

import asyncio
import time

import pytest

import sessions.pipeline as pipeline_module
from conftest import FakeResponder, FakeSynthesizer, FakeTranscriber
from sessions import (
    TRANSCRIPTION_FAILED,
    EmptyAudioError,
    SessionNotFoundError,
    SessionOptions,
    SessionQueueManager,
)


async def _wait_done(manager: SessionQueueManager, session_id: str) -> None:
    await asyncio.wait_for(manager.sessions[session_id].task, timeout=5)


async def _poll_until_complete(manager: SessionQueueManager, session_id: str) -> list[dict]:
    polls = []
    for _ in range(500):
        result = manager.poll(session_id)
        polls.append(result)
        if result["isComplete"]:
            return polls
        await asyncio.sleep(0)
    raise AssertionError("session never completed")


async def test_start_returns_id_and_registers_session(manager):
    session_id = manager.start(b"audio-bytes")

    assert session_id
    assert session_id in manager
    await _wait_done(manager, session_id)


async def test_empty_audio_is_rejected_without_a_session(manager):
    with pytest.raises(EmptyAudioError):
        manager.start(b"")

    assert len(manager) == 0


async def test_poll_unknown_or_missing_id(manager):
    with pytest.raises(SessionNotFoundError):
        manager.poll("nope")
    with pytest.raises(SessionNotFoundError):
        manager.poll(None)


async def test_completed_session_delivers_everything_then_is_reaped(manager, collaborators):
    session_id = manager.start(b"audio-bytes", SessionOptions(mouth_shape_count=4))
    await _wait_done(manager, session_id)

    result = manager.poll(session_id)

    assert result["isComplete"] is True
    assert result["error"] is None
    assert result["transcript"]["userText"] == "hello there"
    assert [c["text"] for c in result["textChunks"]] == ["Hi!", "How are you?"]
    assert [c["sentenceIndex"] for c in result["audioChunks"]] == [0, 1]
    for chunk in result["audioChunks"]:
        assert chunk["isFinal"] is True
        assert chunk["chunkIndex"] == 0
        assert all(0 <= cue["shapeIndex"] < 4 for cue in chunk["lipSyncData"])
    assert result["metrics"]["sentenceCount"] == 2
    assert result["metrics"]["firstAudioLatencyMs"] is not None

    assert session_id not in manager
    with pytest.raises(SessionNotFoundError):
        manager.poll(session_id)


async def test_polling_never_repeats_chunks(manager):
    session_id = manager.start(b"audio-bytes")

    polls = await _poll_until_complete(manager, session_id)

    text = [c for p in polls for c in p["textChunks"]]
    audio = [c for p in polls for c in p["audioChunks"]]
    assert [c["sentenceIndex"] for c in text] == [0, 1]
    assert [c["sentenceIndex"] for c in audio] == [0, 1]


async def test_text_chunk_is_visible_no_later_than_its_audio(manager):
    session_id = manager.start(b"audio-bytes")

    seen_text: set[int] = set()
    for result in await _poll_until_complete(manager, session_id):
        seen_text.update(c["sentenceIndex"] for c in result["textChunks"])
        for chunk in result["audioChunks"]:
            assert chunk["sentenceIndex"] in seen_text


async def test_second_drain_is_empty(manager):
    session_id = manager.start(b"audio-bytes")
    session = manager.sessions[session_id]
    await _wait_done(manager, session_id)

    first = session.drain()
    second = session.drain()

    assert len(first[0]) == 2
    assert second == ([], [])


async def test_blank_transcript_completes_with_error(manager, collaborators):
    collaborators.transcriber = FakeTranscriber("   ")

    session_id = manager.start(b"audio-bytes")
    await _wait_done(manager, session_id)
    result = manager.poll(session_id)

    assert result["isComplete"] is True
    assert result["error"] == TRANSCRIPTION_FAILED
    assert result["textChunks"] == []
    assert result["audioChunks"] == []
    assert result["metrics"] is None


async def test_synthesis_failure_skips_only_that_audio(manager, collaborators):
    collaborators.synthesizer = FakeSynthesizer(fail_on={"Hi!"})

    session_id = manager.start(b"audio-bytes")
    await _wait_done(manager, session_id)
    result = manager.poll(session_id)

    assert result["error"] is None
    assert [c["sentenceIndex"] for c in result["textChunks"]] == [0, 1]
    assert [c["sentenceIndex"] for c in result["audioChunks"]] == [1]


async def test_unexpected_failure_marks_session_complete_with_error(manager, collaborators):
    collaborators.responder = FakeResponder(["First.", "Second."], fail_after=1)

    session_id = manager.start(b"audio-bytes")
    await _wait_done(manager, session_id)
    result = manager.poll(session_id)

    assert result["isComplete"] is True
    assert result["error"] == "model went away"
    assert [c["text"] for c in result["textChunks"]] == ["First."]


async def test_amplitude_method_requests_plain_audio(manager, collaborators):
    session_id = manager.start(b"audio-bytes", SessionOptions(lip_sync_method="amplitude", voice_id="v1"))
    await _wait_done(manager, session_id)

    calls = collaborators.synthesizer.calls
    assert calls and all(not c["with_timestamps"] and c["voice_id"] == "v1" for c in calls)


async def test_turn_is_remembered_for_the_participant(manager, collaborators, conversation_cache):
    options = SessionOptions(participant_id="kid-1")

    first = manager.start(b"audio-bytes", options)
    await _wait_done(manager, first)
    second = manager.start(b"audio-bytes", options)
    await _wait_done(manager, second)

    history = collaborators.responder.calls[1][1]
    assert history == [
        {"role": "user", "content": "hello there"},
        {"role": "assistant", "content": "Hi! How are you?"},
    ]
    assert len(conversation_cache.get("kid-1")) == 4


async def test_sweep_removes_only_old_completed_sessions(manager):
    done = manager.start(b"audio-bytes")
    await _wait_done(manager, done)
    manager.sessions[done].created_at -= 120

    running = manager.start(b"audio-bytes")
    manager.sessions[running].created_at -= 120

    assert manager.sweep_expired(0) == 0
    assert manager.sweep_expired(60) == 1
    assert done not in manager
    assert running in manager
    await _wait_done(manager, running)


class GatedResponder(FakeResponder):
    """Yields one sentence, then waits for the test to release the rest."""

    def __init__(self) -> None:
        super().__init__(["One.", "Two."])
        self.gate = asyncio.Event()

    async def stream_sentences(self, user_text, history, context=""):
        self.calls.append((user_text, list(history), context))
        yield "One."
        await self.gate.wait()
        yield "Two."


async def test_back_to_back_polls_deliver_each_chunk_once(manager, collaborators):
    responder = GatedResponder()
    collaborators.responder = responder

    session_id = manager.start(b"audio-bytes")
    for _ in range(50):
        await asyncio.sleep(0)
        if manager.sessions[session_id].audio_chunks:
            break

    first = manager.poll(session_id)
    second = manager.poll(session_id)

    assert [c["text"] for c in first["textChunks"]] == ["One."]
    assert [c["sentenceIndex"] for c in first["audioChunks"]] == [0]
    assert second["textChunks"] == []
    assert second["audioChunks"] == []
    for key in ("transcript", "isComplete", "error", "metrics"):
        assert second[key] == first[key]
    assert second["isComplete"] is False

    responder.gate.set()
    await _wait_done(manager, session_id)
    final = manager.poll(session_id)

    assert [c["sentenceIndex"] for c in final["textChunks"]] == [1]
    assert [c["sentenceIndex"] for c in final["audioChunks"]] == [1]
    assert final["isComplete"] is True


async def test_first_audio_latency_excludes_lip_sync(manager, monkeypatch):
    def slow_lip_sync(*args, **kwargs):
        time.sleep(0.2)
        return []

    monkeypatch.setattr(pipeline_module, "generate_lip_sync", slow_lip_sync)

    session_id = manager.start(b"audio-bytes")
    await _wait_done(manager, session_id)
    metrics = manager.poll(session_id)["metrics"]

    assert metrics["totalTimeMs"] >= 400
    assert metrics["firstAudioLatencyMs"] < 150
