"""Tests for the server-side voice capability."""

import asyncio

import pytest

from kuber.core.exceptions import STTException, STTNoAudioException
from kuber.core.voice import VoiceConfig, VoiceSession
from kuber.services.device import (
    ClientVoiceCapability,
    ServerVoiceCapability,
    create_voice_capability,
)


class Wire:
    """Collects what the capability sends to the client."""

    def __init__(self):
        self.json = []
        self.audio = []

    async def send_json(self, payload):
        self.json.append(payload)

    async def send_bytes(self, data):
        self.audio.append(data)

    def types(self):
        return [message["type"] for message in self.json]


def build(stt, tts, clock, commits=None):
    wire = Wire()
    capability = ServerVoiceCapability(wire.send_json, wire.send_bytes, stt, tts, language="hinglish")

    async def on_commit(text):
        if commits is not None:
            commits.append(text)

    session = VoiceSession(
        capability,
        VoiceConfig(language="hinglish", commit_debounce_seconds=0.8, resume_delay_seconds=0.3),
        on_commit=on_commit,
        sleep=clock.sleep
    )
    return wire, capability, session


def test_segment_is_transcribed_and_committed(make_stt, make_tts, clock):
    stt = make_stt("stock dikhao", confidence=0.92)
    commits = []

    async def scenario():
        wire, capability, session = build(stt, make_tts(), clock, commits)
        await session.start_listening()
        capability.feed_audio(b"\x01\x00" * 8)
        capability.feed_audio(b"\x02\x00" * 8)
        await capability.end_segment()
        confidence = session.state.confidence
        await clock.advance(0.8)
        await session.close()
        return wire, confidence

    wire, confidence = asyncio.run(scenario())
    assert wire.json[0] == {"type": "listen_start", "locale": "hi-IN"}
    assert stt.audio == [b"\x01\x00" * 8 + b"\x02\x00" * 8]
    assert confidence == 0.92
    assert commits == ["stock dikhao"]


def test_audio_outside_capture_is_ignored(make_stt, make_tts, clock):
    stt = make_stt()

    async def scenario():
        wire, capability, session = build(stt, make_tts(), clock)
        capability.feed_audio(b"\x01\x00" * 8)
        await capability.end_segment()
        await session.close()

    asyncio.run(scenario())
    assert stt.audio == []


@pytest.mark.parametrize("stt_kwargs", [
    {"error": STTNoAudioException()},
    {"text": ""},
])
def test_empty_segment_is_silent_no_speech(make_stt, make_tts, clock, stt_kwargs):
    commits = []

    async def scenario():
        wire, capability, session = build(make_stt(**stt_kwargs), make_tts(), clock, commits)
        await session.start_listening()
        capability.feed_audio(b"\x00\x00" * 4)
        await capability.end_segment()
        await clock.advance(1.0)
        state, active = session.state, session.is_active
        await session.close()
        return state, active

    state, active = asyncio.run(scenario())
    assert state.error is None
    assert active is True
    assert commits == []


def test_transcription_failure_is_surfaced(make_stt, make_tts, clock):
    async def scenario():
        wire, capability, session = build(
            make_stt(error=STTException("model crashed")), make_tts(), clock
        )
        await session.start_listening()
        capability.feed_audio(b"\x00\x00" * 4)
        await capability.end_segment()
        state, active = session.state, session.is_active
        await session.close()
        return state, active

    state, active = asyncio.run(scenario())
    assert state.error == "Voice error: stt-failed"
    assert state.is_listening is False
    assert active is False


def test_speech_is_streamed_and_listening_resumes(make_stt, make_tts, clock):
    tts = make_tts(chunks=[b"aa", b"bb"])

    async def scenario():
        wire, capability, session = build(make_stt(), tts, clock)
        await session.start_listening()
        await session.speak("Atta 5 kg hai [[SHOW_INVENTORY_CARD]]")
        await session.on_capture_end()
        await clock.settle()
        speaking_after_stream = session.state.is_speaking
        await clock.advance(0.3)
        await session.close()
        return wire, speaking_after_stream

    wire, speaking_after_stream = asyncio.run(scenario())
    assert tts.requests[0]["text"] == "Atta 5 kg hai"
    assert tts.requests[0]["locale"] == "hi-IN"
    assert wire.audio == [b"aa", b"bb"]
    assert {"type": "speak_start", "id": 1, "text": "Atta 5 kg hai"} in wire.json
    assert {"type": "speak_end", "id": 1} in wire.json
    assert speaking_after_stream is False
    assert wire.types().count("listen_start") == 2


def test_new_utterance_replaces_stream_in_flight(make_stt, make_tts, clock):
    tts = make_tts(hold=["pehla jawab"])

    async def scenario():
        wire, capability, session = build(make_stt(), tts, clock)
        await session.speak("pehla jawab")
        await clock.settle()
        await session.speak("doosra jawab")
        await clock.settle()
        speaking = session.state.is_speaking
        await session.close()
        return wire, speaking

    wire, speaking = asyncio.run(scenario())
    assert tts.cancelled == ["pehla jawab"]
    assert wire.types() == ["speak_start", "speak_cancel", "speak_start", "speak_end"]
    assert [m["id"] for m in wire.json if m["type"] == "speak_start"] == [1, 2]
    assert wire.audio == [b"aa", b"aa", b"bb"]
    assert speaking is False


def test_stop_speaking_cancels_stream(make_stt, make_tts, clock):
    tts = make_tts(hold=["lamba jawab"])

    async def scenario():
        wire, capability, session = build(make_stt(), tts, clock)
        await session.speak("lamba jawab")
        await clock.settle()
        await session.stop_speaking()
        speaking = session.state.is_speaking
        await session.close()
        return wire, speaking

    wire, speaking = asyncio.run(scenario())
    assert tts.cancelled == ["lamba jawab"]
    assert wire.types() == ["speak_start", "speak_cancel"]
    assert speaking is False


def test_synthesis_failure_ends_utterance(make_stt, make_tts, clock):
    async def scenario():
        wire, capability, session = build(make_stt(), make_tts(fail=True), clock)
        await session.speak("Namaste")
        await clock.settle()
        speaking = session.state.is_speaking
        await session.close()
        return wire, speaking

    wire, speaking = asyncio.run(scenario())
    assert wire.types() == ["speak_start"]
    assert wire.audio == []
    assert speaking is False


def test_capability_variant_is_chosen_by_mode(make_stt, make_tts):
    wire = Wire()

    server = create_voice_capability("server", wire.send_json, wire.send_bytes, make_stt(), make_tts())
    client = create_voice_capability("client", wire.send_json)

    assert isinstance(server, ServerVoiceCapability)
    assert server.is_available()
    assert isinstance(client, ClientVoiceCapability)
    with pytest.raises(ValueError):
        create_voice_capability("server", wire.send_json)
