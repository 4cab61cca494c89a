"""
Shared fixtures.

Settings are read once and cached, so the environment is pinned here
before anything from kuber is imported: no on-device model, no Groq
key, an in-memory database and no markdown agent log.
"""

import asyncio
import os

os.environ["ENABLE_LOCAL_LLM"] = "false"
os.environ["GROQ_API_KEY"] = ""
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ENABLE_AGENT_LOG"] = "false"
os.environ["VOICE_MODE"] = "client"
os.environ["INTENT_ROUTING"] = "local"

from typing import Any, Dict, List, Optional

import pytest

from kuber.core.exceptions import LLMException, OCREngineUnavailableException, STTException, TTSException
from kuber.core.voice import VoiceCapability
from kuber.db.database import close_db, init_db
from kuber.db.store import RecordStore
from kuber.services.llm import LLMResponse
from kuber.services.stt import STTResult
from kuber.services.tts import VoiceInfo


INVENTORY_ROWS = [
    {"product_name": "Aashirvaad Atta", "category": "grocery", "quantity": 5, "unit": "kg",
     "buy_price": 32, "sell_price": 40, "reorder_point": 10},
    {"product_name": "Tata Salt", "category": "grocery", "quantity": 50, "unit": "kg",
     "buy_price": 18, "sell_price": 22, "reorder_point": 10},
    {"product_name": "Sugar", "category": "grocery", "quantity": 25, "unit": "kg",
     "buy_price": 38, "sell_price": 45, "reorder_point": 10},
    {"product_name": "Notebook A4", "category": "stationery", "quantity": 0, "unit": "pcs",
     "buy_price": 30, "sell_price": 60, "reorder_point": 20},
]


async def seed_inventory(store: RecordStore, rows: Optional[List[Dict[str, Any]]] = None):
    return [await store.insert("inventory", dict(row)) for row in (rows or INVENTORY_ROWS)]


@pytest.fixture
def run_db():
    """
    Run an async scenario against a fresh in-memory database.

    The database lives inside the scenario's event loop, so setup,
    the scenario and teardown all happen in one asyncio.run call.
    """
    def runner(scenario):
        async def main():
            await init_db("sqlite+aiosqlite://")
            try:
                return await scenario(RecordStore())
            finally:
                await close_db()
        return asyncio.run(main())
    return runner


class VirtualClock:
    """
    Injectable sleep for timer tests.

    sleep() parks the caller until advance() moves time past its due
    time; advance() wakes sleepers in due order and lets the loop run.
    """

    def __init__(self):
        self.now = 0.0
        self._sleepers = []
        self._seq = 0

    async def sleep(self, delay: float):
        future = asyncio.get_running_loop().create_future()
        self._seq += 1
        self._sleepers.append((self.now + delay, self._seq, future))
        await future

    async def settle(self):
        for _ in range(20):
            await asyncio.sleep(0)

    async def advance(self, seconds: float):
        target = self.now + seconds
        await self.settle()
        while True:
            due = sorted(
                (s for s in self._sleepers if s[0] <= target + 1e-9 and not s[2].done()),
                key=lambda s: (s[0], s[1])
            )
            if not due:
                break
            when, _, future = due[0]
            self._sleepers.remove(due[0])
            self.now = max(self.now, when)
            future.set_result(None)
            await self.settle()
        self._sleepers = [s for s in self._sleepers if not s[2].done()]
        self.now = target
        await self.settle()


class FakeCapability(VoiceCapability):
    """Records what the voice session asks of the device."""

    def __init__(self, available: bool = True, voices: Optional[List[VoiceInfo]] = None):
        self.available = available
        self.voices = voices or []
        self.starts: List[str] = []
        self.stops = 0
        self.spoken: List[Dict[str, Any]] = []
        self.cancels = 0
        self.closed = False

    def is_available(self) -> bool:
        return self.available

    async def start(self, locale: str):
        self.starts.append(locale)

    async def stop(self):
        self.stops += 1

    async def speak(self, text, locale, rate, pitch, voice, utterance_id):
        self.spoken.append({
            "text": text,
            "locale": locale,
            "voice": voice,
            "id": utterance_id,
        })

    async def cancel_speech(self):
        self.cancels += 1

    async def list_voices(self) -> List[VoiceInfo]:
        return list(self.voices)

    async def close(self):
        self.closed = True


class FakeLLM:
    """Stands in for CloudLLMService."""

    def __init__(self, reply: str = "Diwali se pehle mithai aur dry fruits ka stock badhaiye.", fail: bool = False):
        self.reply = reply
        self.fail = fail
        self.calls: List[List[Dict[str, str]]] = []
        self.is_available = True

    async def initialize(self):
        pass

    async def complete(self, messages, temperature=None, max_tokens=None) -> LLMResponse:
        self.calls.append(messages)
        if self.fail:
            raise LLMException("model unreachable")
        return LLMResponse(content=self.reply, finish_reason="stop", source="cloud")

    async def cleanup(self):
        pass


class FakeOCR:
    """Stands in for OCREngine."""

    def __init__(self, text: str = "", fail: bool = False):
        self.text = text
        self.fail = fail
        self.images: List[bytes] = []

    @property
    def is_loaded(self) -> bool:
        return True

    async def recognize(self, image_bytes: bytes) -> str:
        self.images.append(image_bytes)
        if self.fail:
            raise OCREngineUnavailableException("easyocr is not installed")
        return self.text


class FakeSTT:
    """Stands in for STTService; returns a fixed transcript or raises."""

    def __init__(self, text: str = "stock dikhao", confidence: float = 0.92, error: Optional[STTException] = None):
        self.text = text
        self.confidence = confidence
        self.error = error
        self.audio: List[bytes] = []
        self.is_available = True

    async def transcribe(self, audio: bytes, language_hint: Optional[str] = None) -> STTResult:
        self.audio.append(audio)
        if self.error is not None:
            raise self.error
        return STTResult(
            text=self.text,
            language=language_hint or "hi",
            confidence=self.confidence,
            audio_duration_ms=len(audio) // 32
        )


class FakeTTS:
    """
    Stands in for TTSService.

    Texts listed in hold stop after their first chunk until cancelled.
    """

    def __init__(self, chunks=(b"aa", b"bb"), hold=(), fail: bool = False):
        self.chunks = list(chunks)
        self.hold = set(hold)
        self.fail = fail
        self.requests: List[Dict[str, Any]] = []
        self.cancelled: List[str] = []
        self.is_available = True

    async def list_voices(self) -> List[VoiceInfo]:
        return []

    async def synthesize_streaming(self, text, locale, rate, pitch, voice):
        self.requests.append({"text": text, "locale": locale, "rate": rate, "pitch": pitch, "voice": voice})
        if self.fail:
            raise TTSException("edge-tts unreachable")
        try:
            for index, chunk in enumerate(self.chunks):
                yield chunk
                if index == 0 and text in self.hold:
                    await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled.append(text)
            raise


class FakeImageSource:
    """Returns a fixed photo, or None to simulate a cancelled capture."""

    def __init__(self, image: Optional[str]):
        self.image = image
        self.captures = 0

    async def capture(self) -> Optional[str]:
        self.captures += 1
        return self.image


@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def capability():
    return FakeCapability()


@pytest.fixture
def make_ocr():
    return FakeOCR


@pytest.fixture
def make_llm():
    return FakeLLM


@pytest.fixture
def make_image_source():
    return FakeImageSource


@pytest.fixture
def seed():
    return seed_inventory


@pytest.fixture
def make_capability():
    return FakeCapability


@pytest.fixture
def make_stt():
    return FakeSTT


@pytest.fixture
def make_tts():
    return FakeTTS
