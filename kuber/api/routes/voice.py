"""
Voice WebSocket Endpoints.
Drives one VoiceSession per connection from the client's control
messages and streams state, replies and (server mode) audio back.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from kuber.config import get_settings
from kuber.core.exceptions import SessionException
from kuber.core.pipeline import PipelineOrchestrator
from kuber.core.session import ConversationSession
from kuber.core.voice import TranscriptFragment, VoiceConfig, VoiceSession, VoiceState
from kuber.services.device import (
    ClientCameraSource,
    ClientVoiceCapability,
    ServerVoiceCapability,
    create_voice_capability
)

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter()


class VoiceConnection:
    """
    Control-message dispatcher for one WebSocket.

    Client -> server messages:
        start, stop                 begin/stop listening
        result {fragments}          recognition results (client mode)
        end                         capture ended on its own
        error {code}                capture error
        speak_start/speak_end/speak_error {id}
                                    utterance progress (client mode)
        segment_end                 end of a PCM speech segment (server mode)
        image {data}                photo for a pending parchi scan
        text {text}                 typed command
        capabilities {...}          what the device can do
        language {language}         switch language
        ping
    Binary frames are 16 kHz 16-bit mono PCM (server mode).
    """

    def __init__(
        self,
        websocket: WebSocket,
        session: ConversationSession,
        mode: str,
        agent_logger: Any = None
    ):
        self.websocket = websocket
        self.session = session
        self.mode = mode
        self._tasks: Set[asyncio.Task] = set()

        app = websocket.app
        self.camera = ClientCameraSource(self.send_json)
        session.image_source = self.camera

        self.capability = create_voice_capability(
            mode,
            self.send_json,
            self.send_bytes,
            stt=app.state.stt_service,
            tts=app.state.tts_service,
            language=session.selected_language
        )
        self.voice = VoiceSession(
            self.capability,
            VoiceConfig(language=session.selected_language or settings.DEFAULT_LANGUAGE)
        )
        self.pipeline = PipelineOrchestrator(session, self.voice, agent_logger, self.send_json)
        self._unsubscribe_state = self.voice.subscribe(self._on_state)

    async def send_json(self, payload: Dict[str, Any]):
        await self.websocket.send_json(payload)

    async def send_bytes(self, data: bytes):
        await self.websocket.send_bytes(data)

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _on_state(self, state: VoiceState):
        self._spawn(self.send_json({"type": "state", "state": state.to_dict()}))

    async def handle_bytes(self, data: bytes):
        if isinstance(self.capability, ServerVoiceCapability):
            self.capability.feed_audio(data)

    async def handle_message(self, data: Dict[str, Any]):
        msg_type = data.get("type")

        if msg_type == "start":
            if not await self.voice.start_listening():
                await self.send_json({"type": "error", "message": "Speech recognition not available"})

        elif msg_type == "stop":
            await self.voice.stop_listening()

        elif msg_type == "interrupt":
            await self.voice.stop_speaking()

        elif msg_type == "result":
            fragments = [
                TranscriptFragment.from_dict(f)
                for f in data.get("fragments", [])
                if isinstance(f, dict)
            ]
            await self.voice.on_result(fragments)

        elif msg_type == "end":
            await self.voice.on_capture_end()

        elif msg_type == "error":
            await self.voice.on_capture_error(str(data.get("code", "unknown")))

        elif msg_type == "speak_start":
            await self.voice.on_speech_start(data.get("id"))

        elif msg_type == "speak_end":
            await self.voice.on_speech_end(data.get("id"))

        elif msg_type == "speak_error":
            await self.voice.on_speech_error(str(data.get("error", "")), data.get("id"))

        elif msg_type == "segment_end":
            if isinstance(self.capability, ServerVoiceCapability):
                self._spawn(self.capability.end_segment())

        elif msg_type == "image":
            self.camera.deliver(data.get("data"))

        elif msg_type == "text":
            text = str(data.get("text", ""))
            if text.strip():
                self._spawn(self.pipeline.handle_text(text))

        elif msg_type == "capabilities":
            if isinstance(self.capability, ClientVoiceCapability):
                self.capability.update_capabilities(data)

        elif msg_type == "language":
            await self._set_language(str(data.get("language", "")))

        elif msg_type == "ping":
            await self.send_json({"type": "pong"})

        else:
            logger.warning(f"Unknown voice message type: {msg_type}")

    async def _set_language(self, language: str):
        try:
            self.session.set_language(language)
        except SessionException as e:
            await self.send_json({"type": "error", "message": e.message})
            return
        self.voice.set_language(language)
        await self.send_json({
            "type": "session",
            "session_id": self.session.session_id,
            "language": language,
            "messages": [m.to_dict() for m in self.session.messages]
        })

    async def close(self):
        self._unsubscribe_state()
        await self.pipeline.close()
        await self.voice.close()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self.camera.deliver(None)
        if self.session.image_source is self.camera:
            self.session.image_source = None


@router.websocket("/stream")
async def voice_stream(
    websocket: WebSocket,
    mode: Optional[str] = None,
    language: Optional[str] = None,
    session_id: Optional[str] = None
):
    """
    WebSocket endpoint for a voice conversation.

    Query parameters:
        mode: "client" (device recognition and speech) or "server"
        language: session language, read once at connect
        session_id: resume an existing conversation
    """
    await websocket.accept()

    app = websocket.app
    mode = mode if mode in ("client", "server") else settings.VOICE_MODE
    if language not in settings.SUPPORTED_LANGUAGES:
        language = settings.DEFAULT_LANGUAGE

    session = await app.state.session_manager.get_or_create_session(session_id, language)
    connection = VoiceConnection(websocket, session, mode, app.state.agent_logger)

    await websocket.send_json({
        "type": "session",
        "session_id": session.session_id,
        "language": session.selected_language,
        "mode": mode,
        "model": "cloud" if session.use_cloud else "local",
        "messages": [m.to_dict() for m in session.messages]
    })

    try:
        while True:
            message = await websocket.receive()

            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect()

            if message.get("bytes") is not None:
                await connection.handle_bytes(message["bytes"])
                continue

            if message.get("text") is not None:
                try:
                    data = json.loads(message["text"])
                except json.JSONDecodeError:
                    logger.warning(f"Invalid JSON message: {message['text']}")
                    continue
                if isinstance(data, dict):
                    await connection.handle_message(data)

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: {session.session_id}")
    except Exception as e:
        logger.exception(f"WebSocket error: {e}")
    finally:
        await connection.close()
