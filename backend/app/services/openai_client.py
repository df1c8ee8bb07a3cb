"""
OpenAI Realtime API client used for speech recognition only.
The session is configured with server VAD and no model responses, so the
only useful output is one transcript per finished utterance.
"""

import json
import logging
import base64
from typing import AsyncIterator, Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

from ..core.config import Settings, get_settings

log = logging.getLogger(__name__)


class RealtimeError(Exception):
    pass


class OpenAIRealtimeClient:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.ws: Optional[ClientConnection] = None
        self.session_id = None

    async def __aenter__(self):
        if not self.settings.openai_api_key:
            raise RealtimeError("OpenAI API key not configured")

        url = f"wss://api.openai.com/v1/realtime?model={self.settings.realtime_model}"
        log.info(f"🔗 Connecting to OpenAI Realtime API: {url}")

        self.ws = await connect(
            url,
            additional_headers={
                "Authorization": f"Bearer {self.settings.openai_api_key}",
                "OpenAI-Beta": "realtime=v1",
            },
            max_size=4 * 1024 * 1024,
        )

        session_created = json.loads(await self.ws.recv())
        if session_created.get("type") == "session.created":
            self.session_id = session_created["session"]["id"]
            log.info(f"✅ Session created: {self.session_id}")
        else:
            log.error(f"❌ Expected session.created, got: {session_created}")

        await self._send({
            "type": "session.update",
            "session": {
                "modalities": ["text"],
                "input_audio_format": "pcm16",
                "input_audio_transcription": {
                    "model": self.settings.transcription_model
                },
                "turn_detection": {
                    "type": "server_vad",
                    "threshold": 0.5,
                    "prefix_padding_ms": 300,
                    "silence_duration_ms": 500,
                    "create_response": False
                },
            }
        })

        session_updated = json.loads(await self.ws.recv())
        if session_updated.get("type") == "session.updated":
            log.info("✅ Transcription session configured")
        else:
            log.warning(f"⚠️ Expected session.updated, got: {session_updated}")

        return self

    async def __aexit__(self, *exc):
        if self.ws:
            await self.ws.close()
            self.ws = None
            log.info("🔌 Disconnected from OpenAI Realtime API")

    async def _send(self, message: dict):
        if not self.ws:
            raise RealtimeError("WebSocket not connected")
        await self.ws.send(json.dumps(message))
        log.debug(f"📤 Sent: {message['type']}")

    async def push_audio(self, pcm_bytes: bytes):
        """Push pcm16 audio bytes to the input audio buffer"""
        if not pcm_bytes:
            return
        await self._send({
            "type": "input_audio_buffer.append",
            "audio": base64.b64encode(pcm_bytes).decode("utf-8"),
        })

    async def transcripts(self) -> AsyncIterator[str]:
        """
        Async iterator yielding one transcript per finished user utterance.
        """
        if not self.ws:
            raise RealtimeError("WebSocket not connected")

        try:
            async for msg in self.ws:
                try:
                    data = json.loads(msg)
                except json.JSONDecodeError as e:
                    log.error(f"❌ Failed to parse JSON message: {e}")
                    continue

                event_type = data.get("type", "unknown")
                if event_type == "conversation.item.input_audio_transcription.completed":
                    transcript = (data.get("transcript") or "").strip()
                    if transcript:
                        log.info(f"🎯 User speech transcribed: '{transcript}'")
                        yield transcript
                elif event_type == "conversation.item.input_audio_transcription.failed":
                    log.warning("❌ Speech transcription failed")
                elif event_type == "input_audio_buffer.speech_started":
                    log.info("🗣️ Speech started")
                elif event_type == "input_audio_buffer.speech_stopped":
                    log.info("🤫 Speech stopped")
                elif event_type == "error":
                    error = data.get("error", {})
                    log.error(f"❌ OpenAI API error: {error}")
                    raise RealtimeError(str(error))
                else:
                    log.debug(f"📋 Unhandled event type: {event_type}")
        except ConnectionClosed as e:
            log.warning(f"🔌 OpenAI connection closed: {e}")
