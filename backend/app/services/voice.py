"""
Voice I/O boundary.

``VoiceIO`` is what the cook-along controller talks to. ``BrowserVoice`` is
the implementation used by the WebSocket API: the browser speaks text with
its own speech synthesis and streams microphone PCM back, which is
transcribed through the OpenAI Realtime API.
"""

import asyncio
import logging
import uuid
from typing import Awaitable, Callable, Dict, Optional, Protocol, Set

from websockets.exceptions import WebSocketException

from ..core.audio_processor import AudioProcessor
from ..core.config import Settings, get_settings
from ..models.session import VoiceSettings
from .openai_client import OpenAIRealtimeClient, RealtimeError

log = logging.getLogger(__name__)

ResultCallback = Callable[[str], Awaitable[None]]
TimeoutCallback = Callable[[], Awaitable[None]]
LevelCallback = Callable[[float], None]
Sender = Callable[[dict], Awaitable[None]]


class VoiceUnavailable(Exception):
    """Speech recognition could not be started."""


class VoiceIO(Protocol):
    @property
    def is_listening(self) -> bool: ...

    async def check_permissions(self) -> bool: ...

    async def request_permissions(self) -> bool: ...

    async def start_listening(
        self,
        on_result: ResultCallback,
        continuous: bool = True,
        timeout: Optional[float] = None,
        on_timeout: Optional[TimeoutCallback] = None,
    ) -> None: ...

    async def stop_listening(self) -> None: ...

    async def speak(self, text: str, interrupt: bool = False) -> None: ...

    async def speak_and_wait(self, text: str) -> None: ...

    async def stop_speaking(self) -> None: ...

    async def apply_settings(self, voice_settings: VoiceSettings) -> None: ...

    def set_audio_level_listener(self, listener: Optional[LevelCallback]) -> None: ...


class BrowserVoice:
    def __init__(
        self,
        send: Sender,
        settings: Optional[Settings] = None,
        realtime_factory: Callable[[Settings], OpenAIRealtimeClient] = OpenAIRealtimeClient,
        processor: Optional[AudioProcessor] = None,
    ):
        self.send = send
        self.settings = settings or get_settings()
        self.realtime_factory = realtime_factory
        self.processor = processor or AudioProcessor(self.settings)
        self.permission_granted: Optional[bool] = None
        self.voice_settings = VoiceSettings(
            voice_name=self.settings.voice_name,
            locale=self.settings.voice_locale,
            speech_rate=self.settings.speech_rate,
            pitch=self.settings.speech_pitch,
            volume=self.settings.speech_volume,
        )

        self._permission_future: Optional[asyncio.Future] = None
        self._pending_speech: Dict[str, asyncio.Future] = {}
        self._level_listener: Optional[LevelCallback] = None

        self._listening = False
        self._continuous = True
        self._on_result: Optional[ResultCallback] = None
        self._on_timeout: Optional[TimeoutCallback] = None
        self._realtime: Optional[OpenAIRealtimeClient] = None
        self._listen_task: Optional[asyncio.Task] = None
        self._timeout_task: Optional[asyncio.Task] = None
        self._callbacks: Set[asyncio.Task] = set()

    @property
    def is_listening(self) -> bool:
        return self._listening

    @property
    def is_speaking(self) -> bool:
        return bool(self._pending_speech)

    def set_audio_level_listener(self, listener: Optional[LevelCallback]) -> None:
        self._level_listener = listener

    def _report_level(self, level: float) -> None:
        if self._level_listener is not None:
            self._level_listener(level)

    # Permissions

    async def check_permissions(self) -> bool:
        return bool(self.permission_granted)

    async def request_permissions(self) -> bool:
        if self.permission_granted:
            return True

        self._permission_future = asyncio.get_running_loop().create_future()
        await self.send({"type": "permission_request"})
        try:
            granted = await asyncio.wait_for(self._permission_future, self.settings.speak_timeout_sec)
        except asyncio.TimeoutError:
            log.warning("⚠️ No answer to microphone permission request")
            granted = False
        finally:
            self._permission_future = None

        self.permission_granted = bool(granted)
        return self.permission_granted

    def set_permissions(self, granted: bool) -> None:
        self.permission_granted = granted
        if self._permission_future is not None and not self._permission_future.done():
            self._permission_future.set_result(granted)

    # Speech synthesis (performed by the browser)

    async def apply_settings(self, voice_settings: VoiceSettings) -> None:
        self.voice_settings = voice_settings
        log.info(f"✅ Voice settings applied (rate {voice_settings.speech_rate}, pitch {voice_settings.pitch})")

    def _tts_frame(self, speech_id: str, text: str, interrupt: bool) -> dict:
        return {
            "type": "tts",
            "id": speech_id,
            "text": text,
            "interrupt": interrupt,
            "voice": self.voice_settings.model_dump(),
        }

    async def speak(self, text: str, interrupt: bool = False) -> None:
        if interrupt:
            await self.stop_speaking()
        log.info(f"🔊 Sending TTS message: '{text[:100]}{'...' if len(text) > 100 else ''}'")
        await self.send(self._tts_frame(uuid.uuid4().hex, text, interrupt))

    async def speak_and_wait(self, text: str) -> None:
        speech_id = uuid.uuid4().hex
        done = asyncio.get_running_loop().create_future()
        self._pending_speech[speech_id] = done

        log.info(f"🔊 Speaking and waiting: '{text[:100]}{'...' if len(text) > 100 else ''}'")
        try:
            await self.send(self._tts_frame(speech_id, text, False))
            await asyncio.wait_for(done, self.settings.speak_timeout_sec)
        except asyncio.TimeoutError:
            log.warning(f"⚠️ Client never confirmed speech {speech_id}")
        finally:
            self._pending_speech.pop(speech_id, None)

    def speech_finished(self, speech_id: str) -> None:
        done = self._pending_speech.get(speech_id)
        if done is not None and not done.done():
            done.set_result(None)

    async def stop_speaking(self) -> None:
        for done in self._pending_speech.values():
            if not done.done():
                done.set_result(None)
        await self.send({"type": "tts_stop"})

    # Speech recognition

    async def start_listening(
        self,
        on_result: ResultCallback,
        continuous: bool = True,
        timeout: Optional[float] = None,
        on_timeout: Optional[TimeoutCallback] = None,
    ) -> None:
        if self._listening:
            log.info("Already listening")
            return

        realtime = self.realtime_factory(self.settings)
        try:
            await realtime.__aenter__()
        except (RealtimeError, OSError, WebSocketException) as e:
            log.error(f"💥 OpenAI connection error: {e}")
            raise VoiceUnavailable(str(e)) from e

        self._realtime = realtime
        self._on_result = on_result
        self._continuous = continuous
        self._on_timeout = on_timeout
        self._listening = True
        self._listen_task = asyncio.create_task(self._pump_transcripts(realtime))
        if timeout:
            self._timeout_task = asyncio.create_task(self._stop_after(timeout))

        log.info(f"🎤 Listening (continuous: {continuous})")
        await self.send({"type": "listening", "active": True})

    async def stop_listening(self) -> None:
        if not self._listening:
            return
        self._listening = False

        current = asyncio.current_task()
        for task in (self._listen_task, self._timeout_task):
            if task is not None and task is not current:
                task.cancel()
        self._listen_task = None
        self._timeout_task = None

        await self._close_realtime()
        self._report_level(0.0)
        log.info("🎤 Stopped listening")
        await self.send({"type": "listening", "active": False})

    async def feed_audio(self, pcm: bytes) -> None:
        """Forward one microphone chunk to the transcription stream."""
        if not self._listening or self._realtime is None:
            return
        self._report_level(self.processor.level(pcm))
        try:
            await self._realtime.push_audio(self.processor.downsample(pcm))
        except RealtimeError as e:
            log.error(f"❌ Failed to push audio: {e}")

    async def close(self) -> None:
        await self.stop_listening()
        for done in self._pending_speech.values():
            if not done.done():
                done.set_result(None)
        for task in self._callbacks:
            task.cancel()

    async def _pump_transcripts(self, realtime: OpenAIRealtimeClient) -> None:
        try:
            async for text in realtime.transcripts():
                await self.send({"type": "transcription", "text": text})
                if self._on_result is not None:
                    # Run outside this task: the callback may stop listening.
                    self._run_callback(self._on_result(text))
                if not self._continuous:
                    break
        except RealtimeError as e:
            log.error(f"💥 Transcription stream error: {e}")
        if self._listening and self._realtime is realtime:
            await self.stop_listening()

    async def _stop_after(self, timeout: float) -> None:
        await asyncio.sleep(timeout)
        log.info(f"⏱️ Listen timeout after {timeout}s")
        self._timeout_task = None
        on_timeout = self._on_timeout
        await self.stop_listening()
        if on_timeout is not None:
            self._run_callback(on_timeout())

    def _run_callback(self, coro: Awaitable[None]) -> None:
        task = asyncio.create_task(coro)
        self._callbacks.add(task)
        task.add_done_callback(self._callbacks.discard)

    async def _close_realtime(self) -> None:
        realtime, self._realtime = self._realtime, None
        if realtime is not None:
            await realtime.__aexit__(None, None, None)
