import asyncio
from typing import List, Optional

from backend.app.core.config import Settings
from backend.app.models.recipe import Recipe, RecipeStep
from backend.app.services.assistant import AssistantError
from backend.app.services.openai_client import RealtimeError
from backend.app.services.voice import VoiceUnavailable


def make_recipe(*texts: str, title: str = "Test Soup") -> Recipe:
    steps = [RecipeStep(number=i, step=t) for i, t in enumerate(texts, start=1)]
    return Recipe(title=title, steps=steps)


def make_settings(**overrides) -> Settings:
    values = dict(openai_api_key="", timer_tick_sec=0.01, command_debounce_sec=2.0)
    values.update(overrides)
    return Settings(**values)


class FakeVoice:
    def __init__(self, granted: bool = True, requestable: bool = False):
        self.granted = granted
        self.requestable = requestable
        self.permission_requests = 0
        self.spoken: List[str] = []
        self.listening_while_speaking: List[bool] = []
        self.listen_calls = 0
        self.stop_speaking_calls = 0
        self.fail_listen = False
        self.block = False
        self.on_result = None
        self.on_timeout = None
        self.listen_timeouts: List[Optional[float]] = []
        self.voice_settings = None
        self.level_listener = None
        self._listening = False
        self._released: Optional[asyncio.Event] = None

    @property
    def is_listening(self) -> bool:
        return self._listening

    async def check_permissions(self) -> bool:
        return self.granted

    async def request_permissions(self) -> bool:
        self.permission_requests += 1
        self.granted = self.requestable
        return self.requestable

    async def start_listening(self, on_result, continuous=True, timeout=None, on_timeout=None):
        if self.fail_listen:
            raise VoiceUnavailable("no microphone")
        self.listen_calls += 1
        self.listen_timeouts.append(timeout)
        self.on_result = on_result
        self.on_timeout = on_timeout
        self._listening = True

    async def stop_listening(self):
        self._listening = False

    async def speak(self, text, interrupt=False):
        self.spoken.append(text)

    async def speak_and_wait(self, text):
        self.spoken.append(text)
        self.listening_while_speaking.append(self._listening)
        if self.block:
            self._released = asyncio.Event()
            await self._released.wait()

    async def stop_speaking(self):
        self.stop_speaking_calls += 1
        if self._released is not None:
            self._released.set()

    async def expire(self):
        """End the current listening window the way a listen timeout does."""
        self._listening = False
        if self.on_timeout is not None:
            await self.on_timeout()

    async def apply_settings(self, voice_settings):
        self.voice_settings = voice_settings

    def set_audio_level_listener(self, listener):
        self.level_listener = listener


class FakeAssistant:
    def __init__(self, reply: str = "Use olive oil instead.", error: Optional[str] = None):
        self.reply = reply
        self.error = error
        self.calls = []

    async def answer(self, question, recipe, step_index, history):
        self.calls.append((question, recipe.title, step_index, list(history)))
        if self.error:
            raise AssistantError(self.error)
        return self.reply


class FakeRealtime:
    """Stands in for the realtime transcription client; queued texts come out as transcripts."""

    def __init__(self, settings, fail=False, transcripts=()):
        self.settings = settings
        self.fail = fail
        self.queue = asyncio.Queue()
        for text in transcripts:
            self.queue.put_nowait(text)
        self.pushed = []
        self.closed = False

    async def __aenter__(self):
        if self.fail:
            raise RealtimeError("OpenAI API key not configured")
        return self

    async def __aexit__(self, *exc):
        self.closed = True

    async def push_audio(self, pcm_bytes):
        self.pushed.append(pcm_bytes)

    async def transcripts(self):
        while True:
            text = await self.queue.get()
            if text is None:
                return
            yield text
