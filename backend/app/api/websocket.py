from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState
from pydantic import ValidationError
import logging
import asyncio
import json
from datetime import timedelta
from typing import Awaitable, Callable, Optional

from ..core.controller import CookAlongController
from ..core.config import get_settings
from ..models.recipe import Recipe
from ..models.session import CookAlongMode, VoiceSettings
from ..services.assistant import OpenAIAssistant
from ..services.recipe_parser import RecipeParser
from ..services.voice import BrowserVoice

log = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1")

# action -> controller coroutine taking no arguments
SIMPLE_ACTIONS = {
    "start": "start_cooking",
    "next": "next_step",
    "previous": "previous_step",
    "repeat": "repeat_step",
    "pause": "pause_session",
    "resume": "resume_session",
    "complete": "complete_session",
    "listen": "start_listening",
    "stop_listening": "stop_listening",
}

# action -> controller method taking a timer id
TIMER_ACTIONS = {
    "timer_pause": "pause_timer",
    "timer_resume": "resume_timer",
    "timer_cancel": "cancel_timer",
    "timer_dismiss": "dismiss_timer",
}

# Handled as soon as they arrive, even while another action is still running.
INLINE_ACTIONS = {"tts_done", "permissions", "audio_level"}
# Cut the current speech short before being queued.
INTERRUPT_ACTIONS = {
    "start", "next", "previous", "repeat", "jump", "pause", "resume", "complete",
    "mode", "stop_listening", "exit",
}


async def load_recipe(raw: str) -> Recipe:
    """The first client message: a Recipe JSON object or plain recipe text."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return await RecipeParser.parse(raw)
    if isinstance(data, dict):
        return Recipe.model_validate(data)
    return await RecipeParser.parse(raw)


async def dispatch_action(controller: CookAlongController, message: dict) -> None:
    action = message.get("action")

    if action in SIMPLE_ACTIONS:
        await getattr(controller, SIMPLE_ACTIONS[action])()
    elif action in TIMER_ACTIONS:
        getattr(controller, TIMER_ACTIONS[action])(str(message["id"]))
    elif action == "jump":
        await controller.jump_to_step(int(message["index"]))
    elif action == "ask":
        await controller.ask_question(str(message.get("text", "")))
    elif action == "utterance":
        await controller.handle_utterance(str(message.get("text", "")))
    elif action == "mode":
        await controller.switch_mode(CookAlongMode(message["mode"]))
    elif action == "timer_start":
        await controller.start_timer(
            int(message["step_number"]),
            timedelta(seconds=float(message["seconds"])),
            message.get("description"),
        )
    elif action == "check_ingredient":
        controller.check_ingredient(str(message["name"]))
    elif action == "uncheck_ingredient":
        controller.uncheck_ingredient(str(message["name"]))
    elif action == "voice_settings":
        await controller.update_voice_settings(VoiceSettings.model_validate(message["voice"]))
    elif action == "exit":
        await controller.exit_session(goodbye=bool(message.get("goodbye", True)))
    else:
        raise ValueError(f"Unknown action: {action}")


class SnapshotPublisher:
    """Observer that pushes coalesced state snapshots to the client."""

    def __init__(self, send: Callable[[dict], Awaitable[None]]):
        self.send = send
        self._controller: Optional[CookAlongController] = None
        self._dirty = False
        self._task: Optional[asyncio.Task] = None

    def __call__(self, controller: CookAlongController) -> None:
        self._controller = controller
        self._dirty = True
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._flush())

    async def _flush(self) -> None:
        while self._dirty:
            self._dirty = False
            # Let the rest of the current mutation land before serialising.
            await asyncio.sleep(0)
            snapshot = self._controller.snapshot()
            await self.send({"type": "state", **snapshot.model_dump(mode="json")})

    def close(self) -> None:
        if self._task is not None:
            self._task.cancel()


@router.websocket("/ws")
async def cook_along_endpoint(ws: WebSocket):
    log.info("🔗 New WebSocket connection attempt")
    await ws.accept()
    log.info("✅ WebSocket connection accepted")

    settings = get_settings()
    if not settings.openai_api_key:
        log.warning("⚠️ OpenAI API key not configured, voice recognition and questions are unavailable")

    async def send(message: dict):
        if ws.application_state == WebSocketState.CONNECTED:
            await ws.send_json(message)
        else:
            log.warning(f"❌ WebSocket not connected, {message.get('type')} message dropped")

    # Client must send the recipe first, then a ready signal
    log.info("⏳ Waiting for recipe from client...")
    try:
        recipe = await load_recipe(await ws.receive_text())
        ready = json.loads(await ws.receive_text())
        if not isinstance(ready, dict) or ready.get("action") != "ready":
            raise ValueError(f"expected a ready action, got {ready!r}")
        mode = CookAlongMode(ready.get("mode", CookAlongMode.VOICE.value))
        voice_settings = VoiceSettings.model_validate(ready["voice"]) if "voice" in ready else None
    except WebSocketDisconnect:
        log.info("👋 Client disconnected before the session started")
        return
    except (ValidationError, ValueError) as e:
        log.error(f"❌ Bad session setup: {e}")
        await send({"type": "error", "message": f"Invalid recipe or ready message: {e}"})
        await ws.close()
        return

    if not recipe.steps:
        await send({"type": "error", "message": "Recipe has no steps"})
        await ws.close()
        return
    log.info(f"✅ Recipe loaded: {recipe.title} ({len(recipe.steps)} steps)")

    voice = BrowserVoice(send, settings)
    if "permissions" in ready:
        voice.permission_granted = bool(ready["permissions"])
    controller = CookAlongController(voice, OpenAIAssistant(settings), settings)
    publisher = SnapshotPublisher(send)
    unsubscribe = controller.subscribe(publisher)

    exited = asyncio.Event()
    jobs: asyncio.Queue = asyncio.Queue()

    def on_exit():
        exited.set()
        # Wakes the worker when the exit came from a voice command.
        jobs.put_nowait(None)

    controller.on_exit(on_exit)

    async def work():
        await controller.start_session(recipe, mode, voice_settings)
        while not exited.is_set():
            message = await jobs.get()
            if message is None:
                break
            try:
                await dispatch_action(controller, message)
            except (KeyError, TypeError, ValueError) as e:
                log.error(f"❌ Bad action {message.get('action')}: {e}")
                await send({"type": "error", "message": f"Bad action {message.get('action')}: {e}"})
        await send({"type": "exit"})

    async def read():
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                log.info("👋 Client disconnected")
                return
            if message.get("bytes") is not None:
                await voice.feed_audio(message["bytes"])
                continue

            try:
                data = json.loads(message.get("text") or "")
            except json.JSONDecodeError:
                await send({"type": "error", "message": "Expected a JSON action"})
                continue
            if not isinstance(data, dict):
                await send({"type": "error", "message": "Expected a JSON object"})
                continue

            action = data.get("action")
            if action in INLINE_ACTIONS:
                if action == "tts_done":
                    voice.speech_finished(str(data.get("id", "")))
                elif action == "permissions":
                    voice.set_permissions(bool(data.get("granted")))
                else:
                    try:
                        controller.update_audio_level(float(data.get("level", 0.0)))
                    except (TypeError, ValueError):
                        await send({"type": "error", "message": "audio_level needs a numeric level"})
                continue

            if action in INTERRUPT_ACTIONS and controller.is_speaking:
                await voice.stop_speaking()
            await jobs.put(data)

    reader = asyncio.create_task(read())
    worker = asyncio.create_task(work())
    try:
        done, pending = await asyncio.wait({reader, worker}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            if task.exception() is not None:
                log.error(f"💥 Cook-along task failed: {task.exception()}")
    finally:
        unsubscribe()
        publisher.close()
        await controller.end_session()
        await voice.close()
        if ws.application_state == WebSocketState.CONNECTED:
            await ws.close()
        log.info("🛑 Cook-along connection closed")
