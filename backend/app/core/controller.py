"""
Cook-along orchestration.

The controller owns the single current session and its timers, talks to the
voice and assistant collaborators, and tells subscribed observers whenever
something they might render has changed.

Navigation called from the UI is forgiving: an action that is not available
right now (``next_step`` on the last step, anything before ``start_cooking``)
is logged and returns False instead of raising.
"""

import logging
import time
from datetime import timedelta
from typing import Awaitable, Callable, Dict, List, Optional, Set

from .commands import VoiceCommand, parse_command
from .config import Settings, get_settings
from .state_machine import CookAlongSession
from .timer_manager import TimerManager, TimerNotFound
from ..models.recipe import Recipe, RecipeStep
from ..models.session import (
    ChatMessage,
    ChatMessageType,
    ChatRole,
    CookAlongMode,
    CookTimer,
    SessionSnapshot,
    SessionStatus,
    VoiceSettings,
)
from ..services.assistant import Assistant, AssistantError, completion_message, welcome_message
from ..services.recipe_parser import RecipeParser
from ..services.voice import VoiceIO, VoiceUnavailable

log = logging.getLogger(__name__)

Listener = Callable[["CookAlongController"], None]

PERMISSION_WARNING = "Microphone permission denied. Voice commands are off, manual mode still works."


class CookAlongController:
    def __init__(
        self,
        voice: VoiceIO,
        assistant: Assistant,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.voice = voice
        self.assistant = assistant
        self.settings = settings or get_settings()
        self._clock = clock

        self.session: Optional[CookAlongSession] = None
        self.timers: Optional[TimerManager] = None
        self.mode = CookAlongMode.VOICE

        self.is_processing_question = False
        self.current_question: Optional[str] = None
        self.audio_level = 0.0
        self.voice_available = True
        self.last_error: Optional[str] = None

        self._utterances: Set[object] = set()
        self._hands_free = False
        self._processing_command = False
        self._last_command: Optional[VoiceCommand] = None
        self._last_command_at = 0.0

        self._listeners: List[Listener] = []
        self._exit_listeners: List[Callable[[], None]] = []

        self._commands: Dict[VoiceCommand, Callable[[], Awaitable[bool]]] = {
            VoiceCommand.START: self.start_cooking,
            VoiceCommand.NEXT: self._next_by_voice,
            VoiceCommand.PREVIOUS: self.previous_step,
            VoiceCommand.REPEAT: self.repeat_step,
            VoiceCommand.PAUSE: self.pause_session,
            VoiceCommand.RESUME: self.resume_session,
            VoiceCommand.COMPLETE: self.complete_session,
            VoiceCommand.HELP: self._offer_help,
            VoiceCommand.STOP_LISTENING: self.stop_listening,
            VoiceCommand.EXIT: self.exit_session,
        }

        voice.set_audio_level_listener(self.update_audio_level)

    # Observers

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def on_exit(self, listener: Callable[[], None]) -> None:
        self._exit_listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # Derived state

    @property
    def is_listening(self) -> bool:
        return self.voice.is_listening

    @property
    def is_speaking(self) -> bool:
        return bool(self._utterances)

    @property
    def is_active(self) -> bool:
        return self.session is not None and not self.session.is_completed

    @property
    def has_started_cooking(self) -> bool:
        return self.session is not None and self.session.is_started

    @property
    def conversation_history(self) -> List[ChatMessage]:
        return self.session.conversation_history if self.session else []

    @property
    def visible_timers(self) -> List[CookTimer]:
        return self.timers.visible if self.timers else []

    def snapshot(self) -> SessionSnapshot:
        session = self.session
        if session is None:
            return SessionSnapshot(
                mode=self.mode,
                is_listening=self.is_listening,
                is_speaking=self.is_speaking,
                voice_available=self.voice_available,
                last_error=self.last_error,
            )
        return SessionSnapshot(
            recipe_title=session.recipe.title,
            status=session.status,
            mode=self.mode,
            current_step_index=session.current_step_index,
            current_step=session.current_step,
            total_steps=session.total_steps,
            progress=session.progress,
            has_next_step=session.has_next_step,
            has_previous_step=session.has_previous_step,
            has_started_cooking=session.is_started,
            is_listening=self.is_listening,
            is_speaking=self.is_speaking,
            is_processing_question=self.is_processing_question,
            current_question=self.current_question,
            audio_level=self.audio_level,
            voice_available=self.voice_available,
            last_error=self.last_error,
            timers=self.visible_timers,
            checked_ingredients=list(session.checked_ingredients),
            conversation_history=list(session.conversation_history),
        )

    # Session lifecycle

    async def start_session(
        self,
        recipe: Recipe,
        mode: CookAlongMode = CookAlongMode.VOICE,
        voice_settings: Optional[VoiceSettings] = None,
    ) -> CookAlongSession:
        if self.session is not None:
            await self.end_session()
        if voice_settings is not None:
            await self.voice.apply_settings(voice_settings)

        log.info(f"🎬 Starting Cook Along session for: {recipe.title}")
        self.session = CookAlongSession(recipe)
        self.session.on_complete(self._on_session_complete)
        self.timers = TimerManager(on_complete=self._on_timer_complete, tick_sec=self.settings.timer_tick_sec)
        self.mode = mode
        self.last_error = None
        self.voice_available = True

        if mode == CookAlongMode.VOICE:
            await self._ensure_permissions()
        self._notify()

        welcome = welcome_message(recipe)
        self._add_message(welcome, ChatRole.ASSISTANT)
        await self._speak(welcome)

        if self.mode == CookAlongMode.VOICE:
            await self.start_listening()
        self._notify()
        return self.session

    async def end_session(self) -> None:
        log.info("🛑 Ending session")
        self._hands_free = False
        await self.voice.stop_listening()
        if self.is_speaking:
            await self.voice.stop_speaking()
        if self.timers is not None:
            self.timers.close()

        self.session = None
        self.timers = None
        self._utterances.clear()
        self.is_processing_question = False
        self.current_question = None
        self._processing_command = False
        self.audio_level = 0.0
        self.mode = CookAlongMode.VOICE
        self._notify()

    async def exit_session(self, goodbye: bool = True) -> bool:
        log.info("👋 Exiting gracefully")
        self._hands_free = False
        await self.voice.stop_listening()
        if self.is_speaking:
            await self.voice.stop_speaking()
            self._utterances.clear()

        if goodbye and self.session is not None:
            await self._speak(self.settings.goodbye_message)

        await self.end_session()
        for listener in list(self._exit_listeners):
            listener()
        return True

    # Navigation

    def _can_navigate(self, operation: str, *allowed: SessionStatus) -> bool:
        allowed = allowed or (SessionStatus.ACTIVE,)
        if self.session is None:
            log.info(f"⚠️ {operation} ignored: no session")
            return False
        if self.session.status not in allowed:
            log.info(f"⚠️ {operation} ignored while {self.session.status.value}")
            return False
        return True

    async def start_cooking(self) -> bool:
        if not self._can_navigate("start_cooking", SessionStatus.NOT_STARTED):
            return False
        if not self.session.steps:
            log.warning("⚠️ Recipe has no steps to cook")
            return False
        await self._stop_speaking()
        self.session.start_first_step()
        await self._announce_step(propose_timer=True)
        return True

    async def next_step(self) -> bool:
        if not self._can_navigate("next_step"):
            return False
        if not self.session.has_next_step:
            log.info("⚠️ next_step ignored: already at the last step")
            return False
        log.info("➡️ Moving to next step")
        await self._stop_speaking()
        self.session.next_step()
        await self._announce_step(propose_timer=True)
        return True

    async def previous_step(self) -> bool:
        if not self._can_navigate("previous_step"):
            return False
        if not self.session.has_previous_step:
            return False
        log.info("⬅️ Moving to previous step")
        await self._stop_speaking()
        self.session.previous_step()
        await self._announce_step()
        return True

    async def repeat_step(self) -> bool:
        if not self._can_navigate("repeat_step", SessionStatus.ACTIVE, SessionStatus.PAUSED):
            return False
        log.info("🔁 Repeating current step")
        await self._stop_speaking()
        self.session.repeat_step()
        await self._announce_step()
        return True

    async def jump_to_step(self, index: int) -> bool:
        if not self._can_navigate("jump_to_step"):
            return False
        if not 0 <= index < self.session.total_steps:
            log.info(f"⚠️ jump_to_step ignored: index {index} out of range")
            return False
        await self._stop_speaking()
        self.session.jump_to_step(index)
        await self._announce_step(propose_timer=True)
        return True

    async def pause_session(self) -> bool:
        if not self._can_navigate("pause_session"):
            return False
        log.info("⏸️ Pausing session")
        self.session.pause_session()
        self.timers.pause_all()
        await self._stop_speaking()
        self._notify()
        await self._speak("Session paused. Say \"resume\" when you're ready to continue.")
        return True

    async def resume_session(self) -> bool:
        if not self._can_navigate("resume_session", SessionStatus.PAUSED):
            return False
        log.info("▶️ Resuming session")
        self.session.resume_session()
        self.timers.resume_all()
        self._notify()
        await self._speak("Resuming cooking. Let's continue!")
        await self._announce_step()
        return True

    async def complete_session(self) -> bool:
        if not self._can_navigate("complete_session", SessionStatus.ACTIVE, SessionStatus.PAUSED):
            return False
        await self._stop_speaking()
        self.session.complete_session()
        self._hands_free = False
        await self.voice.stop_listening()

        message = completion_message(self.session.recipe)
        self._add_message(message, ChatRole.ASSISTANT)
        self._notify()
        await self._speak(message)
        return True

    def _on_session_complete(self, session: CookAlongSession) -> None:
        if self.timers is not None:
            self.timers.cancel_all()

    async def _announce_step(self, propose_timer: bool = False) -> None:
        session = self.session
        step = session.current_step
        message = f"Step {session.current_step_index + 1} of {session.total_steps}: {step.step}"
        self._add_message(message, ChatRole.ASSISTANT, ChatMessageType.STEP_NAVIGATION)
        self._notify()
        await self._speak(message)
        if propose_timer:
            await self._propose_timer(step)

    # Ingredient checklist

    def check_ingredient(self, name: str) -> None:
        if self.session is not None:
            self.session.check_ingredient(name)
            self._notify()

    def uncheck_ingredient(self, name: str) -> None:
        if self.session is not None:
            self.session.uncheck_ingredient(name)
            self._notify()

    # Timers

    async def _propose_timer(self, step: RecipeStep) -> Optional[CookTimer]:
        duration = RecipeParser.detect_duration(step.step)
        if duration is None or self.timers.for_step(step.number):
            return None
        timer = self.timers.create(step.number, duration, RecipeParser.describe_timer(step.step, duration))
        message = f"I've started a timer for {timer.description}"
        self._add_message(message, ChatRole.ASSISTANT, ChatMessageType.TIMER_ALERT)
        self._notify()
        await self._speak(message)
        return timer

    async def start_timer(
        self,
        step_number: int,
        duration: timedelta,
        description: Optional[str] = None,
    ) -> Optional[CookTimer]:
        session = self.session
        if session is None or session.is_completed:
            return None
        if not 1 <= step_number <= session.total_steps:
            log.info(f"⚠️ start_timer ignored: no step {step_number}")
            return None
        if description is None:
            step = session.steps[step_number - 1]
            description = RecipeParser.describe_timer(step.step, duration)
        timer = self.timers.create(step_number, duration, description)
        self._notify()
        return timer

    def _has_timer(self, operation: str, timer_id: str) -> bool:
        if self.timers is None:
            return False
        try:
            self.timers.get(timer_id)
        except TimerNotFound:
            log.info(f"⚠️ {operation} ignored: unknown timer {timer_id}")
            return False
        return True

    def pause_timer(self, timer_id: str) -> bool:
        if not self._has_timer("pause_timer", timer_id):
            return False
        paused = self.timers.pause(timer_id)
        self._notify()
        return paused

    def resume_timer(self, timer_id: str) -> bool:
        if not self._has_timer("resume_timer", timer_id):
            return False
        resumed = self.timers.resume(timer_id)
        self._notify()
        return resumed

    def cancel_timer(self, timer_id: str) -> bool:
        if not self._has_timer("cancel_timer", timer_id):
            return False
        cancelled = self.timers.cancel(timer_id)
        self._notify()
        return cancelled

    def dismiss_timer(self, timer_id: str) -> bool:
        if not self._has_timer("dismiss_timer", timer_id):
            return False
        self.timers.dismiss(timer_id)
        self._notify()
        return True

    async def _on_timer_complete(self, timer: CookTimer) -> None:
        message = f"Timer finished for {timer.description or 'step ' + str(timer.step_number)}"
        self._add_message(message, ChatRole.ASSISTANT, ChatMessageType.TIMER_ALERT)
        self._notify()
        await self._speak(message)

    # Questions

    async def ask_question(self, question: str) -> Optional[str]:
        session = self.session
        question = question.strip()
        if session is None or not question:
            return None

        log.info(f"❓ User question: {question}")
        history = list(session.conversation_history)
        asked = self._add_message(question, ChatRole.USER)
        self.current_question = question
        self.is_processing_question = True
        self.last_error = None
        self._notify()

        try:
            answer = await self.assistant.answer(question, session.recipe, session.current_step_index or 0, history)
        except AssistantError as e:
            log.error(f"❌ Error asking question: {e}")
            if asked in session.conversation_history:
                session.conversation_history.remove(asked)
            self.last_error = "Sorry, I couldn't get an answer right now. Please try again."
            return None
        finally:
            self.current_question = None
            self.is_processing_question = False
            self._notify()

        if self.session is not session:
            return answer
        self._add_message(answer, ChatRole.ASSISTANT)
        self._notify()
        if self.mode == CookAlongMode.VOICE:
            await self._speak(answer)
        return answer

    # Voice

    async def handle_utterance(self, text: str) -> None:
        """Route one finalized utterance to a command or to the assistant."""
        if self.session is None or not text.strip():
            return
        if self._processing_command or self.is_processing_question:
            log.info(f"⚠️ Busy, ignoring utterance: '{text}'")
            return

        command = parse_command(text)
        log.info(f"🎯 Utterance '{text}' -> {command.value}")
        if command == VoiceCommand.UNKNOWN:
            await self.ask_question(text)
            return
        if self._is_debounced(command):
            log.info(f"⚠️ Command debounced: {command.value}")
            return

        self._processing_command = True
        try:
            await self._commands[command]()
        finally:
            self._processing_command = False

    def _is_debounced(self, command: VoiceCommand) -> bool:
        now = self._clock()
        if command == self._last_command and now - self._last_command_at < self.settings.command_debounce_sec:
            return True
        self._last_command = command
        self._last_command_at = now
        return False

    async def _next_by_voice(self) -> bool:
        if self.session is not None and self.session.status == SessionStatus.ACTIVE and not self.session.has_next_step:
            await self._speak("That was the last step. Say \"complete\" when you're done.")
            return False
        return await self.next_step()

    async def _offer_help(self) -> bool:
        await self._speak("Sure, what's your question?")
        return True

    async def switch_mode(self, mode: CookAlongMode) -> None:
        if mode == self.mode:
            return
        self.mode = mode
        self._hands_free = False
        await self.voice.stop_listening()
        await self.voice.stop_speaking()
        self._utterances.clear()
        self.audio_level = 0.0
        log.info(f"🔄 Switched to {mode.value} mode")
        self._notify()

    async def update_voice_settings(self, voice_settings: VoiceSettings) -> None:
        await self.voice.apply_settings(voice_settings)
        self._notify()

    async def start_listening(self) -> bool:
        """Turn on hands-free listening; it resumes after every spoken response."""
        if self.session is None or self.mode != CookAlongMode.VOICE:
            return False
        if not self.voice_available and not await self._ensure_permissions():
            self._notify()
            return False
        self._hands_free = True
        if not self.is_speaking:
            await self._listen()
        self._notify()
        return self._hands_free

    async def stop_listening(self) -> bool:
        self._hands_free = False
        await self.voice.stop_listening()
        self.audio_level = 0.0
        self._notify()
        return True

    def update_audio_level(self, level: float) -> None:
        self.audio_level = min(max(level, 0.0), 1.0)
        self._notify()

    async def _ensure_permissions(self) -> bool:
        granted = await self.voice.check_permissions() or await self.voice.request_permissions()
        self.voice_available = granted
        if not granted:
            log.warning("⚠️ Voice permissions denied, falling back to manual mode")
            self.mode = CookAlongMode.MANUAL
            self._hands_free = False
            self.last_error = PERMISSION_WARNING
        return granted

    async def _listen(self) -> None:
        if self.voice.is_listening:
            return
        try:
            await self.voice.start_listening(
                self.handle_utterance,
                continuous=True,
                timeout=self.settings.listen_timeout_sec,
                on_timeout=self._on_listen_timeout,
            )
        except VoiceUnavailable as e:
            log.error(f"❌ Could not start listening: {e}")
            self._hands_free = False
            self.last_error = "Voice recognition is unavailable right now."

    async def _on_listen_timeout(self) -> None:
        log.info("⏱️ Listening window ended, restarting hands-free listening")
        self.audio_level = 0.0
        self._notify()
        await self._resume_listening()

    async def _resume_listening(self) -> None:
        if (
            self._hands_free
            and self.mode == CookAlongMode.VOICE
            and self.is_active
            and not self.is_speaking
        ):
            await self._listen()
            self._notify()

    async def _speak(self, text: str) -> None:
        """Speak and wait; listening is paused for the duration."""
        if self.voice.is_listening:
            await self.voice.stop_listening()
        token = object()
        self._utterances.add(token)
        self._notify()
        try:
            await self.voice.speak_and_wait(text)
        finally:
            self._utterances.discard(token)
            self.audio_level = 0.0
        self._notify()
        await self._resume_listening()

    async def _stop_speaking(self) -> None:
        if self.is_speaking:
            await self.voice.stop_speaking()

    def _add_message(
        self,
        content: str,
        role: ChatRole,
        message_type: ChatMessageType = ChatMessageType.TEXT,
    ) -> Optional[ChatMessage]:
        if self.session is None:
            return None
        message = ChatMessage(role=role, content=content, type=message_type)
        self.session.conversation_history.append(message)
        return message
