from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, conint, field_serializer, field_validator, model_validator

from .recipe import RecipeStep


def _new_id() -> str:
    return uuid.uuid4().hex


class CookAlongMode(str, Enum):
    VOICE = "voice"
    MANUAL = "manual"


class SessionStatus(str, Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class TimerStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CookTimer(BaseModel):
    """
    Countdown attached to one recipe step.

    Remaining time only moves through ``tick``, so a timer can be driven by a
    real clock (see ``TimerManager``) or stepped by hand.
    """

    id: str = Field(default_factory=_new_id)
    step_number: conint(ge=1)
    duration: timedelta
    remaining: Optional[timedelta] = None
    status: TimerStatus = TimerStatus.IDLE
    description: str = ""

    @model_validator(mode="after")
    def _fill_remaining(self) -> "CookTimer":
        if self.remaining is None:
            self.remaining = self.duration
        return self

    @field_serializer("duration", "remaining")
    def _as_seconds(self, value: Optional[timedelta]) -> Optional[float]:
        return None if value is None else value.total_seconds()

    @property
    def is_terminal(self) -> bool:
        return self.status in (TimerStatus.COMPLETED, TimerStatus.CANCELLED)

    @property
    def is_visible(self) -> bool:
        return self.status in (TimerStatus.RUNNING, TimerStatus.PAUSED)

    @property
    def progress(self) -> float:
        total = self.duration.total_seconds()
        if total <= 0:
            return 1.0
        elapsed = total - self.remaining.total_seconds()
        return min(max(elapsed / total, 0.0), 1.0)

    def start(self) -> bool:
        if self.status not in (TimerStatus.IDLE, TimerStatus.PAUSED):
            return False
        self.status = TimerStatus.RUNNING
        return True

    def pause(self) -> bool:
        if self.status != TimerStatus.RUNNING:
            return False
        self.status = TimerStatus.PAUSED
        return True

    def resume(self) -> bool:
        if self.status != TimerStatus.PAUSED:
            return False
        self.status = TimerStatus.RUNNING
        return True

    def cancel(self) -> bool:
        if self.is_terminal:
            return False
        self.status = TimerStatus.CANCELLED
        self.remaining = timedelta(0)
        return True

    def tick(self, elapsed: timedelta) -> bool:
        """Count down while running. Returns True on the tick that completes the timer."""
        if self.status != TimerStatus.RUNNING:
            return False
        self.remaining = max(self.remaining - elapsed, timedelta(0))
        if self.remaining == timedelta(0):
            self.status = TimerStatus.COMPLETED
            return True
        return False


class VoiceSettings(BaseModel):
    """How the client should speak: carried on every tts frame."""

    voice_name: str = ""
    locale: str = "en-US"
    speech_rate: float = 0.5
    pitch: float = 1.0
    volume: float = 1.0

    @field_validator("speech_rate", "volume")
    @classmethod
    def _clamp_unit(cls, value: float) -> float:
        return min(max(value, 0.0), 1.0)

    @field_validator("pitch")
    @classmethod
    def _clamp_pitch(cls, value: float) -> float:
        return min(max(value, 0.5), 2.0)


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ChatMessageType(str, Enum):
    TEXT = "text"
    STEP_NAVIGATION = "step_navigation"
    TIMER_ALERT = "timer_alert"
    SYSTEM_NOTIFICATION = "system_notification"


class ChatMessage(BaseModel):
    id: str = Field(default_factory=_new_id)
    role: ChatRole
    content: str
    timestamp: datetime = Field(default_factory=datetime.now)
    type: ChatMessageType = ChatMessageType.TEXT


class SessionSnapshot(BaseModel):
    """Serialisable view of the controller pushed to UI observers."""

    recipe_title: Optional[str] = None
    status: Optional[SessionStatus] = None
    mode: CookAlongMode
    current_step_index: Optional[int] = None
    current_step: Optional[RecipeStep] = None
    total_steps: int = 0
    progress: float = 0.0
    has_next_step: bool = False
    has_previous_step: bool = False
    has_started_cooking: bool = False
    is_listening: bool = False
    is_speaking: bool = False
    is_processing_question: bool = False
    current_question: Optional[str] = None
    audio_level: float = 0.0
    voice_available: bool = True
    last_error: Optional[str] = None
    timers: List[CookTimer] = []
    checked_ingredients: List[str] = []
    conversation_history: List[ChatMessage] = []
