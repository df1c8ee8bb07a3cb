import logging
from datetime import datetime
from typing import Callable, List, Optional

from ..models.recipe import Recipe, RecipeStep
from ..models.session import ChatMessage, SessionStatus

log = logging.getLogger(__name__)


class InvalidTransition(Exception):
    """Raised when a session operation is not valid in the current state."""

    def __init__(self, operation: str, status: SessionStatus, reason: str = ""):
        self.operation = operation
        self.status = status
        msg = f"{operation} is not allowed while {status.value}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class CookAlongSession:
    """
    Step-by-step walk through one recipe.

    NOT_STARTED -> ACTIVE <-> PAUSED, ACTIVE/PAUSED -> COMPLETED.
    Every operation outside its valid state raises InvalidTransition.
    """

    def __init__(self, recipe: Recipe):
        self.recipe = recipe
        self.steps: List[RecipeStep] = list(recipe.steps)
        self.created_at = datetime.now()
        self.conversation_history: List[ChatMessage] = []
        self.checked_ingredients: List[str] = []
        self._index: Optional[int] = None
        self._paused = False
        self._completed = False
        self._completion_listeners: List[Callable[["CookAlongSession"], None]] = []

    # Derived state

    @property
    def status(self) -> SessionStatus:
        if self._completed:
            return SessionStatus.COMPLETED
        if self._index is None:
            return SessionStatus.NOT_STARTED
        if self._paused:
            return SessionStatus.PAUSED
        return SessionStatus.ACTIVE

    @property
    def is_started(self) -> bool:
        return self._index is not None

    @property
    def is_paused(self) -> bool:
        return self.status == SessionStatus.PAUSED

    @property
    def is_completed(self) -> bool:
        return self._completed

    @property
    def current_step_index(self) -> Optional[int]:
        return self._index

    @property
    def current_step(self) -> Optional[RecipeStep]:
        if self._index is None:
            return None
        return self.steps[self._index]

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    @property
    def has_next_step(self) -> bool:
        return self._index is not None and self._index < self.total_steps - 1

    @property
    def has_previous_step(self) -> bool:
        return self._index is not None and self._index > 0

    @property
    def progress(self) -> float:
        if self._index is None or not self.steps:
            return 0.0
        return (self._index + 1) / self.total_steps

    # Transitions

    def _require(self, operation: str, *allowed: SessionStatus) -> None:
        if self.status not in allowed:
            raise InvalidTransition(operation, self.status)

    def start_first_step(self) -> RecipeStep:
        self._require("start_first_step", SessionStatus.NOT_STARTED)
        if not self.steps:
            raise InvalidTransition("start_first_step", self.status, "recipe has no steps")
        self._index = 0
        log.info(f"🎬 Started '{self.recipe.title}' at step 1 of {self.total_steps}")
        return self.steps[0]

    def next_step(self) -> RecipeStep:
        self._require("next_step", SessionStatus.ACTIVE)
        if not self.has_next_step:
            raise InvalidTransition("next_step", self.status, "already at the last step")
        self._index += 1
        return self.steps[self._index]

    def previous_step(self) -> RecipeStep:
        self._require("previous_step", SessionStatus.ACTIVE)
        if self.has_previous_step:
            self._index -= 1
        return self.steps[self._index]

    def repeat_step(self) -> RecipeStep:
        self._require("repeat_step", SessionStatus.ACTIVE, SessionStatus.PAUSED)
        return self.steps[self._index]

    def jump_to_step(self, index: int) -> RecipeStep:
        self._require("jump_to_step", SessionStatus.ACTIVE)
        if not 0 <= index < self.total_steps:
            raise InvalidTransition("jump_to_step", self.status, f"index {index} out of range")
        self._index = index
        return self.steps[index]

    def pause_session(self) -> None:
        self._require("pause_session", SessionStatus.ACTIVE)
        self._paused = True

    def resume_session(self) -> None:
        self._require("resume_session", SessionStatus.PAUSED)
        self._paused = False

    def complete_session(self) -> None:
        self._require("complete_session", SessionStatus.ACTIVE, SessionStatus.PAUSED)
        self._paused = False
        self._completed = True
        log.info(f"🎉 Completed '{self.recipe.title}'")
        for listener in list(self._completion_listeners):
            listener(self)

    def on_complete(self, listener: Callable[["CookAlongSession"], None]) -> None:
        self._completion_listeners.append(listener)

    # Ingredient checklist

    def check_ingredient(self, name: str) -> None:
        if name not in self.checked_ingredients:
            self.checked_ingredients.append(name)

    def uncheck_ingredient(self, name: str) -> None:
        self.checked_ingredients = [i for i in self.checked_ingredients if i != name]

    def is_ingredient_checked(self, name: str) -> bool:
        return name in self.checked_ingredients
