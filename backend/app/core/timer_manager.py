import asyncio
import logging
from datetime import timedelta
from typing import Dict, Callable, Awaitable, List, Optional

from ..models.session import CookTimer

log = logging.getLogger(__name__)


class TimerNotFound(KeyError):
    pass


class TimerManager:
    """
    Owns the timers of one cook-along session.

    Each running timer gets its own countdown task; timers never wait on each
    other. Finished and cancelled timers stay in ``timers`` until dismissed or
    until the manager is closed.
    """

    def __init__(
        self,
        on_complete: Optional[Callable[[CookTimer], Awaitable[None]]] = None,
        tick_sec: float = 1.0,
    ):
        self.on_complete = on_complete
        self.tick_sec = tick_sec
        self._timers: Dict[str, CookTimer] = {}
        self.tasks: Dict[str, asyncio.Task] = {}

    @property
    def timers(self) -> List[CookTimer]:
        return list(self._timers.values())

    @property
    def visible(self) -> List[CookTimer]:
        return [t for t in self._timers.values() if t.is_visible]

    def get(self, timer_id: str) -> CookTimer:
        try:
            return self._timers[timer_id]
        except KeyError:
            raise TimerNotFound(timer_id) from None

    def for_step(self, step_number: int) -> List[CookTimer]:
        return [t for t in self._timers.values() if t.step_number == step_number]

    def add(self, timer: CookTimer, start: bool = True) -> CookTimer:
        self._timers[timer.id] = timer
        if start:
            self.start(timer.id)
        return timer

    def create(
        self,
        step_number: int,
        duration: timedelta,
        description: str = "",
        start: bool = True,
    ) -> CookTimer:
        timer = CookTimer(step_number=step_number, duration=duration, description=description)
        log.info(f"⏲️ Timer created for step {step_number}: {description or duration}")
        return self.add(timer, start=start)

    def start(self, timer_id: str) -> bool:
        timer = self.get(timer_id)
        if not timer.start():
            return False
        self._ensure_task(timer)
        return True

    def pause(self, timer_id: str) -> bool:
        return self.get(timer_id).pause()

    def resume(self, timer_id: str) -> bool:
        timer = self.get(timer_id)
        if not timer.resume():
            return False
        self._ensure_task(timer)
        return True

    def cancel(self, timer_id: str) -> bool:
        timer = self.get(timer_id)
        cancelled = timer.cancel()
        self._stop_task(timer_id)
        if cancelled:
            log.info(f"🛑 Timer cancelled: {timer.description or timer_id}")
        return cancelled

    def dismiss(self, timer_id: str) -> CookTimer:
        timer = self.get(timer_id)
        timer.cancel()
        self._stop_task(timer_id)
        return self._timers.pop(timer_id)

    def pause_all(self) -> List[CookTimer]:
        return [t for t in self._timers.values() if t.pause()]

    def resume_all(self) -> List[CookTimer]:
        resumed = [t for t in self._timers.values() if t.resume()]
        for timer in resumed:
            self._ensure_task(timer)
        return resumed

    def cancel_all(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        for task in self.tasks.values():
            task.cancel()
        self.tasks.clear()

    def close(self) -> None:
        self.cancel_all()
        self._timers.clear()

    def _ensure_task(self, timer: CookTimer) -> None:
        task = self.tasks.get(timer.id)
        if task is None or task.done():
            self.tasks[timer.id] = asyncio.create_task(self._countdown(timer))

    def _stop_task(self, timer_id: str) -> None:
        task = self.tasks.pop(timer_id, None)
        if task is not None:
            task.cancel()

    async def _countdown(self, timer: CookTimer):
        step = timedelta(seconds=self.tick_sec)
        # Paused timers keep their task alive so resume picks up where it left off.
        while not timer.is_terminal:
            await asyncio.sleep(self.tick_sec)
            if timer.tick(step):
                log.info(f"⏰ Timer completed: {timer.description or timer.id}")
                self.tasks.pop(timer.id, None)
                if self.on_complete is not None:
                    await self.on_complete(timer)
                return
