"""
Regex based recipe text parsing and step duration detection.
"""

import re
from datetime import timedelta
from typing import List, Optional

from ..models.recipe import Recipe, RecipeStep

# Verbs checked in order; first hit names the timer.
TIMER_VERBS = ["simmer", "bake", "cook", "boil", "rest", "chill", "marinate"]


class RecipeParser:
    step_pattern = re.compile(r"^\s*\d+[.\)]\s*(.*)$", re.M)
    duration_pattern = re.compile(
        r"(\d+)\s*(?:(?:-|to)\s*\d+\s*)?(hours?|hrs?|minutes?|mins?|seconds?|secs?)\b",
        re.I,
    )

    @classmethod
    async def parse(cls, raw: str, title: str = "Untitled") -> Recipe:
        texts: List[str] = []
        for match in cls.step_pattern.finditer(raw):
            text = match.group(1).strip()
            if text:
                texts.append(text)

        if not texts:
            # Fallback to trivial split
            texts = [line.strip() for line in raw.splitlines() if line.strip()]

        steps = [RecipeStep(number=i, step=text) for i, text in enumerate(texts, start=1)]
        return Recipe(title=title, steps=steps)

    @classmethod
    def detect_duration(cls, text: str) -> Optional[timedelta]:
        """First duration mentioned in ``text``; ranges use the lower bound."""
        match = cls.duration_pattern.search(text)
        if not match:
            return None
        value = int(match.group(1))
        if value <= 0:
            return None
        unit = match.group(2).lower()
        if unit.startswith("h"):
            return timedelta(hours=value)
        if unit.startswith("s"):
            return timedelta(seconds=value)
        return timedelta(minutes=value)

    @staticmethod
    def format_duration(duration: timedelta) -> str:
        total = int(duration.total_seconds())
        hours, rest = divmod(total, 3600)
        minutes, seconds = divmod(rest, 60)
        if hours:
            return f"{hours} hour{'s' if hours > 1 else ''}"
        if minutes:
            return f"{minutes} minute{'s' if minutes > 1 else ''}"
        return f"{seconds} second{'s' if seconds != 1 else ''}"

    @classmethod
    def describe_timer(cls, text: str, duration: timedelta) -> str:
        time_str = cls.format_duration(duration)
        lower = text.lower()
        for verb in TIMER_VERBS:
            if verb in lower:
                return f"{verb.capitalize()} for {time_str}"
        return f"Timer: {time_str}"
