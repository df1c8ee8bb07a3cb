"""
Conversational cooking assistant backed by OpenAI chat completions.
"""

import logging
from typing import List, Optional, Protocol, Sequence

from openai import AsyncOpenAI, OpenAIError

from ..core.config import Settings, get_settings
from ..models.recipe import Recipe
from ..models.session import ChatMessage, ChatRole

log = logging.getLogger(__name__)


class AssistantError(Exception):
    """The assistant could not produce an answer (network, API or config failure)."""


class Assistant(Protocol):
    async def answer(
        self,
        question: str,
        recipe: Recipe,
        step_index: int,
        history: Sequence[ChatMessage],
    ) -> str: ...


def build_system_prompt(recipe: Recipe, step_index: int) -> str:
    ingredients = "\n".join(f"- {i.display}" for i in recipe.ingredients) or "- Not listed"
    instructions = "\n".join(f"Step {s.number}: {s.step}" for s in recipe.steps)
    dietary = ", ".join(recipe.dietary) or "None specified"

    return f"""You are a friendly AI cooking assistant helping someone cook "{recipe.title}".

Recipe Information:
- Ready in: {recipe.ready_in_minutes or '?'} minutes
- Servings: {recipe.servings or '?'}
- Dietary: {dietary}

Ingredients:
{ingredients}

Instructions:
{instructions}

The user is currently on Step {step_index + 1}.

Your role:
- Answer questions clearly and concisely
- Provide helpful cooking tips and explanations
- Suggest substitutions when needed
- Keep responses conversational and encouraging
- Stay focused on cooking this specific recipe

Keep your responses brief (2-3 sentences unless more detail is specifically requested). They will be read aloud."""


def welcome_message(recipe: Recipe) -> str:
    details = []
    if recipe.ready_in_minutes:
        details.append(f"takes about {recipe.ready_in_minutes} minutes")
    if recipe.servings:
        details.append(f"makes {recipe.servings} servings")
    about = f" This recipe {' and '.join(details)}." if details else ""

    return (
        f"Welcome to Cook Along! I'll help you prepare {recipe.title}.{about} "
        f"We'll go through {len(recipe.steps)} steps together. "
        "Say \"next\" to move on, \"repeat\" to hear a step again, \"back\" to go to the previous step, "
        "and \"complete\" when you're done. You can ask me questions at any time. "
        "When you're ready, say \"start\"."
    )


def completion_message(recipe: Recipe) -> str:
    return f"Congratulations! You've finished cooking {recipe.title}. I hope it turns out delicious. Enjoy your meal!"


class OpenAIAssistant:
    def __init__(self, settings: Optional[Settings] = None, client: Optional[AsyncOpenAI] = None):
        self.settings = settings or get_settings()
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.settings.openai_api_key:
                raise AssistantError("OpenAI API key not configured")
            self._client = AsyncOpenAI(
                api_key=self.settings.openai_api_key,
                timeout=self.settings.assistant_timeout_sec,
            )
        return self._client

    @staticmethod
    def _to_messages(history: Sequence[ChatMessage]) -> List[dict]:
        return [
            {"role": m.role.value, "content": m.content}
            for m in history
            if m.role != ChatRole.SYSTEM
        ]

    async def answer(
        self,
        question: str,
        recipe: Recipe,
        step_index: int,
        history: Sequence[ChatMessage],
    ) -> str:
        messages = [{"role": "system", "content": build_system_prompt(recipe, step_index)}]
        messages.extend(self._to_messages(history))
        messages.append({"role": "user", "content": question})

        log.info(f"🤖 Asking assistant: '{question[:80]}'")
        try:
            response = await self.client.chat.completions.create(
                model=self.settings.assistant_model,
                messages=messages,
                max_tokens=self.settings.assistant_max_tokens,
            )
        except OpenAIError as e:
            log.error(f"❌ Assistant request failed: {e}")
            raise AssistantError(str(e)) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise AssistantError("Assistant returned an empty answer")
        log.info("✅ Received answer from assistant")
        return content.strip()
