"""Encouragement messages between steps.

After a step is checked off, the coach writes one or two sentences that
celebrate it and name the exact minutes of the next step, so the message
matches the timer the user is about to start.
"""

import random

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from stepwise.core.config import Settings, get_settings
from stepwise.core.errors import StepwiseError
from stepwise.llm.client import CompletionClient, CompletionRequest
from stepwise.llm.parsing import strip_code_fences
from stepwise.prompts.templates import (
    ENCOURAGEMENT_FINAL_PROMPT,
    ENCOURAGEMENT_NEXT_PROMPT,
    ENCOURAGEMENT_SYSTEM_PROMPT,
)

FALLBACK_MESSAGES = (
    "Amazing work! Let's keep the momentum going!",
    "You're crushing it! Next one won't know what hit it!",
    "Yes! That's how it's done! Ready for the next challenge?",
    "Boom! Another one down! You're unstoppable!",
    "Fantastic! You're on fire today!",
)

COMPLETION_MESSAGE = "Mission accomplished! You absolutely crushed every single step!"


class StepRef(BaseModel):
    """Minimal view of a step for encouragement prompts."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    title: str
    estimated_minutes: int = Field(default=5, ge=1)


class Progress(BaseModel):
    completed: int = Field(ge=0)
    total: int = Field(ge=0)

    @property
    def is_done(self) -> bool:
        return self.total > 0 and self.completed >= self.total


class EncouragementWriter:
    """Write short coach messages, falling back to canned ones."""

    def __init__(
        self,
        client: CompletionClient,
        settings: Settings | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.client = client
        self.settings = settings or get_settings()
        self._rng = rng or random.Random()

    async def encourage(
        self,
        completed: StepRef,
        next_step: StepRef | None,
        progress: Progress,
    ) -> str:
        """
        Message for the moment ``completed`` was checked off.

        Args:
            completed: The step just finished.
            next_step: The step to start now, or None after the last one.
            progress: Completed/total counters.

        Returns:
            One or two sentences of plain text.
        """
        if not self.client.is_available:
            return self.fallback(progress)

        if next_step is not None:
            prompt = ENCOURAGEMENT_NEXT_PROMPT.format(
                completed_title=completed.title,
                completed_minutes=completed.estimated_minutes,
                next_title=next_step.title,
                next_minutes=next_step.estimated_minutes,
                completed=progress.completed,
                total=progress.total,
            )
        else:
            prompt = ENCOURAGEMENT_FINAL_PROMPT.format(
                completed_title=completed.title,
                total=progress.total,
            )

        request = CompletionRequest(
            system_prompt=ENCOURAGEMENT_SYSTEM_PROMPT.format(),
            user_prompt=prompt,
            max_tokens=100,
            temperature=0.9,
            model=self.settings.classifier_model,
        )

        try:
            completion = await self.client.complete(request)
        except StepwiseError as e:
            logger.warning(f"Encouragement generation failed: {e}")
            return self.fallback(progress)

        message = strip_code_fences(completion.text).strip().strip('"')
        return message or self.fallback(progress)

    def fallback(self, progress: Progress) -> str:
        if progress.is_done:
            return COMPLETION_MESSAGE
        return self._rng.choice(FALLBACK_MESSAGES)
