"""Complexity classifier - estimates how big a task is from its text.

Two independent estimates are merged pessimistically:
1. Rule path: keyword lookup per detected language (largest match wins)
2. Model path: one structured request to a fast classification model

The larger of the two sizes is always kept.
"""

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from stepwise.core.config import Settings, get_settings
from stepwise.core.errors import MalformedResponse, StepwiseError
from stepwise.decomposition.language import detect_language, rule_size
from stepwise.decomposition.models import ComplexityEstimate, ComplexitySize, TimeScale
from stepwise.decomposition.normalizer import round_half_up
from stepwise.llm.client import CompletionClient, CompletionRequest
from stepwise.llm.parsing import parse_json_object
from stepwise.prompts.templates import CLASSIFIER_SYSTEM_PROMPT, CLASSIFIER_USER_PROMPT

# Default duration midpoints (minutes) before the overhead factor.
SIZE_DEFAULT_MINUTES: dict[ComplexitySize, int] = {
    ComplexitySize.S: 10,
    ComplexitySize.M: 30,
    ComplexitySize.L: 120,
    ComplexitySize.XL: 300,
}

FALLBACK_REASONING = "Model classification unavailable; assuming a medium task."


class ModelVerdict(BaseModel):
    """Structured answer expected from the classification model."""

    size: ComplexitySize
    reasoning: str = ""
    implied_duration_minutes: int | None = Field(default=None, ge=0)


def size_to_minutes(size: ComplexitySize, overhead_factor: float = 1.5) -> int:
    """Default duration for a size including task-switching overhead."""
    return round_half_up(SIZE_DEFAULT_MINUTES[size] * overhead_factor)


def size_to_time_scale(size: ComplexitySize) -> TimeScale:
    if size in (ComplexitySize.L, ComplexitySize.XL):
        return TimeScale.HOURS
    return TimeScale.MINUTES


class ComplexityClassifier:
    """
    Estimate a coarse size category for a task.

    Example:
        >>> classifier = ComplexityClassifier(client)
        >>> estimate = await classifier.classify("Email my landlord about the lease")
        >>> estimate.size
        ComplexitySize.S
        >>> estimate.total_minutes
        15
    """

    def __init__(
        self,
        client: CompletionClient,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the classifier.

        Args:
            client: Completion collaborator for the model path.
            settings: Optional settings override.
        """
        self.client = client
        self.settings = settings or get_settings()

    async def classify(
        self,
        title: str,
        description: str | None = None,
    ) -> ComplexityEstimate:
        """
        Classify a task into S/M/L/XL.

        Args:
            title: Task title.
            description: Optional task description.

        Returns:
            ComplexityEstimate with the merged size and derived duration.
        """
        text = f"{title} {description or ''}".strip()
        language = detect_language(text)

        from_rules = rule_size(text, language)
        verdict = await self._classify_with_model(title, description)

        size = ComplexitySize.largest(from_rules, verdict.size)
        logger.info(
            f"Classified '{title[:60]}' as {size.value} "
            f"(rule={from_rules.value if from_rules else '-'}, model={verdict.size.value})"
        )

        return ComplexityEstimate(
            size=size,
            total_minutes=size_to_minutes(size, self.settings.overhead_factor),
            time_scale=size_to_time_scale(size),
            rule_size=from_rules,
            model_size=verdict.size,
            reasoning=verdict.reasoning,
            model_implied_minutes=verdict.implied_duration_minutes,
        )

    async def _classify_with_model(
        self,
        title: str,
        description: str | None,
    ) -> ModelVerdict:
        """Ask the fast model for a size; size M on any failure."""
        if not self.client.is_available:
            return ModelVerdict(size=ComplexitySize.M, reasoning=FALLBACK_REASONING)

        request = CompletionRequest(
            system_prompt=CLASSIFIER_SYSTEM_PROMPT.format(),
            user_prompt=CLASSIFIER_USER_PROMPT.format(
                title=title,
                description=description or "(none)",
            ),
            max_tokens=200,
            temperature=0.0,
            model=self.settings.classifier_model,
        )

        try:
            completion = await self.client.complete(request)
            return self._parse_verdict(completion.text)
        except StepwiseError as e:
            logger.warning(f"Model classification failed: {e}, defaulting to M")
            return ModelVerdict(size=ComplexitySize.M, reasoning=FALLBACK_REASONING)

    def _parse_verdict(self, text: str) -> ModelVerdict:
        data = parse_json_object(text)
        if isinstance(data.get("size"), str):
            data["size"] = data["size"].strip().upper()
        try:
            return ModelVerdict.model_validate(data)
        except ValidationError as e:
            raise MalformedResponse(f"Unexpected classifier payload: {e}") from e
