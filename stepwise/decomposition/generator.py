"""Step generator - the architect that writes the top-level breakdown.

This is the most expensive call of the pipeline and runs at most once
per breakdown request. It never returns an empty list: any failure
falls back to a fixed five-step template.
"""

from loguru import logger

from stepwise.core.config import Settings, get_settings
from stepwise.core.errors import MalformedResponse, StepwiseError
from stepwise.decomposition.fields import coerce_steps
from stepwise.decomposition.language import detect_language, is_learning_task
from stepwise.decomposition.models import (
    ComplexityEstimate,
    GenerationResult,
    Language,
    Step,
    TokenUsage,
)
from stepwise.llm.client import Completion, CompletionClient, CompletionRequest
from stepwise.llm.parsing import parse_json_list
from stepwise.prompts.templates import (
    ARCHITECT_SYSTEM_PROMPT,
    ARCHITECT_USER_PROMPT,
    LEARNING_ARCHITECT_SYSTEM_PROMPT,
    language_instruction,
)

MAX_STEPS = 7


class StepGenerator:
    """
    Generate an ordered list of candidate steps for a task.

    Picks the learning prompt for study tasks and the standard prompt
    otherwise. Output is unvalidated against the duration budget; the
    normalizer takes care of that.

    Example:
        >>> generator = StepGenerator(client)
        >>> result = await generator.decompose(
        ...     "Build a personal website", complexity=estimate
        ... )
        >>> len(result.steps) >= 3
        True
    """

    # Template breakdown used whenever the model path fails
    TEMPLATE_STEPS: list[dict[str, object]] = [
        {"title": "Clear workspace and open what you need", "estimatedMinutes": 5, "stepType": "physical"},
        {"title": "Write down the first concrete result for: {title}", "estimatedMinutes": 10, "stepType": "mental"},
        {"title": "Execute the first main step", "estimatedMinutes": 15, "stepType": "creative"},
        {"title": "Review and test the result", "estimatedMinutes": 10, "stepType": "mental"},
        {"title": "Finish up and note what is left", "estimatedMinutes": 5, "stepType": "mental"},
    ]

    def __init__(
        self,
        client: CompletionClient,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the generator.

        Args:
            client: Completion collaborator.
            settings: Optional settings override.
        """
        self.client = client
        self.settings = settings or get_settings()

    # =========================================================================
    # PUBLIC INTERFACE
    # =========================================================================

    async def decompose(
        self,
        title: str,
        complexity: ComplexityEstimate,
        description: str | None = None,
        existing_steps: list[str] | None = None,
        language: Language | None = None,
        is_learning_mode: bool | None = None,
    ) -> GenerationResult:
        """
        Produce raw steps for a task.

        Args:
            title: Task title.
            complexity: Size estimate from the classifier.
            description: Optional task description.
            existing_steps: Titles already on the task, to avoid duplicates.
            language: Output language; detected from the text when omitted.
            is_learning_mode: Force the learning prompt on or off; detected
                from the text when omitted.

        Returns:
            GenerationResult with the steps and usage metadata.
        """
        language = language or detect_language(f"{title} {description or ''}")
        learning = is_learning_task(title, description) if is_learning_mode is None else is_learning_mode

        if not self.client.is_available:
            return self.template_result(title, learning)

        request = self.build_request(
            title,
            complexity,
            description=description,
            existing_steps=existing_steps,
            language=language,
            learning=learning,
        )

        logger.info(f"Generating breakdown for '{title[:60]}' (learning={learning})")
        try:
            completion = await self.client.complete(request)
            steps = self.parse_steps(completion.text, existing_steps)
        except StepwiseError as e:
            logger.warning(f"Breakdown generation failed: {e}, using template")
            return self.template_result(title, learning)

        return GenerationResult(
            steps=steps,
            learning_mode=learning,
            usage=self._usage(completion),
        )

    def build_request(
        self,
        title: str,
        complexity: ComplexityEstimate,
        description: str | None = None,
        existing_steps: list[str] | None = None,
        language: Language = Language.ENGLISH,
        learning: bool = False,
    ) -> CompletionRequest:
        """Build the architect request (also used by the stream assembler)."""
        system_template = LEARNING_ARCHITECT_SYSTEM_PROMPT if learning else ARCHITECT_SYSTEM_PROMPT
        system_prompt = system_template.format(
            size=complexity.size.value,
            total_minutes=complexity.total_minutes,
            time_scale=complexity.time_scale.value,
            language_instruction=language_instruction(language.value),
        )

        existing_section = ""
        if existing_steps:
            listing = "\n".join(f"- {s}" for s in existing_steps)
            existing_section = f"\nThe task already has these steps. Do NOT repeat them:\n{listing}\n"

        user_prompt = ARCHITECT_USER_PROMPT.format(
            title=title,
            description=description or "(none)",
            existing_section=existing_section,
        )

        return CompletionRequest(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            max_tokens=1200 if learning else 800,
            temperature=0.7,
            model=self.settings.architect_model,
        )

    def parse_steps(
        self,
        text: str,
        existing_steps: list[str] | None = None,
    ) -> list[Step]:
        """Parse an architect answer into canonical steps.

        Raises:
            MalformedResponse: Nothing usable survived parsing.
        """
        raw = parse_json_list(text)
        steps = coerce_steps(
            raw,
            depth=0,
            threshold=self.settings.atomic_threshold_minutes,
            limit=MAX_STEPS,
        )

        if existing_steps:
            seen = {s.strip().lower() for s in existing_steps}
            steps = [s for s in steps if s.title.strip().lower() not in seen]
            for position, step in enumerate(steps):
                step.order = position

        if not steps:
            raise MalformedResponse("Breakdown contained no usable steps")
        return steps

    def template_steps(self, title: str) -> list[Step]:
        """The static fallback breakdown."""
        raw = [
            {**item, "title": str(item["title"]).format(title=title)}
            for item in self.TEMPLATE_STEPS
        ]
        return coerce_steps(raw, depth=0, threshold=self.settings.atomic_threshold_minutes)

    def template_result(self, title: str, learning: bool = False) -> GenerationResult:
        steps = self.template_steps(title)
        if learning:
            for step in steps:
                step.interaction_type = "checkbox"
        return GenerationResult(steps=steps, learning_mode=learning, used_fallback=True)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _usage(self, completion: Completion) -> TokenUsage:
        cost = (
            completion.input_tokens * self.settings.architect_input_cost_per_mtok
            + completion.output_tokens * self.settings.architect_output_cost_per_mtok
        ) / 1_000_000
        return TokenUsage(
            input_tokens=completion.input_tokens,
            output_tokens=completion.output_tokens,
            cost_usd=round(cost, 6),
        )
