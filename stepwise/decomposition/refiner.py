"""Recursive refiner - the deep dive that splits composite steps.

A composite step (longer than the atomicity threshold) is split into
exactly three children by a dedicated prompt. The children are
normalized against the parent's duration, and any child that is still
composite is refined again, one level deeper. The depth is threaded
through every call as an explicit argument, so recursion always stops
at ``max_depth``.
"""

from loguru import logger

from stepwise.core.config import Settings, get_settings
from stepwise.core.errors import RefinementExhausted, StepwiseError
from stepwise.decomposition.fields import coerce_steps
from stepwise.decomposition.language import detect_language
from stepwise.decomposition.models import Language, Step
from stepwise.decomposition.normalizer import normalize_durations
from stepwise.llm.client import CompletionClient, CompletionRequest
from stepwise.llm.parsing import parse_json_list
from stepwise.prompts.templates import (
    REFINER_SYSTEM_PROMPT,
    REFINER_USER_PROMPT,
    language_instruction,
)

CHILDREN_PER_STEP = 3


class StepRefiner:
    """
    Split composite steps into three finer-grained children, recursively.

    Example:
        >>> refiner = StepRefiner(client)
        >>> children = await refiner.refine(
        ...     "Draft the About page", 45, "Build a personal website",
        ...     depth=0, max_depth=1,
        ... )
        >>> [c.depth for c in children]
        [1, 1, 1]
    """

    def __init__(
        self,
        client: CompletionClient,
        settings: Settings | None = None,
    ) -> None:
        self.client = client
        self.settings = settings or get_settings()

    @property
    def threshold(self) -> int:
        return self.settings.atomic_threshold_minutes

    async def refine(
        self,
        step_title: str,
        duration_minutes: int,
        parent_title: str,
        depth: int = 0,
        max_depth: int = 1,
        language: Language | None = None,
    ) -> list[Step]:
        """
        Refine one step into children.

        Args:
            step_title: Title of the step being split.
            duration_minutes: Its duration; the children are normalized to it.
            parent_title: Title of the overall task, for context.
            depth: Depth of the step being split. Children get ``depth + 1``.
            max_depth: No returned node is deeper than this.
            language: Output language; detected from the titles when omitted.

        Returns:
            Three children (each possibly refined further), or an empty
            list for atomic steps, at the depth cap, or on failure.
        """
        if duration_minutes <= self.threshold:
            return []

        try:
            self._check_depth(depth, max_depth)
        except RefinementExhausted as e:
            logger.debug(f"Not refining '{step_title[:60]}': {e}")
            return []

        language = language or detect_language(f"{parent_title} {step_title}")
        children = await self._generate_children(
            step_title, duration_minutes, parent_title, depth + 1, language
        )
        if not children:
            return []

        normalized = normalize_durations(
            children,
            duration_minutes,
            tolerance=self.settings.duration_tolerance,
            threshold=self.threshold,
        )
        children = normalized.steps

        for child in children:
            if child.is_composite and child.depth < max_depth:
                child.children = await self.refine(
                    child.title,
                    child.estimated_minutes,
                    parent_title,
                    depth=child.depth,
                    max_depth=max_depth,
                    language=language,
                )

        return children

    async def refine_step(
        self,
        step: Step,
        parent_title: str,
        max_depth: int,
        language: Language | None = None,
    ) -> Step:
        """Return a copy of ``step`` with its children filled in.

        Learning fields of the step are inherited by descendants that did
        not get their own.
        """
        refined = step.model_copy(deep=True)
        refined.children = await self.refine(
            step.title,
            step.estimated_minutes,
            parent_title,
            depth=step.depth,
            max_depth=max_depth,
            language=language,
        )
        for node in refined.iter_tree():
            if node is refined:
                continue
            node.strategy_tag = node.strategy_tag or step.strategy_tag
            node.interaction_type = node.interaction_type or step.interaction_type
        return refined

    def _check_depth(self, depth: int, max_depth: int) -> None:
        # Children land at depth + 1; that must not exceed the cap.
        if depth >= max_depth:
            raise RefinementExhausted(depth, max_depth)

    async def _generate_children(
        self,
        step_title: str,
        duration_minutes: int,
        parent_title: str,
        child_depth: int,
        language: Language,
    ) -> list[Step]:
        if not self.client.is_available:
            return []

        request = CompletionRequest(
            system_prompt=REFINER_SYSTEM_PROMPT.format(
                duration_minutes=duration_minutes,
                language_instruction=language_instruction(language.value),
            ),
            user_prompt=REFINER_USER_PROMPT.format(
                parent_title=parent_title,
                step_title=step_title,
                duration_minutes=duration_minutes,
            ),
            max_tokens=400,
            temperature=0.5,
            model=self.settings.refiner_model,
        )

        try:
            completion = await self.client.complete(request)
            raw = parse_json_list(completion.text)
        except StepwiseError as e:
            logger.warning(f"Refinement of '{step_title[:60]}' failed: {e}")
            return []

        children = coerce_steps(
            raw,
            depth=child_depth,
            threshold=self.threshold,
            limit=CHILDREN_PER_STEP,
        )
        logger.debug(f"Refined '{step_title[:60]}' into {len(children)} children at depth {child_depth}")
        return children
