"""Breakdown pipeline - coordinates every decomposition stage.

This module provides the primary interface for turning a task into a
step tree:
1. Classify complexity (keywords + fast model, pessimistic merge)
2. Generate the top-level breakdown (architect)
3. Verify large breakdowns (chain-of-verification)
4. Normalize durations to the estimated total
5. Refine composite steps, eagerly or on demand (deep dive)

The pipeline holds no long-lived resources and no state shared between
requests; it borrows the completion client it was given.
"""

import asyncio
from collections.abc import AsyncIterator

from loguru import logger

from stepwise.core.config import Settings, get_settings
from stepwise.decomposition.classifier import ComplexityClassifier
from stepwise.decomposition.generator import StepGenerator
from stepwise.decomposition.language import detect_language, is_learning_task
from stepwise.decomposition.models import (
    BreakdownResult,
    ComplexityEstimate,
    GenerationResult,
    Language,
    NormalizationResult,
    RefinementMode,
    Step,
    StreamEvent,
    VerificationResult,
)
from stepwise.decomposition.normalizer import normalize_durations
from stepwise.decomposition.refiner import StepRefiner
from stepwise.decomposition.streaming import StreamAssembler
from stepwise.decomposition.verifier import StepVerifier
from stepwise.llm.client import CompletionClient, create_completion_client


class BreakdownPipeline:
    """
    Main breakdown orchestrator.

    Example:
        >>> pipeline = BreakdownPipeline()
        >>> result = await pipeline.breakdown("Build a personal website")
        >>> result.complexity.size
        ComplexitySize.XL
        >>> [s.title for s in result.steps]
        ['Open a blank page in your site builder', ...]

        >>> # Deferred mode: flag composites now, deep-dive later
        >>> result = await pipeline.breakdown(
        ...     "Build a personal website", mode=RefinementMode.DEFERRED
        ... )
        >>> refined = await pipeline.refine_step(result.steps[2], result.title)
    """

    def __init__(
        self,
        client: CompletionClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            client: Completion collaborator. Defaults to the Anthropic client.
            settings: Optional settings override. Uses default if not provided.
        """
        self.settings = settings or get_settings()
        self.client = client or create_completion_client(self.settings)

        self.classifier = ComplexityClassifier(self.client, self.settings)
        self.generator = StepGenerator(self.client, self.settings)
        self.verifier = StepVerifier(self.client, self.settings)
        self.refiner = StepRefiner(self.client, self.settings)

    # =========================================================================
    # STAGE OPERATIONS
    # =========================================================================

    async def classify(self, title: str, description: str | None = None) -> ComplexityEstimate:
        """Estimate the size of a task."""
        return await self.classifier.classify(title, description)

    async def decompose(
        self,
        title: str,
        description: str | None = None,
        existing_steps: list[str] | None = None,
        complexity: ComplexityEstimate | None = None,
        language: Language | None = None,
        is_learning_mode: bool | None = None,
    ) -> GenerationResult:
        """Generate raw, unnormalized top-level steps."""
        complexity = complexity or await self.classify(title, description)
        return await self.generator.decompose(
            title,
            complexity,
            description=description,
            existing_steps=existing_steps,
            language=language,
            is_learning_mode=is_learning_mode,
        )

    async def verify(
        self,
        title: str,
        description: str | None,
        steps: list[Step],
        complexity: ComplexityEstimate,
    ) -> VerificationResult:
        """Run chain-of-verification (L/XL only)."""
        return await self.verifier.verify(title, description, steps, complexity)

    def normalize(
        self,
        steps: list[Step],
        target_minutes: int,
        tolerance: float | None = None,
    ) -> NormalizationResult:
        """Rescale durations toward ``target_minutes``."""
        return normalize_durations(
            steps,
            target_minutes,
            tolerance=self.settings.duration_tolerance if tolerance is None else tolerance,
            threshold=self.settings.atomic_threshold_minutes,
        )

    async def refine(
        self,
        step_title: str,
        duration_minutes: int,
        parent_title: str,
        depth: int = 0,
        max_depth: int | None = None,
    ) -> list[Step]:
        """Split one step into children (0 or 3), bounded by ``max_depth``."""
        return await self.refiner.refine(
            step_title,
            duration_minutes,
            parent_title,
            depth=depth,
            max_depth=self.settings.eager_max_depth if max_depth is None else max_depth,
        )

    # =========================================================================
    # FULL PIPELINE
    # =========================================================================

    async def breakdown(
        self,
        title: str,
        description: str | None = None,
        existing_steps: list[str] | None = None,
        mode: RefinementMode = RefinementMode.EAGER,
    ) -> BreakdownResult:
        """
        Run the complete pipeline for one task.

        Args:
            title: Task title.
            description: Optional task description.
            existing_steps: Titles already on the task, to avoid duplicates.
            mode: Eager refines composite steps now (depth-capped);
                deferred only flags them.

        Returns:
            BreakdownResult with the step tree and stage metadata.
        """
        language = detect_language(f"{title} {description or ''}")
        learning = is_learning_task(title, description)
        logger.info(f"Breaking down '{title[:60]}' (language={language.value}, mode={mode.value})")

        complexity = await self.classify(title, description)
        generation = await self.generator.decompose(
            title,
            complexity,
            description=description,
            existing_steps=existing_steps,
            language=language,
            is_learning_mode=learning,
        )

        steps, verification, was_normalized = await self._post_process(
            title, description, generation.steps, complexity, mode, language
        )

        return BreakdownResult(
            title=title,
            language=language,
            complexity=complexity,
            learning_mode=generation.learning_mode,
            mode=mode,
            steps=steps,
            verification=verification,
            was_normalized=was_normalized,
            used_fallback=generation.used_fallback,
            usage=generation.usage,
        )

    async def refine_step(
        self,
        step: Step,
        parent_title: str,
        max_depth: int | None = None,
    ) -> Step:
        """
        Deferred deep dive on one previously flagged step.

        Args:
            step: The step to expand.
            parent_title: Title of the overall task.
            max_depth: Depth cap; defaults to ``deferred_max_depth``.

        Returns:
            A copy of the step with ``children`` populated (empty when the
            step is atomic, at the cap, or refinement failed).
        """
        cap = self.settings.deferred_max_depth if max_depth is None else max_depth
        logger.info(f"Deep dive on '{step.title[:60]}' (depth={step.depth}, cap={cap})")
        return await self.refiner.refine_step(step, parent_title, max_depth=cap)

    async def stream_breakdown(
        self,
        title: str,
        description: str | None = None,
        existing_steps: list[str] | None = None,
        mode: RefinementMode = RefinementMode.EAGER,
    ) -> AsyncIterator[StreamEvent]:
        """
        Run the pipeline with incremental delivery.

        Yields:
            StreamEvent items: ``chunk``/``subtask`` while generating, then
            one ``complete`` (with the processed tree) or ``error``.
        """
        language = detect_language(f"{title} {description or ''}")
        complexity = await self.classify(title, description)

        async def finalize(steps: list[Step]) -> list[Step]:
            processed, _, _ = await self._post_process(
                title, description, steps, complexity, mode, language
            )
            return processed

        assembler = StreamAssembler(self.client, self.generator, finalize, self.settings)
        async for event in assembler.stream(
            title,
            complexity,
            description=description,
            existing_steps=existing_steps,
            language=language,
        ):
            yield event

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _post_process(
        self,
        title: str,
        description: str | None,
        steps: list[Step],
        complexity: ComplexityEstimate,
        mode: RefinementMode,
        language: Language,
    ) -> tuple[list[Step], VerificationResult, bool]:
        """Verification, normalization and (eager) refinement."""
        verification = await self.verify(title, description, steps, complexity)
        if not verification.is_valid and verification.corrected_steps:
            logger.info(f"Using {len(verification.corrected_steps)} corrected steps from verification")
            steps = verification.corrected_steps

        normalized = self.normalize(steps, complexity.total_minutes)
        if normalized.was_normalized:
            logger.debug(
                f"Normalized durations {normalized.original_sum} -> {normalized.final_sum} "
                f"(target {complexity.total_minutes})"
            )
        steps = normalized.steps

        if mode == RefinementMode.EAGER:
            steps = await self._refine_top_level(steps, title, language)

        return steps, verification, normalized.was_normalized

    async def _refine_top_level(
        self,
        steps: list[Step],
        title: str,
        language: Language,
    ) -> list[Step]:
        """Refine every composite step concurrently, keeping positions."""
        cap = self.settings.eager_max_depth

        async def refine_one(step: Step) -> Step:
            if not step.is_composite:
                return step
            return await self.refiner.refine_step(step, title, max_depth=cap, language=language)

        refined = await asyncio.gather(*(refine_one(step) for step in steps))
        return list(refined)
