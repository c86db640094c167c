"""Chain-of-verification for large breakdowns.

Only L and XL tasks are verified; small tasks skip the extra latency.
Verification fails open: if the model cannot produce a verdict the
breakdown is accepted as-is.
"""

from loguru import logger

from stepwise.core.config import Settings, get_settings
from stepwise.core.errors import StepwiseError, VerificationInconclusive
from stepwise.decomposition.fields import coerce_steps
from stepwise.decomposition.models import (
    ComplexityEstimate,
    Step,
    VerificationResult,
    total_minutes,
)
from stepwise.llm.client import CompletionClient, CompletionRequest
from stepwise.llm.parsing import parse_json_object
from stepwise.prompts.templates import VERIFIER_SYSTEM_PROMPT, VERIFIER_USER_PROMPT


class StepVerifier:
    """
    Re-examine a generated breakdown against the complexity estimate.

    Example:
        >>> verifier = StepVerifier(client)
        >>> verdict = await verifier.verify("Build a website", None, steps, estimate)
        >>> verdict.is_valid
        True
    """

    def __init__(
        self,
        client: CompletionClient,
        settings: Settings | None = None,
    ) -> None:
        self.client = client
        self.settings = settings or get_settings()

    async def verify(
        self,
        title: str,
        description: str | None,
        steps: list[Step],
        complexity: ComplexityEstimate,
    ) -> VerificationResult:
        """
        Judge a breakdown and optionally supply corrected steps.

        Args:
            title: Task title.
            description: Optional task description.
            steps: Candidate steps from the generator.
            complexity: Classifier estimate.

        Returns:
            VerificationResult. ``corrected_steps`` is set only when the
            model reported the breakdown invalid and supplied a usable
            replacement.
        """
        if not complexity.needs_verification:
            return VerificationResult(skipped=True)

        if not self.client.is_available:
            return VerificationResult(inconclusive=True)

        request = self._build_request(title, description, steps, complexity)

        try:
            completion = await self.client.complete(request)
            result = self._parse_verdict(completion.text)
        except StepwiseError as e:
            logger.warning(f"Verification inconclusive ({e}); accepting breakdown")
            return VerificationResult(inconclusive=True)

        if result.is_valid:
            logger.debug(f"Verification passed for '{title[:60]}'")
        else:
            logger.info(
                f"Verification rejected breakdown for '{title[:60]}': {result.issues} "
                f"(corrected={result.corrected_steps is not None})"
            )
        return result

    def _build_request(
        self,
        title: str,
        description: str | None,
        steps: list[Step],
        complexity: ComplexityEstimate,
    ) -> CompletionRequest:
        threshold = self.settings.atomic_threshold_minutes
        listing = "\n".join(
            f"{i + 1}. {s.title} - {s.estimated_minutes} min ({s.step_type.value})"
            for i, s in enumerate(steps)
        )
        return CompletionRequest(
            system_prompt=VERIFIER_SYSTEM_PROMPT.format(time_scale=complexity.time_scale.value),
            user_prompt=VERIFIER_USER_PROMPT.format(
                title=title,
                description=description or "(none)",
                size=complexity.size.value,
                expected_minutes=complexity.total_minutes,
                time_scale=complexity.time_scale.value,
                actual_minutes=total_minutes(steps),
                step_count=len(steps),
                threshold=threshold,
                composite_count=sum(1 for s in steps if s.estimated_minutes > threshold),
                steps_listing=listing,
            ),
            max_tokens=1500,
            temperature=0.2,
            model=self.settings.verifier_model,
        )

    def _parse_verdict(self, text: str) -> VerificationResult:
        data = parse_json_object(text)

        is_valid = data.get("isValid", data.get("is_valid"))
        if not isinstance(is_valid, bool):
            raise VerificationInconclusive("verdict has no boolean isValid")

        issues = data.get("issues") or []
        if not isinstance(issues, list):
            issues = [str(issues)]

        corrected = None
        raw_corrected = data.get("correctedSteps", data.get("corrected_steps"))
        if not is_valid and isinstance(raw_corrected, list):
            corrected = coerce_steps(
                raw_corrected,
                depth=0,
                threshold=self.settings.atomic_threshold_minutes,
            ) or None

        return VerificationResult(
            is_valid=is_valid,
            issues=[str(i) for i in issues],
            corrected_steps=corrected,
        )
