"""Duration normalizer - rescales sibling durations to a target total.

Pure and deterministic: inputs are never mutated, and re-normalizing an
already-normalized set against the same target is a no-op.
"""

import math

from stepwise.decomposition.models import (
    ATOMIC_THRESHOLD_MINUTES,
    NormalizationResult,
    Step,
    total_minutes,
)

DEFAULT_TOLERANCE = 0.15


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves up."""
    return int(math.floor(value + 0.5))


def within_tolerance(original_sum: int, target_minutes: int, tolerance: float) -> bool:
    """Whether ``original_sum`` is within ``tolerance`` of the target."""
    return abs(original_sum - target_minutes) / target_minutes <= tolerance


def normalize_durations(
    steps: list[Step],
    target_minutes: int,
    tolerance: float = DEFAULT_TOLERANCE,
    threshold: int = ATOMIC_THRESHOLD_MINUTES,
) -> NormalizationResult:
    """
    Scale step durations so they add up to ``target_minutes``.

    Each duration is multiplied by ``target / original_sum`` and rounded
    to the nearest minute (never below one). Rounding drift is not
    redistributed, so the final sum may differ from the target by up to
    one minute per step.

    Args:
        steps: Sibling steps to rescale.
        target_minutes: Desired total.
        tolerance: Relative drift accepted without rescaling.
        threshold: Atomicity threshold used to recompute ``is_composite``.

    Returns:
        NormalizationResult holding copies of the steps.

    Example:
        >>> result = normalize_durations(three_steps_summing_to_12, 60)
        >>> result.was_normalized, result.final_sum
        (True, 60)
    """
    copies = [step.model_copy(deep=True) for step in steps]
    original_sum = total_minutes(copies)

    if not copies or original_sum == 0 or target_minutes <= 0:
        return NormalizationResult(
            steps=copies,
            was_normalized=False,
            original_sum=original_sum,
            final_sum=original_sum,
        )

    if within_tolerance(original_sum, target_minutes, tolerance):
        return NormalizationResult(
            steps=copies,
            was_normalized=False,
            original_sum=original_sum,
            final_sum=original_sum,
        )

    scale = target_minutes / original_sum
    for step in copies:
        step.set_duration(round_half_up(step.estimated_minutes * scale), threshold)

    return NormalizationResult(
        steps=copies,
        was_normalized=True,
        original_sum=original_sum,
        final_sum=total_minutes(copies),
    )
