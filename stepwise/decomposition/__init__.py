"""Task decomposition - turning a task description into a step tree.

This module provides the stages of the breakdown pipeline:
- Complexity classification (keywords + fast model -> size estimate)
- Step generation (task -> candidate steps)
- Verification (large breakdowns -> verdict and corrections)
- Duration normalization (steps -> steps summing to a target)
- Recursive refinement (composite step -> three children)
- Stream assembly (token stream -> step events)
"""

from stepwise.decomposition.classifier import ComplexityClassifier
from stepwise.decomposition.fields import coerce_step, coerce_steps
from stepwise.decomposition.generator import StepGenerator
from stepwise.decomposition.language import detect_language, is_learning_task
from stepwise.decomposition.models import (
    BreakdownResult,
    ComplexityEstimate,
    ComplexitySize,
    GenerationResult,
    Language,
    NormalizationResult,
    RefinementMode,
    Step,
    StepStatus,
    StepType,
    StreamEvent,
    StreamEventType,
    TimeScale,
    TokenUsage,
    VerificationResult,
    approve_steps,
)
from stepwise.decomposition.normalizer import normalize_durations
from stepwise.decomposition.refiner import StepRefiner
from stepwise.decomposition.streaming import StreamAssembler
from stepwise.decomposition.verifier import StepVerifier

__all__ = [
    # Models
    "BreakdownResult",
    "ComplexityEstimate",
    "ComplexitySize",
    "GenerationResult",
    "Language",
    "NormalizationResult",
    "RefinementMode",
    "Step",
    "StepStatus",
    "StepType",
    "StreamEvent",
    "StreamEventType",
    "TimeScale",
    "TokenUsage",
    "VerificationResult",
    "approve_steps",
    # Field normalization
    "coerce_step",
    "coerce_steps",
    # Language
    "detect_language",
    "is_learning_task",
    # Stages
    "ComplexityClassifier",
    "StepGenerator",
    "StepVerifier",
    "normalize_durations",
    "StepRefiner",
    "StreamAssembler",
]
