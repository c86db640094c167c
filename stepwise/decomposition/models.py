"""Pydantic models for task decomposition.

This module defines the data structures shared by every pipeline stage:
the ``Step`` tree node, the complexity estimate, and the result records
returned by the generator, verifier, normalizer and stream assembler.
"""

from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

ATOMIC_THRESHOLD_MINUTES = 10


# =============================================================================
# ENUMS
# =============================================================================


class StepType(str, Enum):
    """Kind of effort a step asks for."""

    PHYSICAL = "physical"
    MENTAL = "mental"
    CREATIVE = "creative"


class StepStatus(str, Enum):
    """Approval state of a step, independent of completion."""

    DRAFT = "draft"
    ACTIVE = "active"


class ComplexitySize(str, Enum):
    """Coarse size category, ordered S < M < L < XL."""

    S = "S"
    M = "M"
    L = "L"
    XL = "XL"

    @property
    def rank(self) -> int:
        return _SIZE_ORDER.index(self)

    @classmethod
    def largest(cls, *sizes: "ComplexitySize | None") -> "ComplexitySize":
        """Pessimistic merge: the largest of the given sizes (None ignored)."""
        present = [s for s in sizes if s is not None]
        if not present:
            return cls.M
        return max(present, key=lambda s: s.rank)


_SIZE_ORDER = [ComplexitySize.S, ComplexitySize.M, ComplexitySize.L, ComplexitySize.XL]


class TimeScale(str, Enum):
    """Unit the user should think of the task in."""

    MINUTES = "minutes"
    HOURS = "hours"


class Language(str, Enum):
    """Detected language of the task text."""

    ENGLISH = "en"
    KOREAN = "ko"


class RefinementMode(str, Enum):
    """When composite steps get expanded."""

    EAGER = "eager"
    DEFERRED = "deferred"


class StreamEventType(str, Enum):
    """Event kinds emitted by the stream assembler."""

    CHUNK = "chunk"
    SUBTASK = "subtask"
    COMPLETE = "complete"
    ERROR = "error"


# =============================================================================
# STEP TREE
# =============================================================================


class Step(BaseModel):
    """One node of the generated action tree.

    Serialized with camelCase keys (``estimatedMinutes``, ``isComposite``)
    so the payload matches what task stores and clients expect.

    Example:
        >>> step = Step(title="Open the lease PDF", estimated_minutes=2)
        >>> step.is_composite
        False
        >>> step.set_duration(25)
        >>> step.is_composite
        True
    """

    model_config = ConfigDict(
        frozen=False,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique step identifier",
    )
    title: str = Field(
        ...,
        min_length=1,
        description="Step title",
    )
    order: int = Field(
        default=0,
        description="Sibling order",
    )
    estimated_minutes: int = Field(
        default=5,
        ge=1,
        description="Estimated duration in minutes",
    )
    step_type: StepType = Field(
        default=StepType.MENTAL,
        description="Physical, mental or creative effort",
    )
    status: StepStatus = Field(
        default=StepStatus.DRAFT,
        description="Draft until the batch is approved",
    )
    is_composite: bool = Field(
        default=False,
        description="True when the duration exceeds the atomicity threshold",
    )
    depth: int = Field(
        default=0,
        ge=0,
        description="Recursion depth from the root breakdown",
    )
    children: list["Step"] = Field(
        default_factory=list,
        description="Finer-grained steps, populated by refinement",
    )
    strategy_tag: str | None = Field(
        default=None,
        description="Study strategy (learning mode only)",
    )
    interaction_type: str | None = Field(
        default=None,
        description="How the user checks the step off (learning mode only)",
    )

    @model_validator(mode="before")
    @classmethod
    def _default_composite(cls, data: Any) -> Any:
        """Derive ``is_composite`` from the duration when it is not given.

        An explicit flag is kept, so copies and re-validation preserve a
        flag computed by ``set_duration`` with a custom threshold.
        """
        if not isinstance(data, dict) or "is_composite" in data or "isComposite" in data:
            return data
        minutes = data.get("estimated_minutes", data.get("estimatedMinutes"))
        if isinstance(minutes, int) and not isinstance(minutes, bool):
            data = {**data, "is_composite": minutes > ATOMIC_THRESHOLD_MINUTES}
        return data

    def set_duration(
        self,
        minutes: int,
        threshold: int = ATOMIC_THRESHOLD_MINUTES,
    ) -> None:
        """Assign a new duration and recompute ``is_composite``.

        Args:
            minutes: New duration, clamped to at least one minute.
            threshold: Atomicity threshold in minutes.
        """
        self.estimated_minutes = max(1, int(minutes))
        self.is_composite = self.estimated_minutes > threshold

    def iter_tree(self):
        """Yield this step and all descendants, depth-first."""
        yield self
        for child in self.children:
            yield from child.iter_tree()

    def to_dict(self) -> dict[str, Any]:
        """Convert to a camelCase dictionary for serialization."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def total_minutes(steps: list[Step]) -> int:
    """Sum of the steps' own durations (children not included)."""
    return sum(step.estimated_minutes for step in steps)


def approve_steps(steps: list[Step]) -> list[Step]:
    """Return copies of a draft tree with every node set to ``active``."""
    approved = [step.model_copy(deep=True) for step in steps]
    for root in approved:
        for node in root.iter_tree():
            node.status = StepStatus.ACTIVE
    return approved


# =============================================================================
# STAGE RESULTS
# =============================================================================


class ComplexityEstimate(BaseModel):
    """Ephemeral size estimate for a task."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        protected_namespaces=(),
    )

    size: ComplexitySize
    total_minutes: int = Field(ge=1)
    time_scale: TimeScale
    rule_size: ComplexitySize | None = Field(
        default=None,
        description="Largest size matched by the keyword rules",
    )
    model_size: ComplexitySize = Field(
        default=ComplexitySize.M,
        description="Size reported by the classification model",
    )
    reasoning: str = ""
    model_implied_minutes: int | None = None

    @property
    def needs_verification(self) -> bool:
        return self.size in (ComplexitySize.L, ComplexitySize.XL)


class TokenUsage(BaseModel):
    """Token usage and estimated cost of a model call."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0


class GenerationResult(BaseModel):
    """Raw, unnormalized architect output."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    steps: list[Step]
    learning_mode: bool = False
    used_fallback: bool = False
    usage: TokenUsage = Field(default_factory=TokenUsage)


class VerificationResult(BaseModel):
    """Verdict of the chain-of-verification pass."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    is_valid: bool = True
    issues: list[str] = Field(default_factory=list)
    corrected_steps: list[Step] | None = None
    skipped: bool = False
    inconclusive: bool = False


class NormalizationResult(BaseModel):
    """Output of ``normalize_durations``."""

    steps: list[Step]
    was_normalized: bool
    original_sum: int
    final_sum: int


class BreakdownResult(BaseModel):
    """Everything the pipeline produced for one task."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    title: str
    language: Language
    complexity: ComplexityEstimate
    learning_mode: bool = False
    mode: RefinementMode = RefinementMode.EAGER
    steps: list[Step]
    verification: VerificationResult = Field(default_factory=VerificationResult)
    was_normalized: bool = False
    used_fallback: bool = False
    usage: TokenUsage = Field(default_factory=TokenUsage)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a camelCase dictionary for serialization."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class StreamEvent(BaseModel):
    """One event of the streaming breakdown."""

    type: StreamEventType
    payload: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def chunk(cls, text: str) -> "StreamEvent":
        return cls(type=StreamEventType.CHUNK, payload={"text": text})

    @classmethod
    def subtask(cls, step: Step) -> "StreamEvent":
        return cls(type=StreamEventType.SUBTASK, payload={"subtask": step.to_dict()})

    @classmethod
    def complete(cls, steps: list[Step], **extra: Any) -> "StreamEvent":
        return cls(
            type=StreamEventType.COMPLETE,
            payload={"subtasks": [s.to_dict() for s in steps], **extra},
        )

    @classmethod
    def error(cls, message: str) -> "StreamEvent":
        return cls(type=StreamEventType.ERROR, payload={"error": message})

    def to_message(self) -> dict[str, Any]:
        """Flatten into the wire shape ``{"type": ..., **payload}``."""
        return {"type": self.type.value, **self.payload}
