"""Exception hierarchy for the breakdown pipeline.

Every stage catches these locally and applies its own fallback; none of
them is expected to reach a caller of ``BreakdownPipeline`` under normal
operation.
"""


class StepwiseError(Exception):
    """Base exception for Stepwise errors."""

    pass


class ModelError(StepwiseError):
    """The completion collaborator failed to produce a usable answer."""

    pass


class ModelUnavailable(ModelError):
    """No credentials or configuration for the model service."""

    pass


class ModelTimeout(ModelError):
    """The model call did not finish in time."""

    pass


class MalformedResponse(ModelError):
    """The model answered, but the answer could not be parsed."""

    pass


class VerificationInconclusive(StepwiseError):
    """The verifier could not reach a verdict. Treated as a pass."""

    pass


class RefinementExhausted(StepwiseError):
    """Depth cap reached. A stop condition, not a failure."""

    def __init__(self, depth: int, max_depth: int) -> None:
        super().__init__(f"refinement depth {depth} reached cap {max_depth}")
        self.depth = depth
        self.max_depth = max_depth
