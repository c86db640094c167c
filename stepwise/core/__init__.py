"""Core module - pipeline, configuration, errors and logging."""

from stepwise.core.config import Settings, get_settings
from stepwise.core.errors import (
    MalformedResponse,
    ModelError,
    ModelTimeout,
    ModelUnavailable,
    RefinementExhausted,
    StepwiseError,
    VerificationInconclusive,
)
from stepwise.core.pipeline import BreakdownPipeline

__all__ = [
    "BreakdownPipeline",
    "MalformedResponse",
    "ModelError",
    "ModelTimeout",
    "ModelUnavailable",
    "RefinementExhausted",
    "Settings",
    "StepwiseError",
    "VerificationInconclusive",
    "get_settings",
]
