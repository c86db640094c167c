"""Prompt templates for every model-backed stage."""

from stepwise.prompts.templates import (
    ARCHITECT_SYSTEM_PROMPT,
    CLASSIFIER_SYSTEM_PROMPT,
    LEARNING_ARCHITECT_SYSTEM_PROMPT,
    REFINER_SYSTEM_PROMPT,
    VERIFIER_SYSTEM_PROMPT,
    PromptTemplate,
    language_instruction,
)

__all__ = [
    "ARCHITECT_SYSTEM_PROMPT",
    "CLASSIFIER_SYSTEM_PROMPT",
    "LEARNING_ARCHITECT_SYSTEM_PROMPT",
    "REFINER_SYSTEM_PROMPT",
    "VERIFIER_SYSTEM_PROMPT",
    "PromptTemplate",
    "language_instruction",
]
