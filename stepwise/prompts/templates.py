"""
Prompt templates for Stepwise model calls.

This module provides the prompt templates used by each pipeline stage:
complexity classification, the architect breakdown (standard and
learning variants), chain-of-verification, deep-dive refinement and
encouragement messages.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# TEMPLATE MODEL
# =============================================================================


class PromptTemplate(BaseModel):
    """A reusable prompt template."""

    model_config = ConfigDict(frozen=True)

    name: str
    template: str
    description: str = ""
    variables: list[str] = Field(default_factory=list)

    def format(self, **kwargs: Any) -> str:
        """Format the template with provided values.

        Args:
            **kwargs: Template variable values.

        Returns:
            Formatted prompt string.

        Raises:
            ValueError: A declared variable was not provided.
        """
        missing = [v for v in self.variables if v not in kwargs]
        if missing:
            raise ValueError(f"Template '{self.name}' is missing variables: {missing}")
        return self.template.format(**kwargs)


LANGUAGE_INSTRUCTIONS = {
    "en": "Write every step title in English.",
    "ko": "모든 단계 제목은 한국어로 작성하세요. (Write every step title in Korean.)",
}


# =============================================================================
# COMPLEXITY CLASSIFIER
# =============================================================================


CLASSIFIER_SYSTEM_PROMPT = PromptTemplate(
    name="classifier_system",
    description="Rubric for the fast size classifier",
    template="""You estimate how big a task is for a person with ADHD.

Pick exactly one size:
- S: under 15 minutes, no preparation needed
- M: 15-60 minutes, needs one preparation step
- L: 1-4 hours, needs research or assembling materials
- XL: more than 4 hours, spans multiple sessions

When unsure between two sizes, pick the larger one.

Return ONLY a JSON object:
{{"size": "S|M|L|XL", "reasoning": "one sentence", "implied_duration_minutes": 45}}""",
)


CLASSIFIER_USER_PROMPT = PromptTemplate(
    name="classifier_user",
    template="""Task: {title}
Description: {description}""",
    variables=["title", "description"],
)


# =============================================================================
# ARCHITECT (TOP-LEVEL BREAKDOWN)
# =============================================================================


ARCHITECT_SYSTEM_PROMPT = PromptTemplate(
    name="architect_system",
    description="Standard breakdown prompt",
    template="""You are an ADHD coach who breaks tasks into hyper-specific, achievable steps optimized for dopamine-driven execution.

This task is size {size}: about {total_minutes} minutes in total, so think in {time_scale}.

CRITICAL RULES:
1. The step durations must add up to roughly {total_minutes} minutes
2. Start with the EASIEST physical action (e.g. "Open laptop" not "Research topic")
3. Every step must be real forward progress; no pure "prepare" or "gather" steps
4. Classify each step: "physical" (body action), "mental" (thinking) or "creative" (making)
5. Generate 3-7 steps
6. {language_instruction}

OUTPUT FORMAT (strict JSON array):
[
  {{"title": "Open the lease PDF", "estimatedMinutes": 2, "stepType": "physical", "order": 0}},
  {{"title": "Write the first sentence of the email", "estimatedMinutes": 5, "stepType": "creative", "order": 1}}
]

IMPORTANT: Return ONLY the JSON array. No other text.""",
    variables=["size", "total_minutes", "time_scale", "language_instruction"],
)


LEARNING_ARCHITECT_SYSTEM_PROMPT = PromptTemplate(
    name="learning_architect_system",
    description="Breakdown prompt for study and review tasks",
    template="""You are an ADHD study coach who turns study sessions into short, active-recall steps.

This study task is size {size}: about {total_minutes} minutes in total, so think in {time_scale}.

CRITICAL RULES:
1. The step durations must add up to roughly {total_minutes} minutes
2. Prefer active recall over re-reading: self-quizzing, explaining aloud, solving problems
3. Every step must be real forward progress; no pure "prepare" or "gather" steps
4. Classify each step: "physical", "mental" or "creative"
5. Tag each step with a strategyTag: "active_recall", "spaced_review", "elaboration", "practice" or "summary"
6. Give each step an interactionType: "checkbox", "flashcard", "quiz" or "timer"
7. Generate 3-7 steps
8. {language_instruction}

OUTPUT FORMAT (strict JSON array):
[
  {{"title": "Cover your notes and write the three key formulas", "estimatedMinutes": 5, "stepType": "mental", "order": 0, "strategyTag": "active_recall", "interactionType": "flashcard"}}
]

IMPORTANT: Return ONLY the JSON array. No other text.""",
    variables=["size", "total_minutes", "time_scale", "language_instruction"],
)


ARCHITECT_USER_PROMPT = PromptTemplate(
    name="architect_user",
    template="""Break down the following task into 3-7 actionable steps:

Task: {title}
Description: {description}
{existing_section}
Return ONLY a JSON array.""",
    variables=["title", "description", "existing_section"],
)


# =============================================================================
# CHAIN-OF-VERIFICATION
# =============================================================================


VERIFIER_SYSTEM_PROMPT = PromptTemplate(
    name="verifier_system",
    description="Reviewer for large breakdowns",
    template="""You review task breakdowns written for people with ADHD.

Check the breakdown against these questions:
(a) Is the total duration within 50-150% of the expected total?
(b) Does it respect the time scale ({time_scale})?
(c) Is each individual estimate realistic?
(d) Is every step genuine forward progress? Pure "prepare", "gather" or "get ready" steps fail this check.

If everything passes, return {{"isValid": true, "issues": []}}.
Otherwise return {{"isValid": false, "issues": ["..."], "correctedSteps": [{{"title": "...", "estimatedMinutes": 20, "stepType": "mental", "order": 0}}]}}

Return ONLY the JSON object.""",
    variables=["time_scale"],
)


VERIFIER_USER_PROMPT = PromptTemplate(
    name="verifier_user",
    template="""Task: {title}
Description: {description}

Expected size: {size}
Expected total: {expected_minutes} minutes ({time_scale})
Actual total: {actual_minutes} minutes across {step_count} steps
Steps longer than {threshold} minutes: {composite_count}

Breakdown:
{steps_listing}""",
    variables=[
        "title",
        "description",
        "size",
        "expected_minutes",
        "time_scale",
        "actual_minutes",
        "step_count",
        "threshold",
        "composite_count",
        "steps_listing",
    ],
)


# =============================================================================
# DEEP DIVE (RECURSIVE REFINEMENT)
# =============================================================================


REFINER_SYSTEM_PROMPT = PromptTemplate(
    name="refiner_system",
    description="Splits one composite step into exactly three children",
    template="""You split one step of a larger task into EXACTLY 3 smaller steps.

THE IRREVERSIBILITY TEST: every step must leave a tangible trace of progress
(a sentence written, a file created, an item moved). Steps that only
"prepare", "set up", "gather" or "get ready" FAIL the test.

RULES:
1. Exactly 3 steps
2. The first step must take under 2 minutes
3. The three durations must add up to about {duration_minutes} minutes
4. Classify each step: "physical", "mental" or "creative"
5. {language_instruction}

Return ONLY a JSON array:
[{{"title": "...", "estimatedMinutes": 2, "stepType": "physical"}}]""",
    variables=["duration_minutes", "language_instruction"],
)


REFINER_USER_PROMPT = PromptTemplate(
    name="refiner_user",
    template="""Overall task: {parent_title}
Step to split: {step_title} ({duration_minutes} minutes)""",
    variables=["parent_title", "step_title", "duration_minutes"],
)


# =============================================================================
# ENCOURAGEMENT
# =============================================================================


ENCOURAGEMENT_SYSTEM_PROMPT = PromptTemplate(
    name="encouragement_system",
    template="You are an energetic ADHD coach. Be brief, enthusiastic, and action-oriented. Keep responses to 1-2 sentences max.",
)


ENCOURAGEMENT_NEXT_PROMPT = PromptTemplate(
    name="encouragement_next",
    template="""The user just completed: "{completed_title}" ({completed_minutes} min)

Next up: "{next_title}" ({next_minutes} min)

Progress: {completed}/{total} steps done.

Provide a SHORT (1-2 sentences) encouraging message that:
1. Celebrates the completion with genuine excitement
2. Mentions the EXACT time for the next step: "{next_minutes} minutes"
3. Creates urgency to start immediately

CRITICAL: You MUST say "Now focus for {next_minutes} minutes!" or similar to match the timer.

Return ONLY the message text, no JSON, no formatting.""",
    variables=["completed_title", "completed_minutes", "next_title", "next_minutes", "completed", "total"],
)


ENCOURAGEMENT_FINAL_PROMPT = PromptTemplate(
    name="encouragement_final",
    template="""The user just completed the final step: "{completed_title}"

All {total} steps are now complete!

Provide a SHORT (1-2 sentences) celebration message that acknowledges their focus and persistence.

Return ONLY the message text, no JSON, no formatting.""",
    variables=["completed_title", "total"],
)


def language_instruction(language: str) -> str:
    """Output-language line for a detected language code."""
    return LANGUAGE_INSTRUCTIONS.get(language, LANGUAGE_INSTRUCTIONS["en"])
