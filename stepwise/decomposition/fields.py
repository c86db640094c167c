"""Field normalization for raw step records returned by a model.

Models are inconsistent about naming (``estimatedMinutes`` vs
``estimated_minutes`` vs ``duration``), so every raw record passes
through ``coerce_step`` before anything else looks at it. Nothing past
this boundary sees the raw shape.
"""

import math
import re
from typing import Any

from loguru import logger

from stepwise.decomposition.models import ATOMIC_THRESHOLD_MINUTES, Step, StepType

DEFAULT_STEP_MINUTES = 5

TITLE_KEYS = ("title", "text", "name", "action", "step", "task")
DURATION_KEYS = (
    "estimatedMinutes",
    "estimated_minutes",
    "durationMinutes",
    "duration_minutes",
    "duration",
    "minutes",
    "time",
    "estimatedTime",
    "estimated_time",
)
STEP_TYPE_KEYS = ("stepType", "step_type", "type", "kind")
ORDER_KEYS = ("order", "index", "position")
STRATEGY_KEYS = ("strategyTag", "strategy_tag", "strategy")
INTERACTION_KEYS = ("interactionType", "interaction_type", "interaction")

# "12", "12.5 min", "10-15 min", "10 to 15"
MINUTES_PATTERN = re.compile(r"(\d+(?:\.\d+)?)(?:\s*(?:-|~|to)\s*(\d+(?:\.\d+)?))?")


def _first(record: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = record.get(key)
        if value is not None and value != "":
            return value
    return None


def _coerce_minutes(value: Any) -> int:
    """Parse a duration such as ``12``, ``"12 min"``, ``7.5`` or ``"10-15 min"``.

    A range becomes its mean. Non-finite numbers (``NaN``, ``Infinity``,
    both accepted by ``json.loads``) count as missing.
    """
    if isinstance(value, bool):
        return DEFAULT_STEP_MINUTES
    if isinstance(value, str):
        match = MINUTES_PATTERN.search(value)
        if match is None:
            return DEFAULT_STEP_MINUTES
        low, high = match.groups()
        value = (float(low) + float(high)) / 2 if high else float(low)
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return DEFAULT_STEP_MINUTES
    minutes = round(value)
    return minutes if minutes >= 1 else DEFAULT_STEP_MINUTES


def _coerce_step_type(value: Any) -> StepType:
    if isinstance(value, str):
        try:
            return StepType(value.strip().lower())
        except ValueError:
            pass
    return StepType.MENTAL


def coerce_step(
    raw: Any,
    index: int,
    depth: int = 0,
    threshold: int = ATOMIC_THRESHOLD_MINUTES,
) -> Step | None:
    """Convert one raw model record into a canonical ``Step``.

    Args:
        raw: A dict with any of the known field-name variants, or a bare string.
        index: Position in the list, used when no order is given.
        depth: Depth to assign.
        threshold: Atomicity threshold for ``is_composite``.

    Returns:
        The Step, or None when no title can be found.
    """
    if isinstance(raw, str):
        raw = {"title": raw}
    if not isinstance(raw, dict):
        logger.debug(f"Dropping non-record step at index {index}: {raw!r}")
        return None

    title = _first(raw, TITLE_KEYS)
    if not isinstance(title, str) or not title.strip():
        logger.debug(f"Dropping untitled step at index {index}")
        return None

    order = _first(raw, ORDER_KEYS)
    strategy = _first(raw, STRATEGY_KEYS)
    interaction = _first(raw, INTERACTION_KEYS)

    step = Step(
        title=title.strip(),
        order=order if isinstance(order, int) and not isinstance(order, bool) else index,
        step_type=_coerce_step_type(_first(raw, STEP_TYPE_KEYS)),
        depth=depth,
        strategy_tag=str(strategy) if strategy is not None else None,
        interaction_type=str(interaction) if interaction is not None else None,
    )
    step.set_duration(_coerce_minutes(_first(raw, DURATION_KEYS)), threshold)
    return step


def coerce_steps(
    raw_steps: list[Any],
    depth: int = 0,
    threshold: int = ATOMIC_THRESHOLD_MINUTES,
    limit: int | None = None,
) -> list[Step]:
    """Coerce a list of raw records, dropping unusable ones.

    Sibling order is reassigned to the surviving positions.
    """
    steps: list[Step] = []
    for index, raw in enumerate(raw_steps):
        step = coerce_step(raw, index, depth=depth, threshold=threshold)
        if step is not None:
            steps.append(step)
        if limit is not None and len(steps) >= limit:
            break

    steps.sort(key=lambda s: s.order)
    for position, step in enumerate(steps):
        step.order = position
    return steps
