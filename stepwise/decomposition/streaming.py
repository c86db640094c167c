"""Stream assembler - incremental delivery of a breakdown.

Wraps the architect call when the caller wants steps before the full
answer is available. Every delta is forwarded as a ``chunk`` event;
each time another flat ``{...}`` record with a title closes in the
buffer, it is emitted as a ``subtask`` event. When the stream ends the
whole buffer is parsed and handed to the same post-processing as the
non-streaming path, then one ``complete`` event carries the final tree.

If the final parse fails an ``error`` event is emitted instead of
``complete``; ``subtask`` events already sent are not retracted.
"""

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable

from loguru import logger

from stepwise.core.config import Settings, get_settings
from stepwise.core.errors import ModelUnavailable, StepwiseError
from stepwise.decomposition.fields import coerce_step
from stepwise.decomposition.generator import StepGenerator
from stepwise.decomposition.language import detect_language, is_learning_task
from stepwise.decomposition.models import (
    ComplexityEstimate,
    Language,
    Step,
    StreamEvent,
)
from stepwise.llm.client import CompletionClient
from stepwise.llm.parsing import find_complete_records

Finalizer = Callable[[list[Step]], Awaitable[list[Step]]]

REPLAY_CHUNK_SIZE = 24


async def replay_as_deltas(text: str, chunk_size: int = REPLAY_CHUNK_SIZE) -> AsyncIterator[str]:
    """Yield ``text`` in fixed-size slices, as if it were streamed."""
    for start in range(0, len(text), chunk_size):
        yield text[start : start + chunk_size]
        await asyncio.sleep(0)


class StreamAssembler:
    """
    Assemble a streamed architect answer into step events.

    Example:
        >>> assembler = StreamAssembler(client, generator, finalize)
        >>> async for event in assembler.stream("Build a website", estimate):
        ...     print(event.type)
        chunk
        ...
        subtask
        ...
        complete
    """

    def __init__(
        self,
        client: CompletionClient,
        generator: StepGenerator,
        finalize: Finalizer,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the assembler.

        Args:
            client: Completion collaborator providing the delta stream.
            generator: Architect used to build the request and the template.
            finalize: Post-processing applied to the parsed steps
                (verification, normalization, eager refinement).
            settings: Optional settings override.
        """
        self.client = client
        self.generator = generator
        self.finalize = finalize
        self.settings = settings or get_settings()

    async def stream(
        self,
        title: str,
        complexity: ComplexityEstimate,
        description: str | None = None,
        existing_steps: list[str] | None = None,
        language: Language | None = None,
        is_learning_mode: bool | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Stream a breakdown as events.

        Yields:
            ``chunk`` per delta, ``subtask`` per newly completed record,
            then exactly one ``complete`` or ``error`` event.
        """
        language = language or detect_language(f"{title} {description or ''}")
        learning = is_learning_task(title, description) if is_learning_mode is None else is_learning_mode

        if self.client.is_available:
            request = self.generator.build_request(
                title,
                complexity,
                description=description,
                existing_steps=existing_steps,
                language=language,
                learning=learning,
            )
            deltas = self.client.stream(request)
        else:
            logger.info("Model unavailable, replaying template breakdown")
            deltas = self._template_deltas(title)
            existing_steps = None

        state = _StreamState()
        try:
            async for event in self._consume(deltas, state):
                yield event
        except ModelUnavailable as e:
            if state.received_any:
                logger.error(f"Breakdown stream interrupted: {e}")
                yield StreamEvent.error(f"Model stream interrupted: {e}")
                return
            logger.warning(f"Model unavailable ({e}), replaying template breakdown")
            state = _StreamState()
            async for event in self._consume(self._template_deltas(title), state):
                yield event
            existing_steps = None
        except StepwiseError as e:
            logger.error(f"Breakdown stream failed: {e}")
            yield StreamEvent.error(f"Model stream failed: {e}")
            return

        async for event in self._finish(state.buffer, existing_steps):
            yield event

    async def _consume(
        self,
        deltas: AsyncIterator[str],
        state: "_StreamState",
    ) -> AsyncIterator[StreamEvent]:
        async for delta in deltas:
            state.received_any = True
            state.buffer += delta
            yield StreamEvent.chunk(delta)

            records = find_complete_records(state.buffer)
            while len(records) > state.emitted:
                step = coerce_step(
                    records[state.emitted],
                    state.emitted,
                    threshold=self.settings.atomic_threshold_minutes,
                )
                state.emitted += 1
                if step is not None:
                    yield StreamEvent.subtask(step)

    async def _finish(
        self,
        buffer: str,
        existing_steps: list[str] | None,
    ) -> AsyncIterator[StreamEvent]:
        try:
            steps = self.generator.parse_steps(buffer, existing_steps)
        except StepwiseError as e:
            logger.error(f"Could not assemble streamed breakdown: {e}")
            yield StreamEvent.error(f"Failed to parse breakdown: {e}")
            return

        final = await self.finalize(steps)
        logger.info(f"Streamed breakdown complete with {len(final)} steps")
        yield StreamEvent.complete(final)

    def _template_deltas(self, title: str) -> AsyncIterator[str]:
        steps = self.generator.template_steps(title)
        payload = json.dumps(
            [
                {
                    "title": s.title,
                    "estimatedMinutes": s.estimated_minutes,
                    "stepType": s.step_type.value,
                    "order": s.order,
                }
                for s in steps
            ],
            ensure_ascii=False,
        )
        return replay_as_deltas(payload)


class _StreamState:
    """Mutable buffer shared between the consume loop and its caller."""

    def __init__(self) -> None:
        self.buffer = ""
        self.emitted = 0
        self.received_any = False
