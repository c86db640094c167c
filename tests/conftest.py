"""Pytest configuration and shared fixtures."""

import json
import os
from collections.abc import AsyncIterator, Callable, Generator
from typing import Any

import pytest

# Tests never talk to the real API
os.environ.pop("ANTHROPIC_API_KEY", None)
os.environ.setdefault("STEPWISE_DEBUG", "true")
os.environ.setdefault("STEPWISE_LOG_LEVEL", "DEBUG")

from stepwise.core.config import Settings, clear_settings_cache  # noqa: E402
from stepwise.core.errors import ModelUnavailable  # noqa: E402
from stepwise.core.pipeline import BreakdownPipeline  # noqa: E402
from stepwise.decomposition.classifier import size_to_minutes, size_to_time_scale  # noqa: E402
from stepwise.decomposition.models import ComplexityEstimate, ComplexitySize, Step  # noqa: E402
from stepwise.llm.client import Completion, CompletionRequest  # noqa: E402

# =============================================================================
# FAKE COMPLETION CLIENT
# =============================================================================

# System prompt openings identify which stage issued a request
STAGE_PREFIXES = {
    "You estimate how big a task is": "classifier",
    "You are an ADHD coach who breaks": "architect",
    "You are an ADHD study coach": "architect",
    "You review task breakdowns": "verifier",
    "You split one step": "refiner",
    "You are an energetic ADHD coach": "encouragement",
}

Response = str | Completion | Exception | Callable[[CompletionRequest], str]


def stage_of(request: CompletionRequest) -> str:
    for prefix, stage in STAGE_PREFIXES.items():
        if request.system_prompt.startswith(prefix):
            return stage
    raise AssertionError(f"Unknown stage for prompt: {request.system_prompt[:40]!r}")


class FakeCompletionClient:
    """
    Scripted ``CompletionClient`` for tests.

    Responses are queued per stage with ``script``; once a stage's queue
    is empty its ``default`` is used, and a stage with neither raises
    ``ModelUnavailable``. A response can be text, a ``Completion``, an
    exception to raise, or a callable taking the request.

    ``stream_chunks`` feeds ``stream``; exception items are raised in
    place.
    """

    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.queues: dict[str, list[Response]] = {}
        self.defaults: dict[str, Response] = {}
        self.requests: list[tuple[str, CompletionRequest]] = []
        self.stream_chunks: list[str | Exception] = []
        self.stream_requests: list[CompletionRequest] = []

    @property
    def is_available(self) -> bool:
        return self.available

    def script(self, stage: str, *responses: Response) -> "FakeCompletionClient":
        self.queues.setdefault(stage, []).extend(responses)
        return self

    def default(self, stage: str, response: Response) -> "FakeCompletionClient":
        self.defaults[stage] = response
        return self

    def requests_for(self, stage: str) -> list[CompletionRequest]:
        return [request for s, request in self.requests if s == stage]

    async def complete(self, request: CompletionRequest) -> Completion:
        stage = stage_of(request)
        self.requests.append((stage, request))

        queue = self.queues.get(stage)
        if queue:
            response = queue.pop(0)
        elif stage in self.defaults:
            response = self.defaults[stage]
        else:
            raise ModelUnavailable(f"No scripted response for {stage}")

        if callable(response) and not isinstance(response, Exception):
            response = response(request)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, Completion):
            return response
        return Completion(text=response, input_tokens=100, output_tokens=50, model=request.model)

    async def stream(self, request: CompletionRequest) -> AsyncIterator[str]:
        self.stream_requests.append(request)
        for chunk in self.stream_chunks:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def mock_settings() -> Generator:
    """Clear the settings cache around a test."""
    clear_settings_cache()

    yield

    clear_settings_cache()


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(_env_file=None, anthropic_api_key=None)


@pytest.fixture
def fake_client() -> FakeCompletionClient:
    """An available fake client with nothing scripted."""
    return FakeCompletionClient()


@pytest.fixture
def offline_client() -> FakeCompletionClient:
    """A fake client reporting no credentials (mock mode)."""
    return FakeCompletionClient(available=False)


@pytest.fixture
def pipeline(fake_client: FakeCompletionClient, settings: Settings) -> BreakdownPipeline:
    """Pipeline wired to the scripted fake client."""
    return BreakdownPipeline(client=fake_client, settings=settings)


@pytest.fixture
def make_estimate() -> Callable[..., ComplexityEstimate]:
    """Build a ComplexityEstimate for a size."""

    def _make(size: ComplexitySize, **overrides: Any) -> ComplexityEstimate:
        values = {
            "size": size,
            "total_minutes": size_to_minutes(size),
            "time_scale": size_to_time_scale(size),
            "model_size": size,
        }
        values.update(overrides)
        return ComplexityEstimate(**values)

    return _make


@pytest.fixture
def sample_steps() -> list[Step]:
    """Three steps summing to 12 minutes."""
    return [
        Step(title="Open the lease PDF", estimated_minutes=2, order=0),
        Step(title="List the three questions", estimated_minutes=4, order=1),
        Step(title="Write the email draft", estimated_minutes=6, order=2),
    ]


@pytest.fixture
def steps_json() -> Callable[..., str]:
    """Render ``(title, minutes)`` pairs as an architect-style JSON array."""

    def _render(*items: tuple[str, int]) -> str:
        return json.dumps(
            [
                {"title": title, "estimatedMinutes": minutes, "stepType": "mental", "order": i}
                for i, (title, minutes) in enumerate(items)
            ]
        )

    return _render


# Markers
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
