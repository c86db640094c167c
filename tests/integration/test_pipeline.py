"""Integration tests for the breakdown pipeline."""

import asyncio
import json
import re

import pytest

from stepwise.core.config import Settings
from stepwise.core.pipeline import BreakdownPipeline
from stepwise.decomposition.models import (
    ComplexitySize,
    Language,
    RefinementMode,
    StreamEventType,
)
from stepwise.llm.client import CompletionRequest

pytestmark = pytest.mark.integration

WEBSITE_STEPS = [
    ("Open a blank page in the site builder", 4),
    ("Write the headline and one-line bio", 20),
    ("Draft the About section", 40),
    ("Add three project cards", 30),
    ("Publish and send the link to one friend", 8),
]

_STEP_RE = re.compile(r"Step to split: (.+) \((\d+) minutes\)")


def split_into_thirds(request: CompletionRequest) -> str:
    """Refiner answer naming each child after its parent."""
    parent, minutes = _STEP_RE.search(request.user_prompt).groups()
    third = int(minutes) // 3 or 1
    return json.dumps(
        [
            {"title": f"{parent} / part {i}", "estimatedMinutes": third, "stepType": "mental"}
            for i in range(1, 4)
        ]
    )


class TestBreakdownPipeline:
    """Integration tests for BreakdownPipeline.breakdown."""

    @pytest.mark.asyncio
    async def test_xl_website_eager(self, pipeline, fake_client, steps_json) -> None:
        fake_client.script("classifier", '{"size": "XL", "reasoning": "multi-session project"}')
        fake_client.script("architect", steps_json(*WEBSITE_STEPS))
        fake_client.script("verifier", '{"isValid": true, "issues": []}')
        fake_client.default("refiner", split_into_thirds)

        result = await pipeline.breakdown("Build a personal website")

        assert result.language == Language.ENGLISH
        assert result.complexity.size == ComplexitySize.XL
        assert not result.learning_mode
        assert not result.verification.skipped
        assert result.was_normalized
        assert abs(sum(s.estimated_minutes for s in result.steps) - 450) <= len(result.steps)
        assert [s.title for s in result.steps] == [title for title, _ in WEBSITE_STEPS]

        for step in result.steps:
            assert step.is_composite
            assert len(step.children) == 3
            assert all(child.depth == 1 for child in step.children)
            assert all(child.children == [] for child in step.children)
            assert all(child.title.startswith(step.title) for child in step.children)

    @pytest.mark.asyncio
    async def test_verifier_corrections_replace_steps(self, pipeline, fake_client, steps_json) -> None:
        fake_client.script("classifier", '{"size": "L"}')
        fake_client.script("architect", steps_json(("Gather materials", 5), ("Get ready", 5)))
        fake_client.script(
            "verifier",
            json.dumps(
                {
                    "isValid": False,
                    "issues": ["Steps are preparation only"],
                    "correctedSteps": [
                        {"title": "Write the first paragraph", "estimatedMinutes": 60},
                        {"title": "Write the findings section", "estimatedMinutes": 90},
                        {"title": "Send the draft to your manager", "estimatedMinutes": 30},
                    ],
                }
            ),
        )

        result = await pipeline.breakdown("Write the quarterly report", mode=RefinementMode.DEFERRED)

        assert not result.verification.is_valid
        assert [s.title for s in result.steps] == [
            "Write the first paragraph",
            "Write the findings section",
            "Send the draft to your manager",
        ]
        assert sum(s.estimated_minutes for s in result.steps) == 180
        assert not result.was_normalized

    @pytest.mark.asyncio
    async def test_small_task_skips_verification(self, pipeline, fake_client, steps_json) -> None:
        fake_client.script("classifier", '{"size": "S"}')
        fake_client.script("architect", steps_json(("Open the lease PDF", 2), ("Write the email", 6), ("Send it", 1)))

        result = await pipeline.breakdown("Email my landlord about the lease")

        assert result.complexity.total_minutes == 15
        assert result.verification.skipped
        assert fake_client.requests_for("verifier") == []
        assert fake_client.requests_for("refiner") == []
        assert [s.estimated_minutes for s in result.steps] == [3, 10, 2]

    @pytest.mark.asyncio
    async def test_korean_study_task(self, pipeline, fake_client) -> None:
        fake_client.script("classifier", '{"size": "M"}')
        fake_client.script(
            "architect",
            json.dumps(
                [
                    {"title": "교재 덮고 공식 세 개 적기", "estimatedMinutes": 5, "strategyTag": "active_recall"},
                    {"title": "예제 1번 풀기", "estimatedMinutes": 60, "strategyTag": "practice"},
                    {"title": "틀린 부분 표시하기", "estimatedMinutes": 55, "strategyTag": "review"},
                ],
                ensure_ascii=False,
            ),
        )
        fake_client.script("verifier", '{"isValid": true}')

        result = await pipeline.breakdown("복습: 미적분 3단원", mode=RefinementMode.DEFERRED)

        assert result.language == Language.KOREAN
        assert result.learning_mode
        assert result.complexity.size == ComplexitySize.L
        assert [s.strategy_tag for s in result.steps] == ["active_recall", "practice", "review"]
        architect = fake_client.requests_for("architect")[0]
        assert architect.system_prompt.startswith("You are an ADHD study coach")

    @pytest.mark.asyncio
    async def test_deferred_then_deep_dive(self, pipeline, fake_client, steps_json) -> None:
        fake_client.default("classifier", '{"size": "M"}')
        fake_client.script("architect", steps_json(("Open the spreadsheet", 2), ("Enter last month's costs", 43)))
        fake_client.default("refiner", split_into_thirds)

        result = await pipeline.breakdown("Sort out the budget", mode=RefinementMode.DEFERRED)

        assert fake_client.requests_for("refiner") == []
        composite = [s for s in result.steps if s.is_composite]
        assert [s.title for s in composite] == ["Enter last month's costs"]
        assert composite[0].children == []

        refined = await pipeline.refine_step(composite[0], result.title)

        depths = [node.depth for node in refined.iter_tree()]
        assert max(depths) <= pipeline.settings.deferred_max_depth
        assert len(refined.children) == 3
        assert any(child.children for child in refined.children)

    @pytest.mark.asyncio
    async def test_eager_refinement_keeps_positions(self, fake_client, steps_json) -> None:
        settings = Settings(_env_file=None, eager_max_depth=1)
        pipeline = BreakdownPipeline(client=fake_client, settings=settings)
        fake_client.default("classifier", '{"size": "M"}')
        fake_client.script(
            "architect",
            steps_json(("First", 15), ("Second", 3), ("Third", 15), ("Fourth", 12)),
        )
        fake_client.default("refiner", split_into_thirds)

        result = await pipeline.breakdown("Sort out the garage")

        assert [s.title for s in result.steps] == ["First", "Second", "Third", "Fourth"]
        for step in result.steps:
            if step.is_composite:
                assert all(c.title.startswith(step.title) for c in step.children)
            else:
                assert step.children == []

    @pytest.mark.asyncio
    async def test_mock_mode_end_to_end(self, offline_client, settings) -> None:
        pipeline = BreakdownPipeline(client=offline_client, settings=settings)

        result = await pipeline.breakdown("Build a personal website")

        assert result.used_fallback
        assert result.complexity.size == ComplexitySize.XL
        assert result.verification.inconclusive
        assert len(result.steps) == 5
        assert sum(s.estimated_minutes for s in result.steps) == 450
        assert all(s.children == [] for s in result.steps)
        assert offline_client.requests == []

    @pytest.mark.asyncio
    async def test_concurrent_breakdowns_are_independent(self, offline_client, settings) -> None:
        pipeline = BreakdownPipeline(client=offline_client, settings=settings)

        first, second = await asyncio.gather(
            pipeline.breakdown("Build a personal website"),
            pipeline.breakdown("Email my landlord"),
        )

        assert first.complexity.size == ComplexitySize.XL
        assert second.complexity.size == ComplexitySize.M
        assert {s.id for s in first.steps}.isdisjoint({s.id for s in second.steps})


class TestPipelineStages:
    """Stage operations exposed on the pipeline."""

    @pytest.mark.asyncio
    async def test_decompose_then_normalize(self, pipeline, fake_client, steps_json) -> None:
        fake_client.script("classifier", '{"size": "L"}')
        fake_client.script("architect", steps_json(("Outline", 4), ("Draft", 4), ("Edit", 4)))

        generation = await pipeline.decompose("Write the quarterly report")
        normalized = pipeline.normalize(generation.steps, 60)

        assert [s.estimated_minutes for s in generation.steps] == [4, 4, 4]
        assert normalized.was_normalized
        assert [s.estimated_minutes for s in normalized.steps] == [20, 20, 20]

    @pytest.mark.asyncio
    async def test_refine_uses_eager_cap_by_default(self, pipeline, fake_client) -> None:
        fake_client.default("refiner", split_into_thirds)

        children = await pipeline.refine("Draft the About page", 45, "Build a personal website")

        assert [c.depth for c in children] == [1, 1, 1]
        assert all(c.children == [] for c in children)


class TestStreamBreakdown:
    """Streaming through the whole pipeline."""

    @pytest.mark.asyncio
    async def test_stream_complete_is_processed(self, pipeline, fake_client, steps_json) -> None:
        fake_client.script("classifier", '{"size": "M"}')
        fake_client.default("refiner", split_into_thirds)
        text = steps_json(("Open the garage door", 3), ("Sort the shelf", 6), ("Sweep", 3))
        fake_client.stream_chunks = [text[i : i + 25] for i in range(0, len(text), 25)]

        events = [e async for e in pipeline.stream_breakdown("Sort out the garage")]

        subtasks = [e for e in events if e.type == StreamEventType.SUBTASK]
        assert [s.payload["subtask"]["estimatedMinutes"] for s in subtasks] == [3, 6, 3]
        complete = events[-1]
        assert complete.type == StreamEventType.COMPLETE
        final = complete.payload["subtasks"]
        assert [s["estimatedMinutes"] for s in final] == [11, 23, 11]
        assert all(len(s["children"]) == 3 for s in final)

    @pytest.mark.asyncio
    async def test_stream_mock_mode(self, offline_client, settings) -> None:
        pipeline = BreakdownPipeline(client=offline_client, settings=settings)

        events = [e async for e in pipeline.stream_breakdown("Clean the kitchen")]

        assert [e.type for e in events].count(StreamEventType.SUBTASK) == 5
        assert events[-1].type == StreamEventType.COMPLETE


class TestModelOutputRobustness:
    """Odd model answers degrade to defaults instead of crashing the pipeline."""

    @pytest.mark.asyncio
    async def test_custom_threshold_drives_eager_refinement(self, fake_client, steps_json) -> None:
        settings = Settings(_env_file=None, anthropic_api_key=None, atomic_threshold_minutes=4)
        pipeline = BreakdownPipeline(client=fake_client, settings=settings)
        fake_client.script("classifier", '{"size": "S"}')
        fake_client.script("architect", steps_json(("Find the lease", 5), ("Write the email", 5), ("Send it", 5)))
        fake_client.default("refiner", split_into_thirds)

        result = await pipeline.breakdown("Email my landlord about the lease")

        assert not result.was_normalized
        assert all(s.is_composite for s in result.steps)
        assert all(len(s.children) == 3 for s in result.steps)
        assert all(s["isComposite"] for s in result.to_dict()["steps"])

    @pytest.mark.asyncio
    async def test_non_finite_minutes_do_not_break_breakdown(self, pipeline, fake_client) -> None:
        fake_client.script("classifier", '{"size": "M"}')
        fake_client.script(
            "architect",
            '[{"title": "Open the report", "estimatedMinutes": NaN}, '
            '{"title": "Write the summary", "estimatedMinutes": 40}]',
        )
        fake_client.default(
            "refiner",
            '[{"title": "Outline", "estimatedMinutes": Infinity}, '
            '{"title": "Draft", "estimatedMinutes": -Infinity}, '
            '{"title": "Polish", "estimatedMinutes": 10}]',
        )

        result = await pipeline.breakdown("Write the report")

        assert not result.used_fallback
        assert [s.title for s in result.steps] == ["Open the report", "Write the summary"]
        for step in result.steps:
            if step.is_composite:
                assert [c.title for c in step.children] == ["Outline", "Draft", "Polish"]
                assert sum(c.estimated_minutes for c in step.children) <= step.estimated_minutes + 3

    @pytest.mark.asyncio
    async def test_non_finite_minutes_in_stream(self, fake_client, settings) -> None:
        pipeline = BreakdownPipeline(client=fake_client, settings=settings)
        fake_client.script("classifier", '{"size": "S"}')
        text = '[{"title": "Open the lease PDF", "estimatedMinutes": NaN}, {"title": "Send it", "estimatedMinutes": 2}]'
        fake_client.stream_chunks = [text[i : i + 20] for i in range(0, len(text), 20)]

        events = [e async for e in pipeline.stream_breakdown("Email my landlord", mode=RefinementMode.DEFERRED)]

        subtasks = [e for e in events if e.type == StreamEventType.SUBTASK]
        assert subtasks[0].payload["subtask"]["estimatedMinutes"] == 5
        assert events[-1].type == StreamEventType.COMPLETE
