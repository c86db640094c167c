"""Unit tests for recursive refinement (deep dive)."""

import json

import pytest

from stepwise.core.errors import MalformedResponse
from stepwise.decomposition.models import Step
from stepwise.decomposition.refiner import CHILDREN_PER_STEP, StepRefiner
from stepwise.llm.client import CompletionRequest


def children_json(*minutes: int, prefix: str = "Child") -> str:
    return json.dumps(
        [
            {"title": f"{prefix} {i}", "estimatedMinutes": m, "stepType": "physical"}
            for i, m in enumerate(minutes)
        ]
    )


def thirty_minute_children(request: CompletionRequest) -> str:
    """Always three 30 minute children, whatever the parent."""
    return children_json(30, 30, 30)


def max_depth_of(steps: list[Step]) -> int:
    return max((node.depth for step in steps for node in step.iter_tree()), default=-1)


class TestRefine:
    """Tests for StepRefiner.refine."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("minutes", [1, 5, 10])
    async def test_atomic_step_has_no_children(self, fake_client, settings, minutes: int) -> None:
        refiner = StepRefiner(fake_client, settings)

        children = await refiner.refine("Open the doc", minutes, "Write a report", depth=0, max_depth=3)

        assert children == []
        assert fake_client.requests == []

    @pytest.mark.asyncio
    async def test_forty_five_minutes_at_depth_cap_one(self, fake_client, settings) -> None:
        """Three children at depth 1; a composite child is not refined again."""
        fake_client.script("refiner", children_json(1, 24, 20))
        refiner = StepRefiner(fake_client, settings)

        children = await refiner.refine("Draft the About page", 45, "Build a personal website", depth=0, max_depth=1)

        assert len(children) == CHILDREN_PER_STEP
        assert all(c.depth == 1 for c in children)
        assert sum(c.estimated_minutes for c in children) == 45
        assert [c.is_composite for c in children] == [False, True, True]
        assert all(c.children == [] for c in children)
        assert len(fake_client.requests_for("refiner")) == 1

    @pytest.mark.asyncio
    async def test_children_normalized_to_parent(self, fake_client, settings) -> None:
        fake_client.script("refiner", children_json(2, 4, 6))
        refiner = StepRefiner(fake_client, settings)

        children = await refiner.refine("Write the intro", 60, "Write a report", max_depth=1)

        assert [c.estimated_minutes for c in children] == [10, 20, 30]

    @pytest.mark.asyncio
    async def test_non_finite_child_minutes_use_default(self, fake_client, settings) -> None:
        fake_client.script(
            "refiner",
            '[{"title": "A", "estimatedMinutes": Infinity}, {"title": "B", "estimatedMinutes": NaN}, '
            '{"title": "C", "estimatedMinutes": 10}]',
        )
        refiner = StepRefiner(fake_client, settings)

        children = await refiner.refine("Write the intro", 40, "Write a report", max_depth=1)

        assert [c.estimated_minutes for c in children] == [10, 10, 20]

    @pytest.mark.asyncio
    async def test_depth_follows_parent(self, fake_client, settings) -> None:
        fake_client.script("refiner", children_json(2, 3, 5))
        refiner = StepRefiner(fake_client, settings)

        children = await refiner.refine("Outline section two", 12, "Write a report", depth=2, max_depth=3)

        assert [c.depth for c in children] == [3, 3, 3]

    @pytest.mark.asyncio
    async def test_recurses_into_composite_children(self, fake_client, settings) -> None:
        fake_client.default("refiner", children_json(20, 20, 20))
        refiner = StepRefiner(fake_client, settings)

        children = await refiner.refine("Write the report body", 60, "Write a report", depth=0, max_depth=2)

        assert [c.estimated_minutes for c in children] == [20, 20, 20]
        for child in children:
            assert [g.depth for g in child.children] == [2, 2, 2]
            assert [g.estimated_minutes for g in child.children] == [7, 7, 7]
            assert all(g.children == [] for g in child.children)
        assert len(fake_client.requests_for("refiner")) == 4

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_depth", [0, 1, 2, 3])
    async def test_recursion_terminates_at_cap(self, fake_client, settings, max_depth: int) -> None:
        fake_client.default("refiner", thirty_minute_children)
        refiner = StepRefiner(fake_client, settings)

        children = await refiner.refine("Renovate the kitchen", 500, "Renovate the flat", depth=0, max_depth=max_depth)

        if max_depth == 0:
            assert children == []
        else:
            assert max_depth_of(children) == max_depth

    @pytest.mark.asyncio
    async def test_step_at_cap_is_not_refined(self, fake_client, settings) -> None:
        refiner = StepRefiner(fake_client, settings)

        children = await refiner.refine("Write the intro", 60, "Write a report", depth=1, max_depth=1)

        assert children == []
        assert fake_client.requests == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failure", [MalformedResponse("bad"), "no json here", "[]"])
    async def test_failure_returns_empty(self, fake_client, settings, failure) -> None:
        fake_client.script("refiner", failure)
        refiner = StepRefiner(fake_client, settings)

        assert await refiner.refine("Write the intro", 60, "Write a report") == []

    @pytest.mark.asyncio
    async def test_extra_children_truncated(self, fake_client, settings) -> None:
        fake_client.script("refiner", children_json(1, 2, 3, 4, 5))
        refiner = StepRefiner(fake_client, settings)

        children = await refiner.refine("Write the intro", 12, "Write a report")

        assert [c.title for c in children] == ["Child 0", "Child 1", "Child 2"]

    @pytest.mark.asyncio
    async def test_offline_client_returns_empty(self, offline_client, settings) -> None:
        refiner = StepRefiner(offline_client, settings)

        assert await refiner.refine("Write the intro", 60, "Write a report") == []

    @pytest.mark.asyncio
    async def test_request_names_parent_and_duration(self, fake_client, settings) -> None:
        fake_client.script("refiner", children_json(1, 5, 6))
        refiner = StepRefiner(fake_client, settings)

        await refiner.refine("Write the intro", 12, "Write a report")

        request = fake_client.requests_for("refiner")[0]
        assert request.model == settings.refiner_model
        assert "Overall task: Write a report" in request.user_prompt
        assert "Step to split: Write the intro (12 minutes)" in request.user_prompt
        assert "about 12 minutes" in request.system_prompt


class TestRefineStep:
    """Tests for StepRefiner.refine_step."""

    @pytest.mark.asyncio
    async def test_returns_copy_with_children(self, fake_client, settings) -> None:
        fake_client.script("refiner", children_json(1, 9, 10))
        refiner = StepRefiner(fake_client, settings)
        step = Step(title="Write the intro", estimated_minutes=20)

        refined = await refiner.refine_step(step, "Write a report", max_depth=3)

        assert refined.id == step.id
        assert len(refined.children) == 3
        assert step.children == []

    @pytest.mark.asyncio
    async def test_children_inherit_learning_fields(self, fake_client, settings) -> None:
        fake_client.script(
            "refiner",
            json.dumps(
                [
                    {"title": "Cover the notes", "estimatedMinutes": 1},
                    {"title": "Write formula one", "estimatedMinutes": 7, "strategyTag": "spaced"},
                    {"title": "Check against the book", "estimatedMinutes": 7},
                ]
            ),
        )
        refiner = StepRefiner(fake_client, settings)
        step = Step(
            title="Recall the key formulas",
            estimated_minutes=15,
            strategy_tag="active_recall",
            interaction_type="flashcard",
        )

        refined = await refiner.refine_step(step, "Study chapter 4", max_depth=1)

        assert [c.strategy_tag for c in refined.children] == ["active_recall", "spaced", "active_recall"]
        assert all(c.interaction_type == "flashcard" for c in refined.children)

    @pytest.mark.asyncio
    async def test_atomic_step_unchanged(self, fake_client, settings) -> None:
        refiner = StepRefiner(fake_client, settings)
        step = Step(title="Open the doc", estimated_minutes=3)

        refined = await refiner.refine_step(step, "Write a report", max_depth=3)

        assert refined.children == []
        assert refined is not step
