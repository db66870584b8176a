import random
from collections import Counter

import pytest
from pydantic import ValidationError

from funnelflow.contracts import (
    ConditionStep,
    SplitStep,
    StepBase,
    UnknownStepTypeError,
    WaitStep,
    Workflow,
)
from funnelflow.execute import choose_split_variant, execute_step


def _split(split_type, variants):
    return SplitStep.model_validate(
        {"id": "split", "config": {"split_type": split_type, "variants": variants}}
    )


@pytest.mark.asyncio
async def test_condition_step_takes_no_branch(make_contact, make_context):
    context = await make_context(make_contact(type="seller"))
    step = ConditionStep.model_validate(
        {
            "id": "cond",
            "config": {"conditions": [{"field": "type", "operator": "equals", "value": "buyer"}]},
        }
    )

    result = await execute_step(step, context)

    assert result.success
    assert result.branch_taken == "no"
    assert result.data == {"condition_met": False}


@pytest.mark.asyncio
async def test_condition_step_without_conditions_is_yes(make_contact, make_context):
    context = await make_context(make_contact())
    result = await execute_step(ConditionStep(id="cond"), context)
    assert result.branch_taken == "yes"


@pytest.mark.asyncio
async def test_action_steps_are_delegated(make_contact, make_context, repo):
    context = await make_context(make_contact())
    step = Workflow.model_validate(
        {
            "id": "wf",
            "workspace_id": "ws-1",
            "name": "n",
            "steps": [{"id": "t", "type": "add_tag", "config": {"tag_ids": ["hot"]}}],
        }
    ).steps[0]

    result = await execute_step(step, context)

    assert result.success
    assert result.branch_taken is None
    assert "hot" in (await repo.get_contact("contact-1")).tags


@pytest.mark.asyncio
async def test_wait_step_is_a_noop(make_contact, make_context):
    context = await make_context(make_contact())
    result = await execute_step(WaitStep(id="w"), context)
    assert result.success and result.data == {"waited": True}


@pytest.mark.asyncio
async def test_unknown_step_type_raises(make_contact, make_context):
    class MysteryStep(StepBase):
        type: str = "mystery"
        config: dict = {}

    context = await make_context(make_contact())
    with pytest.raises(UnknownStepTypeError) as exc_info:
        await execute_step(MysteryStep(id="m"), context)
    assert exc_info.value.step_type == "mystery"


def test_unknown_step_type_rejected_at_validation():
    with pytest.raises(ValidationError):
        Workflow.model_validate(
            {"id": "wf", "workspace_id": "ws", "name": "n", "steps": [{"id": "x", "type": "fax"}]}
        )


def test_percentage_split_always_returns_a_variant():
    step = _split(
        "percentage",
        [
            {"id": "a", "percentage": 33.3},
            {"id": "b", "percentage": 33.3},
            {"id": "c", "percentage": 33.3},
        ],
    )
    rng = random.Random(11)
    seen = Counter(choose_split_variant(step.config, rng) for _ in range(2000))
    assert set(seen) <= {"a", "b", "c"}
    assert None not in seen
    assert all(seen[v] > 400 for v in "abc")


def test_percentage_split_falls_back_to_last_variant():
    class HighDraw(random.Random):
        def random(self):
            return 0.9999

    step = _split("percentage", [{"id": "a", "percentage": 50}, {"id": "b", "percentage": 49}])
    assert choose_split_variant(step.config, HighDraw()) == "b"


def test_random_split_uses_uniform_choice():
    step = _split("random", [{"id": "a"}, {"id": "b"}])
    rng = random.Random(5)
    seen = {choose_split_variant(step.config, rng) for _ in range(50)}
    assert seen == {"a", "b"}


@pytest.mark.asyncio
async def test_split_step_reports_branch(make_contact, make_context):
    context = await make_context(make_contact())
    step = _split("percentage", [{"id": "only", "percentage": 100}])

    result = await execute_step(step, context)

    assert result.branch_taken == "only"


@pytest.mark.asyncio
async def test_split_without_variants_fails(make_contact, make_context):
    context = await make_context(make_contact())
    result = await execute_step(_split("random", []), context)
    assert not result.success
    assert result.branch_taken is None
