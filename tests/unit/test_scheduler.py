from datetime import datetime, timedelta, timezone

import pytest

from funnelflow.contracts import StepNotFoundError
from funnelflow.scheduler import compute_next_step_at, resolve_next_step

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def workflow(make_workflow):
    return make_workflow(
        [
            {
                "id": "cond",
                "type": "condition",
                "branches": [
                    {"id": "yes", "next_step_id": "tag"},
                    {"id": "no", "next_step_id": "missing"},
                ],
            },
            {"id": "email", "type": "send_email", "next_step_id": "end"},
            {"id": "tag", "type": "add_tag"},
            {"id": "jump", "type": "go_to", "config": {"target_step_id": "email"}, "next_step_id": "tag"},
            {"id": "end", "type": "end", "next_step_id": "email"},
        ]
    )


def _step(workflow, step_id):
    return workflow.find_step(step_id)[1]


def test_branch_target_wins(workflow):
    index, step = resolve_next_step(_step(workflow, "cond"), workflow, "yes")
    assert (index, step.id) == (2, "tag")


def test_missing_branch_target_falls_back_to_sequence(workflow):
    index, step = resolve_next_step(_step(workflow, "cond"), workflow, "no")
    assert (index, step.id) == (1, "email")


def test_explicit_next_step_id(workflow):
    _, step = resolve_next_step(_step(workflow, "email"), workflow)
    assert step.id == "end"


def test_go_to_ignores_next_step_id(workflow):
    _, step = resolve_next_step(_step(workflow, "jump"), workflow)
    assert step.id == "email"


def test_go_to_missing_target_raises(make_workflow):
    workflow = make_workflow([{"id": "jump", "type": "go_to", "config": {"target_step_id": "gone"}}])
    with pytest.raises(StepNotFoundError):
        resolve_next_step(workflow.steps[0], workflow)


def test_go_to_without_target_falls_through(make_workflow):
    workflow = make_workflow(
        [
            {"id": "jump", "type": "go_to", "config": {}},
            {"id": "tag", "type": "add_tag"},
            {"id": "skip", "type": "go_to", "next_step_id": "jump"},
        ]
    )
    assert resolve_next_step(workflow.steps[0], workflow)[1].id == "tag"
    assert resolve_next_step(workflow.steps[2], workflow)[1].id == "jump"


def test_end_terminates(workflow):
    assert resolve_next_step(_step(workflow, "end"), workflow) is None


def test_last_step_terminates(make_workflow):
    workflow = make_workflow([{"id": "a", "type": "add_tag"}, {"id": "b", "type": "add_tag"}])
    assert resolve_next_step(workflow.steps[0], workflow)[1].id == "b"
    assert resolve_next_step(workflow.steps[1], workflow) is None


@pytest.mark.parametrize(
    "config, delta",
    [
        ({}, timedelta(days=1)),
        ({"duration": 2}, timedelta(days=2)),
        ({"duration": 30, "unit": "minutes"}, timedelta(minutes=30)),
        ({"duration": 3, "unit": "hours"}, timedelta(hours=3)),
        ({"unit": "weeks"}, timedelta(weeks=1)),
        ({"duration": 0, "unit": "hours"}, timedelta(hours=1)),
    ],
)
def test_wait_due_time(make_workflow, config, delta):
    workflow = make_workflow([{"id": "w", "type": "wait", "config": config}])
    assert compute_next_step_at(workflow.steps[0], T0) == T0 + delta


def test_other_steps_are_due_one_tick_later(make_workflow):
    workflow = make_workflow([{"id": "t", "type": "add_tag"}])
    assert compute_next_step_at(workflow.steps[0], T0) == T0 + timedelta(seconds=1)
