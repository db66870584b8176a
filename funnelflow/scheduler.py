"""Next-step resolution and due-time computation."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Tuple

from .constants import DEFAULT_WAIT_DURATION, DEFAULT_WAIT_UNIT, SCHEDULING_TICK, WAIT_UNITS
from .contracts import EndStep, GoToStep, StepBase, StepNotFoundError, WaitStep, Workflow


def resolve_next_step(
    step: StepBase, workflow: Workflow, branch_taken: Optional[str] = None
) -> Optional[Tuple[int, StepBase]]:
    """Return ``(index, step)`` to run after ``step`` or ``None`` to terminate.

    Resolution order: ``go_to`` target, ``end``, the branch matching
    ``branch_taken``, the step's ``next_step_id``, then the following step in
    the list. A ``go_to`` without a target, and branch or ``next_step_id``
    targets that no longer exist, fall through to the next rule.

    Raises:
        StepNotFoundError: when a configured ``go_to`` target does not exist.
    """
    if isinstance(step, GoToStep) and step.config.target_step_id:
        target = workflow.find_step(step.config.target_step_id)
        if target is None:
            raise StepNotFoundError(step.config.target_step_id)
        return target

    if isinstance(step, EndStep):
        return None

    branch_target = workflow.find_step(step.branch_target(branch_taken))
    if branch_target is not None:
        return branch_target

    explicit = workflow.find_step(step.next_step_id)
    if explicit is not None:
        return explicit

    located = workflow.find_step(step.id)
    if located is not None:
        index = located[0] + 1
        if index < len(workflow.steps):
            return index, workflow.steps[index]
    return None


def compute_next_step_at(step: StepBase, now: datetime) -> datetime:
    """When ``step`` becomes due if scheduled at ``now``."""
    if isinstance(step, WaitStep):
        # zero or missing durations wait one unit
        duration = step.config.duration or DEFAULT_WAIT_DURATION
        unit = step.config.unit or DEFAULT_WAIT_UNIT
        return now + WAIT_UNITS[unit] * duration
    return now + SCHEDULING_TICK
