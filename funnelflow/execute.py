"""Step execution for funnelflow workflows."""

from __future__ import annotations

import logging
import random
from typing import Any, Awaitable, Callable, Dict, Optional, Type

from .actions import (
    ExecutionContext,
    add_tags,
    create_deal,
    create_task,
    remove_tags,
    send_email,
    send_notification,
    send_sms,
    update_field,
)
from .conditions import evaluate_conditions
from .contracts import (
    ActionResult,
    AddTagStep,
    ConditionStep,
    CreateDealStep,
    CreateTaskStep,
    EndStep,
    GoToStep,
    RemoveTagStep,
    SendEmailStep,
    SendNotificationStep,
    SendSmsStep,
    SplitConfig,
    SplitStep,
    StepBase,
    StepResult,
    UnknownStepTypeError,
    UpdateFieldStep,
    WaitStep,
)

logger = logging.getLogger(__name__)

ACTION_HANDLERS: Dict[Type[StepBase], Callable[[Any, ExecutionContext], Awaitable[ActionResult]]] = {
    SendEmailStep: send_email,
    SendSmsStep: send_sms,
    AddTagStep: add_tags,
    RemoveTagStep: remove_tags,
    UpdateFieldStep: update_field,
    CreateTaskStep: create_task,
    CreateDealStep: create_deal,
    SendNotificationStep: send_notification,
}


def choose_split_variant(config: SplitConfig, rng: random.Random) -> Optional[str]:
    """Pick a variant id for a split step, or ``None`` when there are no variants."""
    variants = config.variants
    if not variants:
        return None

    if config.split_type == "percentage":
        draw = rng.random() * 100
        cumulative = 0.0
        for variant in variants:
            cumulative += variant.percentage or 0
            if draw <= cumulative:
                return variant.id
        # rounding can leave the draw above the final cumulative weight
        return variants[-1].id

    return variants[rng.randrange(len(variants))].id


async def execute_step(step: StepBase, context: ExecutionContext) -> StepResult:
    """Run ``step`` for the contact in ``context``.

    Action steps are delegated to their handler. ``condition`` and ``split``
    steps are evaluated here and report the branch taken. ``wait``, ``go_to``
    and ``end`` do nothing; the scheduler gives them meaning.

    Raises:
        UnknownStepTypeError: when no handler exists for the step.
    """
    handler = ACTION_HANDLERS.get(type(step))
    if handler is not None:
        result = await handler(step.config, context)
        return StepResult(**result.model_dump())

    if isinstance(step, ConditionStep):
        met = evaluate_conditions(step.config.conditions, step.config.logic, context.contact)
        logger.debug(f"Condition step {step.id} evaluated to {met}")
        return StepResult(
            success=True,
            data={"condition_met": met},
            branch_taken="yes" if met else "no",
        )

    if isinstance(step, SplitStep):
        variant_id = choose_split_variant(step.config, context.rng)
        if variant_id is None:
            return StepResult(success=False, error="Split step has no variants")
        return StepResult(success=True, data={"variant_id": variant_id}, branch_taken=variant_id)

    if isinstance(step, WaitStep):
        return StepResult(success=True, data={"waited": True})

    if isinstance(step, (GoToStep, EndStep)):
        return StepResult(success=True)

    raise UnknownStepTypeError(step)
