"""Shared plumbing for workflow action handlers."""

from __future__ import annotations

import functools
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar

from ..constants import OWNER_RECIPIENT
from ..contracts import ActionResult, Workflow, utcnow
from ..delivery import BaseDelivery
from ..persistence.models import Contact, Enrollment
from ..persistence.repository import WorkflowRepository

logger = logging.getLogger(__name__)

ConfigT = TypeVar("ConfigT")

ActionHandler = Callable[[ConfigT, "ExecutionContext"], Awaitable[ActionResult]]


@dataclass
class ExecutionContext:
    """Everything a step needs to run against one contact."""

    contact: Contact
    workflow: Workflow
    repository: WorkflowRepository
    delivery: BaseDelivery
    enrollment: Optional[Enrollment] = None
    clock: Callable[[], datetime] = utcnow
    rng: random.Random = field(default_factory=random.Random)

    def now(self) -> datetime:
        return self.clock()


def action_handler(default_error: str) -> Callable[[ActionHandler], ActionHandler]:
    """Convert any exception raised by a handler into a failed ``ActionResult``."""

    def decorator(func: ActionHandler) -> ActionHandler:
        @functools.wraps(func)
        async def wrapper(config, context: ExecutionContext) -> ActionResult:
            try:
                return await func(config, context)
            except Exception as exc:
                logger.exception(
                    f"{default_error} for contact_id={context.contact.id} "
                    f"workflow_id={context.workflow.id}"
                )
                return ActionResult.fail(str(exc) or default_error)

        return wrapper

    return decorator


def resolve_assignee(
    requested: Optional[str], contact: Contact, workflow: Workflow
) -> Optional[str]:
    """Explicit user id, else the contact's owner, else the workflow creator."""
    if requested and requested != OWNER_RECIPIENT:
        return requested
    return contact.assigned_to or workflow.created_by


def workflow_metadata(workflow: Workflow) -> dict:
    return {
        "source": "workflow",
        "workflow_id": workflow.id,
        "workflow_name": workflow.name,
    }
