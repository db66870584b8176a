"""Follow-up task creation."""

from __future__ import annotations

from datetime import timedelta

from ..contracts import ActionResult, CreateTaskConfig
from ..persistence.models import Task
from ..personalization import parse_personalization_tokens, personalization_data
from .base import ExecutionContext, action_handler, resolve_assignee, workflow_metadata


@action_handler("Failed to create task")
async def create_task(config: CreateTaskConfig, context: ExecutionContext) -> ActionResult:
    if not config.title:
        return ActionResult.fail("Task title is required")

    contact, workflow = context.contact, context.workflow
    data = personalization_data(contact)
    due_at = None
    if config.due_in_days is not None:
        due_at = context.now() + timedelta(days=config.due_in_days)

    task = await context.repository.create_task(
        Task(
            workspace_id=workflow.workspace_id,
            contact_id=contact.id,
            title=parse_personalization_tokens(config.title, data),
            description=(
                parse_personalization_tokens(config.description, data)
                if config.description
                else None
            ),
            priority=config.priority,
            due_at=due_at,
            assigned_to=resolve_assignee(config.assigned_to, contact, workflow),
            created_by=workflow.created_by,
            metadata=workflow_metadata(workflow),
            created_at=context.now(),
        )
    )

    return ActionResult.ok(
        task_id=task.id,
        title=task.title,
        assigned_to=task.assigned_to,
        due_at=task.due_at.isoformat() if task.due_at else None,
    )
