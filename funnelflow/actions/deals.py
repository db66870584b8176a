"""Deal creation appended to the end of a pipeline stage."""

from __future__ import annotations

import logging

from ..contracts import ActionResult, CreateDealConfig
from ..persistence.models import ActivityLog, Deal
from ..personalization import parse_personalization_tokens, personalization_data
from .base import ExecutionContext, action_handler, resolve_assignee, workflow_metadata

logger = logging.getLogger(__name__)


@action_handler("Failed to create deal")
async def create_deal(config: CreateDealConfig, context: ExecutionContext) -> ActionResult:
    if not config.pipeline_id or not config.stage_id:
        return ActionResult.fail("Pipeline and stage are required")
    if not config.title:
        return ActionResult.fail("Deal title is required")

    contact, workflow, repository = context.contact, context.workflow, context.repository
    title = parse_personalization_tokens(config.title, personalization_data(contact))

    current_max = await repository.max_deal_position(config.stage_id)
    position = 0 if current_max is None else current_max + 1

    deal = await repository.create_deal(
        Deal(
            workspace_id=workflow.workspace_id,
            pipeline_id=config.pipeline_id,
            stage_id=config.stage_id,
            contact_id=contact.id,
            title=title,
            value=config.value or 0,
            position=position,
            assigned_to=resolve_assignee(config.assigned_to, contact, workflow),
            created_by=workflow.created_by,
            metadata=workflow_metadata(workflow),
            created_at=context.now(),
        )
    )
    logger.debug(f"Created deal {deal.id} at position {position} in stage {deal.stage_id}")

    await repository.insert_activity(
        ActivityLog(
            workspace_id=workflow.workspace_id,
            contact_id=contact.id,
            deal_id=deal.id,
            type="deal_created",
            title=f"Deal created: {title}",
            description=f"Deal created by workflow: {workflow.name}",
            created_by=workflow.created_by,
            created_at=context.now(),
        )
    )

    return ActionResult.ok(
        deal_id=deal.id,
        title=deal.title,
        value=deal.value,
        pipeline_id=deal.pipeline_id,
        stage_id=deal.stage_id,
        position=deal.position,
    )
