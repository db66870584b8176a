"""Deal lifecycle triggers.

Both matchers enroll the deal's linked contact and evaluate trigger filters
against the deal record. Deals without a contact are ignored.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List

from ..conditions import matches_filters
from ..contracts import DealCreatedTrigger, DealStageChangedTrigger
from ..persistence import Deal
from .base import enroll_matching

if TYPE_CHECKING:
    from ..engine import WorkflowEngine
    from ..persistence import Enrollment

logger = logging.getLogger(__name__)


async def _contact_exists(engine: "WorkflowEngine", deal: Deal) -> bool:
    if not deal.contact_id:
        return False
    try:
        contact = await engine.repository.get_contact(deal.contact_id)
    except Exception:
        logger.exception(f"Error loading contact {deal.contact_id} for deal {deal.id}")
        return False
    if contact is None:
        logger.debug(f"Deal {deal.id} references missing contact {deal.contact_id}")
        return False
    return True


async def handle_deal_created(engine: "WorkflowEngine", deal: Deal) -> List["Enrollment"]:
    if not await _contact_exists(engine, deal):
        return []

    def match(workflow):
        trigger = workflow.trigger
        if not isinstance(trigger, DealCreatedTrigger):
            return None
        config = trigger.config
        if config.pipeline_id and config.pipeline_id != deal.pipeline_id:
            return None
        if not matches_filters(deal, config.filters):
            return None
        return {
            "trigger": "deal_created",
            "deal_id": deal.id,
            "deal_title": deal.title,
            "deal_value": deal.value,
            "pipeline_id": deal.pipeline_id,
            "stage_id": deal.stage_id,
        }

    return await enroll_matching(
        engine,
        workspace_id=deal.workspace_id,
        trigger_type="deal_created",
        contact_id=deal.contact_id,
        match=match,
    )


async def handle_deal_stage_changed(
    engine: "WorkflowEngine", deal: Deal, from_stage_id: str, to_stage_id: str
) -> List["Enrollment"]:
    """Enroll the deal's contact when a deal moves into a watched stage."""
    if not await _contact_exists(engine, deal):
        return []

    def match(workflow):
        trigger = workflow.trigger
        if not isinstance(trigger, DealStageChangedTrigger):
            return None
        config = trigger.config
        if config.pipeline_id and config.pipeline_id != deal.pipeline_id:
            return None
        if config.to_stage_id != to_stage_id:
            return None
        if config.from_stage_id and config.from_stage_id != from_stage_id:
            return None
        if not matches_filters(deal, config.filters):
            return None
        return {
            "trigger": "deal_stage_changed",
            "deal_id": deal.id,
            "deal_title": deal.title,
            "deal_value": deal.value,
            "from_stage_id": from_stage_id,
            "to_stage_id": to_stage_id,
            "pipeline_id": deal.pipeline_id,
        }

    return await enroll_matching(
        engine,
        workspace_id=deal.workspace_id,
        trigger_type="deal_stage_changed",
        contact_id=deal.contact_id,
        match=match,
    )
