from __future__ import annotations

from typing import TYPE_CHECKING, List, Sequence

from ..conditions import matches_filters
from ..contracts import TagAddedTrigger, TagRemovedTrigger
from ..persistence import Contact
from .base import enroll_matching

if TYPE_CHECKING:
    from ..engine import WorkflowEngine
    from ..persistence import Enrollment


def _tag_matcher(contact: Contact, tag_ids: Sequence[str], trigger_cls, trigger_type: str, all_key: str):
    def match(workflow):
        trigger = workflow.trigger
        if not isinstance(trigger, trigger_cls) or not trigger.config.tag_ids:
            return None
        matching = [t for t in tag_ids if t in trigger.config.tag_ids]
        if not matching:
            return None
        if not matches_filters(contact, trigger.config.filters):
            return None
        return {"trigger": trigger_type, "matching_tags": matching, all_key: list(tag_ids)}

    return match


async def handle_tag_added(
    engine: "WorkflowEngine", contact: Contact, added_tag_ids: Sequence[str]
) -> List["Enrollment"]:
    """Enroll ``contact`` in ``tag_added`` workflows watching any of ``added_tag_ids``."""
    return await enroll_matching(
        engine,
        workspace_id=contact.workspace_id,
        trigger_type="tag_added",
        contact_id=contact.id,
        match=_tag_matcher(contact, added_tag_ids, TagAddedTrigger, "tag_added", "all_added_tags"),
    )


async def handle_tag_removed(
    engine: "WorkflowEngine", contact: Contact, removed_tag_ids: Sequence[str]
) -> List["Enrollment"]:
    """Enroll ``contact`` in ``tag_removed`` workflows watching any of ``removed_tag_ids``."""
    return await enroll_matching(
        engine,
        workspace_id=contact.workspace_id,
        trigger_type="tag_removed",
        contact_id=contact.id,
        match=_tag_matcher(
            contact, removed_tag_ids, TagRemovedTrigger, "tag_removed", "all_removed_tags"
        ),
    )
