from __future__ import annotations

from typing import TYPE_CHECKING, List

from ..conditions import matches_filters
from ..contracts import ContactCreatedTrigger
from ..persistence import Contact
from .base import enroll_matching

if TYPE_CHECKING:
    from ..engine import WorkflowEngine
    from ..persistence import Enrollment


async def handle_contact_created(engine: "WorkflowEngine", contact: Contact) -> List["Enrollment"]:
    """Enroll a newly created contact in matching ``contact_created`` workflows."""

    def match(workflow):
        trigger = workflow.trigger
        if not isinstance(trigger, ContactCreatedTrigger):
            return None
        if not matches_filters(contact, trigger.config.filters):
            return None
        return {
            "trigger": "contact_created",
            "contact_data": {
                "id": contact.id,
                "email": contact.email,
                "first_name": contact.first_name,
                "last_name": contact.last_name,
            },
        }

    return await enroll_matching(
        engine,
        workspace_id=contact.workspace_id,
        trigger_type="contact_created",
        contact_id=contact.id,
        match=match,
    )
