"""Trigger matchers turning CRM events into workflow enrollments."""

from .contacts import handle_contact_created
from .deals import handle_deal_created, handle_deal_stage_changed
from .forms import handle_form_submitted
from .tags import handle_tag_added, handle_tag_removed

__all__ = [
    "handle_contact_created",
    "handle_deal_created",
    "handle_deal_stage_changed",
    "handle_form_submitted",
    "handle_tag_added",
    "handle_tag_removed",
]
