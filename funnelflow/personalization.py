"""``{{token}}`` interpolation for outbound content."""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional

from .contracts import Workflow
from .persistence.models import Contact

TOKEN_PATTERN = re.compile(r"\{\{(\w+)\}\}")


def parse_personalization_tokens(text: Optional[str], data: Mapping[str, Any]) -> str:
    """Replace ``{{key}}`` with ``data[key]``. Unknown keys are left verbatim."""
    if not text:
        return ""

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        if key not in data:
            return match.group(0)
        value = data[key]
        return "" if value is None else str(value)

    return TOKEN_PATTERN.sub(_replace, text)


def personalization_data(
    contact: Contact, workflow: Optional[Workflow] = None
) -> dict[str, Any]:
    """Build the token values available for a contact.

    Custom fields are merged last and may shadow the standard keys.
    """
    data: dict[str, Any] = {
        "first_name": contact.first_name or "",
        "last_name": contact.last_name or "",
        "full_name": contact.full_name,
        "email": contact.email or "",
        "phone": contact.phone or "",
        "company_name": contact.company_name or "",
        "job_title": contact.job_title or "",
        "contact_id": contact.id,
    }
    if workflow is not None:
        data["workflow_name"] = workflow.name
    data.update(contact.custom_fields or {})
    return data
