"""Contact field updates."""

from __future__ import annotations

from ..constants import STANDARD_CONTACT_FIELDS
from ..contracts import ActionResult, UpdateFieldConfig
from .base import ExecutionContext, action_handler


@action_handler("Failed to update field")
async def update_field(config: UpdateFieldConfig, context: ExecutionContext) -> ActionResult:
    if not config.field:
        return ActionResult.fail("No field specified to update")

    contact = context.contact
    is_standard = config.field in STANDARD_CONTACT_FIELDS
    changes: dict = {"updated_at": context.now().isoformat()}

    if is_standard:
        old_value = getattr(contact, config.field, None)
        changes[config.field] = config.value
    else:
        custom_fields = dict(contact.custom_fields or {})
        old_value = custom_fields.get(config.field)
        custom_fields[config.field] = config.value
        changes["custom_fields"] = custom_fields

    await context.repository.update_contact(contact.id, changes)

    return ActionResult.ok(
        field=config.field,
        old_value=old_value,
        new_value=config.value,
        is_custom_field=not is_standard,
    )
