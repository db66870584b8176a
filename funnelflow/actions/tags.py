"""Tag set mutations. Both actions are idempotent."""

from __future__ import annotations

from ..contracts import ActionResult, TagConfig
from .base import ExecutionContext, action_handler


@action_handler("Failed to add tags")
async def add_tags(config: TagConfig, context: ExecutionContext) -> ActionResult:
    if not config.tag_ids:
        return ActionResult.fail("No tags specified to add")

    current = list(context.contact.tags or [])
    added = [t for t in dict.fromkeys(config.tag_ids) if t not in current]
    new_tags = current + added

    await context.repository.update_contact(
        context.contact.id, {"tags": new_tags, "updated_at": context.now().isoformat()}
    )
    context.contact.tags = new_tags

    return ActionResult.ok(added_tags=added, total_tags=len(new_tags))


@action_handler("Failed to remove tags")
async def remove_tags(config: TagConfig, context: ExecutionContext) -> ActionResult:
    if not config.tag_ids:
        return ActionResult.fail("No tags specified to remove")

    current = list(context.contact.tags or [])
    to_remove = set(config.tag_ids)
    removed = [t for t in dict.fromkeys(config.tag_ids) if t in current]
    new_tags = [t for t in current if t not in to_remove]

    await context.repository.update_contact(
        context.contact.id, {"tags": new_tags, "updated_at": context.now().isoformat()}
    )
    context.contact.tags = new_tags

    return ActionResult.ok(removed_tags=removed, total_tags=len(new_tags))
