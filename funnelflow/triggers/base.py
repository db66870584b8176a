"""Shared event-to-enrollment plumbing for trigger matchers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from ..contracts import Workflow

if TYPE_CHECKING:
    from ..engine import WorkflowEngine
    from ..persistence import Enrollment

logger = logging.getLogger(__name__)

# Returns the trigger_data to enroll with, or None when the workflow does not match.
WorkflowMatcher = Callable[[Workflow], Optional[Dict[str, Any]]]


async def enroll_matching(
    engine: "WorkflowEngine",
    *,
    workspace_id: Optional[str],
    trigger_type: str,
    contact_id: str,
    match: WorkflowMatcher,
) -> List["Enrollment"]:
    """Enroll ``contact_id`` in every active workflow ``match`` accepts.

    Lookup failures and per-workflow failures are logged and never raised,
    so an event source is not blocked by automation errors.
    """
    enrollments: List["Enrollment"] = []
    if not workspace_id:
        logger.warning(f"{trigger_type} event for contact {contact_id} has no workspace")
        return enrollments

    try:
        workflows = await engine.repository.list_active_workflows(workspace_id, trigger_type)
    except Exception:
        logger.exception(f"Error fetching {trigger_type} workflows for workspace {workspace_id}")
        return enrollments

    for workflow in workflows:
        try:
            trigger_data = match(workflow)
            if trigger_data is None:
                continue
            enrollment = await engine.enroll(workflow.id, contact_id, trigger_data)
        except Exception:
            logger.exception(
                f"Error evaluating {trigger_type} trigger for workflow {workflow.id}"
            )
            continue

        if enrollment is not None:
            logger.info(f"Enrolled contact {contact_id} in workflow {workflow.id} ({trigger_type})")
            enrollments.append(enrollment)

    return enrollments
