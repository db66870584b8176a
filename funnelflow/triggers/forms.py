from __future__ import annotations

from typing import TYPE_CHECKING, List

from ..conditions import matches_filters
from ..contracts import FormSubmittedTrigger
from ..persistence import FormSubmission
from .base import enroll_matching

if TYPE_CHECKING:
    from ..engine import WorkflowEngine
    from ..persistence import Enrollment


async def handle_form_submitted(
    engine: "WorkflowEngine", submission: FormSubmission
) -> List["Enrollment"]:
    """Enroll the submitting contact in workflows watching ``submission.form_id``.

    Filters are evaluated against the submission, so ``data.<field>`` paths
    reach the submitted values.
    """

    def match(workflow):
        trigger = workflow.trigger
        if not isinstance(trigger, FormSubmittedTrigger):
            return None
        if trigger.config.form_id != submission.form_id:
            return None
        if not matches_filters(submission, trigger.config.filters):
            return None
        return {
            "trigger": "form_submitted",
            "form_id": submission.form_id,
            "submission_id": submission.id,
            "form_data": submission.data,
        }

    return await enroll_matching(
        engine,
        workspace_id=submission.workspace_id,
        trigger_type="form_submitted",
        contact_id=submission.contact_id,
        match=match,
    )
