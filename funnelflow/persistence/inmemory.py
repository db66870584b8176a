"""In-memory implementation of the workflow repository."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from ..constants import OPEN_ENROLLMENT_STATUSES
from ..contracts import Workflow, utcnow
from .models import ActivityLog, Contact, Deal, Enrollment, Notification, Task
from .repository import ENROLLMENT_MUTABLE_FIELDS, WorkflowCounter, WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store automation state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in and
    out so callers never share mutable state with the store.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, Workflow] = {}
        self._contacts: Dict[str, Contact] = {}
        self._enrollments: Dict[str, Enrollment] = {}
        self.deals: Dict[str, Deal] = {}
        self.tasks: Dict[str, Task] = {}
        self.activities: List[ActivityLog] = []
        self.notifications: List[Notification] = []

    # ------------------------------------------------------------------
    async def save_workflow(self, workflow: Workflow) -> None:
        self._workflows[workflow.id] = workflow.model_copy(deep=True)

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        wf = self._workflows.get(workflow_id)
        return wf.model_copy(deep=True) if wf else None

    async def list_active_workflows(
        self, workspace_id: str, trigger_type: str
    ) -> list[Workflow]:
        return [
            wf.model_copy(deep=True)
            for wf in self._workflows.values()
            if wf.workspace_id == workspace_id
            and wf.status == "active"
            and wf.trigger_type == trigger_type
        ]

    async def count_active_workflows(self) -> int:
        return sum(1 for wf in self._workflows.values() if wf.status == "active")

    async def increment_workflow_counter(
        self, workflow_id: str, counter: WorkflowCounter, amount: int = 1
    ) -> None:
        wf = self._workflows.get(workflow_id)
        if wf:
            setattr(wf, counter, getattr(wf, counter) + amount)
            wf.updated_at = utcnow()

    # ------------------------------------------------------------------
    async def save_contact(self, contact: Contact) -> None:
        self._contacts[contact.id] = contact.model_copy(deep=True)

    async def get_contact(self, contact_id: str) -> Contact | None:
        contact = self._contacts.get(contact_id)
        return contact.model_copy(deep=True) if contact else None

    async def update_contact(self, contact_id: str, changes: dict[str, Any]) -> None:
        contact = self._contacts.get(contact_id)
        if contact is None:
            raise LookupError(f"Contact not found: {contact_id}")
        data = contact.model_dump()
        data.update(changes)
        self._contacts[contact_id] = Contact.model_validate(data)

    # ------------------------------------------------------------------
    async def create_enrollment(self, enrollment: Enrollment) -> Enrollment:
        self._enrollments[enrollment.id] = enrollment.model_copy(deep=True)
        return enrollment.model_copy(deep=True)

    async def get_enrollment(self, enrollment_id: str) -> Enrollment | None:
        enrollment = self._enrollments.get(enrollment_id)
        return enrollment.model_copy(deep=True) if enrollment else None

    async def find_open_enrollment(
        self, workflow_id: str, contact_id: str
    ) -> Enrollment | None:
        for enrollment in self._enrollments.values():
            if (
                enrollment.workflow_id == workflow_id
                and enrollment.contact_id == contact_id
                and enrollment.status in OPEN_ENROLLMENT_STATUSES
            ):
                return enrollment.model_copy(deep=True)
        return None

    async def update_enrollment(
        self,
        enrollment_id: str,
        changes: dict[str, Any],
        expected_status: str,
        expected_version: Optional[int] = None,
    ) -> bool:
        unknown = set(changes) - ENROLLMENT_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update enrollment fields: {sorted(unknown)}")
        enrollment = self._enrollments.get(enrollment_id)
        if enrollment is None or enrollment.status != expected_status:
            return False
        if expected_version is not None and enrollment.version != expected_version:
            return False
        data = enrollment.model_dump()
        data.update(changes)
        data["version"] = enrollment.version + 1
        self._enrollments[enrollment_id] = Enrollment.model_validate(data)
        return True

    async def list_due_enrollments(
        self, now: datetime, limit: int
    ) -> list[Enrollment]:
        due = [
            e
            for e in self._enrollments.values()
            if e.status == "active" and e.next_step_at is not None and e.next_step_at <= now
        ]
        due.sort(key=lambda e: e.next_step_at)
        return [e.model_copy(deep=True) for e in due[:limit]]

    async def list_enrollments(
        self, workflow_id: Optional[str] = None, status: Optional[str] = None
    ) -> list[Enrollment]:
        return [
            e.model_copy(deep=True)
            for e in self._enrollments.values()
            if (workflow_id is None or e.workflow_id == workflow_id)
            and (status is None or e.status == status)
        ]

    async def count_enrollments(
        self, status: Optional[str] = None, due_before: Optional[datetime] = None
    ) -> int:
        return sum(
            1
            for e in self._enrollments.values()
            if (status is None or e.status == status)
            and (
                due_before is None
                or (e.next_step_at is not None and e.next_step_at <= due_before)
            )
        )

    # ------------------------------------------------------------------
    async def max_deal_position(self, stage_id: str) -> int | None:
        positions = [d.position for d in self.deals.values() if d.stage_id == stage_id]
        return max(positions) if positions else None

    async def create_deal(self, deal: Deal) -> Deal:
        self.deals[deal.id] = deal.model_copy(deep=True)
        return deal

    async def create_task(self, task: Task) -> Task:
        self.tasks[task.id] = task.model_copy(deep=True)
        return task

    async def insert_activity(self, activity: ActivityLog) -> ActivityLog:
        self.activities.append(activity.model_copy(deep=True))
        return activity

    async def insert_notifications(self, notifications: list[Notification]) -> int:
        self.notifications.extend(n.model_copy(deep=True) for n in notifications)
        return len(notifications)
