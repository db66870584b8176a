"""Enrollment lifecycle management for funnelflow workflows."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from .actions import ExecutionContext
from .contracts import StepBase, StepResult, Workflow, utcnow
from .delivery import BaseDelivery, get_delivery
from .execute import execute_step
from .persistence import ActivityLog, Enrollment, StepExecution, WorkflowRepository, get_repository
from .scheduler import compute_next_step_at, resolve_next_step

logger = logging.getLogger(__name__)


@dataclass
class EnrollmentSummary:
    """Outcome of a bulk manual enrollment."""

    enrolled: int = 0
    skipped: int = 0
    enrollments: List[Enrollment] = field(default_factory=list)


class WorkflowEngine:
    """Enrolls contacts into workflows and advances them one step at a time.

    Every enrollment write is a conditional update guarded by the expected
    status (and, while advancing, the version that was read), so concurrent
    or repeated ``process_step`` calls for the same enrollment cannot both
    land.
    """

    def __init__(
        self,
        repository: WorkflowRepository | None = None,
        delivery: BaseDelivery | None = None,
        clock: Callable[[], datetime] = utcnow,
        rng: random.Random | None = None,
    ) -> None:
        self._repository = repository or get_repository()
        self._delivery = delivery or get_delivery()
        self._clock = clock
        self._rng = rng or random.Random()

    @property
    def repository(self) -> WorkflowRepository:
        return self._repository

    # ------------------------------------------------------------------
    # Enrollment

    async def enroll(
        self,
        workflow_id: str,
        contact_id: str,
        trigger_data: Optional[Dict[str, Any]] = None,
        enrolled_by: Optional[str] = None,
    ) -> Enrollment | None:
        """Start ``contact_id`` at the first step of ``workflow_id``.

        Returns the new enrollment, or ``None`` when the workflow is missing,
        not active, at its enrollment limit, has no steps, or the contact is
        already enrolled and re-enrollment is not allowed. Never raises.
        """
        try:
            workflow = await self._repository.get_workflow(workflow_id)
            if workflow is None:
                logger.info(f"Enrollment rejected: workflow {workflow_id} not found")
                return None
            if workflow.status != "active":
                logger.info(f"Enrollment rejected: workflow {workflow_id} is {workflow.status}")
                return None
            if workflow.enrollment_limit_reached():
                logger.info(f"Enrollment rejected: workflow {workflow_id} reached its limit")
                return None
            if not workflow.settings.allow_re_enrollment:
                existing = await self._repository.find_open_enrollment(workflow_id, contact_id)
                if existing is not None:
                    logger.info(
                        f"Enrollment rejected: contact {contact_id} already enrolled "
                        f"in workflow {workflow_id} ({existing.id})"
                    )
                    return None
            if not workflow.steps:
                logger.info(f"Enrollment rejected: workflow {workflow_id} has no steps")
                return None

            first_step = workflow.steps[0]
            now = self._clock()
            enrollment = await self._repository.create_enrollment(
                Enrollment(
                    workflow_id=workflow_id,
                    contact_id=contact_id,
                    status="active",
                    current_step_id=first_step.id,
                    current_step_index=0,
                    enrolled_at=now,
                    enrolled_by=enrolled_by,
                    next_step_at=compute_next_step_at(first_step, now),
                    trigger_data=trigger_data or {},
                    updated_at=now,
                )
            )
            await self._repository.increment_workflow_counter(workflow_id, "enrolled_count")
        except Exception:
            logger.exception(
                f"Failed to enroll contact {contact_id} in workflow {workflow_id}"
            )
            return None

        logger.info(
            f"Enrolled contact {contact_id} in workflow {workflow_id} "
            f"enrollment_id={enrollment.id}"
        )
        return enrollment

    async def enroll_many(
        self,
        workflow_id: str,
        contact_ids: Iterable[str],
        enrolled_by: Optional[str] = None,
    ) -> EnrollmentSummary:
        """Manually enroll several contacts, logging an activity for each."""
        summary = EnrollmentSummary()
        workflow = await self._repository.get_workflow(workflow_id)

        for contact_id in contact_ids:
            enrollment = await self.enroll(
                workflow_id,
                contact_id,
                trigger_data={"source": "manual", "enrolled_by": enrolled_by},
                enrolled_by=enrolled_by,
            )
            if enrollment is None:
                summary.skipped += 1
                continue

            summary.enrolled += 1
            summary.enrollments.append(enrollment)
            await self._log_manual_enrollment(workflow, enrollment, enrolled_by)

        return summary

    async def _log_manual_enrollment(
        self, workflow: Workflow | None, enrollment: Enrollment, enrolled_by: Optional[str]
    ) -> None:
        if workflow is None:
            return
        try:
            await self._repository.insert_activity(
                ActivityLog(
                    workspace_id=workflow.workspace_id,
                    contact_id=enrollment.contact_id,
                    type="workflow_enrolled",
                    title=f"Enrolled in workflow: {workflow.name}",
                    description="Contact was manually enrolled by user",
                    metadata={
                        "workflow_id": workflow.id,
                        "workflow_name": workflow.name,
                        "enrollment_id": enrollment.id,
                    },
                    created_by=enrolled_by,
                    created_at=self._clock(),
                )
            )
        except Exception:
            logger.exception(f"Failed to log enrollment activity for {enrollment.id}")

    # ------------------------------------------------------------------
    # Advancement

    async def process_step(self, enrollment_id: str) -> bool:
        """Execute the current step of an active enrollment and advance it.

        Returns ``True`` when the step ran and the enrollment was advanced or
        completed. Returns ``False`` when the enrollment is missing or not
        active, when it was failed, or when another writer changed it first.
        Never raises.
        """
        try:
            enrollment = await self._repository.get_enrollment(enrollment_id)
        except Exception:
            logger.exception(f"Failed to load enrollment {enrollment_id}")
            return False

        if enrollment is None:
            logger.warning(f"Enrollment {enrollment_id} not found")
            return False
        if enrollment.status != "active":
            logger.debug(f"Enrollment {enrollment_id} is {enrollment.status}, skipping")
            return False

        history = list(enrollment.step_history)
        step: StepBase | None = None
        recorded = False
        started_at = self._clock()
        try:
            workflow = await self._repository.get_workflow(enrollment.workflow_id)
            if workflow is None:
                return await self._fail(enrollment, "Workflow not found", history)

            contact = await self._repository.get_contact(enrollment.contact_id)
            if contact is None:
                return await self._fail(enrollment, "Contact not found", history)

            located = workflow.find_step(enrollment.current_step_id)
            if located is None:
                return await self._fail(enrollment, "Step not found", history)
            step = located[1]

            context = ExecutionContext(
                contact=contact,
                workflow=workflow,
                repository=self._repository,
                delivery=self._delivery,
                enrollment=enrollment,
                clock=self._clock,
                rng=self._rng,
            )
            started_at = self._clock()
            result = await execute_step(step, context)
            history.append(self._record(step, started_at, result))
            recorded = True
            if not result.success:
                logger.warning(
                    f"Step {step.id} ({step.type}) failed for enrollment {enrollment_id}: "
                    f"{result.error}"
                )
            else:
                logger.debug(f"Executed step {step.id} ({step.type}) for enrollment {enrollment_id}")

            next_step = resolve_next_step(step, workflow, result.branch_taken)
            if next_step is None:
                return await self._complete(enrollment, history)
            return await self._advance(enrollment, next_step, history)
        except Exception as exc:
            logger.exception(f"Error processing enrollment {enrollment_id}")
            message = str(exc) or type(exc).__name__
            if step is not None and not recorded:
                history.append(
                    StepExecution(
                        step_id=step.id,
                        step_type=step.type,
                        started_at=started_at,
                        completed_at=self._clock(),
                        status="failed",
                        error=message,
                    )
                )
            try:
                return await self._fail(enrollment, message, history)
            except Exception:
                logger.exception(f"Failed to mark enrollment {enrollment_id} as failed")
                return False

    def _record(self, step: StepBase, started_at: datetime, result: StepResult) -> StepExecution:
        return StepExecution(
            step_id=step.id,
            step_type=step.type,
            started_at=started_at,
            completed_at=self._clock(),
            status="completed" if result.success else "failed",
            result=result.data,
            error=result.error,
            branch_taken=result.branch_taken,
        )

    async def _advance(
        self, enrollment: Enrollment, next_step: tuple[int, StepBase], history: List[StepExecution]
    ) -> bool:
        index, step = next_step
        now = self._clock()
        next_step_at = compute_next_step_at(step, now)
        if enrollment.next_step_at is not None and next_step_at < enrollment.next_step_at:
            next_step_at = enrollment.next_step_at

        written = await self._write(
            enrollment,
            {
                "current_step_id": step.id,
                "current_step_index": index,
                "next_step_at": next_step_at,
                "step_history": history,
                "updated_at": now,
            },
        )
        if written:
            logger.debug(
                f"Enrollment {enrollment.id} advanced to step {step.id}, due {next_step_at.isoformat()}"
            )
        return written

    async def _complete(self, enrollment: Enrollment, history: List[StepExecution]) -> bool:
        now = self._clock()
        written = await self._write(
            enrollment,
            {
                "status": "completed",
                "completed_at": now,
                "current_step_id": None,
                "next_step_at": None,
                "step_history": history,
                "updated_at": now,
            },
        )
        if written:
            await self._repository.increment_workflow_counter(
                enrollment.workflow_id, "completed_count"
            )
            logger.info(f"Enrollment {enrollment.id} completed workflow {enrollment.workflow_id}")
        return written

    async def _fail(
        self, enrollment: Enrollment, error_message: str, history: List[StepExecution]
    ) -> bool:
        logger.error(f"Enrollment {enrollment.id} failed: {error_message}")
        now = self._clock()
        await self._write(
            enrollment,
            {
                "status": "failed",
                "exited_at": now,
                "next_step_at": None,
                "error_message": error_message,
                "step_history": history,
                "updated_at": now,
            },
        )
        return False

    async def _write(self, enrollment: Enrollment, changes: Dict[str, Any]) -> bool:
        written = await self._repository.update_enrollment(
            enrollment.id,
            changes,
            expected_status="active",
            expected_version=enrollment.version,
        )
        if not written:
            logger.warning(
                f"Enrollment {enrollment.id} changed concurrently; update discarded"
            )
        return written

    # ------------------------------------------------------------------
    # Exit

    async def exit(self, enrollment_id: str, reason: str = "Manual exit") -> bool:
        """Exit an ``active`` enrollment. Returns ``True`` when it was exited."""
        now = self._clock()
        try:
            exited = await self._repository.update_enrollment(
                enrollment_id,
                {
                    "status": "exited",
                    "exited_at": now,
                    "next_step_at": None,
                    "exit_reason": reason,
                    "updated_at": now,
                },
                expected_status="active",
            )
        except Exception:
            logger.exception(f"Failed to exit enrollment {enrollment_id}")
            return False

        if exited:
            logger.info(f"Enrollment {enrollment_id} exited: {reason}")
        return exited
