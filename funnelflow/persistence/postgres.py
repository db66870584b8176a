"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

import asyncpg

from ..contracts import Workflow
from .models import ActivityLog, Contact, Deal, Enrollment, Notification, Task
from .repository import ENROLLMENT_MUTABLE_FIELDS, WorkflowCounter, WorkflowRepository

_ENROLLMENT_COLUMNS = (
    "id",
    "workflow_id",
    "contact_id",
    "status",
    "current_step_id",
    "current_step_index",
    "enrolled_at",
    "enrolled_by",
    "completed_at",
    "exited_at",
    "exit_reason",
    "error_message",
    "next_step_at",
    "trigger_data",
    "step_history",
    "version",
    "updated_at",
)


def _affected(status: str) -> int:
    """Parse the row count from a command tag such as ``UPDATE 1``."""
    try:
        return int(status.split()[-1])
    except (IndexError, ValueError):
        return 0


def _encode_column(column: str, value: Any) -> Any:
    if column == "step_history":
        return [
            item.model_dump(mode="json") if hasattr(item, "model_dump") else item
            for item in value
        ]
    return value


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist automation state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        await conn.set_type_codec(
            "jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog"
        )
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS ff_workflows (
                id TEXT PRIMARY KEY,
                workspace_id TEXT NOT NULL,
                status TEXT NOT NULL,
                trigger_type TEXT NOT NULL,
                definition JSONB NOT NULL,
                enrolled_count INTEGER NOT NULL DEFAULT 0,
                completed_count INTEGER NOT NULL DEFAULT 0
            );
            CREATE TABLE IF NOT EXISTS ff_contacts (
                id TEXT PRIMARY KEY,
                workspace_id TEXT,
                data JSONB NOT NULL
            );
            CREATE TABLE IF NOT EXISTS ff_enrollments (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                contact_id TEXT NOT NULL,
                status TEXT NOT NULL,
                current_step_id TEXT,
                current_step_index INTEGER NOT NULL DEFAULT 0,
                enrolled_at TIMESTAMPTZ NOT NULL,
                enrolled_by TEXT,
                completed_at TIMESTAMPTZ,
                exited_at TIMESTAMPTZ,
                exit_reason TEXT,
                error_message TEXT,
                next_step_at TIMESTAMPTZ,
                trigger_data JSONB NOT NULL,
                step_history JSONB NOT NULL,
                version INTEGER NOT NULL DEFAULT 1,
                updated_at TIMESTAMPTZ NOT NULL
            );
            CREATE INDEX IF NOT EXISTS ff_enrollments_due
                ON ff_enrollments (status, next_step_at);
            CREATE TABLE IF NOT EXISTS ff_deals (
                id TEXT PRIMARY KEY,
                stage_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                data JSONB NOT NULL
            );
            CREATE TABLE IF NOT EXISTS ff_tasks (id TEXT PRIMARY KEY, data JSONB NOT NULL);
            CREATE TABLE IF NOT EXISTS ff_activities (id TEXT PRIMARY KEY, data JSONB NOT NULL);
            CREATE TABLE IF NOT EXISTS ff_notifications (id TEXT PRIMARY KEY, data JSONB NOT NULL);
            """
        )

    @staticmethod
    def _row_to_workflow(row: asyncpg.Record) -> Workflow:
        data = dict(row["definition"])
        data["enrolled_count"] = row["enrolled_count"]
        data["completed_count"] = row["completed_count"]
        return Workflow.model_validate(data)

    @staticmethod
    def _row_to_enrollment(row: asyncpg.Record) -> Enrollment:
        return Enrollment.model_validate({column: row[column] for column in _ENROLLMENT_COLUMNS})

    # ------------------------------------------------------------------
    async def save_workflow(self, workflow: Workflow) -> None:
        definition = workflow.model_dump(
            mode="json", exclude={"enrolled_count", "completed_count"}
        )
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO ff_workflows
                    (id, workspace_id, status, trigger_type, definition, enrolled_count, completed_count)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                ON CONFLICT (id) DO UPDATE SET
                    workspace_id = EXCLUDED.workspace_id,
                    status = EXCLUDED.status,
                    trigger_type = EXCLUDED.trigger_type,
                    definition = EXCLUDED.definition
                """,
                workflow.id,
                workflow.workspace_id,
                workflow.status,
                workflow.trigger_type,
                definition,
                workflow.enrolled_count,
                workflow.completed_count,
            )
        finally:
            await conn.close()

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow("SELECT * FROM ff_workflows WHERE id = $1", workflow_id)
        finally:
            await conn.close()
        return self._row_to_workflow(row) if row else None

    async def list_active_workflows(
        self, workspace_id: str, trigger_type: str
    ) -> list[Workflow]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                """
                SELECT * FROM ff_workflows
                WHERE workspace_id = $1 AND status = 'active' AND trigger_type = $2
                """,
                workspace_id,
                trigger_type,
            )
        finally:
            await conn.close()
        return [self._row_to_workflow(r) for r in rows]

    async def count_active_workflows(self) -> int:
        conn = await self._connect()
        try:
            return await conn.fetchval(
                "SELECT COUNT(*) FROM ff_workflows WHERE status = 'active'"
            )
        finally:
            await conn.close()

    async def increment_workflow_counter(
        self, workflow_id: str, counter: WorkflowCounter, amount: int = 1
    ) -> None:
        if counter not in ("enrolled_count", "completed_count"):
            raise ValueError(f"Unknown workflow counter: {counter}")
        conn = await self._connect()
        try:
            await conn.execute(
                f"UPDATE ff_workflows SET {counter} = {counter} + $1 WHERE id = $2",
                amount,
                workflow_id,
            )
        finally:
            await conn.close()

    # ------------------------------------------------------------------
    async def save_contact(self, contact: Contact) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO ff_contacts (id, workspace_id, data) VALUES ($1, $2, $3)
                ON CONFLICT (id) DO UPDATE SET workspace_id = EXCLUDED.workspace_id, data = EXCLUDED.data
                """,
                contact.id,
                contact.workspace_id,
                contact.model_dump(mode="json"),
            )
        finally:
            await conn.close()

    async def get_contact(self, contact_id: str) -> Contact | None:
        conn = await self._connect()
        try:
            data = await conn.fetchval("SELECT data FROM ff_contacts WHERE id = $1", contact_id)
        finally:
            await conn.close()
        return Contact.model_validate(data) if data is not None else None

    async def update_contact(self, contact_id: str, changes: dict[str, Any]) -> None:
        conn = await self._connect()
        try:
            status = await conn.execute(
                "UPDATE ff_contacts SET data = data || $1 WHERE id = $2",
                json.loads(json.dumps(changes, default=str)),
                contact_id,
            )
        finally:
            await conn.close()
        if not _affected(status):
            raise LookupError(f"Contact not found: {contact_id}")

    # ------------------------------------------------------------------
    async def create_enrollment(self, enrollment: Enrollment) -> Enrollment:
        values = [
            _encode_column(column, getattr(enrollment, column))
            for column in _ENROLLMENT_COLUMNS
        ]
        placeholders = ", ".join(f"${i}" for i in range(1, len(_ENROLLMENT_COLUMNS) + 1))
        conn = await self._connect()
        try:
            await conn.execute(
                f"INSERT INTO ff_enrollments ({', '.join(_ENROLLMENT_COLUMNS)}) VALUES ({placeholders})",
                *values,
            )
        finally:
            await conn.close()
        return enrollment

    async def get_enrollment(self, enrollment_id: str) -> Enrollment | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow("SELECT * FROM ff_enrollments WHERE id = $1", enrollment_id)
        finally:
            await conn.close()
        return self._row_to_enrollment(row) if row else None

    async def find_open_enrollment(
        self, workflow_id: str, contact_id: str
    ) -> Enrollment | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                """
                SELECT * FROM ff_enrollments
                WHERE workflow_id = $1 AND contact_id = $2 AND status IN ('active', 'paused')
                LIMIT 1
                """,
                workflow_id,
                contact_id,
            )
        finally:
            await conn.close()
        return self._row_to_enrollment(row) if row else None

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
        params = [_encode_column(column, value) for column, value in changes.items()]
        assignments = [f"{column} = ${i}" for i, column in enumerate(changes, start=1)]
        assignments.append("version = version + 1")
        params.extend([enrollment_id, expected_status])
        query = (
            f"UPDATE ff_enrollments SET {', '.join(assignments)} "
            f"WHERE id = ${len(params) - 1} AND status = ${len(params)}"
        )
        if expected_version is not None:
            params.append(expected_version)
            query += f" AND version = ${len(params)}"
        conn = await self._connect()
        try:
            status = await conn.execute(query, *params)
        finally:
            await conn.close()
        return _affected(status) > 0

    async def list_due_enrollments(
        self, now: datetime, limit: int
    ) -> list[Enrollment]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                """
                SELECT * FROM ff_enrollments
                WHERE status = 'active' AND next_step_at IS NOT NULL AND next_step_at <= $1
                ORDER BY next_step_at ASC
                LIMIT $2
                """,
                now,
                limit,
            )
        finally:
            await conn.close()
        return [self._row_to_enrollment(r) for r in rows]

    async def list_enrollments(
        self, workflow_id: Optional[str] = None, status: Optional[str] = None
    ) -> list[Enrollment]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                """
                SELECT * FROM ff_enrollments
                WHERE ($1::text IS NULL OR workflow_id = $1)
                  AND ($2::text IS NULL OR status = $2)
                ORDER BY enrolled_at DESC
                """,
                workflow_id,
                status,
            )
        finally:
            await conn.close()
        return [self._row_to_enrollment(r) for r in rows]

    async def count_enrollments(
        self, status: Optional[str] = None, due_before: Optional[datetime] = None
    ) -> int:
        conn = await self._connect()
        try:
            return await conn.fetchval(
                """
                SELECT COUNT(*) FROM ff_enrollments
                WHERE ($1::text IS NULL OR status = $1)
                  AND ($2::timestamptz IS NULL OR (next_step_at IS NOT NULL AND next_step_at <= $2))
                """,
                status,
                due_before,
            )
        finally:
            await conn.close()

    # ------------------------------------------------------------------
    async def max_deal_position(self, stage_id: str) -> int | None:
        conn = await self._connect()
        try:
            return await conn.fetchval(
                "SELECT MAX(position) FROM ff_deals WHERE stage_id = $1", stage_id
            )
        finally:
            await conn.close()

    async def create_deal(self, deal: Deal) -> Deal:
        conn = await self._connect()
        try:
            await conn.execute(
                "INSERT INTO ff_deals (id, stage_id, position, data) VALUES ($1, $2, $3, $4)",
                deal.id,
                deal.stage_id,
                deal.position,
                deal.model_dump(mode="json"),
            )
        finally:
            await conn.close()
        return deal

    async def create_task(self, task: Task) -> Task:
        conn = await self._connect()
        try:
            await conn.execute(
                "INSERT INTO ff_tasks (id, data) VALUES ($1, $2)",
                task.id,
                task.model_dump(mode="json"),
            )
        finally:
            await conn.close()
        return task

    async def insert_activity(self, activity: ActivityLog) -> ActivityLog:
        conn = await self._connect()
        try:
            await conn.execute(
                "INSERT INTO ff_activities (id, data) VALUES ($1, $2)",
                activity.id,
                activity.model_dump(mode="json"),
            )
        finally:
            await conn.close()
        return activity

    async def insert_notifications(self, notifications: list[Notification]) -> int:
        if not notifications:
            return 0
        conn = await self._connect()
        try:
            await conn.executemany(
                "INSERT INTO ff_notifications (id, data) VALUES ($1, $2)",
                [(n.id, n.model_dump(mode="json")) for n in notifications],
            )
        finally:
            await conn.close()
        return len(notifications)
