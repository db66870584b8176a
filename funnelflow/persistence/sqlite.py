"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

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
_JSON_COLUMNS = {"trigger_data", "step_history"}


def _ts(value: datetime | None) -> str | None:
    """Encode a datetime as a fixed-width UTC string so text comparison orders it."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _encode_column(column: str, value: Any) -> Any:
    if isinstance(value, datetime):
        return _ts(value)
    if column in _JSON_COLUMNS:
        if column == "step_history":
            value = [
                item.model_dump(mode="json") if hasattr(item, "model_dump") else item
                for item in value
            ]
        return json.dumps(value)
    return value


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist automation state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.executescript(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                workspace_id TEXT NOT NULL,
                status TEXT NOT NULL,
                trigger_type TEXT NOT NULL,
                definition TEXT NOT NULL,
                enrolled_count INTEGER NOT NULL DEFAULT 0,
                completed_count INTEGER NOT NULL DEFAULT 0
            );
            CREATE TABLE IF NOT EXISTS contacts (
                id TEXT PRIMARY KEY,
                workspace_id TEXT,
                data TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS enrollments (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                contact_id TEXT NOT NULL,
                status TEXT NOT NULL,
                current_step_id TEXT,
                current_step_index INTEGER NOT NULL DEFAULT 0,
                enrolled_at TEXT NOT NULL,
                enrolled_by TEXT,
                completed_at TEXT,
                exited_at TEXT,
                exit_reason TEXT,
                error_message TEXT,
                next_step_at TEXT,
                trigger_data TEXT NOT NULL,
                step_history TEXT NOT NULL,
                version INTEGER NOT NULL DEFAULT 1,
                updated_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS enrollments_due
                ON enrollments (status, next_step_at);
            CREATE TABLE IF NOT EXISTS deals (
                id TEXT PRIMARY KEY,
                stage_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                data TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS tasks (id TEXT PRIMARY KEY, data TEXT NOT NULL);
            CREATE TABLE IF NOT EXISTS activities (id TEXT PRIMARY KEY, data TEXT NOT NULL);
            CREATE TABLE IF NOT EXISTS notifications (id TEXT PRIMARY KEY, data TEXT NOT NULL);
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur.rowcount

    def _executemany(self, query: str, rows: list[tuple]) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.executemany(query, rows)
            self._conn.commit()
            return len(rows)

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    @staticmethod
    def _row_to_workflow(row: sqlite3.Row) -> Workflow:
        data = json.loads(row["definition"])
        data["enrolled_count"] = row["enrolled_count"]
        data["completed_count"] = row["completed_count"]
        return Workflow.model_validate(data)

    @staticmethod
    def _row_to_enrollment(row: sqlite3.Row) -> Enrollment:
        data = {column: row[column] for column in _ENROLLMENT_COLUMNS}
        data["trigger_data"] = json.loads(data["trigger_data"])
        data["step_history"] = json.loads(data["step_history"])
        return Enrollment.model_validate(data)

    # ------------------------------------------------------------------
    # Workflows
    async def save_workflow(self, workflow: Workflow) -> None:
        definition = workflow.model_dump_json(exclude={"enrolled_count", "completed_count"})
        await asyncio.to_thread(
            self._execute,
            """
            INSERT OR REPLACE INTO workflows
                (id, workspace_id, status, trigger_type, definition, enrolled_count, completed_count)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            workflow.id,
            workflow.workspace_id,
            workflow.status,
            workflow.trigger_type,
            definition,
            workflow.enrolled_count,
            workflow.completed_count,
        )

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT * FROM workflows WHERE id = ?", workflow_id
        )
        return self._row_to_workflow(row) if row else None

    async def list_active_workflows(
        self, workspace_id: str, trigger_type: str
    ) -> list[Workflow]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT * FROM workflows WHERE workspace_id = ? AND status = 'active' AND trigger_type = ?",
            workspace_id,
            trigger_type,
        )
        return [self._row_to_workflow(r) for r in rows]

    async def count_active_workflows(self) -> int:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT COUNT(*) AS n FROM workflows WHERE status = 'active'"
        )
        return row["n"]

    async def increment_workflow_counter(
        self, workflow_id: str, counter: WorkflowCounter, amount: int = 1
    ) -> None:
        if counter not in ("enrolled_count", "completed_count"):
            raise ValueError(f"Unknown workflow counter: {counter}")
        await asyncio.to_thread(
            self._execute,
            f"UPDATE workflows SET {counter} = {counter} + ? WHERE id = ?",
            amount,
            workflow_id,
        )

    # ------------------------------------------------------------------
    # Contacts
    async def save_contact(self, contact: Contact) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT OR REPLACE INTO contacts (id, workspace_id, data) VALUES (?, ?, ?)",
            contact.id,
            contact.workspace_id,
            contact.model_dump_json(),
        )

    async def get_contact(self, contact_id: str) -> Contact | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT data FROM contacts WHERE id = ?", contact_id
        )
        return Contact.model_validate_json(row["data"]) if row else None

    async def update_contact(self, contact_id: str, changes: dict[str, Any]) -> None:
        affected = await asyncio.to_thread(
            self._execute,
            "UPDATE contacts SET data = json_patch(data, ?) WHERE id = ?",
            json.dumps(changes, default=str),
            contact_id,
        )
        if not affected:
            raise LookupError(f"Contact not found: {contact_id}")

    # ------------------------------------------------------------------
    # Enrollments
    async def create_enrollment(self, enrollment: Enrollment) -> Enrollment:
        values = [
            _encode_column(column, getattr(enrollment, column))
            for column in _ENROLLMENT_COLUMNS
        ]
        placeholders = ", ".join("?" for _ in _ENROLLMENT_COLUMNS)
        await asyncio.to_thread(
            self._execute,
            f"INSERT INTO enrollments ({', '.join(_ENROLLMENT_COLUMNS)}) VALUES ({placeholders})",
            *values,
        )
        return enrollment

    async def get_enrollment(self, enrollment_id: str) -> Enrollment | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT * FROM enrollments WHERE id = ?", enrollment_id
        )
        return self._row_to_enrollment(row) if row else None

    async def find_open_enrollment(
        self, workflow_id: str, contact_id: str
    ) -> Enrollment | None:
        row = await asyncio.to_thread(
            self._fetchone,
            """
            SELECT * FROM enrollments
            WHERE workflow_id = ? AND contact_id = ? AND status IN ('active', 'paused')
            LIMIT 1
            """,
            workflow_id,
            contact_id,
        )
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
        assignments = [f"{column} = ?" for column in changes]
        assignments.append("version = version + 1")
        params = [_encode_column(column, value) for column, value in changes.items()]
        query = f"UPDATE enrollments SET {', '.join(assignments)} WHERE id = ? AND status = ?"
        params.extend([enrollment_id, expected_status])
        if expected_version is not None:
            query += " AND version = ?"
            params.append(expected_version)
        affected = await asyncio.to_thread(self._execute, query, *params)
        return affected > 0

    async def list_due_enrollments(
        self, now: datetime, limit: int
    ) -> list[Enrollment]:
        rows = await asyncio.to_thread(
            self._fetchall,
            """
            SELECT * FROM enrollments
            WHERE status = 'active' AND next_step_at IS NOT NULL AND next_step_at <= ?
            ORDER BY next_step_at ASC
            LIMIT ?
            """,
            _ts(now),
            limit,
        )
        return [self._row_to_enrollment(r) for r in rows]

    async def list_enrollments(
        self, workflow_id: Optional[str] = None, status: Optional[str] = None
    ) -> list[Enrollment]:
        query = "SELECT * FROM enrollments WHERE 1 = 1"
        params: list[Any] = []
        if workflow_id is not None:
            query += " AND workflow_id = ?"
            params.append(workflow_id)
        if status is not None:
            query += " AND status = ?"
            params.append(status)
        query += " ORDER BY enrolled_at DESC"
        rows = await asyncio.to_thread(self._fetchall, query, *params)
        return [self._row_to_enrollment(r) for r in rows]

    async def count_enrollments(
        self, status: Optional[str] = None, due_before: Optional[datetime] = None
    ) -> int:
        query = "SELECT COUNT(*) AS n FROM enrollments WHERE 1 = 1"
        params: list[Any] = []
        if status is not None:
            query += " AND status = ?"
            params.append(status)
        if due_before is not None:
            query += " AND next_step_at IS NOT NULL AND next_step_at <= ?"
            params.append(_ts(due_before))
        row = await asyncio.to_thread(self._fetchone, query, *params)
        return row["n"]

    # ------------------------------------------------------------------
    # Deals, tasks, activities, notifications
    async def max_deal_position(self, stage_id: str) -> int | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT MAX(position) AS position FROM deals WHERE stage_id = ?",
            stage_id,
        )
        return row["position"] if row else None

    async def create_deal(self, deal: Deal) -> Deal:
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO deals (id, stage_id, position, data) VALUES (?, ?, ?, ?)",
            deal.id,
            deal.stage_id,
            deal.position,
            deal.model_dump_json(),
        )
        return deal

    async def create_task(self, task: Task) -> Task:
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO tasks (id, data) VALUES (?, ?)",
            task.id,
            task.model_dump_json(),
        )
        return task

    async def insert_activity(self, activity: ActivityLog) -> ActivityLog:
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO activities (id, data) VALUES (?, ?)",
            activity.id,
            activity.model_dump_json(),
        )
        return activity

    async def insert_notifications(self, notifications: list[Notification]) -> int:
        if not notifications:
            return 0
        return await asyncio.to_thread(
            self._executemany,
            "INSERT INTO notifications (id, data) VALUES (?, ?)",
            [(n.id, n.model_dump_json()) for n in notifications],
        )
