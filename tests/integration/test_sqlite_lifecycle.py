"""Full enrollment lifecycle against the SQLite backend."""

import random
from datetime import timedelta

import pytest

from funnelflow import EnrollmentWorker, WorkflowEngine
from funnelflow.config import WorkerConfig
from funnelflow.delivery import InMemoryDelivery
from funnelflow.persistence import SQLiteWorkflowRepository
from funnelflow.triggers import handle_tag_added


@pytest.fixture
def sqlite_repo(tmp_path):
    return SQLiteWorkflowRepository(tmp_path / "funnelflow.db")


@pytest.mark.asyncio
async def test_tag_triggered_workflow_runs_to_completion(
    sqlite_repo, clock, make_workflow, make_contact
):
    delivery = InMemoryDelivery()
    engine = WorkflowEngine(sqlite_repo, delivery, clock=clock, rng=random.Random(1))
    worker = EnrollmentWorker(engine, config=WorkerConfig(), clock=clock)

    await sqlite_repo.save_workflow(
        make_workflow(
            [
                {
                    "id": "welcome",
                    "type": "send_email",
                    "config": {"subject": "Welcome {{first_name}}", "content_html": "<p>Hi</p>"},
                },
                {"id": "wait", "type": "wait", "config": {"duration": 2, "unit": "hours"}},
                {
                    "id": "budget",
                    "type": "update_field",
                    "config": {"field": "budget_min", "value": 300000},
                },
                {
                    "id": "follow_up",
                    "type": "create_task",
                    "config": {"title": "Call {{first_name}}", "due_in_days": 2},
                },
            ],
            trigger={"type": "tag_added", "config": {"tag_ids": ["vip"]}},
        )
    )
    contact = make_contact()
    await sqlite_repo.save_contact(contact)

    enrollments = await handle_tag_added(engine, contact, ["vip"])
    assert len(enrollments) == 1
    enrollment_id = enrollments[0].id

    clock.advance(seconds=1)
    report = await worker.run_once()
    assert report.succeeded == 1
    assert delivery.emails[0].subject == "Welcome Ada"

    waiting = await sqlite_repo.get_enrollment(enrollment_id)
    assert waiting.current_step_id == "wait"
    assert waiting.next_step_at == clock.now + timedelta(hours=2)

    clock.advance(minutes=30)
    assert (await worker.run_once()).processed == 0

    for _ in range(3):
        clock.advance(hours=2)
        await worker.run_once()

    done = await sqlite_repo.get_enrollment(enrollment_id)
    assert done.status == "completed"
    assert done.next_step_at is None
    assert [h.step_id for h in done.step_history] == ["welcome", "wait", "budget", "follow_up"]
    assert all(h.status == "completed" for h in done.step_history)

    stored_contact = await sqlite_repo.get_contact("contact-1")
    assert stored_contact.custom_fields == {"budget_min": 300000, "city_pref": "Austin"}

    workflow = await sqlite_repo.get_workflow("wf-1")
    assert workflow.enrolled_count == 1
    assert workflow.completed_count == 1


@pytest.mark.asyncio
async def test_stale_writer_loses_on_sqlite(sqlite_repo, clock, make_workflow, make_contact):
    engine = WorkflowEngine(sqlite_repo, InMemoryDelivery(), clock=clock)
    await sqlite_repo.save_workflow(
        make_workflow([{"id": "tag", "type": "add_tag", "config": {"tag_ids": ["x"]}}])
    )
    await sqlite_repo.save_contact(make_contact())
    enrollment = await engine.enroll("wf-1", "contact-1")

    assert await sqlite_repo.update_enrollment(
        enrollment.id, {"error_message": "first"}, expected_status="active",
        expected_version=enrollment.version,
    )
    assert not await sqlite_repo.update_enrollment(
        enrollment.id, {"error_message": "second"}, expected_status="active",
        expected_version=enrollment.version,
    )
    assert (await sqlite_repo.get_enrollment(enrollment.id)).error_message == "first"
