"""Shared fixtures for funnelflow tests."""

import random
from datetime import datetime, timedelta, timezone

import pytest

import funnelflow.persistence as persistence
from funnelflow import Contact, Workflow, WorkflowEngine
from funnelflow.actions import ExecutionContext
from funnelflow.delivery import InMemoryDelivery
from funnelflow.persistence import InMemoryWorkflowRepository

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock that only moves when told to."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repo():
    repository = InMemoryWorkflowRepository()
    persistence._repository_instance = repository
    yield repository
    persistence._repository_instance = None


@pytest.fixture
def delivery():
    return InMemoryDelivery()


@pytest.fixture
def engine(repo, delivery, clock):
    return WorkflowEngine(repo, delivery, clock=clock, rng=random.Random(7))


@pytest.fixture
def make_workflow():
    def _make(steps, **overrides) -> Workflow:
        data = {
            "id": "wf-1",
            "workspace_id": "ws-1",
            "name": "Buyer nurture",
            "status": "active",
            "created_by": "user-creator",
            "steps": steps,
        }
        data.update(overrides)
        return Workflow.model_validate(data)

    return _make


@pytest.fixture
def make_contact():
    def _make(**overrides) -> Contact:
        data = {
            "id": "contact-1",
            "workspace_id": "ws-1",
            "first_name": "Ada",
            "last_name": "Lovelace",
            "email": "ada@example.com",
            "phone": "+15550100",
            "company_name": "Analytical Engines",
            "type": "seller",
            "assigned_to": "user-owner",
            "tags": ["lead"],
            "custom_fields": {"budget_min": 250000, "city_pref": "Austin"},
        }
        data.update(overrides)
        return Contact.model_validate(data)

    return _make


@pytest.fixture
def make_context(repo, delivery, clock, make_workflow):
    """Build an ExecutionContext around a stored contact."""

    async def _make(contact, workflow=None, rng=None) -> ExecutionContext:
        await repo.save_contact(contact)
        return ExecutionContext(
            contact=contact,
            workflow=workflow or make_workflow([]),
            repository=repo,
            delivery=delivery,
            clock=clock,
            rng=rng or random.Random(3),
        )

    return _make
