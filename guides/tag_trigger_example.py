"""Example showing a tag event driving a workflow to completion."""

import asyncio
from pathlib import Path

import yaml

from funnelflow import Contact, EnrollmentWorker, Workflow, WorkflowEngine
from funnelflow.config import WorkerConfig
from funnelflow.delivery import InMemoryDelivery
from funnelflow.persistence import InMemoryWorkflowRepository
from funnelflow.triggers import handle_tag_added


async def main():
    repository = InMemoryWorkflowRepository()
    delivery = InMemoryDelivery()
    engine = WorkflowEngine(repository, delivery)

    data = yaml.safe_load((Path(__file__).parent / "nurture.yaml").read_text())
    for item in data["workflows"]:
        workflow = Workflow.model_validate(item)
        # Shorten the one-day wait to three seconds so the example finishes quickly
        for step in workflow.steps:
            if step.type == "wait":
                step.config.duration = 0.05
                step.config.unit = "minutes"
        await repository.save_workflow(workflow)
    contact = Contact.model_validate(data["contacts"][0])
    await repository.save_contact(contact)

    enrollments = await handle_tag_added(engine, contact, ["buyer-lead"])
    print(f"Enrolled in {len(enrollments)} workflow(s)")

    worker = EnrollmentWorker(engine, config=WorkerConfig(poll_interval=0.5))
    await worker.run(lifespan=10)

    for enrollment in await repository.list_enrollments():
        print(f"{enrollment.id}: {enrollment.status}")
        for step in enrollment.step_history:
            print(f"  {step.step_id} -> {step.status} {step.branch_taken or ''}")
    print(f"Emails handed off: {[m.subject for m in delivery.emails]}")
    print(f"Tasks created: {[t.title for t in repository.tasks.values()]}")


if __name__ == "__main__":
    asyncio.run(main())
