"""Command line interface for operating funnelflow."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import List, Optional

import typer
import yaml
from pydantic import ValidationError

from funnelflow import (
    Contact,
    EnrollmentWorker,
    Workflow,
    WorkflowEngine,
    get_delivery,
    get_repository,
    load_config,
)

app = typer.Typer(help="CLI for funnelflow workflow automation")

# Command groups
worker_app = typer.Typer(help="Commands for the enrollment worker")
workflow_app = typer.Typer(help="Commands for managing workflows")
enrollment_app = typer.Typer(help="Commands for inspecting enrollments")

app.add_typer(worker_app, name="worker")
app.add_typer(workflow_app, name="workflow")
app.add_typer(enrollment_app, name="enrollment")


@app.callback()
def main(
    config_path: Optional[Path] = typer.Option(
        None, "--config", help="Path to a YAML config file"
    ),
) -> None:
    """Funnelflow CLI entry point."""
    if config_path is not None:
        os.environ["FUNNELFLOW_CONFIG"] = str(config_path)
    config = load_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _engine() -> WorkflowEngine:
    return WorkflowEngine(repository=get_repository(), delivery=get_delivery())


def _worker() -> EnrollmentWorker:
    return EnrollmentWorker(_engine(), config=load_config().worker)


@worker_app.command("run")
def worker_run(lifespan: Optional[float] = None) -> None:
    """
    Poll for due enrollments and advance them.

    Args:
        lifespan: Stop after this many seconds (default: run indefinitely)

    Example:
        funnelflow worker run
        funnelflow worker run --lifespan 300
    """
    typer.echo("Starting enrollment worker")
    asyncio.run(_worker().run(lifespan=lifespan))


@worker_app.command("once")
def worker_once() -> None:
    """Process a single batch of due enrollments and print the report."""
    report = asyncio.run(_worker().run_once())
    typer.echo(
        f"Processed {report.processed}: {report.succeeded} succeeded, "
        f"{report.failed} failed, {report.remaining} remaining ({report.duration_ms}ms)"
    )
    for error in report.errors:
        typer.echo(f"- {error}")


@worker_app.command("stats")
def worker_stats() -> None:
    """Show pending and active enrollment counts."""
    stats = asyncio.run(_worker().stats())
    for key, value in stats.items():
        typer.echo(f"{key}\t{value}")


@workflow_app.command("load")
def workflow_load(path: Path) -> None:
    """
    Load workflow definitions (and optional contacts) from a YAML file.

    The file holds either a single workflow mapping or top-level
    ``workflows`` and ``contacts`` lists.

    Example:
        funnelflow workflow load ./guides/nurture.yaml
    """
    if not path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    raw_workflows = data.get("workflows", [data] if "steps" in data else [])
    raw_contacts = data.get("contacts", [])
    try:
        workflows = [Workflow.model_validate(item) for item in raw_workflows]
        contacts = [Contact.model_validate(item) for item in raw_contacts]
    except ValidationError as exc:
        typer.secho(f"Invalid definition: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    async def _save() -> None:
        repository = get_repository()
        for workflow in workflows:
            await repository.save_workflow(workflow)
        for contact in contacts:
            await repository.save_contact(contact)

    asyncio.run(_save())
    for workflow in workflows:
        typer.echo(f"Loaded workflow {workflow.id} ({workflow.status}, {len(workflow.steps)} steps)")
    if contacts:
        typer.echo(f"Loaded {len(contacts)} contacts")


@workflow_app.command("enroll")
def workflow_enroll(
    workflow_id: str,
    contact_ids: List[str],
    by: Optional[str] = typer.Option(None, help="User id recorded as enroller"),
) -> None:
    """
    Manually enroll contacts into a workflow.

    Example:
        funnelflow workflow enroll wf-1 contact-1 contact-2 --by user-9
    """
    summary = asyncio.run(_engine().enroll_many(workflow_id, contact_ids, enrolled_by=by))
    typer.echo(f"Enrolled {summary.enrolled} contact(s), skipped {summary.skipped}")
    for enrollment in summary.enrollments:
        typer.echo(f"{enrollment.id}\t{enrollment.contact_id}")


@enrollment_app.command("list")
def enrollment_list(
    workflow: Optional[str] = typer.Option(None, help="Filter by workflow id"),
    status: Optional[str] = typer.Option(None, help="Filter by status"),
) -> None:
    """List enrollments with their status and current step."""
    repo = get_repository()
    enrollments = asyncio.run(repo.list_enrollments(workflow_id=workflow, status=status))
    if not enrollments:
        typer.echo("No enrollments found")
        return
    for e in enrollments:
        typer.echo(f"{e.id}\t{e.workflow_id}\t{e.contact_id}\t{e.status}\t{e.current_step_id or '-'}")


@enrollment_app.command("show")
def enrollment_show(enrollment_id: str) -> None:
    """Show an enrollment and its step history."""
    repo = get_repository()
    e = asyncio.run(repo.get_enrollment(enrollment_id))
    if e is None:
        typer.echo("Enrollment not found")
        raise typer.Exit(code=1)
    typer.echo(f"Enrollment {e.id}: {e.status}")
    typer.echo(f"Workflow: {e.workflow_id}  Contact: {e.contact_id}")
    if e.next_step_at:
        typer.echo(f"Next step: {e.current_step_id} at {e.next_step_at.isoformat()}")
    if e.error_message:
        typer.echo(f"Error: {e.error_message}")
    if e.exit_reason:
        typer.echo(f"Exit reason: {e.exit_reason}")
    if e.trigger_data:
        typer.echo(f"Trigger data: {json.dumps(e.trigger_data, default=str)}")
    for step in e.step_history:
        typer.echo(
            f"- {step.step_id} ({step.step_type}): {step.status}"
            + (f" [{step.branch_taken}]" if step.branch_taken else "")
            + (f" {step.error}" if step.error else "")
        )


@enrollment_app.command("exit")
def enrollment_exit(
    enrollment_id: str,
    reason: str = typer.Option("Manual exit", help="Reason recorded on the enrollment"),
) -> None:
    """Exit an active enrollment."""
    if not asyncio.run(_engine().exit(enrollment_id, reason)):
        typer.echo("Enrollment is not active")
        raise typer.Exit(code=1)
    typer.echo(f"Enrollment {enrollment_id} exited")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
