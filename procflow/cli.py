"""Command line interface for authoring checks and operating runs."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError

from procflow.authoring import Severity, ensure_publishable, lint_procedure
from procflow.cli_utils.documents import (
    format_output,
    format_run_line,
    load_procedure,
    parse_value,
)
from procflow.enums import Outcome, RunStatus
from procflow.errors import (
    ConfigurationError,
    InvalidTransitionError,
    NotFoundError,
    ProcflowError,
    StepValidationError,
)
from procflow.persistence import get_repository
from procflow.service import RunService

app = typer.Typer(help="CLI for procflow procedures and runs")

# Command groups
procedure_app = typer.Typer(help="Commands for procedure definitions")
run_app = typer.Typer(help="Commands for procedure runs")

app.add_typer(procedure_app, name="procedure")
app.add_typer(run_app, name="run")


@app.callback()
def main() -> None:
    """procflow CLI entry point."""
    pass


def _service() -> RunService:
    return RunService(repository=get_repository())


def _fail(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _read_procedure(path: Path):
    if not path.exists():
        _fail(f"File not found: {path}")
    try:
        return load_procedure(path)
    except ValidationError as exc:
        _fail(f"Invalid procedure document: {exc}")


@procedure_app.command("lint")
def procedure_lint(path: Path) -> None:
    """
    Check a procedure file for authoring errors.

    Reports unknown route targets, routing steps without routes, missing
    assignees, unresolvable references and colliding output variable names.
    Exits with code 1 when any error is found.

    Example:
        procflow procedure lint ./invoice_approval.yaml
    """
    procedure = _read_procedure(path)
    issues = lint_procedure(procedure)
    if not issues:
        typer.echo("No issues found.")
        return
    for issue in issues:
        color = typer.colors.RED if issue.severity == Severity.ERROR else typer.colors.YELLOW
        typer.secho(str(issue), fg=color)
    if any(issue.severity == Severity.ERROR for issue in issues):
        raise typer.Exit(code=1)


@procedure_app.command("load")
def procedure_load(
    path: Path,
    publish: bool = typer.Option(False, help="Mark the procedure as published"),
) -> None:
    """Store a procedure file in the configured repository."""
    procedure = _read_procedure(path)
    if publish:
        try:
            warnings = ensure_publishable(procedure)
        except ConfigurationError as exc:
            _fail(str(exc))
        for issue in warnings:
            typer.secho(str(issue), fg=typer.colors.YELLOW)
        procedure = procedure.model_copy(update={"is_published": True})
    asyncio.run(get_repository().save_procedure(procedure))
    typer.echo(f"Loaded procedure {procedure.id} ({len(procedure.steps)} steps)")


@procedure_app.command("list")
def procedure_list() -> None:
    """List stored procedures."""
    procedures = asyncio.run(get_repository().list_procedures())
    if not procedures:
        typer.echo("No procedures found")
        return
    for procedure in procedures:
        state = "published" if procedure.is_published else "draft"
        typer.echo(f"{procedure.id}\t{procedure.title}\t{state}")


@run_app.command("start")
def run_start(
    procedure_id: str,
    user: str = typer.Option(..., help="User starting the run"),
    trigger: Optional[str] = typer.Option(None, help="Trigger payload as JSON"),
    drive: bool = typer.Option(True, help="Execute leading automated steps"),
) -> None:
    """
    Start a run of a stored procedure.

    Example:
        procflow run start invoice-approval --user alice
        procflow run start intake --user bot --trigger '{"file": "a.pdf"}'
    """
    trigger_context = parse_value(trigger) if trigger else None
    if trigger_context is not None and not isinstance(trigger_context, dict):
        _fail("Trigger payload must be a JSON object")
    service = _service()

    async def _start():
        run = await service.start_run(procedure_id, user, trigger_context=trigger_context)
        if drive:
            run = await service.drive(run.id)
        return run

    try:
        run = asyncio.run(_start())
    except NotFoundError as exc:
        _fail(str(exc))
    except ProcflowError as exc:
        _fail(f"Could not start run: {exc}")
    typer.echo(f"Started run {run.id}: {run.status.value}")


@run_app.command("list")
def run_list(
    status: Optional[RunStatus] = typer.Option(None, help="Only runs with this status"),
    assignee: Optional[str] = typer.Option(None, help="Only runs owned by this assignee"),
) -> None:
    """List runs with their status and current owner."""
    runs = asyncio.run(get_repository().list_runs(status=status, assignee_id=assignee))
    if not runs:
        typer.echo("No runs found")
        return
    for run in runs:
        typer.echo(format_run_line(run))


@run_app.command("show")
def run_show(run_id: str) -> None:
    """Show a run's state, current step and log."""
    service = _service()
    try:
        run = asyncio.run(service.repository.get_run(run_id))
    except NotFoundError:
        _fail("Run not found")
    typer.echo(f"Run {run.id}: {run.status.value}")
    typer.echo(f"Procedure: {run.procedure_title or run.procedure_id}")
    typer.echo(f"Assignee: {run.current_assignee_id or '-'} ({run.assignee_kind.value})")
    if run.error_detail:
        typer.secho(f"Error: {run.error_detail}", fg=typer.colors.RED)
    if not run.is_completed:
        try:
            view = asyncio.run(service.get_current_step(run_id))
            typer.echo(f"Current step: {view.step.id} - {view.step.title} ({view.step.action.value})")
        except (NotFoundError, InvalidTransitionError) as exc:
            typer.secho(f"Current step unavailable: {exc}", fg=typer.colors.YELLOW)
    for entry in run.log:
        typer.echo(
            f"- {entry.step_id}: {entry.outcome.value} {format_output(entry.output)}"
            f" ({entry.timestamp.isoformat()})"
        )


@run_app.command("complete")
def run_complete(
    run_id: str,
    step_id: str,
    output: Optional[str] = typer.Option(None, help="Step output, JSON or plain text"),
    outcome: Outcome = typer.Option(Outcome.SUCCESS, help="Step outcome"),
    user: Optional[str] = typer.Option(None, help="User submitting the step"),
    drive: bool = typer.Option(True, help="Execute following automated steps"),
) -> None:
    """
    Submit output for the current step of a run.

    Example:
        procflow run complete 3f2a... step-1 --output 85 --user alice
    """
    service = _service()

    async def _complete():
        transition = await service.submit_step(
            run_id, step_id, parse_value(output), outcome=outcome, actor_id=user
        )
        run = transition.run
        if drive and not transition.held:
            run = await service.drive(run.id)
        return run

    try:
        run = asyncio.run(_complete())
    except StepValidationError as exc:
        _fail(f"Invalid output: {exc}")
    except NotFoundError as exc:
        _fail(str(exc))
    except ProcflowError as exc:
        _fail(f"Could not complete step: {exc}")
    typer.echo(f"Run {run.id}: {run.status.value}")
    if not run.is_completed:
        typer.echo(f"Assignee: {run.current_assignee_id or '-'}")


@run_app.command("claim")
def run_claim(run_id: str, user: str = typer.Option(..., help="Claiming user")) -> None:
    """Claim a run waiting in a team queue."""
    try:
        run = asyncio.run(_service().claim_run(run_id, user))
    except ProcflowError as exc:
        _fail(str(exc))
    typer.echo(f"Run {run.id} claimed by {user}")


@run_app.command("reassign")
def run_reassign(
    run_id: str,
    assignee: str,
    user: Optional[str] = typer.Option(None, help="User performing the reassignment"),
) -> None:
    """Hand the current step of a run to another user."""
    try:
        run = asyncio.run(_service().reassign_run(run_id, assignee, actor_id=user))
    except ProcflowError as exc:
        _fail(str(exc))
    typer.echo(f"Run {run.id} reassigned to {assignee}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
