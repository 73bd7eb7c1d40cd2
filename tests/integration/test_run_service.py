"""End-to-end run flows through the service, repository and notifier."""

import logging

import pytest

from procflow.automation import CompositeStepRunner, LogicStepRunner
from procflow.automation.base import StepRunner
from procflow.config import ProcflowConfig
from procflow.constants import COMPLETED
from procflow.contracts import Procedure
from procflow.enums import Action, AssigneeKind, NotificationKind, Outcome, RunStatus
from procflow.errors import (
    ConcurrentModificationError,
    StaleStepError,
    StepExecutionError,
    StepValidationError,
)
from procflow.notifications import BaseNotifier, InMemoryNotifier
from procflow.persistence import InMemoryRunRepository, SQLiteRunRepository
from procflow.service import RunService


def _service(repository=None, notifier=None, runner=None) -> RunService:
    service = RunService(
        repository=repository or InMemoryRunRepository(),
        notifier=notifier or InMemoryNotifier(),
        runner=runner or CompositeStepRunner([LogicStepRunner()]),
        config=ProcflowConfig(),
    )
    service.retry_base = 0.0
    return service


async def _load(service: RunService, document: dict) -> Procedure:
    procedure = Procedure.model_validate(document)
    await service.repository.save_procedure(procedure)
    return procedure


LINEAR = {
    "id": "linear",
    "title": "Three inputs",
    "steps": [
        {"id": "step-1", "config": {"fieldLabel": "First"}},
        {"id": "step-2", "config": {"fieldLabel": "Second"}},
        {"id": "step-3", "config": {"fieldLabel": "Third"}},
    ],
}


def _threshold(onfailure: str = COMPLETED) -> dict:
    return {
        "id": "threshold",
        "steps": [
            {"id": "step-1", "config": {"inputType": "number", "fieldLabel": "Score"}},
            {
                "id": "step-2",
                "action": "VALIDATE",
                "config": {"rule": "GREATER_THAN", "target": "{{step_1_output}}", "value": 70},
                "routes": {"onSuccessStepId": "step-3", "onFailureStepId": onfailure},
            },
            {"id": "step-3", "config": {"fieldLabel": "Follow up"}},
        ],
    }


GATEWAY = {
    "id": "triage",
    "steps": [
        {"id": "step-1", "config": {"fieldLabel": "Severity", "outputVariableName": "severity"}},
        {
            "id": "step-route",
            "action": "GATEWAY",
            "routes": {
                "conditions": [
                    {"variable": "{{severity}}", "operator": "==", "value": "Critical", "targetStepId": "step-escalate"}
                ],
                "defaultNextStepId": "step-normal",
            },
        },
        {"id": "step-normal", "config": {"fieldLabel": "Normal handling"}},
        {
            "id": "step-escalate",
            "config": {"fieldLabel": "Escalation"},
            "assignment": {"type": "SPECIFIC_USER", "assigneeId": "oncall"},
        },
    ],
}


@pytest.mark.asyncio
async def test_linear_procedure_completes():
    notifier = InMemoryNotifier()
    service = _service(notifier=notifier)
    await _load(service, LINEAR)

    run = await service.start_run("linear", "alice")
    for step_id in ("step-1", "step-2", "step-3"):
        transition = await service.submit_step(run.id, step_id, f"value for {step_id}", actor_id="alice")

    stored = await service.repository.get_run(run.id)
    assert stored.status == RunStatus.COMPLETED
    assert len(stored.log) == 3
    assert stored.version == 4
    assert transition.next_target == COMPLETED
    assert [n.kind for n in await notifier.inbox("alice")] == [NotificationKind.COMPLETION]


@pytest.mark.asyncio
@pytest.mark.parametrize("score, expected_step, expected_status", [
    (85, "step-3", RunStatus.IN_PROGRESS),
    (50, None, RunStatus.COMPLETED),
])
async def test_validate_step_routes_on_outcome(score, expected_step, expected_status):
    service = _service()
    procedure = await _load(service, _threshold())

    run = await service.start_run("threshold", "alice")
    await service.submit_step(run.id, "step-1", score, actor_id="alice")
    run = await service.drive(run.id)

    assert run.status == expected_status
    assert run.log[1].step_id == "step-2"
    current = service.executor.current_step(run, procedure)
    assert (current.id if current else None) == expected_step


@pytest.mark.asyncio
@pytest.mark.parametrize("severity, expected_step, assignee", [
    ("Critical", "step-escalate", "oncall"),
    ("Minor", "step-normal", "alice"),
])
async def test_gateway_picks_branch(severity, expected_step, assignee):
    notifier = InMemoryNotifier()
    service = _service(notifier=notifier)
    await _load(service, GATEWAY)

    run = await service.start_run("triage", "alice")
    await service.submit_step(run.id, "step-1", severity, actor_id="alice")
    await service.drive(run.id)

    view = await service.get_current_step(run.id)
    assert view.step.id == expected_step
    assert view.assignee_id == assignee
    if assignee == "oncall":
        assert [n.step_id for n in await notifier.inbox("oncall")] == ["step-escalate"]


@pytest.mark.asyncio
async def test_team_queue_requires_claim():
    service = _service()
    await _load(
        service,
        {
            "id": "queue",
            "steps": [
                {"id": "a", "config": {"fieldLabel": "A"}},
                {"id": "b", "config": {"fieldLabel": "B"}, "assignment": {"type": "TEAM_QUEUE", "assigneeId": "team-ops"}},
            ],
        },
    )
    run = await service.start_run("queue", "alice")
    transition = await service.submit_step(run.id, "a", "done", actor_id="alice")
    assert transition.run.status == RunStatus.OPEN_FOR_CLAIM
    assert transition.run.assignee_kind == AssigneeKind.TEAM
    assert transition.notifications == []

    queued = await service.repository.list_runs(status=RunStatus.OPEN_FOR_CLAIM)
    assert [r.id for r in queued] == [run.id]

    claimed = await service.claim_run(run.id, "carol")
    assert claimed.current_assignee_id == "carol"
    assert claimed.status == RunStatus.IN_PROGRESS

    finished = await service.submit_step(run.id, "b", "ok", actor_id="carol")
    assert finished.run.status == RunStatus.COMPLETED


@pytest.mark.asyncio
async def test_invalid_output_is_not_logged():
    service = _service()
    await _load(service, LINEAR)
    run = await service.start_run("linear", "alice")

    with pytest.raises(StepValidationError, match="First is required"):
        await service.submit_step(run.id, "step-1", "  ", actor_id="alice")

    stored = await service.repository.get_run(run.id)
    assert stored.log == []
    assert stored.version == run.version


@pytest.mark.asyncio
async def test_flagged_submission_holds_until_resubmitted():
    service = _service()
    await _load(service, LINEAR)
    run = await service.start_run("linear", "alice")

    held = await service.submit_step(run.id, "step-1", "looks wrong", Outcome.FLAGGED, "alice")
    assert held.held
    assert held.run.status == RunStatus.FLAGGED

    run = await service.reassign_run(run.id, "supervisor", actor_id="alice")
    assert run.status == RunStatus.FLAGGED

    resumed = await service.submit_step(run.id, "step-1", "checked", actor_id="supervisor")
    assert resumed.run.status == RunStatus.IN_PROGRESS
    assert [e.outcome for e in resumed.run.log] == [Outcome.FLAGGED, Outcome.SUCCESS]


@pytest.mark.asyncio
async def test_stale_submission_is_rejected(tmp_path):
    repository = SQLiteRunRepository(tmp_path / "runs.db")
    service = _service(repository=repository)
    await _load(service, LINEAR)
    run = await service.start_run("linear", "alice")

    await service.submit_step(run.id, "step-1", "first", actor_id="alice")
    with pytest.raises(StaleStepError) as excinfo:
        await service.submit_step(run.id, "step-1", "second", actor_id="bob")
    assert excinfo.value.current_step_id == "step-2"
    assert len((await repository.get_run(run.id)).log) == 1
    repository.close()


class RacingRepository(SQLiteRunRepository):
    """Lets another writer commit just before the first save."""

    def __init__(self, path, competitor):
        super().__init__(path)
        self.competitor = competitor
        self.raced = False

    async def save_run(self, run):
        if not self.raced:
            self.raced = True
            await self.competitor(self, run.id)
        await super().save_run(run)


@pytest.mark.asyncio
async def test_conflict_retry_does_not_complete_a_step_twice(tmp_path):
    service = _service()

    async def complete_first(repo, run_id):
        stored = await repo.get_run(run_id)
        procedure = await repo.get_procedure(stored.procedure_id)
        await repo.save_run(service.executor.complete_step(stored, procedure, "theirs").run)

    repository = RacingRepository(tmp_path / "runs.db", complete_first)
    service.repository = repository
    await _load(service, LINEAR)
    run = await service.start_run("linear", "alice")

    with pytest.raises(StaleStepError):
        await service.submit_step(run.id, "step-1", "mine", actor_id="alice", conflict_retries=2)

    stored = await repository.get_run(run.id)
    assert [e.output for e in stored.log] == ["theirs"]
    repository.close()


@pytest.mark.asyncio
async def test_conflict_retry_reapplies_after_unrelated_write(tmp_path):
    service = _service()

    async def reassign(repo, run_id):
        stored = await repo.get_run(run_id)
        procedure = await repo.get_procedure(stored.procedure_id)
        await repo.save_run(service.executor.reassign_run(stored, procedure, "bob").run)

    repository = RacingRepository(tmp_path / "runs.db", reassign)
    service.repository = repository
    await _load(service, LINEAR)
    run = await service.start_run("linear", "alice")

    transition = await service.submit_step(run.id, "step-1", "mine", conflict_retries=1)
    assert transition.run.current_step_index == 1
    assert transition.run.version == 3
    repository.close()


@pytest.mark.asyncio
async def test_conflict_without_retries_propagates(tmp_path):
    service = _service()

    async def reassign(repo, run_id):
        stored = await repo.get_run(run_id)
        procedure = await repo.get_procedure(stored.procedure_id)
        await repo.save_run(service.executor.reassign_run(stored, procedure, "bob").run)

    repository = RacingRepository(tmp_path / "runs.db", reassign)
    service.repository = repository
    await _load(service, LINEAR)
    run = await service.start_run("linear", "alice")

    with pytest.raises(ConcurrentModificationError):
        await service.submit_step(run.id, "step-1", "mine")
    repository.close()


class BrokenNotifier(BaseNotifier):
    async def publish(self, notification):
        raise ConnectionError("notification backend down")


@pytest.mark.asyncio
async def test_notifier_failure_does_not_block_transition(caplog):
    service = _service(notifier=BrokenNotifier())
    await _load(service, LINEAR)
    run = await service.start_run("linear", "alice")

    with caplog.at_level(logging.ERROR, logger="procflow.service"):
        for step_id in ("step-1", "step-2", "step-3"):
            await service.submit_step(run.id, step_id, "x", actor_id="alice")

    assert (await service.repository.get_run(run.id)).status == RunStatus.COMPLETED
    assert "Failed to deliver COMPLETION notification" in caplog.text


class ExplodingRunner(StepRunner):
    def supports(self, action):
        return True

    async def execute(self, request):
        raise StepExecutionError("executor unreachable", step_id=request.step_id)


@pytest.mark.asyncio
async def test_executor_failure_flags_run():
    service = _service(runner=ExplodingRunner())
    await _load(
        service,
        {"id": "auto", "steps": [{"id": "send", "action": "SEND_EMAIL", "config": {"to": "ap@example.com"}}]},
    )
    run = await service.start_run("auto", "alice")
    run = await service.drive(run.id)

    assert run.status == RunStatus.FLAGGED
    assert run.error_detail == "executor unreachable"
    assert run.log == []
    assert run.current_step_index == 0


class CrashingRunner(StepRunner):
    def supports(self, action):
        return True

    async def execute(self, request):
        raise RuntimeError("executor bug")


@pytest.mark.asyncio
async def test_unexpected_executor_error_flags_run(caplog):
    service = _service(runner=CrashingRunner())
    await _load(
        service,
        {"id": "auto", "steps": [{"id": "send", "action": "SEND_EMAIL", "config": {"to": "ap@example.com"}}]},
    )
    run = await service.start_run("auto", "alice")

    with caplog.at_level(logging.ERROR, logger="procflow.service"):
        transition = await service.execute_automated_step(run.id)

    stored = await service.repository.get_run(run.id)
    assert transition.held
    assert stored.status == RunStatus.FLAGGED
    assert stored.error_detail == "Unexpected executor error: executor bug"
    assert stored.log == []
    assert "Executor failed on step send" in caplog.text


@pytest.mark.asyncio
async def test_calculate_overflow_takes_failure_route():
    service = _service()
    procedure = await _load(
        service,
        {
            "id": "square",
            "steps": [
                {"id": "square", "action": "CALCULATE",
                 "config": {"formula": "a ** 2", "variables": {"a": "{{trigger.a}}"}},
                 "routes": {"onSuccessStepId": "COMPLETED", "onFailureStepId": "review"}},
                {"id": "review", "config": {"fieldLabel": "Check the inputs"}},
            ],
        },
    )
    run = await service.start_run("square", "alice", trigger_context={"a": 1e200})
    transition = await service.execute_automated_step(run.id)

    assert transition.log_entry.outcome == Outcome.FAILURE
    assert transition.run.status == RunStatus.IN_PROGRESS
    assert service.executor.current_step(transition.run, procedure).id == "review"


@pytest.mark.asyncio
async def test_answer_matching_a_variable_name_is_compared_as_text():
    service = _service()
    procedure = await _load(
        service,
        {
            "id": "reply-check",
            "steps": [
                {"id": "s1", "config": {"fieldLabel": "Code", "outputVariableName": "code"}},
                {"id": "s2", "config": {"fieldLabel": "Reply", "outputVariableName": "reply"}},
                {"id": "s3", "action": "VALIDATE",
                 "config": {"rule": "CONTAINS", "target": "{{reply}}", "value": "cod"},
                 "routes": {"onSuccessStepId": "s4", "onFailureStepId": "COMPLETED"}},
                {"id": "s4", "config": {"fieldLabel": "Done"}},
            ],
        },
    )
    run = await service.start_run("reply-check", "alice")
    await service.submit_step(run.id, "s1", "A-1", actor_id="alice")
    await service.submit_step(run.id, "s2", "code", actor_id="alice")
    run = await service.drive(run.id)

    assert run.log[2].outcome == Outcome.SUCCESS
    assert run.log[2].output["value"] == "code"
    assert service.executor.current_step(run, procedure).id == "s4"


@pytest.mark.asyncio
async def test_unresolved_reference_flags_automated_step():
    service = _service()
    await _load(
        service,
        {
            "id": "unresolved",
            "steps": [
                {"id": "check", "action": "VALIDATE", "config": {"rule": "IS_NOT_EMPTY", "target": "{{invoice.total}}"},
                 "routes": {"onSuccessStepId": "COMPLETED"}},
            ],
        },
    )
    run = await service.start_run("unresolved", "alice")
    transition = await service.execute_automated_step(run.id)

    assert transition.held
    assert transition.run.status == RunStatus.FLAGGED
    assert "invoice.total" in transition.run.error_detail


@pytest.mark.asyncio
async def test_drive_runs_automated_chain_until_human_step():
    service = _service()
    procedure = await _load(
        service,
        {
            "id": "chain",
            "steps": [
                {"id": "subtotal", "action": "CALCULATE", "config": {
                    "formula": "qty * price", "variables": {"qty": "trigger.qty", "price": "trigger.price"},
                    "outputVariableName": "subtotal"}},
                {"id": "total", "action": "CALCULATE", "config": {
                    "formula": "base + 6", "variables": {"base": "subtotal.result"}}},
                {"id": "confirm", "config": {"fieldLabel": "Confirm total of {{step_2_output.result}}"}},
            ],
        },
    )
    run = await service.start_run("chain", "alice", trigger_context={"qty": 3, "price": 10})

    partial = await service.drive(run.id, max_steps=1)
    assert partial.current_step_index == 1

    run = await service.drive(run.id)
    assert service.executor.current_step(run, procedure).id == "confirm"
    assert run.log[0].output["result"] == 30
    assert run.log[1].output["result"] == 36

    view = await service.get_current_step(run.id)
    assert view.resolved.config.field_label == "Confirm total of 36"
    assert view.step.action == Action.INPUT
