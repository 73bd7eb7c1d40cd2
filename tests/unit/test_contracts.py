import pytest
from pydantic import ValidationError

from procflow.contracts import Condition, Notification, Procedure, Run, Step
from procflow.enums import (
    Action,
    AssignmentType,
    ConditionOperator,
    InputType,
    NotificationKind,
)
from procflow.step_configs import (
    ApprovalConfig,
    CalculateConfig,
    CompareConfig,
    InputConfig,
    StepConfig,
)


def test_step_config_is_coerced_by_action():
    assert isinstance(Step(id="a").config, InputConfig)
    assert isinstance(Step(id="b", action="APPROVAL").config, ApprovalConfig)
    assert isinstance(
        Step.model_validate({"id": "c", "action": "COMPARE", "config": {"targetA": "x"}}).config,
        CompareConfig,
    )
    assert isinstance(Step(id="d", action=Action.CALCULATE).config, CalculateConfig)
    assert isinstance(Step(id="e", action="SEND_EMAIL").config, StepConfig)


def test_unknown_config_keys_survive_a_round_trip():
    step = Step.model_validate(
        {"id": "parse", "action": "AI_PARSE", "config": {"prompt": "Extract totals", "outputVariableName": "totals"}}
    )
    assert step.output_variable_name == "totals"
    assert step.config.extras == {"prompt": "Extract totals"}

    document = step.to_document()
    assert document["config"]["prompt"] == "Extract totals"
    assert Step.model_validate(document).config.extras == {"prompt": "Extract totals"}


def test_unknown_action_is_rejected():
    with pytest.raises(ValidationError):
        Step.model_validate({"id": "x", "action": "TELEPORT"})


def test_legacy_assignee_fields_become_assignment():
    step = Step.model_validate({"id": "a", "assigneeType": "TEAM", "assigneeId": "team-ap"})
    assert step.assignment.type == AssignmentType.TEAM_QUEUE
    assert step.assignment.assignee_id == "team-ap"


def test_condition_accepts_next_step_alias():
    condition = Condition.model_validate(
        {"variable": "{{amount}}", "operator": "gt", "value": 100, "nextStepId": "review"}
    )
    assert condition.operator == ConditionOperator.GT
    assert condition.target_step_id == "review"
    assert condition.to_document()["targetStepId"] == "review"


def test_enum_aliases():
    assert AssignmentType("USER") == AssignmentType.SPECIFIC_USER
    assert InputType("Dropdown") == InputType.SELECT
    assert InputType("TEXTAREA") == InputType.MULTILINE
    assert ConditionOperator("not_contains") == ConditionOperator.NOT_CONTAINS
    assert ConditionOperator("Equals") == ConditionOperator.EQ
    with pytest.raises(ValueError):
        ConditionOperator("approximately")


def test_procedure_rejects_duplicate_and_reserved_ids():
    with pytest.raises(ValidationError, match="Duplicate step id"):
        Procedure(steps=[Step(id="a"), Step(id="a")])
    with pytest.raises(ValidationError, match="reserved"):
        Procedure(steps=[Step(id="COMPLETED")])
    with pytest.raises(ValidationError):
        Procedure(is_published=True)


def test_procedure_lookup_helpers():
    procedure = Procedure(steps=[Step(id="a"), Step(id="b")])
    assert procedure.index_of("b") == 1
    assert procedure.index_of("z") is None
    assert procedure.step_by_id("a").id == "a"
    assert procedure.has_step("b")
    assert not procedure.has_step("COMPLETED")


def test_run_document_uses_camel_case_and_accepts_logs():
    run = Run.model_validate(
        {
            "procedureId": "p",
            "startedBy": "alice",
            "currentStepIndex": 2,
            "logs": [{"stepId": "a", "output": "x"}],
        }
    )
    assert run.current_step_index == 2
    assert run.log[0].step_id == "a"

    document = run.to_document()
    assert document["procedureId"] == "p"
    assert document["log"][0]["stepId"] == "a"
    assert Run.model_validate(document) == run


def test_log_entries_are_frozen():
    run = Run.model_validate({"procedureId": "p", "startedBy": "a", "log": [{"stepId": "s"}]})
    with pytest.raises(ValidationError):
        run.log[0].output = "changed"


def test_notification_json_round_trip():
    notification = Notification(
        kind=NotificationKind.ASSIGNMENT, recipient_id="bob", run_id="r1", step_id="s1", title="t"
    )
    payload = notification.to_json()
    assert '"recipientId":"bob"' in payload
    assert Notification.from_json(payload) == notification
