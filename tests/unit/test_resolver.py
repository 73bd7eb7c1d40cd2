"""Step config resolution against the log and trigger payload."""

import pytest

from procflow.contracts import LogEntry, Procedure
from procflow.engine.resolver import resolve_config
from procflow.errors import ConfigurationError
from procflow.step_configs import InputConfig, ValidateConfig


def _procedure() -> Procedure:
    return Procedure.model_validate(
        {
            "id": "p",
            "steps": [
                {"id": "score", "title": "Enter score", "action": "INPUT"},
                {
                    "id": "check",
                    "action": "VALIDATE",
                    "config": {"rule": "GREATER_THAN", "target": "{{step_1_output}}", "value": 70},
                    "routes": {"onSuccessStepId": "done", "onFailureStepId": "COMPLETED"},
                },
                {
                    "id": "done",
                    "action": "INPUT",
                    "config": {
                        "fieldLabel": "Notes for {{trigger.customer.name}}",
                        "placeholder": "Score was {{step_1_output}}",
                        "instruction": "Ticket {{trigger.ticket}} / {{missing.value}}",
                    },
                },
            ],
        }
    )


def test_resolves_templates_and_keeps_variant():
    procedure = _procedure()
    log = [LogEntry(step_id="score", step_title="Enter score", output="85")]
    resolved = resolve_config(procedure.steps[1].config, log, procedure)

    assert isinstance(resolved.config, ValidateConfig)
    assert resolved.config.target == "85"
    assert resolved.config.value == 70
    assert resolved.is_complete
    assert resolved.sources["target"].step_id == "score"
    assert resolved.sources["target"].step_title == "Enter score"


def test_trigger_namespace_and_unresolved_report():
    procedure = _procedure()
    log = [LogEntry(step_id="score", output=91)]
    trigger = {"customer": {"name": "Globex"}, "ticket": "T-7"}
    resolved = resolve_config(procedure.steps[2].config, log, procedure.steps, trigger)

    config = resolved.config
    assert isinstance(config, InputConfig)
    assert config.field_label == "Notes for Globex"
    assert config.placeholder == "Score was 91"
    assert config.instruction == "Ticket T-7 / {{missing.value}}"
    assert resolved.unresolved == ["missing.value"]
    with pytest.raises(ConfigurationError, match="missing.value"):
        resolved.raise_for_unresolved("done")


def test_resolving_resolved_config_is_noop():
    procedure = _procedure()
    log = [LogEntry(step_id="score", output="85")]
    first = resolve_config(procedure.steps[1].config, log, procedure)
    second = resolve_config(first.config, log, procedure)
    assert second.config == first.config


def test_extra_keys_are_resolved_too():
    procedure = Procedure.model_validate(
        {
            "id": "p",
            "steps": [
                {"id": "a", "action": "INPUT", "config": {"outputVariableName": "email"}},
                {
                    "id": "b",
                    "action": "SEND_EMAIL",
                    "config": {"to": "{{email}}", "subject": "Hi", "retries": 2},
                },
            ],
        }
    )
    log = [LogEntry(step_id="a", output="ops@example.com")]
    resolved = resolve_config(procedure.steps[1].config, log, procedure)
    assert resolved.config.extras == {"to": "ops@example.com", "subject": "Hi", "retries": 2}
