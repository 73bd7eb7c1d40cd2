from procflow.enums import Action, InputType
from procflow.step_configs import (
    ApprovalConfig,
    InputConfig,
    StepConfig,
    ValidateConfig,
    coerce_config,
    config_class_for,
)


def test_options_accept_plain_and_comma_separated_values():
    config = InputConfig.model_validate({"inputType": "selection", "options": "Net 30, Net 60,"})
    assert config.input_type == InputType.SELECT
    assert config.option_values() == ["Net 30", "Net 60"]

    config = InputConfig.model_validate({"options": [{"label": "Yes", "value": True}, "Maybe"]})
    assert config.option_values() == [True, "Maybe"]
    assert config.options[0].matches("Yes")
    assert config.options[0].matches(True)


def test_extensions_are_normalized():
    config = InputConfig.model_validate({"allowedExtensions": ".PDF, png"})
    assert config.allowed_extensions == ["pdf", "png"]


def test_min_max_aliases():
    config = InputConfig.model_validate({"min": 1, "max": "{{limit}}"})
    assert config.minimum == 1
    assert config.maximum == "{{limit}}"


def test_label_falls_back():
    assert InputConfig(field_label="Amount").label == "Amount"
    assert InputConfig(placeholder="e.g. 100").label == "e.g. 100"
    assert InputConfig().label == "This field"


def test_approval_defaults():
    config = ApprovalConfig()
    assert config.actions == ["Approve", "Reject"]
    assert config.required is True


def test_config_class_for_unknown_action_is_generic():
    assert config_class_for(Action.HTTP_REQUEST) is StepConfig
    assert config_class_for(Action.VALIDATE) is ValidateConfig


def test_coerce_config_converts_between_variants():
    generic = StepConfig.model_validate({"fieldLabel": "Invoice", "custom": 1})
    coerced = coerce_config(Action.INPUT, generic)
    assert isinstance(coerced, InputConfig)
    assert coerced.field_label == "Invoice"
    assert coerced.extras == {"custom": 1}

    same = InputConfig()
    assert coerce_config(Action.INPUT, same) is same


def test_to_document_omits_unset_fields():
    config = InputConfig.model_validate({"fieldLabel": "Name", "hint": "full name"})
    assert config.to_document() == {"fieldLabel": "Name", "hint": "full name"}
