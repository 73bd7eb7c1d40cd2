"""Action-specific step configuration variants.

A step's ``config`` document is free-form in storage. On load it is coerced
into the variant that matches the step's action so that engine code reads
typed attributes instead of probing dictionary keys. Keys a variant does not
declare are kept in its extra bag and travel with the config unchanged.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Type, Union

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .base import CamelModel
from .constants import DEFAULT_APPROVAL_ACTIONS
from .enums import Action, InputType


class BaseStepConfig(CamelModel):
    """Fields every step may carry."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    output_variable_name: Optional[str] = None

    @property
    def extras(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


class StepConfig(BaseStepConfig):
    """Config for automated actions handled by an external executor."""


class SelectOption(CamelModel):
    label: str
    value: Any = None

    def matches(self, candidate: Any) -> bool:
        value = self.label if self.value is None else self.value
        return str(candidate) == str(value) or str(candidate) == self.label


class InputConfig(BaseStepConfig):
    """Human data entry: free text, numbers, files, choices."""

    input_type: Optional[InputType] = None
    field_label: Optional[str] = None
    placeholder: Optional[str] = None
    required: bool = True
    options: List[SelectOption] = Field(default_factory=list)
    minimum: Optional[Union[float, str]] = Field(default=None, alias="min")
    maximum: Optional[Union[float, str]] = Field(default=None, alias="max")
    validation_regex: Optional[str] = None
    validation_message: Optional[str] = None
    allowed_extensions: List[str] = Field(default_factory=list)
    default_value: Any = None
    instruction: Optional[str] = None
    due_in_hours: Optional[float] = None
    proof_type: Optional[str] = None

    @field_validator("options", mode="before")
    @classmethod
    def _coerce_options(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            value = [part.strip() for part in value.split(",") if part.strip()]
        if isinstance(value, list):
            return [
                {"label": str(item), "value": item} if not isinstance(item, dict) else item
                for item in value
            ]
        return value

    @field_validator("allowed_extensions", mode="before")
    @classmethod
    def _coerce_extensions(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return [str(ext).strip().lower().lstrip(".") for ext in value if str(ext).strip()]

    @property
    def label(self) -> str:
        return self.field_label or self.placeholder or "This field"

    def option_values(self) -> List[Any]:
        return [opt.label if opt.value is None else opt.value for opt in self.options]


class ApprovalConfig(InputConfig):
    """Approve/reject style decisions (APPROVAL, AUTHORIZE)."""

    actions: List[str] = Field(default_factory=lambda: list(DEFAULT_APPROVAL_ACTIONS))
    require_signature: bool = False
    approval_level: Optional[str] = None


class ValidateConfig(BaseStepConfig):
    """Rule check over a single value. ``target`` is usually a template."""

    rule: Optional[str] = None
    target: Any = None
    value: Any = None
    validation_rule: Optional[str] = None
    error_message: Optional[str] = None


class CompareConfig(BaseStepConfig):
    target_a: Any = None
    target_b: Any = None
    comparison_type: str = "exact"
    require_mismatch_reason: bool = False


class CalculateConfig(BaseStepConfig):
    formula: Optional[str] = None
    variables: Dict[str, Any] = Field(default_factory=dict)


_CONFIG_CLASSES: Dict[Action, Type[BaseStepConfig]] = {
    Action.INPUT: InputConfig,
    Action.MANUAL_TASK: InputConfig,
    Action.NEGOTIATE: InputConfig,
    Action.INSPECT: InputConfig,
    Action.APPROVAL: ApprovalConfig,
    Action.AUTHORIZE: ApprovalConfig,
    Action.VALIDATE: ValidateConfig,
    Action.COMPARE: CompareConfig,
    Action.CALCULATE: CalculateConfig,
}


def config_class_for(action: Action) -> Type[BaseStepConfig]:
    """Return the config variant used for ``action``."""
    return _CONFIG_CLASSES.get(action, StepConfig)


def coerce_config(action: Action, config: Any) -> BaseStepConfig:
    """Build the variant for ``action`` from a document or another variant."""
    config_cls = config_class_for(action)
    if config is None:
        return config_cls()
    if isinstance(config, config_cls):
        return config
    if isinstance(config, BaseStepConfig):
        config = config.to_document()
    return config_cls.model_validate(config)
