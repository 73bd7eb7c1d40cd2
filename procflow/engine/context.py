"""Derive the variable context of a run from its log."""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict

from ..contracts import LogEntry, Procedure, Step

logger = logging.getLogger(__name__)

OUTPUT_SUFFIX = "_output"


class VariableSource(BaseModel):
    """Which log entry produced a context binding."""

    model_config = ConfigDict(frozen=True)

    step_id: str
    step_title: str = ""
    variable_name: str
    position: int


class RunContext(Mapping[str, Any]):
    """Read-only mapping of variable names to values.

    A context is never changed in place. :meth:`extend` and
    :meth:`with_namespace` return new contexts.
    """

    def __init__(
        self,
        values: Optional[Mapping[str, Any]] = None,
        sources: Optional[Mapping[str, VariableSource]] = None,
    ) -> None:
        self._values: Dict[str, Any] = dict(values or {})
        self._sources: Dict[str, VariableSource] = dict(sources or {})

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"RunContext({self._values!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, RunContext):
            return self._values == other._values
        if isinstance(other, Mapping):
            return self._values == dict(other)
        return NotImplemented

    def source_of(self, name: str) -> Optional[VariableSource]:
        return self._sources.get(name)

    def extend(
        self,
        values: Mapping[str, Any],
        source: Optional[VariableSource] = None,
    ) -> "RunContext":
        merged = dict(self._values)
        merged.update(values)
        sources = dict(self._sources)
        for name in values:
            if source is not None:
                sources[name] = source
            else:
                sources.pop(name, None)
        return RunContext(merged, sources)

    def with_namespace(self, name: str, value: Any) -> "RunContext":
        return self.extend({name: copy.deepcopy(value)})

    def as_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._values)


def _steps_of(procedure: Union[Procedure, Sequence[Step]]) -> Sequence[Step]:
    return procedure.steps if isinstance(procedure, Procedure) else procedure


def bindings_for(position: int, step: Optional[Step], output: Any) -> Dict[str, Any]:
    """All names under which the log entry at ``position`` is exposed."""
    positional = f"step_{position + 1}_output"
    var_name = (step.output_variable_name if step else None) or positional

    bindings: Dict[str, Any] = {
        var_name: output,
        positional: output,
        f"step_{position + 1}": {"output": output},
    }
    if var_name.endswith(OUTPUT_SUFFIX):
        base_name = var_name[: -len(OUTPUT_SUFFIX)]
        if base_name:
            bindings[base_name] = {"output": output}
    if isinstance(output, Mapping):
        for key, value in output.items():
            bindings[f"{var_name}.{key}"] = value
    return bindings


def build_context(
    procedure: Union[Procedure, Sequence[Step]], log: Sequence[LogEntry]
) -> RunContext:
    """Build the context for ``log``.

    Later entries overwrite earlier bindings of the same name.
    """
    steps_by_id = {step.id: step for step in _steps_of(procedure)}
    context = RunContext()
    for position, entry in enumerate(log):
        step = steps_by_id.get(entry.step_id)
        if step is None:
            logger.warning(
                f"Log entry {position} references unknown step {entry.step_id}; "
                "exposing it under positional names only"
            )
        output = copy.deepcopy(entry.output)
        bindings = bindings_for(position, step, output)
        source = VariableSource(
            step_id=entry.step_id,
            step_title=entry.step_title or (step.title if step else ""),
            variable_name=(step.output_variable_name if step else None)
            or f"step_{position + 1}_output",
            position=position,
        )
        context = context.extend(bindings, source)
    return context
