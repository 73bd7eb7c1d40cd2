"""Materialize a step's config against the run context."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, SerializeAsAny

from ..constants import TRIGGER_NAMESPACE
from ..contracts import LogEntry, Procedure, Step
from ..errors import ConfigurationError
from ..step_configs import BaseStepConfig
from .context import RunContext, VariableSource, build_context
from .expressions import MARKER_PATTERN, find_markers, resolve_value

logger = logging.getLogger(__name__)


class ResolvedConfig(BaseModel):
    """A step config with every resolvable reference substituted.

    ``sources`` maps the dotted key of each templated field to the log entry
    that supplied it. ``unresolved`` lists marker paths that are still present.
    """

    config: SerializeAsAny[BaseStepConfig]
    sources: Dict[str, VariableSource] = {}
    unresolved: List[str] = []

    @property
    def is_complete(self) -> bool:
        return not self.unresolved

    def raise_for_unresolved(self, step_id: Optional[str] = None) -> None:
        if self.unresolved:
            where = f" in step {step_id}" if step_id else ""
            raise ConfigurationError(
                f"Unresolved reference(s){where}: {', '.join(sorted(set(self.unresolved)))}"
            )


def build_run_context(
    log: Sequence[LogEntry],
    steps: Union[Procedure, Sequence[Step]],
    trigger_context: Optional[Mapping[str, Any]] = None,
) -> RunContext:
    """Context from the log plus the trigger payload under ``trigger``."""
    context = build_context(steps, log)
    if trigger_context:
        context = context.with_namespace(TRIGGER_NAMESPACE, dict(trigger_context))
    return context


def _collect_sources(
    value: Any, context: RunContext, prefix: str, sources: Dict[str, VariableSource]
) -> None:
    if isinstance(value, str):
        for path in MARKER_PATTERN.findall(value):
            source = context.source_of(path) or context.source_of(path.split(".")[0])
            if source is not None:
                sources[prefix] = source
    elif isinstance(value, Mapping):
        for key, item in value.items():
            _collect_sources(item, context, f"{prefix}.{key}" if prefix else str(key), sources)
    elif isinstance(value, list):
        for index, item in enumerate(value):
            _collect_sources(item, context, f"{prefix}.{index}", sources)


def resolve_with_context(config: BaseStepConfig, context: RunContext) -> ResolvedConfig:
    document = config.to_document()
    resolved_document = resolve_value(document, context)

    sources: Dict[str, VariableSource] = {}
    _collect_sources(document, context, "", sources)
    unresolved = find_markers(resolved_document)
    if unresolved:
        logger.warning(f"Config still references unknown variables: {unresolved}")

    resolved = type(config).model_validate(resolved_document)
    return ResolvedConfig(config=resolved, sources=sources, unresolved=unresolved)


def resolve_config(
    raw_config: BaseStepConfig,
    log: Sequence[LogEntry],
    steps: Union[Procedure, Sequence[Step]],
    trigger_context: Optional[Mapping[str, Any]] = None,
) -> ResolvedConfig:
    """Resolve every string field of ``raw_config`` against the run so far."""
    context = build_run_context(log, steps, trigger_context)
    return resolve_with_context(raw_config, context)
