"""File and argument helpers for CLI commands."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from ..contracts import Procedure, Run


def load_document(path: Path) -> Any:
    """Read a JSON or YAML document from ``path``."""
    text = Path(path).read_text()
    if Path(path).suffix.lower() == ".json":
        return json.loads(text)
    return yaml.safe_load(text)


def load_procedure(path: Path) -> Procedure:
    return Procedure.model_validate(load_document(path))


def parse_value(raw: str | None) -> Any:
    """Interpret a command-line value as JSON, falling back to the raw text."""
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def format_run_line(run: Run) -> str:
    assignee = run.current_assignee_id or "-"
    return f"{run.id}\t{run.procedure_id}\t{run.status.value}\t{assignee}"


def format_output(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)
