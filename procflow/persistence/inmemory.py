"""In-memory implementation of the run repository."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

from ..contracts import Procedure, Run
from ..enums import RunStatus
from ..errors import ConcurrentModificationError, ProcedureNotFoundError, RunNotFoundError
from .repository import RunRepository


class InMemoryRunRepository(RunRepository):
    """Store procedures and runs in local memory.

    Useful for tests or when no database is configured. Documents are stored
    in serialized form so callers never share state with the store.
    """

    def __init__(self) -> None:
        self._procedures: Dict[str, dict] = {}
        self._runs: Dict[str, dict] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    async def save_procedure(self, procedure: Procedure) -> None:
        self._procedures[procedure.id] = procedure.to_document()

    async def get_procedure(self, procedure_id: str) -> Procedure:
        document = self._procedures.get(procedure_id)
        if document is None:
            raise ProcedureNotFoundError(procedure_id)
        return Procedure.model_validate(document)

    async def list_procedures(self) -> List[Procedure]:
        return [Procedure.model_validate(doc) for doc in self._procedures.values()]

    # ------------------------------------------------------------------
    async def create_run(self, run: Run) -> None:
        async with self._lock:
            if run.id in self._runs:
                raise ValueError(f"Run {run.id} already exists")
            self._runs[run.id] = run.to_document()

    async def get_run(self, run_id: str) -> Run:
        document = self._runs.get(run_id)
        if document is None:
            raise RunNotFoundError(run_id)
        return Run.model_validate(document)

    async def save_run(self, run: Run) -> None:
        async with self._lock:
            stored = self._runs.get(run.id)
            if stored is None:
                raise RunNotFoundError(run.id)
            if stored["version"] != run.version - 1:
                raise ConcurrentModificationError(run.id, run.version - 1, stored["version"])
            self._runs[run.id] = run.to_document()

    async def list_runs(
        self, status: Optional[RunStatus] = None, assignee_id: Optional[str] = None
    ) -> List[Run]:
        runs = [Run.model_validate(doc) for doc in self._runs.values()]
        if status is not None:
            runs = [run for run in runs if run.status == status]
        if assignee_id is not None:
            runs = [run for run in runs if run.current_assignee_id == assignee_id]
        return runs
