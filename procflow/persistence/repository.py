"""Repository abstraction for procedure and run documents."""

from __future__ import annotations

from typing import List, Optional, Protocol

from ..contracts import Procedure, Run
from ..enums import RunStatus


class RunRepository(Protocol):
    """Protocol for procedure/run persistence backends.

    Lookups raise ``ProcedureNotFoundError`` / ``RunNotFoundError`` for
    missing documents and ``RepositoryReadError`` for transient failures.
    ``save_run`` is a compare-and-update: the stored run must be exactly one
    version behind the run being saved, otherwise it raises
    ``ConcurrentModificationError`` and stores nothing.
    """

    async def save_procedure(self, procedure: Procedure) -> None:
        """Insert or replace a procedure definition."""

    async def get_procedure(self, procedure_id: str) -> Procedure:
        """Load a procedure by id."""

    async def list_procedures(self) -> List[Procedure]:
        """Return all stored procedures."""

    async def create_run(self, run: Run) -> None:
        """Persist a newly started run."""

    async def get_run(self, run_id: str) -> Run:
        """Load a run by id."""

    async def save_run(self, run: Run) -> None:
        """Atomically replace a run document."""

    async def list_runs(
        self, status: Optional[RunStatus] = None, assignee_id: Optional[str] = None
    ) -> List[Run]:
        """Return runs, optionally filtered by status and current assignee."""
