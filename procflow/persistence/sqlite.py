"""SQLite implementation of the run repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from pathlib import Path
from typing import Any, List, Optional

from ..contracts import Procedure, Run
from ..enums import RunStatus
from ..errors import (
    ConcurrentModificationError,
    ProcedureNotFoundError,
    RepositoryReadError,
    RunNotFoundError,
)
from .repository import RunRepository


class SQLiteRunRepository(RunRepository):
    """Persist procedures and runs as JSON documents in SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS procedures (
                id TEXT PRIMARY KEY,
                organization_id TEXT,
                document TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS runs (
                id TEXT PRIMARY KEY,
                procedure_id TEXT NOT NULL,
                status TEXT NOT NULL,
                assignee_id TEXT,
                version INTEGER NOT NULL,
                document TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()
        return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    async def _read_one(self, query: str, *params: Any) -> sqlite3.Row | None:
        try:
            return await asyncio.to_thread(self._fetchone, query, *params)
        except sqlite3.OperationalError as exc:
            raise RepositoryReadError(str(exc)) from exc

    async def _read_all(self, query: str, *params: Any) -> list[sqlite3.Row]:
        try:
            return await asyncio.to_thread(self._fetchall, query, *params)
        except sqlite3.OperationalError as exc:
            raise RepositoryReadError(str(exc)) from exc

    # ------------------------------------------------------------------
    # Procedures
    async def save_procedure(self, procedure: Procedure) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO procedures (id, organization_id, document) VALUES (?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                organization_id = excluded.organization_id,
                document = excluded.document
            """,
            procedure.id,
            procedure.organization_id,
            json.dumps(procedure.to_document()),
        )

    async def get_procedure(self, procedure_id: str) -> Procedure:
        row = await self._read_one(
            "SELECT document FROM procedures WHERE id = ?", procedure_id
        )
        if not row:
            raise ProcedureNotFoundError(procedure_id)
        return Procedure.model_validate(json.loads(row["document"]))

    async def list_procedures(self) -> List[Procedure]:
        rows = await self._read_all("SELECT document FROM procedures ORDER BY id")
        return [Procedure.model_validate(json.loads(row["document"])) for row in rows]

    # ------------------------------------------------------------------
    # Runs
    async def create_run(self, run: Run) -> None:
        try:
            await asyncio.to_thread(
                self._execute,
                "INSERT INTO runs (id, procedure_id, status, assignee_id, version, document) VALUES (?, ?, ?, ?, ?, ?)",
                run.id,
                run.procedure_id,
                run.status.value,
                run.current_assignee_id,
                run.version,
                json.dumps(run.to_document()),
            )
        except sqlite3.IntegrityError as exc:
            raise ValueError(f"Run {run.id} already exists") from exc

    async def get_run(self, run_id: str) -> Run:
        row = await self._read_one("SELECT document FROM runs WHERE id = ?", run_id)
        if not row:
            raise RunNotFoundError(run_id)
        return Run.model_validate(json.loads(row["document"]))

    async def save_run(self, run: Run) -> None:
        updated = await asyncio.to_thread(
            self._execute,
            """
            UPDATE runs
            SET status = ?, assignee_id = ?, version = ?, document = ?
            WHERE id = ? AND version = ?
            """,
            run.status.value,
            run.current_assignee_id,
            run.version,
            json.dumps(run.to_document()),
            run.id,
            run.version - 1,
        )
        if updated:
            return
        row = await self._read_one("SELECT version FROM runs WHERE id = ?", run.id)
        if not row:
            raise RunNotFoundError(run.id)
        raise ConcurrentModificationError(run.id, run.version - 1, row["version"])

    async def list_runs(
        self, status: Optional[RunStatus] = None, assignee_id: Optional[str] = None
    ) -> List[Run]:
        query = "SELECT document FROM runs"
        clauses: list[str] = []
        params: list[Any] = []
        if status is not None:
            clauses.append("status = ?")
            params.append(RunStatus(status).value)
        if assignee_id is not None:
            clauses.append("assignee_id = ?")
            params.append(assignee_id)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        rows = await self._read_all(query + " ORDER BY rowid", *params)
        return [Run.model_validate(json.loads(row["document"])) for row in rows]

    def close(self) -> None:
        self._conn.close()
