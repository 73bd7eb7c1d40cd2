"""PostgreSQL implementation of the run repository."""

from __future__ import annotations

import json
from typing import Any, List, Optional

import asyncpg

from ..contracts import Procedure, Run
from ..enums import RunStatus
from ..errors import (
    ConcurrentModificationError,
    ProcedureNotFoundError,
    RepositoryReadError,
    RunNotFoundError,
)
from .repository import RunRepository


def _affected(status: str) -> int:
    # asyncpg returns the command tag, e.g. "UPDATE 1"
    try:
        return int(status.split()[-1])
    except (ValueError, IndexError):
        return 0


class PostgresRunRepository(RunRepository):
    """Persist procedures and runs as JSONB documents in PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS procedures (
                id TEXT PRIMARY KEY,
                organization_id TEXT,
                document JSONB NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS runs (
                id TEXT PRIMARY KEY,
                procedure_id TEXT NOT NULL,
                status TEXT NOT NULL,
                assignee_id TEXT,
                version INTEGER NOT NULL,
                document JSONB NOT NULL
            )
            """
        )

    async def _fetchrow(self, query: str, *params: Any) -> Optional[asyncpg.Record]:
        try:
            conn = await self._connect()
        except (OSError, asyncpg.PostgresError) as exc:
            raise RepositoryReadError(str(exc)) from exc
        try:
            return await conn.fetchrow(query, *params)
        except asyncpg.PostgresError as exc:
            raise RepositoryReadError(str(exc)) from exc
        finally:
            await conn.close()

    async def _fetch(self, query: str, *params: Any) -> List[asyncpg.Record]:
        try:
            conn = await self._connect()
        except (OSError, asyncpg.PostgresError) as exc:
            raise RepositoryReadError(str(exc)) from exc
        try:
            return await conn.fetch(query, *params)
        except asyncpg.PostgresError as exc:
            raise RepositoryReadError(str(exc)) from exc
        finally:
            await conn.close()

    # ------------------------------------------------------------------
    async def save_procedure(self, procedure: Procedure) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO procedures (id, organization_id, document) VALUES ($1, $2, $3)
                ON CONFLICT (id) DO UPDATE SET
                    organization_id = EXCLUDED.organization_id,
                    document = EXCLUDED.document
                """,
                procedure.id,
                procedure.organization_id,
                json.dumps(procedure.to_document()),
            )
        finally:
            await conn.close()

    async def get_procedure(self, procedure_id: str) -> Procedure:
        row = await self._fetchrow("SELECT document FROM procedures WHERE id = $1", procedure_id)
        if not row:
            raise ProcedureNotFoundError(procedure_id)
        return Procedure.model_validate(json.loads(row["document"]))

    async def list_procedures(self) -> List[Procedure]:
        rows = await self._fetch("SELECT document FROM procedures ORDER BY id")
        return [Procedure.model_validate(json.loads(r["document"])) for r in rows]

    # ------------------------------------------------------------------
    async def create_run(self, run: Run) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "INSERT INTO runs (id, procedure_id, status, assignee_id, version, document) VALUES ($1, $2, $3, $4, $5, $6)",
                run.id,
                run.procedure_id,
                run.status.value,
                run.current_assignee_id,
                run.version,
                json.dumps(run.to_document()),
            )
        except asyncpg.UniqueViolationError as exc:
            raise ValueError(f"Run {run.id} already exists") from exc
        finally:
            await conn.close()

    async def get_run(self, run_id: str) -> Run:
        row = await self._fetchrow("SELECT document FROM runs WHERE id = $1", run_id)
        if not row:
            raise RunNotFoundError(run_id)
        return Run.model_validate(json.loads(row["document"]))

    async def save_run(self, run: Run) -> None:
        conn = await self._connect()
        try:
            status = await conn.execute(
                """
                UPDATE runs
                SET status = $1, assignee_id = $2, version = $3, document = $4
                WHERE id = $5 AND version = $6
                """,
                run.status.value,
                run.current_assignee_id,
                run.version,
                json.dumps(run.to_document()),
                run.id,
                run.version - 1,
            )
            if _affected(status):
                return
            current = await conn.fetchval("SELECT version FROM runs WHERE id = $1", run.id)
        finally:
            await conn.close()
        if current is None:
            raise RunNotFoundError(run.id)
        raise ConcurrentModificationError(run.id, run.version - 1, current)

    async def list_runs(
        self, status: Optional[RunStatus] = None, assignee_id: Optional[str] = None
    ) -> List[Run]:
        query = "SELECT document FROM runs"
        clauses: list[str] = []
        params: list[Any] = []
        if status is not None:
            params.append(RunStatus(status).value)
            clauses.append(f"status = ${len(params)}")
        if assignee_id is not None:
            params.append(assignee_id)
            clauses.append(f"assignee_id = ${len(params)}")
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        rows = await self._fetch(query + " ORDER BY id", *params)
        return [Run.model_validate(json.loads(r["document"])) for r in rows]
