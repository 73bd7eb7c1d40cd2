"""Persistence layer for procedures and runs."""

from __future__ import annotations

import os
from typing import Optional

from ..config import ProcflowConfig, load_config
from .inmemory import InMemoryRunRepository
from .repository import RunRepository
from .sqlite import SQLiteRunRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresRunRepository
except ImportError:  # pragma: no cover - optional dependency
    PostgresRunRepository = None  # type: ignore

_repository_instance: RunRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[ProcflowConfig] = None
) -> RunRepository:
    """Factory function to obtain a run repository.

    The backend is selected from ``database_url`` which can be provided
    explicitly, via the ``PROCFLOW_DATABASE_URL`` or ``DATABASE_URL``
    environment variables, or from loaded configuration. Without a database an
    in-memory repository is returned.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("PROCFLOW_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.database_url
    )

    if not database_url:
        _repository_instance = InMemoryRunRepository()
        return _repository_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _repository_instance = SQLiteRunRepository(path)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        if PostgresRunRepository is None:
            raise RuntimeError("Postgres support not available; install procflow[postgres]")
        _repository_instance = PostgresRunRepository(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _repository_instance


__all__ = [
    "InMemoryRunRepository",
    "PostgresRunRepository",
    "RunRepository",
    "SQLiteRunRepository",
    "get_repository",
]
