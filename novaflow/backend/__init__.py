"""Backend repositories for the novaflow engine."""

from __future__ import annotations

import os
from typing import Optional

from ..config import NovaflowConfig, load_config
from .inmemory import InMemoryBackendRepository, ReviewItem
from .repository import BackendRepository
from .sqlite import SQLiteBackendRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresBackendRepository
except ImportError:  # pragma: no cover - optional dependency
    PostgresBackendRepository = None  # type: ignore

_backend_instance: BackendRepository | None = None


def get_backend(
    database_url: Optional[str] = None, config: Optional[NovaflowConfig] = None
) -> BackendRepository:
    """Factory function to obtain a backend repository.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``NOVAFLOW_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory repository is returned.
    """

    global _backend_instance
    if _backend_instance is not None and database_url is None and config is None:
        return _backend_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("NOVAFLOW_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or getattr(config, "database_url", None)
    )

    if not database_url:
        _backend_instance = InMemoryBackendRepository()
        return _backend_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _backend_instance = SQLiteBackendRepository(path)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        if PostgresBackendRepository is None:
            raise RuntimeError("Postgres support not available")
        _backend_instance = PostgresBackendRepository(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _backend_instance


__all__ = [
    "BackendRepository",
    "InMemoryBackendRepository",
    "PostgresBackendRepository",
    "ReviewItem",
    "SQLiteBackendRepository",
    "get_backend",
]
