"""PostgreSQL implementation of the backend repository."""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from typing import Any

import asyncpg

from ..contracts import SESSION_FIELDS, Artifact, SessionRecord
from .repository import BackendRepository


class PostgresBackendRepository(BackendRepository):
    """Persist backend state using PostgreSQL."""

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
            CREATE TABLE IF NOT EXISTS artifacts (
                id TEXT PRIMARY KEY,
                actor_id TEXT NOT NULL,
                artifact_type TEXT NOT NULL,
                title TEXT NOT NULL,
                content JSONB,
                metadata JSONB,
                created_at TIMESTAMPTZ NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS review_items (
                id TEXT PRIMARY KEY,
                actor_id TEXT NOT NULL,
                run_id TEXT NOT NULL,
                item_name TEXT NOT NULL,
                review_status TEXT NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS session_records (
                actor_id TEXT PRIMARY KEY,
                last_workflow_type TEXT,
                last_squad_id TEXT,
                last_context_id TEXT,
                last_tab TEXT,
                freeform_payload JSONB,
                last_active_at TIMESTAMPTZ NOT NULL
            )
            """
        )

    @staticmethod
    def _load_json(value: Any) -> Any:
        return json.loads(value) if isinstance(value, str) else value

    # ------------------------------------------------------------------
    async def count_artifacts(self, actor_id: str) -> int:
        conn = await self._connect()
        try:
            return await conn.fetchval(
                "SELECT COUNT(*) FROM artifacts WHERE actor_id = $1", actor_id
            )
        finally:
            await conn.close()

    async def list_recent_artifacts(self, actor_id: str, limit: int) -> list[Artifact]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT id, actor_id, artifact_type, title, content, metadata, created_at FROM artifacts WHERE actor_id = $1 ORDER BY created_at DESC LIMIT $2",
                actor_id,
                limit,
            )
        finally:
            await conn.close()
        return [
            Artifact(
                id=r["id"],
                actor_id=r["actor_id"],
                artifact_type=r["artifact_type"],
                title=r["title"],
                content=self._load_json(r["content"]),
                metadata=self._load_json(r["metadata"]) or {},
                created_at=r["created_at"],
            )
            for r in rows
        ]

    async def create_artifact(self, artifact: Artifact) -> Artifact:
        conn = await self._connect()
        try:
            await conn.execute(
                "INSERT INTO artifacts (id, actor_id, artifact_type, title, content, metadata, created_at) VALUES ($1, $2, $3, $4, $5, $6, $7)",
                artifact.id,
                artifact.actor_id,
                artifact.artifact_type,
                artifact.title,
                json.dumps(artifact.content),
                json.dumps(artifact.metadata),
                artifact.created_at,
            )
        finally:
            await conn.close()
        return artifact

    async def count_pending_review_items(self, actor_id: str, limit: int) -> int:
        conn = await self._connect()
        try:
            return await conn.fetchval(
                """
                SELECT COUNT(*) FROM (
                    SELECT id FROM review_items
                    WHERE actor_id = $1 AND review_status = 'pending'
                    LIMIT $2
                ) AS capped
                """,
                actor_id,
                limit,
            )
        finally:
            await conn.close()

    async def create_review_item(
        self, actor_id: str, run_id: str, item_name: str, review_status: str = "pending"
    ) -> str:
        item_id = str(uuid.uuid4())
        conn = await self._connect()
        try:
            await conn.execute(
                "INSERT INTO review_items (id, actor_id, run_id, item_name, review_status) VALUES ($1, $2, $3, $4, $5)",
                item_id,
                actor_id,
                run_id,
                item_name,
                review_status,
            )
        finally:
            await conn.close()
        return item_id

    async def mark_reviewed(self, item_id: str) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "UPDATE review_items SET review_status = 'reviewed' WHERE id = $1",
                item_id,
            )
        finally:
            await conn.close()

    async def get_session_record(self, actor_id: str) -> SessionRecord | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT actor_id, last_workflow_type, last_squad_id, last_context_id, last_tab, freeform_payload, last_active_at FROM session_records WHERE actor_id = $1 ORDER BY last_active_at DESC LIMIT 1",
                actor_id,
            )
        finally:
            await conn.close()
        if not row:
            return None
        return SessionRecord(
            actor_id=row["actor_id"],
            last_workflow_type=row["last_workflow_type"],
            last_squad_id=row["last_squad_id"],
            last_context_id=row["last_context_id"],
            last_tab=row["last_tab"],
            freeform_payload=self._load_json(row["freeform_payload"]) or {},
            last_active_at=row["last_active_at"],
        )

    async def upsert_session_record(
        self, actor_id: str, fields: dict[str, Any], last_active_at: datetime
    ) -> SessionRecord:
        unknown = set(fields) - set(SESSION_FIELDS)
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")

        columns = list(fields)
        values = [
            json.dumps(fields[c] or {}) if c == "freeform_payload" else fields[c]
            for c in columns
        ]
        insert_cols = ["actor_id", *columns, "last_active_at"]
        placeholders = ", ".join(f"${i}" for i in range(1, len(insert_cols) + 1))
        updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in [*columns, "last_active_at"])
        conn = await self._connect()
        try:
            await conn.execute(
                f"""
                INSERT INTO session_records ({", ".join(insert_cols)}) VALUES ({placeholders})
                ON CONFLICT (actor_id) DO UPDATE SET {updates}
                WHERE EXCLUDED.last_active_at >= session_records.last_active_at
                """,
                actor_id,
                *values,
                last_active_at,
            )
        finally:
            await conn.close()
        record = await self.get_session_record(actor_id)
        assert record is not None
        return record
