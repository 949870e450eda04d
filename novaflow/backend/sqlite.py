"""SQLite implementation of the backend repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from ..contracts import SESSION_FIELDS, Artifact, SessionRecord
from .repository import BackendRepository


class SQLiteBackendRepository(BackendRepository):
    """Persist backend state using SQLite."""

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
            CREATE TABLE IF NOT EXISTS artifacts (
                id TEXT PRIMARY KEY,
                actor_id TEXT NOT NULL,
                artifact_type TEXT NOT NULL,
                title TEXT NOT NULL,
                content TEXT,
                metadata TEXT,
                created_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
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
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS session_records (
                actor_id TEXT PRIMARY KEY,
                last_workflow_type TEXT,
                last_squad_id TEXT,
                last_context_id TEXT,
                last_tab TEXT,
                freeform_payload TEXT,
                last_active_at TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    @staticmethod
    def _to_artifact(row: sqlite3.Row) -> Artifact:
        return Artifact(
            id=row["id"],
            actor_id=row["actor_id"],
            artifact_type=row["artifact_type"],
            title=row["title"],
            content=json.loads(row["content"]) if row["content"] else None,
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    @staticmethod
    def _to_session(row: sqlite3.Row) -> SessionRecord:
        return SessionRecord(
            actor_id=row["actor_id"],
            last_workflow_type=row["last_workflow_type"],
            last_squad_id=row["last_squad_id"],
            last_context_id=row["last_context_id"],
            last_tab=row["last_tab"],
            freeform_payload=(
                json.loads(row["freeform_payload"]) if row["freeform_payload"] else {}
            ),
            last_active_at=datetime.fromisoformat(row["last_active_at"]),
        )

    # ------------------------------------------------------------------
    # Repository API
    async def count_artifacts(self, actor_id: str) -> int:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT COUNT(*) AS n FROM artifacts WHERE actor_id = ?",
            actor_id,
        )
        return row["n"] if row else 0

    async def list_recent_artifacts(self, actor_id: str, limit: int) -> list[Artifact]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT * FROM artifacts WHERE actor_id = ? ORDER BY created_at DESC LIMIT ?",
            actor_id,
            limit,
        )
        return [self._to_artifact(r) for r in rows]

    async def create_artifact(self, artifact: Artifact) -> Artifact:
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO artifacts (id, actor_id, artifact_type, title, content, metadata, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            artifact.id,
            artifact.actor_id,
            artifact.artifact_type,
            artifact.title,
            json.dumps(artifact.content),
            json.dumps(artifact.metadata),
            artifact.created_at.isoformat(),
        )
        return artifact

    async def count_pending_review_items(self, actor_id: str, limit: int) -> int:
        row = await asyncio.to_thread(
            self._fetchone,
            """
            SELECT COUNT(*) AS n FROM (
                SELECT id FROM review_items
                WHERE actor_id = ? AND review_status = 'pending'
                LIMIT ?
            )
            """,
            actor_id,
            limit,
        )
        return row["n"] if row else 0

    async def create_review_item(
        self, actor_id: str, run_id: str, item_name: str, review_status: str = "pending"
    ) -> str:
        item_id = str(uuid.uuid4())
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO review_items (id, actor_id, run_id, item_name, review_status) VALUES (?, ?, ?, ?, ?)",
            item_id,
            actor_id,
            run_id,
            item_name,
            review_status,
        )
        return item_id

    async def mark_reviewed(self, item_id: str) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE review_items SET review_status = 'reviewed' WHERE id = ?",
            item_id,
        )

    async def get_session_record(self, actor_id: str) -> SessionRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT * FROM session_records WHERE actor_id = ? ORDER BY last_active_at DESC LIMIT 1",
            actor_id,
        )
        if not row:
            return None
        return self._to_session(row)

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
        placeholders = ", ".join("?" for _ in insert_cols)
        updates = ", ".join(f"{c} = excluded.{c}" for c in [*columns, "last_active_at"])
        await asyncio.to_thread(
            self._execute,
            f"""
            INSERT INTO session_records ({", ".join(insert_cols)}) VALUES ({placeholders})
            ON CONFLICT(actor_id) DO UPDATE SET {updates}
            WHERE excluded.last_active_at >= session_records.last_active_at
            """,
            actor_id,
            *values,
            last_active_at.isoformat(),
        )
        record = await self.get_session_record(actor_id)
        assert record is not None
        return record
