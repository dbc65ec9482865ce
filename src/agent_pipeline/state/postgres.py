"""PostgreSQL-backed checkpoint storage with automatic table migration."""

from __future__ import annotations

import json
import threading
from datetime import datetime
from typing import Any

from agent_pipeline.state.models import Checkpoint, CheckpointSummary


class PostgresCheckpointStore:
    """Persist checkpoint snapshots as JSONB documents in PostgreSQL."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("AGENT_PIPELINE_DATABASE_URL is required")
        self.database_url = database_url
        self._lock = threading.Lock()
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()

    def migrate(self) -> None:
        with self._lock, self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS checkpoints (
                    checkpoint_id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL,
                    schema_version INTEGER NOT NULL,
                    snapshot_json JSONB NOT NULL,
                    task_updated_at TIMESTAMPTZ NOT NULL,
                    created_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_checkpoints_task_id
                ON checkpoints(task_id, created_at)
                """)
            conn.commit()

    def save(self, checkpoint: Checkpoint) -> None:
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                INSERT INTO checkpoints (
                    checkpoint_id,
                    task_id,
                    schema_version,
                    snapshot_json,
                    task_updated_at,
                    created_at
                ) VALUES (%s, %s, %s, %s, %s, %s)
                ON CONFLICT (checkpoint_id) DO UPDATE
                SET snapshot_json = EXCLUDED.snapshot_json,
                    schema_version = EXCLUDED.schema_version,
                    task_updated_at = EXCLUDED.task_updated_at,
                    created_at = EXCLUDED.created_at
                """,
                (
                    checkpoint.id,
                    checkpoint.task_id,
                    checkpoint.schema_version,
                    self._json_wrapper(checkpoint.model_dump(mode="json")),
                    checkpoint.task.updated_at,
                    checkpoint.created_at,
                ),
            )
            conn.commit()

    def get(self, checkpoint_id: str) -> Checkpoint | None:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT snapshot_json FROM checkpoints WHERE checkpoint_id = %s",
                (checkpoint_id,),
            ).fetchone()
        if row is None:
            return None
        return Checkpoint.model_validate(self._parse_json(row["snapshot_json"]))

    def list_for_task(self, task_id: str) -> list[CheckpointSummary]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                """
                SELECT checkpoint_id, task_id, created_at, task_updated_at
                FROM checkpoints
                WHERE task_id = %s
                ORDER BY created_at ASC
                """,
                (task_id,),
            ).fetchall()
        return [
            CheckpointSummary(
                id=row["checkpoint_id"],
                task_id=row["task_id"],
                created_at=self._parse_datetime(row["created_at"]),
                task_updated_at=self._parse_datetime(row["task_updated_at"]),
            )
            for row in rows
        ]

    def delete(self, checkpoint_id: str) -> bool:
        with self._lock, self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM checkpoints WHERE checkpoint_id = %s",
                (checkpoint_id,),
            )
            conn.commit()
        return bool(cursor.rowcount)

    def _connect(self) -> Any:
        return self._psycopg.connect(self.database_url, row_factory=self._dict_row)

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "PostgreSQL checkpoints require psycopg. "
                'Install with: python -m pip install "agent-pipeline[postgres]"'
            ) from exc
        return psycopg, dict_row, Json

    @staticmethod
    def _parse_json(raw: Any) -> dict[str, Any]:
        parsed = json.loads(raw) if isinstance(raw, str) else raw
        if not isinstance(parsed, dict):
            raise TypeError(f"Unsupported snapshot value: {type(parsed)!r}")
        return parsed

    @staticmethod
    def _parse_datetime(raw: Any) -> datetime:
        if isinstance(raw, datetime):
            return raw
        if isinstance(raw, str):
            return datetime.fromisoformat(raw)
        raise TypeError(f"Unsupported datetime value: {type(raw)!r}")
