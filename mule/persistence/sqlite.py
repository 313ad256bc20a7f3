"""SQLite implementation of the step execution repository."""

from __future__ import annotations

import asyncio
import logging
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from ..constants import DEFAULT_DATABASE_PATH, DEFAULT_HISTORY_LIMIT
from .models import StepExecution
from .repository import StepExecutionRepository

logger = logging.getLogger(__name__)

_COLUMNS = (
    "project_id",
    "workflow_id",
    "run_id",
    "step_id",
    "parent_step_id",
    "execution_group",
    "execution_type",
    "depth",
    "timestamp",
    "duration_ms",
    "model",
    "prompt",
    "result",
    "prompt_tokens",
    "completion_tokens",
    "total_tokens",
    "finish_reason",
    "prompt_cost_usd",
    "completion_cost_usd",
    "total_cost_usd",
    "status",
    "error",
)
_SELECT = f"SELECT id, {', '.join(_COLUMNS)} FROM step_executions"


class SQLiteStepExecutionRepository(StepExecutionRepository):
    """Persist step executions using SQLite.

    Stores data in ``~/.mule/executions.db`` by default; ``:memory:`` keeps
    everything in the process.
    """

    def __init__(self, db_path: str | Path = DEFAULT_DATABASE_PATH):
        self.db_path = self._expand_path(str(db_path))
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._ensure_schema()

    @staticmethod
    def _expand_path(path: str) -> str:
        if path == ":memory:":
            return path
        return os.path.expanduser(path)

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS step_executions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id TEXT NOT NULL,
                workflow_id TEXT NOT NULL,
                run_id TEXT NOT NULL,
                step_id TEXT NOT NULL,
                parent_step_id TEXT,
                execution_group TEXT,
                execution_type TEXT,
                depth INTEGER,
                timestamp TEXT NOT NULL,
                duration_ms INTEGER,
                model TEXT,
                prompt TEXT,
                result TEXT,
                prompt_tokens INTEGER,
                completion_tokens INTEGER,
                total_tokens INTEGER,
                finish_reason TEXT,
                prompt_cost_usd REAL,
                completion_cost_usd REAL,
                total_cost_usd REAL,
                status TEXT NOT NULL,
                error TEXT
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_project ON step_executions(project_id)"
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_workflow_run ON step_executions(workflow_id, run_id)"
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_execution_group ON step_executions(execution_group)"
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS llm_response_cache (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id TEXT NOT NULL,
                request_hash TEXT NOT NULL,
                step_execution_id INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                UNIQUE(project_id, request_hash),
                FOREIGN KEY (step_execution_id) REFERENCES step_executions(id) ON DELETE CASCADE
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> Optional[int]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()
        return cur.lastrowid

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    @staticmethod
    def _to_execution(row: sqlite3.Row) -> StepExecution:
        return StepExecution(**{key: row[key] for key in row.keys()})

    # ------------------------------------------------------------------
    # Repository API
    async def save(self, execution: StepExecution) -> Optional[int]:
        values = execution.model_dump(include=set(_COLUMNS))
        placeholders = ", ".join("?" for _ in _COLUMNS)
        try:
            return await asyncio.to_thread(
                self._execute,
                f"INSERT INTO step_executions ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                *(values[column] for column in _COLUMNS),
            )
        except sqlite3.Error as e:
            logger.warning(
                f"Failed to persist step execution for {execution.step_id}: {e}"
            )
            return None

    async def get_workflow_run(
        self, project_id: str, workflow_id: str, run_id: str
    ) -> list[StepExecution]:
        try:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"{_SELECT} WHERE project_id = ? AND workflow_id = ? AND run_id = ? ORDER BY timestamp ASC, id ASC",
                project_id,
                workflow_id,
                run_id,
            )
        except sqlite3.Error as e:
            logger.warning(
                f"Failed to query workflow run ({project_id}/{workflow_id}/{run_id}): {e}"
            )
            return []
        return [self._to_execution(r) for r in rows]

    async def get_project_history(
        self, project_id: str, limit: int = DEFAULT_HISTORY_LIMIT
    ) -> list[StepExecution]:
        try:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"{_SELECT} WHERE project_id = ? ORDER BY timestamp DESC, id DESC LIMIT ?",
                project_id,
                limit,
            )
        except sqlite3.Error as e:
            logger.warning(f"Failed to query project history ({project_id}): {e}")
            return []
        return [self._to_execution(r) for r in rows]

    async def get_cached_response(
        self, project_id: str, request_hash: str
    ) -> StepExecution | None:
        try:
            row = await asyncio.to_thread(
                self._fetchone,
                f"{_SELECT} WHERE id = (SELECT step_execution_id FROM llm_response_cache "
                "WHERE project_id = ? AND request_hash = ?)",
                project_id,
                request_hash,
            )
        except sqlite3.Error as e:
            logger.warning(
                f"Failed to get cached response for {project_id}/{request_hash}: {e}"
            )
            return None
        return self._to_execution(row) if row else None

    async def set_cached_response(
        self, project_id: str, request_hash: str, execution_id: int
    ) -> None:
        try:
            await asyncio.to_thread(
                self._execute,
                "INSERT OR IGNORE INTO llm_response_cache (project_id, request_hash, step_execution_id, created_at) VALUES (?, ?, ?, ?)",
                project_id,
                request_hash,
                execution_id,
                datetime.now(timezone.utc).isoformat(),
            )
        except sqlite3.Error as e:
            logger.warning(
                f"Failed to cache response for {project_id}/{request_hash}: {e}"
            )

    async def clear_cache(self, project_id: Optional[str] = None) -> None:
        try:
            if project_id is None:
                await asyncio.to_thread(self._execute, "DELETE FROM llm_response_cache")
            else:
                await asyncio.to_thread(
                    self._execute,
                    "DELETE FROM llm_response_cache WHERE project_id = ?",
                    project_id,
                )
        except sqlite3.Error as e:
            logger.warning(f"Failed to clear cache ({project_id or 'all'}): {e}")

    def close(self) -> None:
        self._conn.close()
