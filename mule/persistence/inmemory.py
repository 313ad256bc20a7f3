"""In-memory implementation of the step execution repository."""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from .models import StepExecution
from .repository import StepExecutionRepository


class InMemoryStepExecutionRepository(StepExecutionRepository):
    """Store step executions in local memory.

    Useful for tests or short-lived processes. Data is not persisted across
    process restarts.
    """

    def __init__(self) -> None:
        self._executions: List[StepExecution] = []
        self._cache: Dict[Tuple[str, str], int] = {}
        self._next_id = 0

    # ------------------------------------------------------------------
    async def save(self, execution: StepExecution) -> Optional[int]:
        self._next_id += 1
        self._executions.append(execution.model_copy(update={"id": self._next_id}))
        return self._next_id

    async def get_workflow_run(
        self, project_id: str, workflow_id: str, run_id: str
    ) -> list[StepExecution]:
        rows = [
            e
            for e in self._executions
            if e.project_id == project_id
            and e.workflow_id == workflow_id
            and e.run_id == run_id
        ]
        return sorted(rows, key=lambda e: e.timestamp)

    async def get_project_history(
        self, project_id: str, limit: int = 100
    ) -> list[StepExecution]:
        rows = [e for e in self._executions if e.project_id == project_id]
        return sorted(rows, key=lambda e: e.timestamp, reverse=True)[:limit]

    async def get_cached_response(
        self, project_id: str, request_hash: str
    ) -> StepExecution | None:
        execution_id = self._cache.get((project_id, request_hash))
        if execution_id is None:
            return None
        for execution in self._executions:
            if execution.id == execution_id:
                return execution
        return None

    async def set_cached_response(
        self, project_id: str, request_hash: str, execution_id: int
    ) -> None:
        self._cache.setdefault((project_id, request_hash), execution_id)

    async def clear_cache(self, project_id: Optional[str] = None) -> None:
        if project_id is None:
            self._cache.clear()
            return
        for key in [k for k in self._cache if k[0] == project_id]:
            del self._cache[key]

    def close(self) -> None:
        pass
