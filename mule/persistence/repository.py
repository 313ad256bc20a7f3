"""Repository abstraction for step execution persistence."""

from __future__ import annotations

from typing import Optional, Protocol

from .models import StepExecution


class StepExecutionRepository(Protocol):
    """Protocol for step execution persistence backends."""

    async def save(self, execution: StepExecution) -> Optional[int]:
        """Persist an execution and return its row id."""

    async def get_workflow_run(
        self, project_id: str, workflow_id: str, run_id: str
    ) -> list[StepExecution]:
        """Return all executions of one workflow run, oldest first."""

    async def get_project_history(
        self, project_id: str, limit: int = 100
    ) -> list[StepExecution]:
        """Return the most recent executions of a project, newest first."""

    async def get_cached_response(
        self, project_id: str, request_hash: str
    ) -> StepExecution | None:
        """Look up the execution cached under ``request_hash``."""

    async def set_cached_response(
        self, project_id: str, request_hash: str, execution_id: int
    ) -> None:
        """Register ``execution_id`` as the cached response for ``request_hash``."""

    async def clear_cache(self, project_id: Optional[str] = None) -> None:
        """Drop cache entries for one project, or all of them."""

    def close(self) -> None:
        """Release backend resources."""
