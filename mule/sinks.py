"""Sinks receiving execution records."""

from __future__ import annotations

import json
import logging
from typing import Optional, Protocol

from .persistence.models import LLMCallLog, StepExecution
from .persistence.repository import StepExecutionRepository

logger = logging.getLogger(__name__)


class Logger(Protocol):
    """Append-only destination for execution records."""

    async def log(self, record: LLMCallLog) -> Optional[int]:
        """Store ``record`` and return its id when the sink assigns one."""


class ConsoleLogger(Logger):
    """Write execution records through the ``mule.executions`` logger."""

    def __init__(self, name: str = "mule.executions") -> None:
        self._logger = logging.getLogger(name)

    async def log(self, record: LLMCallLog) -> Optional[int]:
        status = "error" if record.error else "success"
        self._logger.info(
            f"[{record.project_id}] {record.run_id}:{record.step_id} {status} "
            f"depth={record.depth} group={record.execution_group} "
            f"type={record.execution_type} duration_ms={record.duration_ms}"
            + (f" model={record.model}" if record.model else "")
            + (f" error={record.error}" if record.error else "")
        )
        return None


def to_step_execution(record: LLMCallLog) -> StepExecution:
    """Map a log record to its persisted row."""
    usage = record.usage
    cost = record.cost
    return StepExecution(
        project_id=record.project_id,
        workflow_id=record.workflow_id,
        run_id=record.run_id,
        step_id=record.step_id,
        parent_step_id=record.parent_step_id,
        execution_group=record.execution_group,
        execution_type=record.execution_type,
        depth=record.depth,
        timestamp=record.timestamp,
        duration_ms=record.duration_ms,
        model=record.model,
        prompt=json.dumps(record.messages) if record.messages else None,
        result=record.result,
        prompt_tokens=usage.prompt_tokens if usage else None,
        completion_tokens=usage.completion_tokens if usage else None,
        total_tokens=usage.total_tokens if usage else None,
        finish_reason=record.finish_reason,
        prompt_cost_usd=cost.prompt_cost if cost else None,
        completion_cost_usd=cost.completion_cost if cost else None,
        total_cost_usd=cost.total_cost if cost else None,
        status="error" if record.error else "success",
        error=record.error,
    )


class RepositoryLogger(Logger):
    """Adapter that bridges the ``Logger`` sink to a repository."""

    def __init__(self, repository: StepExecutionRepository) -> None:
        self.repository = repository

    async def log(self, record: LLMCallLog) -> Optional[int]:
        return await self.repository.save(to_step_execution(record))


async def write_record(sink: Optional[Logger], record: LLMCallLog) -> Optional[int]:
    """Hand ``record`` to ``sink``; a failing sink never fails the caller."""
    if sink is None:
        return None
    try:
        return await sink.log(record)
    except Exception as e:
        logger.warning(
            f"Failed to log execution record for {record.run_id}:{record.step_id}: {e}"
        )
        return None
