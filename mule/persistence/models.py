"""Data models for execution records."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from ..context import ExecutionType


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class TokenUsage(BaseModel):
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class CallCost(BaseModel):
    """Cost of one call in USD."""

    prompt_cost: float
    completion_cost: float
    total_cost: float


class LLMCallLog(BaseModel):
    """Record handed to a ``Logger`` sink for each step or remote call."""

    project_id: str
    workflow_id: str
    run_id: str
    step_id: str
    timestamp: str = Field(default_factory=utc_timestamp)

    parent_step_id: Optional[str] = None
    execution_group: Optional[str] = None
    execution_type: Optional[ExecutionType] = None
    depth: Optional[int] = None

    model: Optional[str] = None
    messages: Optional[list[dict[str, Any]]] = None
    result: Optional[str] = None
    usage: Optional[TokenUsage] = None
    cost: Optional[CallCost] = None
    duration_ms: Optional[int] = None
    finish_reason: Optional[str] = None
    error: Optional[str] = None


class StepExecution(BaseModel):
    """Persisted row for one step execution or remote call."""

    id: Optional[int] = None
    project_id: str
    workflow_id: str
    run_id: str
    step_id: str

    parent_step_id: Optional[str] = None
    execution_group: Optional[str] = None
    execution_type: Optional[ExecutionType] = None
    depth: Optional[int] = None

    timestamp: str
    duration_ms: Optional[int] = None

    model: Optional[str] = None
    prompt: Optional[str] = None
    result: Optional[str] = None

    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    finish_reason: Optional[str] = None

    prompt_cost_usd: Optional[float] = None
    completion_cost_usd: Optional[float] = None
    total_cost_usd: Optional[float] = None

    status: Literal["success", "error"] = "success"
    error: Optional[str] = None
