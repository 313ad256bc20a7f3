"""Persistence layer for step executions."""

from __future__ import annotations

import logging
from typing import Optional

from ..config import MuleConfig, PersistenceConfig, load_config
from ..errors import ConfigurationError
from .inmemory import InMemoryStepExecutionRepository
from .models import CallCost, LLMCallLog, StepExecution, TokenUsage
from .repository import StepExecutionRepository
from .sqlite import SQLiteStepExecutionRepository

logger = logging.getLogger(__name__)


def get_repository(
    persistence: Optional[PersistenceConfig] = None,
    config: Optional[MuleConfig] = None,
) -> StepExecutionRepository | None:
    """Factory function to obtain a step execution repository.

    The backend is selected from ``persistence`` or, when omitted, from the
    loaded configuration. Returns ``None`` when persistence is disabled.
    """

    if persistence is None:
        persistence = (config or load_config()).persistence

    if persistence.backend == "none":
        return None
    if persistence.backend == "sqlite":
        logger.debug(f"Using SQLite step execution store at {persistence.path}")
        return SQLiteStepExecutionRepository(persistence.path)
    if persistence.backend == "postgres":
        raise ConfigurationError("PostgreSQL persistence not yet implemented")
    raise ConfigurationError(f"Unsupported persistence backend: {persistence.backend}")


__all__ = [
    "CallCost",
    "LLMCallLog",
    "StepExecution",
    "TokenUsage",
    "StepExecutionRepository",
    "SQLiteStepExecutionRepository",
    "InMemoryStepExecutionRepository",
    "get_repository",
]
