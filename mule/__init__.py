"""Mule: in-process workflow orchestration for LLM-backed steps."""

from .ai import AIService, AIServiceConfig
from .context import ExecutionContext
from .errors import (
    ConfigurationError,
    MuleError,
    StepExecutionError,
    StepValidationError,
)
from .orchestrator import Mule, create_workflow
from .persistence import (
    InMemoryStepExecutionRepository,
    LLMCallLog,
    SQLiteStepExecutionRepository,
    StepExecution,
    get_repository,
)
from .sinks import ConsoleLogger, Logger, RepositoryLogger
from .steps import Step, StepContext, create_step
from .workflow import Workflow

__version__ = "0.3.0"
__all__ = [
    "AIService",
    "AIServiceConfig",
    "ConfigurationError",
    "ConsoleLogger",
    "ExecutionContext",
    "InMemoryStepExecutionRepository",
    "LLMCallLog",
    "Logger",
    "Mule",
    "MuleError",
    "RepositoryLogger",
    "SQLiteStepExecutionRepository",
    "Step",
    "StepContext",
    "StepExecution",
    "StepExecutionError",
    "StepValidationError",
    "Workflow",
    "create_step",
    "create_workflow",
    "get_repository",
]
