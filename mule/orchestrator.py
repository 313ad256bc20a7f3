"""The Mule orchestrator: owns configuration shared by its workflows."""

from __future__ import annotations

import logging
import os
import warnings
from typing import Any, Optional, Union

from .config import LoggingConfig, MuleConfig, PersistenceConfig, load_config
from .constants import DEFAULT_PROJECT_ID, ENV_PROJECT_ID
from .persistence import StepExecutionRepository, get_repository
from .sinks import ConsoleLogger, Logger, RepositoryLogger
from .steps import State
from .workflow import ClientFactory, Workflow

logger = logging.getLogger(__name__)


class Mule:
    """Factory for workflows sharing a project id, sink and model settings.

    Args:
        project_id: Project the executions belong to. Falls back to the
            ``MULE_PROJECT_ID`` environment variable, the loaded config and
            finally ``"unknown"``.
        persistence: Persistence settings, or ``False`` to disable storing
            executions.
        logging_enabled: When ``False`` no execution records are written.
        logger: Custom sink. Takes precedence over the repository sink.
        default_model: Model used by ``ctx.ai`` calls that name none.
        cache_enabled: Serve repeated LLM requests from the repository.
        config: Preloaded configuration; loaded from YAML when omitted.
    """

    def __init__(
        self,
        project_id: Optional[str] = None,
        persistence: Union[PersistenceConfig, bool, None] = None,
        logging_enabled: Optional[bool] = None,
        logger: Optional[Logger] = None,
        default_model: Any = None,
        cache_enabled: Optional[bool] = None,
        config: Optional[MuleConfig] = None,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.config = config or load_config()
        self.project_id = (
            project_id
            or os.getenv(ENV_PROJECT_ID)
            or self.config.project_id
            or DEFAULT_PROJECT_ID
        )
        self.default_model = default_model or self.config.default_model
        self.client_factory = client_factory

        if persistence is False:
            persistence = PersistenceConfig(backend="none")
        elif persistence is None or persistence is True:
            persistence = self.config.persistence
        self.persistence = persistence
        self._repository: Optional[StepExecutionRepository] = get_repository(persistence)

        if cache_enabled is None:
            cache_enabled = self.config.cache_enabled
        self.cache = self._repository if cache_enabled else None

        logging_config = LoggingConfig(
            enabled=self.config.logging.enabled
            if logging_enabled is None
            else logging_enabled
        )
        self.logger = self._select_logger(logging_config, logger)

    def _select_logger(
        self, logging_config: LoggingConfig, custom: Optional[Logger]
    ) -> Optional[Logger]:
        if not logging_config.enabled:
            sink = None
        elif custom is not None:
            sink = custom
        elif self._repository is not None:
            sink = RepositoryLogger(self._repository)
        else:
            sink = ConsoleLogger()
        logger.debug(
            f"Mule project {self.project_id}: persistence={self.persistence.backend} "
            f"sink={type(sink).__name__} cache={self.cache is not None}"
        )
        return sink

    def create_workflow(
        self,
        state: Optional[State] = None,
        input_schema: Any = None,
        workflow_id: Optional[str] = None,
    ) -> Workflow:
        """Create a workflow configured with this orchestrator's settings."""
        return Workflow(
            workflow_id=workflow_id,
            state=state,
            input_schema=input_schema,
            project_id=self.project_id,
            logger=self.logger,
            client_factory=self.client_factory,
            default_model=self.default_model,
            cache=self.cache,
        )

    def get_repository(self) -> Optional[StepExecutionRepository]:
        return self._repository

    def close(self) -> None:
        if self._repository is not None:
            self._repository.close()


def create_workflow(
    state: Optional[State] = None,
    input_schema: Any = None,
    workflow_id: Optional[str] = None,
) -> Workflow:
    """Create a standalone workflow.

    Deprecated: use ``Mule(...).create_workflow()``. The workflow gets its
    project id from ``MULE_PROJECT_ID`` and writes no execution records.
    """
    warnings.warn(
        "mule.create_workflow() is deprecated; use Mule(project_id).create_workflow()",
        DeprecationWarning,
        stacklevel=2,
    )
    return Workflow(
        workflow_id=workflow_id,
        state=state,
        input_schema=input_schema,
        project_id=os.getenv(ENV_PROJECT_ID) or DEFAULT_PROJECT_ID,
    )
