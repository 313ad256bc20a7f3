from __future__ import annotations

import functools
import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel

from .constants import (
    DEFAULT_DATABASE_PATH,
    DEFAULT_STEP_RETRIES,
    ENV_CONFIG_PATH,
    ENV_DATABASE_PATH,
    ENV_PROJECT_ID,
    ENV_STEP_CONCURRENCY,
    ENV_STEP_RETRIES,
)


class PersistenceConfig(BaseModel):
    """Where step executions are stored."""

    backend: Literal["sqlite", "postgres", "none"] = "sqlite"
    path: str = DEFAULT_DATABASE_PATH
    connection_string: Optional[str] = None


class LoggingConfig(BaseModel):
    """Execution record logging settings."""

    enabled: bool = True


class MuleConfig(BaseModel):
    """Top-level configuration model."""

    project_id: Optional[str] = None
    default_model: Optional[str] = None
    cache_enabled: bool = False
    persistence: PersistenceConfig = PersistenceConfig()
    logging: LoggingConfig = LoggingConfig()


def load_config(path: Optional[str] = None) -> MuleConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to MULE_CONFIG env
            variable or 'mule.yaml' in the current directory.
    """

    config_path = path or os.getenv(ENV_CONFIG_PATH, "mule.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = MuleConfig(**data)
    else:
        config = MuleConfig()

    env_project_id = os.getenv(ENV_PROJECT_ID)
    if env_project_id:
        config.project_id = env_project_id
    env_db_path = os.getenv(ENV_DATABASE_PATH)
    if env_db_path:
        config.persistence.path = env_db_path
    return config


def _read_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


@functools.lru_cache(maxsize=None)
def get_step_retries() -> int:
    """Extra attempts per step after the first one fails.

    Read from ``MULE_STEP_RETRIES``; missing, invalid or negative values
    fall back to the default of one retry.
    """
    value = _read_int(ENV_STEP_RETRIES)
    if value is None or value < 0:
        return DEFAULT_STEP_RETRIES
    return value


@functools.lru_cache(maxsize=None)
def get_max_parallel_steps() -> Optional[int]:
    """Cap on steps in flight per parallel or branch batch.

    ``None`` means unlimited (``MULE_STEP_CONCURRENCY`` unset, invalid or
    below one).
    """
    value = _read_int(ENV_STEP_CONCURRENCY)
    if value is None or value < 1:
        return None
    return value
