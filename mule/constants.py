"""Default values shared across the mule package."""

DEFAULT_PROJECT_ID = "unknown"
DEFAULT_STEP_RETRIES = 1
DEFAULT_DATABASE_PATH = "~/.mule/executions.db"
DEFAULT_HISTORY_LIMIT = 100

# Consecutive 503 + Retry-After retries allowed for one remote call
MAX_503_RETRIES = 5
MAX_RETRY_AFTER_SECONDS = 24 * 60 * 60

ENV_CONFIG_PATH = "MULE_CONFIG"
ENV_PROJECT_ID = "MULE_PROJECT_ID"
ENV_DATABASE_PATH = "MULE_DATABASE_PATH"
ENV_STEP_RETRIES = "MULE_STEP_RETRIES"
ENV_STEP_CONCURRENCY = "MULE_STEP_CONCURRENCY"
