"""Exception types raised by the workflow engine."""

from __future__ import annotations

from typing import Optional


class MuleError(Exception):
    """Base class for mule errors."""


class ConfigurationError(MuleError):
    """Raised for unsupported or incomplete configuration."""


class StepValidationError(MuleError):
    """A value was rejected by a step or workflow schema."""

    def __init__(self, contract: str, subject: str, detail: str) -> None:
        self.contract = contract
        self.subject = subject
        self.detail = detail
        super().__init__(f"Invalid {contract} for '{subject}': {detail}")


class StepExecutionError(MuleError):
    """A step failed on every attempt and had no ``on_error`` handler.

    ``step_key`` is the hierarchical run path of the failing step, e.g.
    ``"run-1->child-wf:fetch"``.
    """

    def __init__(self, step_key: str, cause: Optional[BaseException] = None) -> None:
        self.step_key = step_key
        self.cause = cause
        message = str(cause) if cause is not None else "unknown error"
        super().__init__(f"Step '{step_key}' failed: {message}")
