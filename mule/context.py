"""Execution context threaded through every step invocation."""

from __future__ import annotations

import uuid
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ExecutionType = Literal["sequential", "parallel", "branch"]


class ExecutionContext(BaseModel):
    """Where in the workflow tree a step invocation happens.

    Only used for observability: it is copied into execution records and
    never consulted for scheduling decisions.
    """

    parent_step_id: Optional[str] = None
    execution_group: Optional[str] = None
    execution_type: ExecutionType = "sequential"
    depth: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True)

    def nested(self, workflow_id: str) -> ExecutionContext:
        """Context for a child workflow entered from this context."""
        return self.model_copy(
            update={"parent_step_id": workflow_id, "depth": self.depth + 1}
        )

    def grouped(self, execution_type: ExecutionType) -> ExecutionContext:
        """Context shared by all members of one parallel or branch batch."""
        return self.model_copy(
            update={
                "execution_group": str(uuid.uuid4()),
                "execution_type": execution_type,
            }
        )

    def as_metadata(self) -> dict:
        return {
            "parent_step_id": self.parent_step_id,
            "execution_group": self.execution_group,
            "execution_type": self.execution_type,
            "depth": self.depth,
        }
