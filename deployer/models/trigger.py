"""
Trigger Model
=============
Pydantic models for the two ways a Run can start.

    push               — a push to the designated branch (GitHub webhook)
    workflow_dispatch  — manual invocation carrying two free-form labels

The dispatch labels (logLevel, tags) are always present on the model and
recorded on the Run. Nothing in the pipeline branches on their values.
"""
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field

from deployer.core.constants import DEFAULT_LOG_LEVEL_INPUT


class DispatchInputs(BaseModel):
    log_level: str = Field(DEFAULT_LOG_LEVEL_INPUT, alias="logLevel")
    tags: str = ""

    model_config = {"populate_by_name": True}


class Trigger(BaseModel):
    kind: Literal["push", "workflow_dispatch"]
    ref: str
    sha: Optional[str] = None
    actor: str = ""
    inputs: DispatchInputs = DispatchInputs()
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def branch(self) -> str:
        prefix = "refs/heads/"
        return self.ref[len(prefix):] if self.ref.startswith(prefix) else self.ref
