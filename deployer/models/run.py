"""
Run Model
=========
Pydantic models tracking one execution of the Build & Deploy pipeline.

Run:
    run_id          — short unique identifier
    workflow        — workflow name (first half of the concurrency key)
    group           — concurrency key "<workflow>-<ref>"
    trigger         — the Trigger that created the Run
    status          — pending / running / succeeded / failed / cancelled
    steps           — one StepRecord per pipeline step, in order
    commit_sha      — source commit actually checked out
    published_sha   — commit created on the target branch ("" if unchanged)
    publish_status  — Publisher outcome string
    cancelled_by    — run_id of the Run that superseded this one
    error           — failure message for failed Runs

Terminal statuses never change again; see `is_terminal`.
"""
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from deployer.core.constants import (
    PIPELINE_STEPS,
    RUN_PENDING,
    STEP_SKIPPED,
    TERMINAL_STATUSES,
)
from deployer.models.trigger import Trigger


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StepRecord(BaseModel):
    name: str
    status: str = RUN_PENDING
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    log_excerpt: str = ""
    error: str = ""


class Run(BaseModel):
    run_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    workflow: str
    group: str
    trigger: Trigger
    status: str = RUN_PENDING
    steps: List[StepRecord] = Field(
        default_factory=lambda: [StepRecord(name=name) for name in PIPELINE_STEPS]
    )
    commit_sha: str = ""
    published_sha: str = ""
    publish_status: str = ""
    cancelled_by: str = ""
    error: str = ""
    created_at: datetime = Field(default_factory=_now)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def step(self, name: str) -> StepRecord:
        for record in self.steps:
            if record.name == name:
                return record
        raise KeyError(name)

    def start_step(self, name: str, status: str) -> StepRecord:
        record = self.step(name)
        record.status = status
        record.started_at = _now()
        return record

    def finish_step(self, name: str, status: str, log_excerpt: str = "", error: str = "") -> StepRecord:
        record = self.step(name)
        record.status = status
        record.finished_at = _now()
        if log_excerpt:
            record.log_excerpt = log_excerpt
        if error:
            record.error = error
        return record

    def skip_remaining(self) -> None:
        """Mark every step that never started as skipped."""
        for record in self.steps:
            if record.status == RUN_PENDING:
                record.status = STEP_SKIPPED

    def finish(self, status: str, error: str = "") -> None:
        if self.is_terminal:
            return
        self.status = status
        self.error = error
        self.finished_at = _now()
        self.skip_remaining()

    def summary(self) -> dict:
        """Compact view returned by the trigger endpoints."""
        return {
            "run_id": self.run_id,
            "group": self.group,
            "status": self.status,
            "trigger": self.trigger.kind,
            "ref": self.trigger.ref,
        }
