"""
Run Controller
==============
Decides when a Run starts and keeps a single lane per concurrency group.

Concurrency group:
    "<workflow>-<ref>", e.g. "Build & Deploy-refs/heads/main".

Rules:
    - At most one active Run per group.
    - A new Run for a busy group first cancels the active Run and waits
      until that Run is terminal, then starts. The superseded Run is
      therefore cancelled before its successor can reach publish.
    - Groups are independent: a Run for another ref never waits.
    - No queue beyond the single slot, no retries.
"""
import asyncio
import logging
import threading
from collections import OrderedDict, defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional

from deployer.agents.pipeline import DeployPipeline
from deployer.core.constants import NULL_SHA, RUN_CANCELLED, TRIGGER_PUSH
from deployer.models.run import Run
from deployer.models.trigger import Trigger

logger = logging.getLogger(__name__)

_MAX_HISTORY = 200


@dataclass
class _ActiveRun:
    run: Run
    task: asyncio.Task
    cancel_event: threading.Event


class RunController:
    """Accepts triggers and owns every Run of one pipeline definition."""

    def __init__(self, pipeline: DeployPipeline, history: Optional[List[Run]] = None,
                 max_history: int = _MAX_HISTORY) -> None:
        self.pipeline = pipeline
        self.config = pipeline.config
        self.max_history = max_history
        self._runs: "OrderedDict[str, Run]" = OrderedDict()
        self._active: Dict[str, _ActiveRun] = {}
        self._group_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        for run in history or []:
            self._remember(run)

    # -------------------------------------------------------------------
    # Trigger rules
    # -------------------------------------------------------------------
    def accepts_push(self, ref: str, after: str = "", deleted: bool = False) -> bool:
        """Only pushes that update the designated branch deploy."""
        if deleted or after == NULL_SHA:
            return False
        return ref == self.config.deploy_ref

    def group_for(self, trigger: Trigger) -> str:
        return self.config.concurrency_group(trigger.ref)

    # -------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------
    async def submit(self, trigger: Trigger) -> Run:
        """
        Create a Run for the trigger and start it, superseding the active
        Run of the same group.

        Raises
        ------
        ValueError
            For a push trigger on a branch that does not deploy.
        """
        if trigger.kind == TRIGGER_PUSH and not self.accepts_push(trigger.ref, trigger.sha or ""):
            raise ValueError(f"push to {trigger.ref} does not trigger {self.config.name}")

        group = self.group_for(trigger)
        run = Run(workflow=self.config.name, group=group, trigger=trigger)
        self._remember(run)
        logger.info("[RUN:%s] Queued %s on %s", run.run_id, trigger.kind, group)

        async with self._group_locks[group]:
            previous = self._active.get(group)
            if previous is not None and not previous.task.done():
                await self._supersede(previous, run)

            cancel_event = threading.Event()
            task = asyncio.create_task(self._execute(run, cancel_event))
            self._active[group] = _ActiveRun(run=run, task=task, cancel_event=cancel_event)

        return run

    async def _supersede(self, previous: _ActiveRun, successor: Run) -> None:
        logger.warning(
            "[RUN:%s] Superseded by %s, cancelling", previous.run.run_id, successor.run_id
        )
        previous.run.cancelled_by = successor.run_id
        previous.cancel_event.set()
        await asyncio.wait({previous.task})
        if previous.run.status != RUN_CANCELLED:
            # Finished on its own before noticing the cancellation
            previous.run.cancelled_by = ""

    async def _execute(self, run: Run, cancel_event: threading.Event) -> None:
        try:
            await self.pipeline.execute(run, cancel_event)
        finally:
            entry = self._active.get(run.group)
            if entry is not None and entry.run is run:
                del self._active[run.group]

    def _remember(self, run: Run) -> None:
        self._runs[run.run_id] = run
        while len(self._runs) > self.max_history:
            oldest_id = next(iter(self._runs))
            if not self._runs[oldest_id].is_terminal:
                break
            self._runs.pop(oldest_id)

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def get(self, run_id: str) -> Optional[Run]:
        return self._runs.get(run_id)

    def list_runs(self) -> List[Run]:
        """All known Runs, newest first."""
        return list(reversed(self._runs.values()))

    def active_run(self, group: str) -> Optional[Run]:
        entry = self._active.get(group)
        return entry.run if entry is not None else None

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    async def wait_idle(self) -> None:
        """Wait for every active Run to reach a terminal status."""
        while self._active:
            await asyncio.wait({entry.task for entry in self._active.values()})

    async def shutdown(self) -> None:
        """Cancel all active Runs and wait for them."""
        for entry in list(self._active.values()):
            entry.cancel_event.set()
        await self.wait_idle()
