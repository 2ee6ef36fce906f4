"""
Run Writer
==========
Serializes finished Runs to <RUNS_DIR>/<run_id>.json so the history of
deployments survives a restart of the service.
"""
import json
import logging
import os
from typing import List

from deployer.core.config import RUNS_DIR
from deployer.models.run import Run

logger = logging.getLogger(__name__)


class RunWriter:
    """
    Service responsible for persisting run records. The build artifact
    itself is never persisted, only the record of what happened.
    """

    def __init__(self, runs_dir: str = RUNS_DIR) -> None:
        self.runs_dir = runs_dir

    def write_run(self, run: Run) -> bool:
        try:
            os.makedirs(self.runs_dir, exist_ok=True)
            path = os.path.join(self.runs_dir, f"{run.run_id}.json")
            with open(path, "w", encoding="utf-8") as f:
                json.dump(run.model_dump(mode="json"), f, indent=2)
            logger.info("Wrote run record %s", path)
            return True
        except OSError as e:
            logger.error("Failed to write run record for %s: %s", run.run_id, e, exc_info=True)
            return False

    def load_runs(self) -> List[Run]:
        """Load previously persisted runs, oldest first. Unreadable files are skipped."""
        runs: List[Run] = []
        if not os.path.isdir(self.runs_dir):
            return runs
        for name in sorted(os.listdir(self.runs_dir)):
            if not name.endswith(".json"):
                continue
            path = os.path.join(self.runs_dir, name)
            try:
                with open(path, "r", encoding="utf-8") as f:
                    runs.append(Run.model_validate(json.load(f)))
            except (OSError, ValueError) as e:
                logger.warning("Skipping unreadable run record %s: %s", path, e)
        runs.sort(key=lambda r: r.created_at)
        return runs
