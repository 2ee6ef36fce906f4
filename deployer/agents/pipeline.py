"""
Deploy Pipeline
===============
Drives one Run through Checkout → Build → Publish.

Guarantees:
    - Steps run strictly in order, each only after the previous succeeded.
    - A failed build never reaches publish (no partial output is pushed).
    - The cancel event is checked before every step and inside every
      external command, so a superseded Run stops as soon as possible.
    - The per-Run workspace (source + build output) is always removed.
    - The Run record is always persisted and the final status reported.
    - No retries at any stage.

Blocking work (git, docker, hugo) runs in worker threads so the event loop
stays free to accept new triggers.
"""
import asyncio
import logging
import os
import threading
from datetime import datetime, timezone
from typing import Optional

from deployer.agents.publisher import Publisher
from deployer.agents.status_reporter import StatusReporter
from deployer.core.config import (
    GENERATOR_RUNTIME,
    GITHUB_TOKEN,
    STEP_TIMEOUT_SECONDS,
    WORKSPACE_ROOT,
)
from deployer.core.constants import (
    RUN_CANCELLED,
    RUN_FAILED,
    RUN_RUNNING,
    RUN_SUCCEEDED,
    STEP_BUILD,
    STEP_CHECKOUT,
    STEP_PUBLISH,
)
from deployer.core.errors import BuildError, DeployError, PublishError, RunCancelled
from deployer.core.pipeline_config import PipelineConfig
from deployer.executor.generator_executor import run_generator
from deployer.models.run import Run
from deployer.services.checkout_service import (
    checkout_source,
    create_workspace,
    get_repo_slug,
    remove_workspace,
)
from deployer.services.run_writer import RunWriter

logger = logging.getLogger(__name__)


class DeployPipeline:
    """Executes Runs for a single pipeline definition."""

    def __init__(
        self,
        config: PipelineConfig,
        publisher: Optional[Publisher] = None,
        reporter: Optional[StatusReporter] = None,
        writer: Optional[RunWriter] = None,
        github_token: Optional[str] = GITHUB_TOKEN,
        runtime: str = GENERATOR_RUNTIME,
        workspace_root: str = WORKSPACE_ROOT,
        step_timeout: int = STEP_TIMEOUT_SECONDS,
    ) -> None:
        self.config = config
        self.github_token = github_token
        self.runtime = runtime
        self.workspace_root = workspace_root
        self.step_timeout = step_timeout
        self.publisher = publisher or Publisher(config.publish, timeout=step_timeout)
        self.reporter = reporter or StatusReporter(
            config.source_repository, github_token, context=f"deploy/{config.name}"
        )
        self.writer = writer or RunWriter()

    # -------------------------------------------------------------------
    # Steps (run in worker threads)
    # -------------------------------------------------------------------
    def _checkout(self, run: Run, workspace: str, cancel_event: threading.Event) -> str:
        return checkout_source(
            repo_url=self.config.source_repository,
            dest_path=os.path.join(workspace, "source"),
            branch=run.trigger.branch,
            sha=run.trigger.sha,
            settings=self.config.checkout,
            github_token=self.github_token,
            cancel_event=cancel_event,
            timeout=self.step_timeout,
        )

    def _build(self, workspace: str, cancel_event: threading.Event):
        result = run_generator(
            os.path.join(workspace, "source"),
            settings=self.config.generator,
            runtime=self.runtime,
            timeout_seconds=self.step_timeout,
            cancel_event=cancel_event,
        )
        if not result.succeeded:
            message = result.error or f"Generator exited with code {result.exit_code}"
            raise BuildError(message, log_excerpt=result.log_excerpt)
        return result

    def _publish(self, run: Run, output_dir: str, workspace: str, cancel_event: threading.Event):
        source = get_repo_slug(self.config.source_repository) or self.config.source_repository
        result = self.publisher.publish(
            output_dir=output_dir,
            workspace_path=workspace,
            source_repo=source,
            commit_sha=run.commit_sha,
            cancel_event=cancel_event,
        )
        run.publish_status = result.status
        if not result.succeeded:
            raise PublishError(result.error or result.status, status=result.status)
        return result

    async def _step(self, run: Run, name: str, cancel_event: threading.Event, fn, *args):
        if cancel_event.is_set():
            raise RunCancelled(f"cancelled before {name}")
        run.start_step(name, RUN_RUNNING)
        logger.info("[RUN:%s] Step %s started", run.run_id, name)
        return await asyncio.to_thread(fn, *args)

    @staticmethod
    def _running_step(run: Run) -> Optional[str]:
        for record in run.steps:
            if record.status == RUN_RUNNING:
                return record.name
        return None

    # -------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------
    async def execute(self, run: Run, cancel_event: threading.Event) -> Run:
        """
        Execute a Run to a terminal status. Never raises for pipeline
        failures; only re-raises asyncio cancellation of the task itself.
        """
        run.status = RUN_RUNNING
        run.started_at = datetime.now(timezone.utc)
        workspace = ""
        logger.info(
            "[RUN:%s] Starting %s for %s (group=%s, inputs=%s)",
            run.run_id, run.trigger.kind, run.trigger.ref, run.group,
            run.trigger.inputs.model_dump(by_alias=True),
        )

        try:
            workspace = create_workspace(run.run_id, self.workspace_root)

            run.commit_sha = await self._step(run, STEP_CHECKOUT, cancel_event,
                                              self._checkout, run, workspace, cancel_event)
            run.finish_step(STEP_CHECKOUT, RUN_SUCCEEDED)
            await self.reporter.report(run.commit_sha, RUN_RUNNING)

            build = await self._step(run, STEP_BUILD, cancel_event, self._build, workspace, cancel_event)
            run.finish_step(STEP_BUILD, RUN_SUCCEEDED, log_excerpt=build.log_excerpt)

            published = await self._step(run, STEP_PUBLISH, cancel_event,
                                         self._publish, run, build.output_dir, workspace, cancel_event)
            run.published_sha = published.published_sha
            run.finish_step(STEP_PUBLISH, RUN_SUCCEEDED)

            run.finish(RUN_SUCCEEDED)

        except RunCancelled as e:
            self._mark_cancelled(run, str(e))

        except asyncio.CancelledError:
            cancel_event.set()
            self._mark_cancelled(run, "task cancelled")
            raise

        except DeployError as e:
            logger.error("[RUN:%s] %s step failed: %s", run.run_id, e.step, e)
            run.finish_step(e.step, RUN_FAILED, log_excerpt=e.log_excerpt, error=str(e))
            run.finish(RUN_FAILED, error=str(e))

        except Exception as e:
            # A bug in a step must fail the Run, never the controller
            logger.exception("[RUN:%s] Unexpected error", run.run_id)
            step = self._running_step(run)
            if step:
                run.finish_step(step, RUN_FAILED, error=str(e))
            run.finish(RUN_FAILED, error=f"{type(e).__name__}: {e}")

        finally:
            remove_workspace(workspace)
            self.writer.write_run(run)
            await self.reporter.report(run.commit_sha or run.trigger.sha or "", run.status,
                                       description=run.error)

        logger.info("[RUN:%s] Finished with status %s", run.run_id, run.status)
        return run

    def _mark_cancelled(self, run: Run, reason: str) -> None:
        step = self._running_step(run)
        if step:
            run.finish_step(step, RUN_CANCELLED)
        run.finish(RUN_CANCELLED)
        logger.warning("[RUN:%s] Cancelled (%s)", run.run_id, reason)
