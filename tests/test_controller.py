"""
Controller Tests
================
Single-lane concurrency per (workflow, ref): superseding, independence of
groups, and shutdown. Steps are mocked; the build can be held open so runs
overlap deterministically.
"""
import asyncio
import os
import threading
import time
from unittest.mock import MagicMock, patch

import pytest

from deployer.agents.controller import RunController
from deployer.agents.pipeline import DeployPipeline
from deployer.agents.publisher import PublishResult
from deployer.agents.status_reporter import StatusReporter
from deployer.core.errors import RunCancelled
from deployer.core.pipeline_config import PipelineConfig, PublishSettings
from deployer.executor.generator_executor import GeneratorResult
from deployer.models.run import Run
from deployer.models.trigger import Trigger


class HeldBuild:
    """Generator stand-in whose first invocation blocks until released or cancelled."""

    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def __call__(self, source_path, cancel_event=None, **kwargs):
        self.calls += 1
        if self.calls == 1:
            self.started.set()
            while not self.release.is_set():
                if cancel_event.is_set():
                    raise RunCancelled("generator killed")
                time.sleep(0.01)
        return GeneratorResult(exit_code=0, output_dir=os.path.join(source_path, "public"))


@pytest.fixture
def publisher():
    mock = MagicMock()
    mock.publish.side_effect = lambda **kw: PublishResult(status="success", published_sha="p-" + kw["commit_sha"])
    return mock


@pytest.fixture
def controller(publisher, tmp_path):
    config = PipelineConfig(
        source_repository="https://github.com/o/blog",
        publish=PublishSettings(external_repository="o/o.github.io"),
    )
    pipeline = DeployPipeline(
        config,
        publisher=publisher,
        reporter=StatusReporter(config.source_repository, github_token=""),
        writer=MagicMock(),
        workspace_root=str(tmp_path / "workspace"),
    )
    return RunController(pipeline)


def _push(sha, ref="refs/heads/main"):
    return Trigger(kind="push", ref=ref, sha=sha)


def _dispatch(ref="refs/heads/main"):
    return Trigger(kind="workflow_dispatch", ref=ref)


def _checkout(**kwargs):
    return kwargs["sha"] or "tip-" + kwargs["branch"]


async def _until(predicate, timeout=5.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)
    await asyncio.wait_for(poll(), timeout)


def _patched(build):
    return patch("deployer.agents.pipeline.checkout_source", side_effect=_checkout), \
        patch("deployer.agents.pipeline.run_generator", side_effect=build)


def test_push_then_publish(controller, publisher):
    async def scenario():
        run = await controller.submit(_push("aaa"))
        await controller.wait_idle()
        return run

    build = HeldBuild()
    build.release.set()
    checkout_patch, build_patch = _patched(build)
    with checkout_patch, build_patch:
        run = asyncio.run(scenario())

    assert run.status == "succeeded"
    assert run.group == "Build & Deploy-refs/heads/main"
    assert run.published_sha == "p-aaa"
    assert controller.active_run(run.group) is None


def test_new_push_supersedes_active_run(controller, publisher):
    build = HeldBuild()

    async def scenario():
        run_a = await controller.submit(_push("aaa"))
        await asyncio.to_thread(build.started.wait, 5)
        assert run_a.status == "running"

        run_b = await controller.submit(_push("bbb"))
        # The superseded run is terminal before its successor even starts
        assert run_a.status == "cancelled"
        assert run_a.cancelled_by == run_b.run_id
        assert publisher.publish.call_count == 0

        await controller.wait_idle()
        return run_a, run_b

    checkout_patch, build_patch = _patched(build)
    with checkout_patch, build_patch:
        run_a, run_b = asyncio.run(scenario())

    assert run_a.step("build").status == "cancelled"
    assert run_a.step("publish").status == "skipped"
    assert run_b.status == "succeeded"
    published = [c.kwargs["commit_sha"] for c in publisher.publish.call_args_list]
    assert published == ["bbb"]


def test_other_ref_runs_independently(controller, publisher):
    build = HeldBuild()

    async def scenario():
        run_main = await controller.submit(_dispatch("refs/heads/main"))
        await asyncio.to_thread(build.started.wait, 5)

        run_preview = await controller.submit(_dispatch("refs/heads/preview"))
        await _until(lambda: run_preview.is_terminal)
        assert run_main.status == "running"

        build.release.set()
        await controller.wait_idle()
        return run_main, run_preview

    checkout_patch, build_patch = _patched(build)
    with checkout_patch, build_patch:
        run_main, run_preview = asyncio.run(scenario())

    assert run_main.status == "succeeded"
    assert run_preview.status == "succeeded"
    assert run_main.group != run_preview.group
    assert run_main.cancelled_by == ""


def test_push_to_other_branch_rejected(controller):
    assert controller.accepts_push("refs/heads/main") is True
    assert controller.accepts_push("refs/heads/feature") is False
    assert controller.accepts_push("refs/heads/main", deleted=True) is False
    assert controller.accepts_push("refs/heads/main", after="0" * 40) is False

    with pytest.raises(ValueError):
        asyncio.run(controller.submit(_push("aaa", ref="refs/heads/feature")))
    assert controller.list_runs() == []


def test_shutdown_cancels_active_runs(controller, publisher):
    build = HeldBuild()

    async def scenario():
        run = await controller.submit(_push("aaa"))
        await asyncio.to_thread(build.started.wait, 5)
        await controller.shutdown()
        return run

    checkout_patch, build_patch = _patched(build)
    with checkout_patch, build_patch:
        run = asyncio.run(scenario())

    assert run.status == "cancelled"
    publisher.publish.assert_not_called()


def test_listing_and_history(controller):
    old = Run(workflow="Build & Deploy", group="g", trigger=_push("old"), status="succeeded")
    restored = RunController(controller.pipeline, history=[old])
    assert restored.get(old.run_id) is old
    assert restored.get("missing") is None

    async def scenario():
        run = await restored.submit(_dispatch())
        await restored.wait_idle()
        return run

    build = HeldBuild()
    build.release.set()
    checkout_patch, build_patch = _patched(build)
    with checkout_patch, build_patch:
        newest = asyncio.run(scenario())

    assert [r.run_id for r in restored.list_runs()] == [newest.run_id, old.run_id]


def test_history_is_capped(controller):
    capped = RunController(controller.pipeline, max_history=2)
    for sha in ("a", "b", "c"):
        capped._remember(Run(workflow="w", group="g", trigger=_push(sha), status="succeeded"))
    assert [r.trigger.sha for r in capped.list_runs()] == ["c", "b"]
