"""
Pipeline Tests
==============
Checkout → Build → Publish with git, docker and the target repository mocked.
"""
import asyncio
import os
import threading
from unittest.mock import MagicMock, patch

import pytest

from deployer.agents.pipeline import DeployPipeline
from deployer.agents.publisher import PublishResult
from deployer.agents.status_reporter import StatusReporter
from deployer.core.errors import CheckoutError, RunCancelled
from deployer.core.pipeline_config import PipelineConfig, PublishSettings
from deployer.executor.generator_executor import GeneratorResult
from deployer.models.run import Run
from deployer.models.trigger import DispatchInputs, Trigger
from deployer.services.run_writer import RunWriter


@pytest.fixture
def config():
    return PipelineConfig(
        source_repository="https://github.com/o/blog",
        publish=PublishSettings(external_repository="o/o.github.io"),
    )


@pytest.fixture
def publisher():
    mock = MagicMock()
    mock.publish.return_value = PublishResult(status="success", published_sha="f00d")
    return mock


@pytest.fixture
def pipeline(config, publisher, tmp_path):
    return DeployPipeline(
        config,
        publisher=publisher,
        reporter=StatusReporter(config.source_repository, github_token=""),
        writer=RunWriter(str(tmp_path / "runs")),
        workspace_root=str(tmp_path / "workspace"),
    )


def _run(config, kind="push", inputs=None):
    trigger = Trigger(kind=kind, ref="refs/heads/main", sha="abc123" if kind == "push" else None,
                      inputs=inputs or DispatchInputs())
    return Run(workflow=config.name, group=config.concurrency_group(trigger.ref), trigger=trigger)


def _build_ok(source_path, **kwargs):
    return GeneratorResult(exit_code=0, output_dir=os.path.join(source_path, "public"), log_excerpt="built")


def _execute(pipeline, run, event=None):
    return asyncio.run(pipeline.execute(run, event or threading.Event()))


def test_successful_run(pipeline, config, publisher, tmp_path):
    run = _run(config)
    with patch("deployer.agents.pipeline.checkout_source", return_value="abc123") as mock_checkout, \
         patch("deployer.agents.pipeline.run_generator", side_effect=_build_ok):
        _execute(pipeline, run)

    assert run.status == "succeeded"
    assert [s.status for s in run.steps] == ["succeeded", "succeeded", "succeeded"]
    assert run.commit_sha == "abc123"
    assert run.published_sha == "f00d"
    assert run.step("build").log_excerpt == "built"
    assert mock_checkout.call_args.kwargs["sha"] == "abc123"
    publisher.publish.assert_called_once()
    assert publisher.publish.call_args.kwargs["source_repo"] == "o/blog"
    # Build artifact is not kept, run record is
    assert os.listdir(tmp_path / "workspace") == []
    assert os.path.exists(tmp_path / "runs" / f"{run.run_id}.json")


def test_build_failure_never_publishes(pipeline, config, publisher):
    run = _run(config)
    failed = GeneratorResult(exit_code=255, log_excerpt="ERROR template: partials/head.html")
    with patch("deployer.agents.pipeline.checkout_source", return_value="abc123"), \
         patch("deployer.agents.pipeline.run_generator", return_value=failed):
        _execute(pipeline, run)

    assert run.status == "failed"
    assert run.step("build").status == "failed"
    assert "partials/head.html" in run.step("build").log_excerpt
    assert run.step("publish").status == "skipped"
    publisher.publish.assert_not_called()


def test_checkout_failure_aborts_before_build(pipeline, config, publisher):
    run = _run(config)
    with patch("deployer.agents.pipeline.checkout_source", side_effect=CheckoutError("submodule missing")), \
         patch("deployer.agents.pipeline.run_generator") as mock_build:
        _execute(pipeline, run)

    assert run.status == "failed"
    assert run.error == "submodule missing"
    assert [s.status for s in run.steps] == ["failed", "skipped", "skipped"]
    mock_build.assert_not_called()
    publisher.publish.assert_not_called()


def test_publish_failure_fails_run(pipeline, config, publisher):
    publisher.publish.return_value = PublishResult(status="rejected", error="non-fast-forward")
    run = _run(config)
    with patch("deployer.agents.pipeline.checkout_source", return_value="abc123"), \
         patch("deployer.agents.pipeline.run_generator", side_effect=_build_ok):
        _execute(pipeline, run)

    assert run.status == "failed"
    assert run.publish_status == "rejected"
    assert run.step("publish").error == "non-fast-forward"


def test_nothing_to_commit_is_success(pipeline, config, publisher):
    publisher.publish.return_value = PublishResult(status="nothing_to_commit")
    run = _run(config)
    with patch("deployer.agents.pipeline.checkout_source", return_value="abc123"), \
         patch("deployer.agents.pipeline.run_generator", side_effect=_build_ok):
        _execute(pipeline, run)

    assert run.status == "succeeded"
    assert run.published_sha == ""


def test_cancel_event_before_start(pipeline, config):
    run = _run(config)
    event = threading.Event()
    event.set()
    with patch("deployer.agents.pipeline.checkout_source") as mock_checkout:
        _execute(pipeline, run, event)

    assert run.status == "cancelled"
    assert [s.status for s in run.steps] == ["skipped", "skipped", "skipped"]
    mock_checkout.assert_not_called()


def test_cancelled_mid_build(pipeline, config, publisher):
    run = _run(config)
    with patch("deployer.agents.pipeline.checkout_source", return_value="abc123"), \
         patch("deployer.agents.pipeline.run_generator", side_effect=RunCancelled("killed")):
        _execute(pipeline, run)

    assert run.status == "cancelled"
    assert run.step("build").status == "cancelled"
    assert run.step("publish").status == "skipped"
    publisher.publish.assert_not_called()


def test_unexpected_error_fails_run(pipeline, config, publisher):
    run = _run(config)
    with patch("deployer.agents.pipeline.checkout_source", side_effect=KeyError("boom")):
        _execute(pipeline, run)

    assert run.status == "failed"
    assert run.step("checkout").status == "failed"
    assert "KeyError" in run.error


def test_dispatch_inputs_do_not_change_behaviour(pipeline, config, publisher):
    outcomes = []
    for inputs in (DispatchInputs(), DispatchInputs(logLevel="debug", tags="anything at all")):
        publisher.publish.reset_mock()
        run = _run(config, kind="workflow_dispatch", inputs=inputs)
        with patch("deployer.agents.pipeline.checkout_source", return_value="abc123") as mock_checkout, \
             patch("deployer.agents.pipeline.run_generator", side_effect=_build_ok) as mock_build:
            _execute(pipeline, run)
        outcomes.append((
            run.status,
            [s.status for s in run.steps],
            mock_checkout.call_args.kwargs["branch"],
            mock_checkout.call_args.kwargs["sha"],
            mock_build.call_args.kwargs["settings"],
            publisher.publish.call_count,
        ))

    assert outcomes[0] == outcomes[1]
    assert outcomes[0][0] == "succeeded"


def test_cancel_after_push_keeps_published_outcome(pipeline, config, publisher):
    run = _run(config)
    event = threading.Event()

    def publish_then_superseded(**kwargs):
        kwargs["cancel_event"].set()
        return PublishResult(status="success", published_sha="f00d")

    publisher.publish.side_effect = publish_then_superseded
    with patch("deployer.agents.pipeline.checkout_source", return_value="abc123"), \
         patch("deployer.agents.pipeline.run_generator", side_effect=_build_ok):
        _execute(pipeline, run, event)

    assert event.is_set()
    assert run.status == "succeeded"
    assert run.published_sha == "f00d"
    assert run.step("publish").status == "succeeded"
