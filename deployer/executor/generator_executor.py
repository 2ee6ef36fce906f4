"""
Generator Executor
==================
Runs the pinned static-site generator (Hugo) over a checked-out source tree
and reports a structured result (logs, exit code, timing, output dir).

BOUNDARY RULES:
    - Executor ONLY builds. It never touches git and never publishes.
    - Executor never raises for build failures; the pipeline decides what a
      non-zero exit means. Only cancellation propagates (RunCancelled).

RUNTIMES:
    docker (default)
        One ephemeral container per build from a pinned image tag.
        Source mounted at /src, container always destroyed afterwards.
    host
        Uses the hugo binary on PATH after verifying it is the pinned
        version. Intended for machines that already provision Hugo.

DETERMINISM:
    Same commit + same pinned version → same site output.
"""
import os
import time
import logging
import subprocess
import threading
from dataclasses import dataclass, field
from typing import List, Optional

import docker
from docker.errors import APIError, DockerException, ImageNotFound

from deployer.core.config import GENERATOR_RUNTIME, STEP_TIMEOUT_SECONDS
from deployer.core.errors import RunCancelled
from deployer.core.pipeline_config import GeneratorSettings
from deployer.executor.command_runner import run_command

logger = logging.getLogger(__name__)

_CONTAINER_SOURCE = "/src"
_POLL_INTERVAL = 1.0


# ---------------------------------------------------------------------------
# Generator Result (returned to the pipeline)
# ---------------------------------------------------------------------------
@dataclass
class GeneratorResult:
    """
    Structured output from a single generator invocation.

    Fields
    ------
    exit_code : int
        Generator exit code (0 = success). -1 when it never ran.
    full_log : str
        Combined stdout + stderr.
    log_excerpt : str
        First + last lines of the log for the run record.
    execution_time_seconds : float
        Wall clock duration.
    output_dir : str
        Absolute path of the generated site on the host.
    runtime : str
        "docker" or "host".
    environment_metadata : dict
        Image, container id, version checks.
    error : str | None
        Infrastructure error (not a content/template error).
    """
    exit_code: int = -1
    full_log: str = ""
    log_excerpt: str = ""
    execution_time_seconds: float = 0.0
    output_dir: str = ""
    runtime: str = ""
    environment_metadata: dict = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and not self.error


# ---------------------------------------------------------------------------
# Log Excerpt Helper
# ---------------------------------------------------------------------------
_EXCERPT_HEAD_LINES = 20
_EXCERPT_TAIL_LINES = 30


def create_log_excerpt(full_log: str,
                       head: int = _EXCERPT_HEAD_LINES,
                       tail: int = _EXCERPT_TAIL_LINES) -> str:
    """
    Create an abbreviated log showing the first and last N lines.
    Short logs are returned as-is.
    """
    lines = full_log.splitlines()
    total = len(lines)

    if total <= head + tail:
        return full_log

    omitted = total - head - tail
    return "\n".join(
        lines[:head]
        + [f"... ({omitted} lines omitted) ..."]
        + lines[-tail:]
    )


def build_generator_args(settings: GeneratorSettings) -> List[str]:
    """Hugo command line for a production build."""
    args = ["hugo"]
    if settings.minify:
        args.append("--minify")
    args += ["--destination", settings.output_dir]
    return args


# ---------------------------------------------------------------------------
# Host runtime
# ---------------------------------------------------------------------------
def _verify_host_version(settings: GeneratorSettings, cancel_event) -> Optional[str]:
    """Return an error message when the local hugo is not the pinned build."""
    try:
        res = run_command(["hugo", "version"], cancel_event=cancel_event, timeout=30)
    except FileNotFoundError:
        return "hugo binary not found on PATH"
    except subprocess.CalledProcessError as e:
        return f"hugo version failed: {(e.stderr or '').strip()}"

    reported = res.stdout.strip()
    if f"v{settings.version}" not in reported:
        return f"hugo {settings.version} required, found: {reported}"
    if settings.extended and "extended" not in reported:
        return f"extended hugo {settings.version} required, found: {reported}"
    return None


def _run_on_host(source_path: str, settings: GeneratorSettings, result: GeneratorResult,
                 timeout_seconds: int, cancel_event) -> None:
    version_error = _verify_host_version(settings, cancel_event)
    if version_error:
        result.error = version_error
        logger.error(version_error)
        return

    result.environment_metadata = {"binary": "hugo", "version": settings.version}
    try:
        res = run_command(
            build_generator_args(settings),
            cwd=source_path,
            cancel_event=cancel_event,
            timeout=timeout_seconds,
            check=False,
        )
        result.exit_code = res.returncode
        result.full_log = (res.stdout or "") + (res.stderr or "")
    except subprocess.TimeoutExpired:
        result.error = f"Generator timed out after {timeout_seconds}s"
        logger.error(result.error)


# ---------------------------------------------------------------------------
# Docker runtime
# ---------------------------------------------------------------------------
def _container_user() -> Optional[str]:
    # Keep generated files owned by the service user so cleanup works
    if hasattr(os, "getuid"):
        return f"{os.getuid()}:{os.getgid()}"
    return None


def _run_in_container(source_path: str, settings: GeneratorSettings, result: GeneratorResult,
                      timeout_seconds: int, cancel_event) -> None:
    image = settings.docker_image
    container = None
    try:
        client = docker.from_env()

        logger.info("Starting generator container | image=%s | timeout=%ds", image, timeout_seconds)

        container = client.containers.run(
            image=image,
            command=build_generator_args(settings),
            volumes={source_path: {"bind": _CONTAINER_SOURCE, "mode": "rw"}},
            working_dir=_CONTAINER_SOURCE,
            environment={"HUGO_ENVIRONMENT": "production"},
            user=_container_user(),
            labels={"project": "pages-deployer", "role": "generator"},
            detach=True,
        )

        start = time.monotonic()
        while True:
            container.reload()
            if container.status in ("exited", "dead"):
                break
            if cancel_event is not None and cancel_event.is_set():
                container.kill()
                raise RunCancelled("generator container killed by cancellation")
            if time.monotonic() - start > timeout_seconds:
                container.kill()
                result.error = f"Generator timed out after {timeout_seconds}s"
                logger.error(result.error)
                break
            time.sleep(_POLL_INTERVAL)

        wait_result = container.wait()
        if result.error is None:
            result.exit_code = wait_result.get("StatusCode", -1)
        result.full_log = container.logs(stdout=True, stderr=True).decode("utf-8", errors="replace")
        result.environment_metadata = {
            "image": image,
            "container_id": container.short_id,
            "timeout_applied": timeout_seconds,
        }

    except ImageNotFound:
        result.error = f"Generator image '{image}' not found"
        logger.error(result.error)

    except APIError as e:
        result.error = f"Docker API error: {e}"
        logger.error(result.error)

    except DockerException as e:
        result.error = f"Docker unavailable: {e}"
        logger.error(result.error)

    finally:
        if container is not None:
            try:
                container.remove(force=True)
                logger.info("Container %s destroyed", container.short_id)
            except DockerException:
                logger.warning("Failed to remove container", exc_info=True)


def run_generator(
    source_path: str,
    settings: Optional[GeneratorSettings] = None,
    runtime: str = GENERATOR_RUNTIME,
    timeout_seconds: int = STEP_TIMEOUT_SECONDS,
    cancel_event: Optional[threading.Event] = None,
) -> GeneratorResult:
    """
    Build the site with the pinned generator.

    Lifecycle:
        1. Run `hugo --minify --destination <output_dir>` in the chosen runtime
        2. Capture logs, exit code, timing
        3. Confirm the output directory exists
        4. Return GeneratorResult

    Returns
    -------
    GeneratorResult
        Always returned for build and infrastructure failures.

    Raises
    ------
    RunCancelled
        If the Run was superseded while the generator was running.
    """
    settings = settings or GeneratorSettings()
    result = GeneratorResult(runtime=runtime)
    result.output_dir = os.path.join(source_path, settings.output_dir)
    start_time = time.monotonic()

    if runtime == "host":
        _run_on_host(source_path, settings, result, timeout_seconds, cancel_event)
    elif runtime == "docker":
        _run_in_container(source_path, settings, result, timeout_seconds, cancel_event)
    else:
        result.error = f"Unknown generator runtime '{runtime}'"
        logger.error(result.error)

    if result.exit_code == 0 and not result.error and not os.path.isdir(result.output_dir):
        result.error = f"Generator produced no output directory at {settings.output_dir}"
        logger.error(result.error)

    result.execution_time_seconds = round(time.monotonic() - start_time, 3)
    result.log_excerpt = create_log_excerpt(result.full_log)

    logger.info(
        "Generator complete | exit=%d | time=%.2fs | runtime=%s",
        result.exit_code, result.execution_time_seconds, runtime,
    )
    return result
