"""
Command Runner
==============
Runs external commands (git, hugo) for a Run with cooperative cancellation.

Behaves like ``subprocess.run(..., check=True, capture_output=True,
text=True)`` so callers keep catching ``subprocess.CalledProcessError``,
with two additions:

    - the child is polled, and killed as soon as the Run's cancel event is
      set (raises RunCancelled)
    - a hard timeout kills the child (raises subprocess.TimeoutExpired)
"""
import logging
import subprocess
import threading
import time
from typing import Dict, List, Optional

from deployer.core.errors import RunCancelled

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.5


def run_command(
    args: List[str],
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    cancel_event: Optional[threading.Event] = None,
    timeout: Optional[float] = None,
    check: bool = True,
) -> subprocess.CompletedProcess:
    """
    Execute a command and capture its output.

    Parameters
    ----------
    args : list[str]
        Program and arguments. Never passed through a shell.
    cwd : str | None
        Working directory.
    env : dict | None
        Full environment for the child.
    cancel_event : threading.Event | None
        When set, the child is killed and RunCancelled is raised.
    timeout : float | None
        Seconds before the child is killed.
    check : bool
        Raise CalledProcessError on a non-zero exit.

    Returns
    -------
    subprocess.CompletedProcess
    """
    if cancel_event is not None and cancel_event.is_set():
        raise RunCancelled(f"cancelled before running {args[0]}")

    proc = subprocess.Popen(
        args,
        cwd=cwd,
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    start = time.monotonic()

    while True:
        try:
            stdout, stderr = proc.communicate(timeout=_POLL_INTERVAL)
            break
        except subprocess.TimeoutExpired:
            if cancel_event is not None and cancel_event.is_set():
                _kill(proc)
                logger.warning("Killed %s: run cancelled", args[0])
                raise RunCancelled(f"{args[0]} interrupted by cancellation")
            if timeout is not None and time.monotonic() - start > timeout:
                _kill(proc)
                logger.error("Killed %s after %.0fs timeout", args[0], timeout)
                raise subprocess.TimeoutExpired(args, timeout)

    completed = subprocess.CompletedProcess(args, proc.returncode, stdout, stderr)
    if check:
        completed.check_returncode()
    return completed


def _kill(proc: subprocess.Popen) -> None:
    proc.kill()
    try:
        proc.communicate(timeout=5)
    except subprocess.TimeoutExpired:
        logger.warning("Process %s did not exit after kill", proc.pid)
