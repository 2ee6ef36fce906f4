"""
Checkout Service
================
Materializes the source repository for a Run and manages per-Run workspaces.

Philosophy:
    - One fresh workspace per Run: <WORKSPACE_ROOT>/<run_id>/
    - Full history by default (fetch_depth 0) so the generator can read
      last-modified dates from git.
    - Submodules (themes) are required content: a submodule that cannot be
      fetched fails the checkout.
    - The workspace is removed when the Run ends, whatever the outcome.
"""
import os
import re
import shutil
import logging
import subprocess
import threading
from typing import List, Optional

from deployer.core.config import WORKSPACE_ROOT, STEP_TIMEOUT_SECONDS
from deployer.core.errors import CheckoutError
from deployer.core.pipeline_config import CheckoutSettings
from deployer.executor.command_runner import run_command
from deployer.utils.logging_config import redact

logger = logging.getLogger(__name__)


def get_repo_slug(repo_url: str) -> str:
    """Extract 'owner/repo' from a GitHub URL; empty for other hosts."""
    match = re.search(r"github\.com[:/]([^/]+/[^/]+?)(?:\.git)?/?$", repo_url)
    return match.group(1) if match else ""


def authenticated_url(repo_url: str, github_token: Optional[str] = "") -> str:
    """Insert a token into an HTTPS GitHub URL for private clones."""
    if github_token and "github.com" in repo_url and repo_url.startswith("https://"):
        return repo_url.replace("https://", f"https://x-access-token:{github_token}@", 1)
    return repo_url


def create_workspace(run_id: str, root: str = WORKSPACE_ROOT) -> str:
    """Create an empty workspace directory for a Run."""
    path = os.path.abspath(os.path.join(root, run_id))
    if os.path.exists(path):
        shutil.rmtree(path)
    os.makedirs(path)
    return path


def remove_workspace(path: str) -> None:
    """Delete a Run workspace, including the build output."""
    if path and os.path.exists(path):
        shutil.rmtree(path, ignore_errors=True)
        logger.info("Removed workspace %s", path)


def _submodule_args(settings: CheckoutSettings) -> List[List[str]]:
    if settings.submodules is False:
        return []
    recursive = ["--recursive"] if settings.submodules == "recursive" else []
    return [
        ["git", "submodule", "sync", *recursive],
        ["git", "submodule", "update", "--init", "--force", *recursive],
    ]


def checkout_source(
    repo_url: str,
    dest_path: str,
    branch: str,
    sha: Optional[str] = None,
    settings: Optional[CheckoutSettings] = None,
    github_token: Optional[str] = "",
    cancel_event: Optional[threading.Event] = None,
    timeout: int = STEP_TIMEOUT_SECONDS,
) -> str:
    """
    Clone the source repository and check out the triggering commit.

    Parameters
    ----------
    repo_url : str
        Source repository URL.
    dest_path : str
        Directory to clone into (must not exist yet).
    branch : str
        Branch of the trigger; used when no explicit sha is known
        (manual dispatch).
    sha : str | None
        Exact commit to check out.
    settings : CheckoutSettings | None
        Submodule and history depth settings.
    github_token : str
        Optional token for private repositories.

    Returns
    -------
    str
        The SHA that was checked out.

    Raises
    ------
    CheckoutError
        On any git failure, including missing submodules.
    """
    settings = settings or CheckoutSettings()
    if not repo_url:
        raise CheckoutError("No source repository configured")

    clone_args = ["git", "clone", "--no-checkout"]
    if settings.fetch_depth > 0:
        clone_args += ["--depth", str(settings.fetch_depth), "--branch", branch]
    clone_args += [authenticated_url(repo_url, github_token), dest_path]

    target = sha or f"origin/{branch}"
    commands = [
        (clone_args, None),
        (["git", "checkout", "--force", target], dest_path),
    ]
    commands += [(args, dest_path) for args in _submodule_args(settings)]

    logger.info(
        "Checking out %s at %s (submodules=%s, depth=%s)",
        repo_url, target, settings.submodules, settings.fetch_depth or "full",
    )

    env = dict(os.environ, GIT_TERMINAL_PROMPT="0")
    try:
        for args, cwd in commands:
            run_command(args, cwd=cwd, env=env, cancel_event=cancel_event, timeout=timeout)
        head = run_command(
            ["git", "rev-parse", "HEAD"], cwd=dest_path, env=env, cancel_event=cancel_event
        )
    except subprocess.CalledProcessError as e:
        message = redact(f"{' '.join(e.cmd[:3])} failed: {(e.stderr or '').strip()}")
        logger.error("Checkout failed: %s", message)
        raise CheckoutError(message) from e
    except subprocess.TimeoutExpired as e:
        raise CheckoutError(f"Checkout timed out after {timeout}s") from e
    except OSError as e:
        raise CheckoutError(f"Could not run git: {e}") from e

    commit_sha = head.stdout.strip()
    logger.info("Checked out %s", commit_sha)
    return commit_sha
