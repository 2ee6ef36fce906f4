"""
Status Reporter
===============
Surfaces Run outcomes on the source commit through the GitHub commit
status API, so the triggering push shows pending / success / failure.

Reporting is best effort: HTTP errors are logged and never change the
outcome of a Run.
"""
import logging
from typing import Dict, Literal, Optional

import httpx

from deployer.core.config import GITHUB_API_URL
from deployer.core.constants import RUN_CANCELLED, RUN_FAILED, RUN_RUNNING, RUN_SUCCEEDED
from deployer.services.checkout_service import get_repo_slug

logger = logging.getLogger(__name__)

CommitState = Literal["pending", "success", "failure", "error"]

_STATE_BY_RUN_STATUS: Dict[str, CommitState] = {
    RUN_RUNNING: "pending",
    RUN_SUCCEEDED: "success",
    RUN_FAILED: "failure",
    RUN_CANCELLED: "error",
}

_DESCRIPTIONS = {
    RUN_RUNNING: "Build & deploy in progress",
    RUN_SUCCEEDED: "Site published",
    RUN_FAILED: "Deployment failed",
    RUN_CANCELLED: "Superseded by a newer run",
}


class StatusReporter:
    """Posts commit statuses for the source repository."""

    def __init__(self, repo_url: str, github_token: Optional[str] = "",
                 context: str = "deploy", api_url: str = GITHUB_API_URL) -> None:
        self.repo_path = get_repo_slug(repo_url)
        self.github_token = github_token or ""
        self.context = context
        self.api_url = api_url.rstrip("/")
        self.headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "pages-deployer",
        }
        if self.github_token:
            self.headers["Authorization"] = f"token {self.github_token}"

    @property
    def enabled(self) -> bool:
        return bool(self.github_token and self.repo_path)

    async def report(self, sha: str, run_status: str, description: str = "",
                     target_url: str = "") -> bool:
        """
        Publish the commit status matching a Run status.

        Returns True when GitHub accepted the status.
        """
        state = _STATE_BY_RUN_STATUS.get(run_status)
        if not self.enabled or not sha or state is None:
            return False

        url = f"{self.api_url}/repos/{self.repo_path}/statuses/{sha}"
        payload = {
            "state": state,
            "context": self.context,
            "description": (description or _DESCRIPTIONS.get(run_status, ""))[:140],
        }
        if target_url:
            payload["target_url"] = target_url

        try:
            async with httpx.AsyncClient(headers=self.headers, timeout=20.0) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as http_err:
            logger.error("Commit status rejected: HTTP %d: %s",
                         http_err.response.status_code, http_err)
            return False
        except httpx.HTTPError as e:
            logger.error("Commit status not delivered: %s", e)
            return False

        logger.info("Commit status %s → %s (%s)", sha[:7], state, self.context)
        return True
