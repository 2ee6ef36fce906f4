"""
Errors
======
Failure taxonomy for a deployment Run.

Every step failure is fatal: the pipeline stops, marks the remaining steps
as skipped and records the error on the Run. Nothing is retried.
"""
from deployer.core.constants import STEP_CHECKOUT, STEP_BUILD, STEP_PUBLISH


class DeployError(Exception):
    """Base class for errors that end a Run as failed."""

    step = ""

    def __init__(self, message: str, log_excerpt: str = "") -> None:
        super().__init__(message)
        self.log_excerpt = log_excerpt


class CheckoutError(DeployError):
    """Clone, checkout or submodule fetch failed."""

    step = STEP_CHECKOUT


class BuildError(DeployError):
    """The generator exited non-zero, timed out or produced no output."""

    step = STEP_BUILD


class PublishError(DeployError):
    """Authentication, network or push rejection while publishing."""

    step = STEP_PUBLISH

    def __init__(self, message: str, status: str = "error", log_excerpt: str = "") -> None:
        super().__init__(message, log_excerpt=log_excerpt)
        self.status = status


class RunCancelled(Exception):
    """Raised inside a Run once a newer Run in the same group superseded it."""


class ConfigError(Exception):
    """The pipeline definition is missing required values or is malformed."""
