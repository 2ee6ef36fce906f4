"""
Constants
Centralised storage for run statuses, trigger kinds and workflow defaults.
"""
TRIGGER_PUSH = "push"
TRIGGER_DISPATCH = "workflow_dispatch"

RUN_PENDING = "pending"
RUN_RUNNING = "running"
RUN_SUCCEEDED = "succeeded"
RUN_FAILED = "failed"
RUN_CANCELLED = "cancelled"
TERMINAL_STATUSES = {RUN_SUCCEEDED, RUN_FAILED, RUN_CANCELLED}

STEP_SKIPPED = "skipped"

STEP_CHECKOUT = "checkout"
STEP_BUILD = "build"
STEP_PUBLISH = "publish"
PIPELINE_STEPS = [STEP_CHECKOUT, STEP_BUILD, STEP_PUBLISH]

DEFAULT_WORKFLOW_NAME = "Build & Deploy"
DEFAULT_BRANCH = "main"
DEFAULT_LOG_LEVEL_INPUT = "warning"

HUGO_VERSION = "0.115.4"
HUGO_IMAGE_REPO = "hugomods/hugo"
DEFAULT_OUTPUT_DIR = "public"

NULL_SHA = "0" * 40
