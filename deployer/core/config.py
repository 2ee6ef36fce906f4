"""
Configuration
=============
Loads environment variables from .env file using python-dotenv.

Environment Variables:
    PIPELINE_CONFIG       — Path to the YAML pipeline definition (default: deploy.yml)
    WORKSPACE_ROOT        — Directory holding per-run workspaces (default: ./workspace)
    RUNS_DIR              — Directory for persisted run records (default: ./runs)
    GENERATOR_RUNTIME     — "docker" (default) or "host"
    STEP_TIMEOUT_SECONDS  — Ceiling for a single step (default: 600)
    GITHUB_TOKEN          — Private checkouts and commit status reporting
    DEPLOY_KEY            — SSH private key allowed to push to the target repo
    DEPLOY_KEY_PATH       — Alternative to DEPLOY_KEY: path to the key file
    DEPLOY_TOKEN          — Alternative to an SSH key: HTTPS token for pushing
    WEBHOOK_SECRET        — Shared secret for GitHub webhook signatures
    LOG_LEVEL             — Root log level (default: INFO)
    GIT_USER_NAME / GIT_USER_EMAIL — Identity used for publish commits

Timeout Philosophy:
    There is no retry anywhere in the pipeline. STEP_TIMEOUT_SECONDS only
    bounds a hung generator or git process so the concurrency lane is
    released; a timed-out step fails the Run like any other error.
"""
import os
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

PIPELINE_CONFIG = os.getenv("PIPELINE_CONFIG", os.path.join(BASE_DIR, "deploy.yml"))
WORKSPACE_ROOT = os.getenv("WORKSPACE_ROOT", os.path.join(BASE_DIR, "workspace"))
RUNS_DIR = os.getenv("RUNS_DIR", os.path.join(BASE_DIR, "runs"))

GENERATOR_RUNTIME = os.getenv("GENERATOR_RUNTIME", "docker").lower()
STEP_TIMEOUT_SECONDS = int(os.getenv("STEP_TIMEOUT_SECONDS", 600))

# Secrets
GITHUB_TOKEN = os.getenv("GITHUB_TOKEN")
DEPLOY_KEY = os.getenv("DEPLOY_KEY")
DEPLOY_KEY_PATH = os.getenv("DEPLOY_KEY_PATH")
DEPLOY_TOKEN = os.getenv("DEPLOY_TOKEN")
WEBHOOK_SECRET = os.getenv("WEBHOOK_SECRET")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Commit identity for the publish step
GIT_USER_NAME = os.getenv("GIT_USER_NAME", "github-actions[bot]")
GIT_USER_EMAIL = os.getenv(
    "GIT_USER_EMAIL", "41898282+github-actions[bot]@users.noreply.github.com"
)

GITHUB_API_URL = os.getenv("GITHUB_API_URL", "https://api.github.com")
