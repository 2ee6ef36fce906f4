"""
POST /webhooks/github
Receives GitHub webhook deliveries and turns pushes on the designated
branch into Runs.

Safety:
    - When WEBHOOK_SECRET is set, X-Hub-Signature-256 must match (401 otherwise)
    - Events other than push/ping are acknowledged and ignored
    - Pushes to other branches and branch deletions are ignored
"""
import hmac
import json
import hashlib
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from deployer.agents.controller import RunController
from deployer.api.dependencies import get_controller
from deployer.core import config
from deployer.core.constants import TRIGGER_PUSH
from deployer.models.trigger import Trigger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Triggers"])


def verify_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    """Constant-time check of a GitHub sha256 payload signature."""
    if not signature or not signature.startswith("sha256="):
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(f"sha256={expected}", signature)


def _login(account, key: str) -> str:
    value = account.get(key) if isinstance(account, dict) else None
    return value if isinstance(value, str) else ""


@router.post("/github", status_code=status.HTTP_202_ACCEPTED)
async def github_webhook(
    request: Request,
    x_github_event: str = Header(default=""),
    x_hub_signature_256: Optional[str] = Header(default=None),
    controller: RunController = Depends(get_controller),
):
    body = await request.body()

    if config.WEBHOOK_SECRET and not verify_signature(config.WEBHOOK_SECRET, body, x_hub_signature_256):
        logger.warning("Rejected webhook delivery with invalid signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    if x_github_event == "ping":
        return {"status": "pong"}
    if x_github_event != "push":
        return {"status": "ignored", "reason": f"event '{x_github_event}' not handled"}

    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        raise HTTPException(status_code=400, detail="Payload is not valid JSON")

    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Payload must be a JSON object")
    ref = payload.get("ref", "")
    after = payload.get("after", "")
    if not isinstance(ref, str) or not isinstance(after, str):
        raise HTTPException(status_code=400, detail="'ref' and 'after' must be strings")
    deleted = bool(payload.get("deleted", False))
    if not controller.accepts_push(ref, after, deleted):
        logger.info("Ignoring push to %s (deleted=%s)", ref, deleted)
        return {"status": "ignored", "reason": f"{ref} does not deploy"}

    actor = _login(payload.get("sender"), "login") or _login(payload.get("pusher"), "name")
    trigger = Trigger(kind=TRIGGER_PUSH, ref=ref, sha=after or None, actor=actor)
    run = await controller.submit(trigger)
    return {"status": "accepted", "run": run.summary()}
