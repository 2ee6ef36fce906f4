"""
POST /dispatch
Manual trigger. Accepts an optional ref (defaults to the designated branch)
and the two free-form inputs logLevel and tags, which are recorded on the
Run and otherwise do not affect it.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator

from deployer.agents.controller import RunController
from deployer.api.dependencies import get_controller
from deployer.core.constants import TRIGGER_DISPATCH
from deployer.models.trigger import DispatchInputs, Trigger

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Triggers"])


class DispatchRequest(BaseModel):
    ref: Optional[str] = None
    actor: str = ""
    inputs: DispatchInputs = DispatchInputs()

    @field_validator("ref")
    @classmethod
    def normalize_ref(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not v.startswith("refs/"):
            return f"refs/heads/{v}"
        if not v.startswith("refs/heads/") or v == "refs/heads/":
            raise ValueError("only branch refs (refs/heads/...) can be dispatched")
        return v


@router.post("/dispatch", status_code=status.HTTP_202_ACCEPTED)
async def dispatch(request: DispatchRequest, controller: RunController = Depends(get_controller)):
    trigger = Trigger(
        kind=TRIGGER_DISPATCH,
        ref=request.ref or controller.config.deploy_ref,
        actor=request.actor,
        inputs=request.inputs,
    )
    run = await controller.submit(trigger)
    logger.info("[RUN:%s] Manual dispatch on %s", run.run_id, trigger.ref)
    return {"status": "accepted", "run": run.summary()}
