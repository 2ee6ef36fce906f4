"""
GET /runs, GET /runs/{run_id}
Read-only view of Runs for dashboards and scripts.
"""
from fastapi import APIRouter, Depends, HTTPException

from deployer.agents.controller import RunController
from deployer.api.dependencies import get_controller

router = APIRouter(prefix="/runs", tags=["Runs"])


@router.get("")
async def list_runs(limit: int = 50, controller: RunController = Depends(get_controller)):
    runs = controller.list_runs()[:max(limit, 0)]
    return {"runs": [run.model_dump(mode="json") for run in runs]}


@router.get("/{run_id}")
async def get_run(run_id: str, controller: RunController = Depends(get_controller)):
    run = controller.get(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return run.model_dump(mode="json")
