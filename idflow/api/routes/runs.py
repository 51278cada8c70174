"""
Run History API Routes.
"""

from fastapi import APIRouter, Depends, HTTPException

from idflow.api.dependencies import get_run_storage
from idflow.api.schemas import ErrorResponse, RunListResponse, RunResponse
from idflow.storage.memory import RunStorage


router = APIRouter(prefix="/runs", tags=["Runs"])


@router.get("", response_model=RunListResponse)
async def list_runs(runs: RunStorage = Depends(get_run_storage)) -> RunListResponse:
    """List all recorded runs."""
    stored = await runs.list_all()
    return RunListResponse(
        runs=[RunResponse(**r.to_dict()) for r in stored],
        total=len(stored),
    )


@router.get(
    "/{run_id}",
    response_model=RunResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_run(run_id: str, runs: RunStorage = Depends(get_run_storage)) -> RunResponse:
    """Get the result of a single run."""
    stored = await runs.get(run_id)
    if not stored:
        raise HTTPException(status_code=404, detail=f"Run '{run_id}' not found")
    return RunResponse(**stored.to_dict())
