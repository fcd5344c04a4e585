"""Sweep scheduler control routes."""

from typing import Optional

from fastapi import APIRouter, Depends

from ..app import require_app, verify_api_key
from ..models import StartRequest, SweepResponse

router = APIRouter()


@router.get("/api/engine/status", dependencies=[Depends(verify_api_key)])
async def engine_status():
    """Get scheduler state and the last sweep report."""
    app = require_app()
    return app.scheduler.status()


@router.post("/api/engine/sweep", dependencies=[Depends(verify_api_key)])
async def run_sweep() -> SweepResponse:
    """Run one sweep now. Reports skipped=true when a sweep is already running."""
    app = require_app()
    report = await app.scheduler.run_sweep()
    if report is None:
        return SweepResponse(skipped=True)
    return SweepResponse(skipped=False, report=report.to_dict())


@router.post("/api/engine/start", dependencies=[Depends(verify_api_key)])
async def start_engine(req: Optional[StartRequest] = None):
    app = require_app()
    await app.scheduler.start(req.interval_seconds if req else None)
    return app.scheduler.status()


@router.post("/api/engine/stop", dependencies=[Depends(verify_api_key)])
async def stop_engine():
    app = require_app()
    await app.scheduler.stop()
    return app.scheduler.status()
