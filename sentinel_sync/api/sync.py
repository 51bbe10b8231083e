from __future__ import annotations

from fastapi import APIRouter, Depends

from sentinel_sync.core.contracts import SyncReport
from sentinel_sync.core.errors import not_found, service_unavailable
from sentinel_sync.services.pipeline import SyncPipeline

router = APIRouter(prefix="/sync")


def get_pipeline() -> SyncPipeline:
    raise RuntimeError("SyncPipeline must be provided by app dependency override")


@router.post("/run", response_model=SyncReport)
async def sync_run(pipeline: SyncPipeline = Depends(get_pipeline)) -> SyncReport:
    if pipeline.running:
        service_unavailable("sync_in_progress", "a sync run is already in progress")
    report = await pipeline.run_once()
    if report is None:
        service_unavailable("sync_failed", "sync run failed; see server logs")
    return report


@router.get("/status", response_model=SyncReport)
def sync_status(pipeline: SyncPipeline = Depends(get_pipeline)) -> SyncReport:
    if pipeline.last_report is None:
        not_found("no_runs", "no sync run has completed yet")
    return pipeline.last_report
