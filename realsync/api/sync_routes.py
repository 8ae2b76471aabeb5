"""realsync — Sync Status & Manual Trigger Routes."""

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from realsync.models.sync_models import SyncMode, SyncRunRecord
from realsync.sync.orchestrators import SyncOrchestrator, SyncRuntime

router = APIRouter(prefix="/sync", tags=["Sync"])


def get_runtime(request: Request) -> SyncRuntime:
    runtime = getattr(request.app.state, "sync_runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Sync runtime not initialised")
    return runtime


async def _trigger(orchestrator: SyncOrchestrator, mode: SyncMode) -> SyncRunRecord:
    if mode not in orchestrator.modes:
        allowed = ", ".join(m.value for m in orchestrator.modes)
        raise HTTPException(
            status_code=422, detail=f"mode must be one of: {allowed}"
        )
    return await orchestrator.run(mode)


@router.get("/status")
async def sync_status(runtime: SyncRuntime = Depends(get_runtime)):
    """Orchestrator states, lock holder and last run records."""
    return runtime.status()


@router.post("/entities", response_model=SyncRunRecord)
async def trigger_entity_sync(
    mode: SyncMode = Query(SyncMode.INCREMENTAL),
    runtime: SyncRuntime = Depends(get_runtime),
):
    """Run an entity sync now. Skipped (not queued) if a sync is running."""
    return await _trigger(runtime.entity_sync, mode)


@router.post("/events", response_model=SyncRunRecord)
async def trigger_event_sync(
    mode: SyncMode = Query(SyncMode.PARTIAL),
    runtime: SyncRuntime = Depends(get_runtime),
):
    """Run an event sync now. Skipped (not queued) if a sync is running."""
    return await _trigger(runtime.event_sync, mode)
