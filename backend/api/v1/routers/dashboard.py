"""
Dashboard Router — live KPI snapshot, manual refresh and change events.
"""

import asyncio

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from api.deps import get_change_source, get_scheduler
from dashboard.scheduler import RefreshScheduler
from dashboard.snapshot import Snapshot
from dashboard.stages import STAGE_ORDER
from dashboard.triggers import CHANGE_EVENTS, LocalChangeEventSource, TriggerReason

router = APIRouter(prefix="/api/v1/dashboard", tags=["dashboard"])

HEARTBEAT_SECONDS = 30.0


# ─── Schemas ────────────────────────────────────────────────────────────────


class StageRow(BaseModel):
    stage: str
    label: str
    count: int
    width_percent: int


class StageBreakdown(BaseModel):
    total: int
    in_progress: int
    sold: int
    stages: list[StageRow]


class ChangeEventRequest(BaseModel):
    event: str


class ChangeEventResponse(BaseModel):
    event: str
    reason: str
    delivered: int


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/snapshot")
async def get_snapshot(scheduler: RefreshScheduler = Depends(get_scheduler)) -> dict:
    """Current published snapshot (possibly stale, see lastError)."""
    return scheduler.snapshot.to_dict()


@router.get("/stages", response_model=StageBreakdown)
async def get_stage_breakdown(scheduler: RefreshScheduler = Depends(get_scheduler)):
    """Inventory-by-stage chart rows; bar widths are relative to the largest bucket."""
    snapshot = scheduler.snapshot
    max_count = max([*snapshot.histogram.values(), 1])
    rows = [
        StageRow(
            stage=stage.value,
            label=stage.label,
            count=snapshot.histogram.get(stage, 0),
            width_percent=round(snapshot.histogram.get(stage, 0) / max_count * 100),
        )
        for stage in STAGE_ORDER
    ]
    return StageBreakdown(
        total=snapshot.total_count,
        in_progress=snapshot.in_progress,
        sold=snapshot.derived_metrics.get("sold", 0),
        stages=rows,
    )


@router.post("/refresh")
async def refresh_snapshot(scheduler: RefreshScheduler = Depends(get_scheduler)) -> dict:
    """Manual refresh; joins the in-flight cycle if one is already running."""
    snapshot = await scheduler.refresh(TriggerReason.MANUAL)
    return snapshot.to_dict()


@router.post("/events", response_model=ChangeEventResponse)
async def post_change_event(
    body: ChangeEventRequest,
    change_source: LocalChangeEventSource = Depends(get_change_source),
):
    """Wallet provider webhook: accountsChanged / chainChanged."""
    if body.event not in CHANGE_EVENTS:
        raise HTTPException(
            status_code=422,
            detail=f"Unknown event '{body.event}'. Expected one of {sorted(CHANGE_EVENTS)}",
        )
    delivered = change_source.emit(body.event)
    return ChangeEventResponse(event=body.event, reason=CHANGE_EVENTS[body.event].value, delivered=delivered)


@router.websocket("/ws")
async def websocket_snapshots(websocket: WebSocket):
    """
    Streams every snapshot the scheduler publishes.

    Messages sent to client:
        {"type": "snapshot", "payload": {...}}
        {"type": "heartbeat", "payload": {}}
    """
    scheduler = getattr(websocket.app.state, "scheduler", None)
    if scheduler is None or scheduler.disposed:
        await websocket.close(code=1013, reason="Refresh engine not running")
        return

    await websocket.accept()
    queue: asyncio.Queue[Snapshot] = asyncio.Queue(maxsize=16)

    def on_snapshot(snapshot: Snapshot) -> None:
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(snapshot)

    scheduler.add_listener(on_snapshot)
    try:
        await websocket.send_json({"type": "snapshot", "payload": scheduler.snapshot.to_dict()})
        while True:
            try:
                snapshot = await asyncio.wait_for(queue.get(), timeout=HEARTBEAT_SECONDS)
            except asyncio.TimeoutError:
                await websocket.send_json({"type": "heartbeat", "payload": {}})
                continue
            await websocket.send_json({"type": "snapshot", "payload": snapshot.to_dict()})
    except WebSocketDisconnect:
        pass
    finally:
        scheduler.remove_listener(on_snapshot)
