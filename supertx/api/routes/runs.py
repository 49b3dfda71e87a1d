"""Runs router - submit signed quotes and follow their execution."""

import json
import logging
from typing import AsyncGenerator, List

from cachetools import TTLCache
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from supertx.api.dependencies import get_coordinator, get_monitor, get_quote_cache
from supertx.api.schemas import CancelResponse, RunCreate
from supertx.core.models import PlanSignature, Quote
from supertx.execution import ExecutionCoordinator, RunSnapshot, StatusMonitor

logger = logging.getLogger(__name__)

router = APIRouter()


def sse_event(event_type: str, data: dict) -> str:
    """Format an SSE event."""
    return f"event: {event_type}\ndata: {json.dumps(data)}\n\n"


@router.post("", response_model=RunSnapshot, status_code=status.HTTP_202_ACCEPTED)
async def create_run(
    request: RunCreate,
    quotes: TTLCache[str, Quote] = Depends(get_quote_cache),
    coordinator: ExecutionCoordinator = Depends(get_coordinator),
) -> RunSnapshot:
    """Authorize a signed quote and start executing it."""
    logger.info(f"Run request for plan: {request.plan_hash}")
    quote = quotes.get(request.plan_hash)
    if quote is None:
        raise HTTPException(
            status_code=404,
            detail=f"Quote '{request.plan_hash}' not found or expired",
        )

    signature = PlanSignature(
        plan_hash=request.plan_hash,
        signature=request.signature,
        signer=request.signer,
    )
    run = await coordinator.submit(quote.plan, signature)
    return RunSnapshot.from_run(run)


@router.get("", response_model=List[RunSnapshot])
async def list_runs(
    plan_hash: str | None = None,
    limit: int = 100,
    monitor: StatusMonitor = Depends(get_monitor),
) -> List[RunSnapshot]:
    """List runs, most recent first, optionally for one plan."""
    logger.debug(f"Listing runs: plan_hash={plan_hash}")
    return await monitor.list_snapshots(plan_hash, limit)


@router.get("/{id}", response_model=RunSnapshot)
async def get_run(
    id: str,
    monitor: StatusMonitor = Depends(get_monitor),
) -> RunSnapshot:
    """Get the current state of a run and its nodes."""
    return await monitor.snapshot(id)


@router.post("/{id}/cancel", response_model=CancelResponse)
async def cancel_run(
    id: str,
    coordinator: ExecutionCoordinator = Depends(get_coordinator),
) -> CancelResponse:
    """Cancel a run before any node has been submitted."""
    run = await coordinator.cancel(id)
    return CancelResponse(
        run_id=run.id,
        status=run.status,
        message="Run cancelled before submission",
    )


async def stream_run_events(
    run_id: str,
    monitor: StatusMonitor,
) -> AsyncGenerator[str, None]:
    """Relay monitor events as SSE until the run's terminal event."""
    async for event in monitor.subscribe(run_id):
        yield sse_event(event.event_type, event.model_dump(mode="json"))


@router.get("/{id}/events")
async def stream_run(
    id: str,
    monitor: StatusMonitor = Depends(get_monitor),
) -> StreamingResponse:
    """Stream run state transitions via SSE."""
    # Unknown runs fail here with 404 rather than inside the stream
    await monitor.get_run(id)

    return StreamingResponse(
        stream_run_events(id, monitor),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
