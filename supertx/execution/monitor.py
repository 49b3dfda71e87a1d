"""Status Monitor - run snapshots and transition subscriptions."""

import logging
from collections import defaultdict
from typing import AsyncIterator, Dict, List, Optional

from supertx.core.runtime.events import (
    RunCancelledEvent,
    RunConfirmedEvent,
    RunFailedEvent,
    StreamEvent,
)
from supertx.core.runtime.exceptions import RunNotFoundError
from supertx.core.runtime.stream import AsyncQueueStream, ExecutionStream, NoOpStream
from supertx.execution.run import ExecutionRun, RunSnapshot
from supertx.execution.storage import InMemoryRunStorage
from supertx.interfaces.run_storage import RunStorageBackend

logger = logging.getLogger(__name__)


def terminal_event_for(run: ExecutionRun) -> StreamEvent:
    """Rebuild the terminal event of a finished run from its record."""
    if run.status == "confirmed":
        duration_ms = None
        if run.started_at and run.completed_at:
            duration_ms = int((run.completed_at - run.started_at).total_seconds() * 1000)
        return RunConfirmedEvent(run_id=run.id, duration_ms=duration_ms)
    if run.status == "cancelled":
        return RunCancelledEvent(run_id=run.id)
    return RunFailedEvent(
        run_id=run.id,
        error=run.error or "Unknown error",
        failed_node_ids=run.failed_node_ids(),
        confirmed_node_ids=run.confirmed_node_ids(),
        blocked_node_ids=run.pending_node_ids(),
    )


class StatusMonitor:
    """Queryable and streamable progress for submitted runs.

    The coordinator registers live runs with ``track`` and pushes every
    event through ``publish``. Runs that were archived are read back from
    run storage.
    """

    def __init__(
        self,
        storage: Optional[RunStorageBackend] = None,
        sink: Optional[ExecutionStream] = None,
    ) -> None:
        """Initialize the monitor.

        Args:
            storage: Where archived runs are read from.
            sink: Optional stream receiving every event (e.g. LoggingStream).
        """
        self.storage: RunStorageBackend = storage or InMemoryRunStorage()
        self._sink = sink or NoOpStream()
        self._live: Dict[str, ExecutionRun] = {}
        self._subscribers: Dict[str, List[AsyncQueueStream]] = defaultdict(list)

    def track(self, run: ExecutionRun) -> None:
        """Start serving snapshots for a live run."""
        self._live[run.id] = run

    def untrack(self, run_id: str) -> None:
        """Stop serving a run from memory; later reads go to storage."""
        self._live.pop(run_id, None)

    async def publish(self, event: StreamEvent) -> None:
        """Deliver an event to the sink and every subscriber of its run.

        Subscriptions are closed after the run's terminal event.
        """
        await self._sink.emit(event)
        for stream in list(self._subscribers.get(event.run_id, [])):
            await stream.emit(event)
        if event.is_terminal:
            for stream in self._subscribers.pop(event.run_id, []):
                await stream.close()
            logger.debug(f"Closed subscriptions for run {event.run_id}")

    async def get_run(self, run_id: str) -> ExecutionRun:
        """Live run if tracked, otherwise the archived record.

        Raises:
            RunNotFoundError: If the run is unknown.
        """
        run = self._live.get(run_id)
        if run is not None:
            return run
        archived = await self.storage.get_run(run_id)
        if archived is None:
            raise RunNotFoundError(f"Run '{run_id}' not found")
        return archived

    async def snapshot(self, run_id: str) -> RunSnapshot:
        """Current state of every node and the run's aggregate state."""
        return RunSnapshot.from_run(await self.get_run(run_id))

    async def list_snapshots(
        self, plan_hash: Optional[str] = None, limit: int = 100
    ) -> List[RunSnapshot]:
        """Live and archived runs, most recent first."""
        runs: Dict[str, ExecutionRun] = {
            run.id: run for run in await self.storage.list_runs(plan_hash, limit)
        }
        for run in self._live.values():
            if plan_hash is None or run.plan_hash == plan_hash:
                runs[run.id] = run
        ordered = sorted(runs.values(), key=lambda r: r.created_at, reverse=True)
        return [RunSnapshot.from_run(run) for run in ordered[:limit]]

    async def subscribe(self, run_id: str) -> AsyncIterator[StreamEvent]:
        """Yield state-transition events until the run is terminal.

        A subscription on a finished run yields its terminal event only.

        Raises:
            RunNotFoundError: If the run is unknown.
        """
        run = await self.get_run(run_id)
        if run.finished:
            yield terminal_event_for(run)
            return

        stream = AsyncQueueStream()
        self._subscribers[run_id].append(stream)
        logger.debug(f"New subscription for run {run_id}")
        try:
            async for event in stream:
                yield event
                if event.is_terminal:
                    break
        finally:
            subscribers = self._subscribers.get(run_id)
            if subscribers and stream in subscribers:
                subscribers.remove(stream)
