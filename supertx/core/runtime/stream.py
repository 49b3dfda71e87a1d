"""Event sinks for run events.

The StatusMonitor pushes every event to one sink (logging by default in the
API) and to one queue per open subscription.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator

from supertx.core.runtime.events import StreamEvent

logger = logging.getLogger(__name__)


class ExecutionStream(ABC):
    """Destination for run events."""

    @abstractmethod
    async def emit(self, event: StreamEvent) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        """Signal that no more events will follow."""
        pass


class NoOpStream(ExecutionStream):
    """Discards everything."""

    async def emit(self, event: StreamEvent) -> None:
        pass

    async def close(self) -> None:
        pass


class AsyncQueueStream(ExecutionStream):
    """Buffered stream consumed with ``async for``.

    Iteration stops once ``close`` has been called and the buffered events
    are drained. Events emitted after closing are dropped.
    """

    _CLOSED = None

    def __init__(self) -> None:
        self._queue: asyncio.Queue[StreamEvent | None] = asyncio.Queue()
        self._closed = False

    async def emit(self, event: StreamEvent) -> None:
        if self._closed:
            logger.warning(f"Dropped {event.event_type} for run {event.run_id}: stream closed")
            return
        self._queue.put_nowait(event)

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(self._CLOSED)

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        return self

    async def __anext__(self) -> StreamEvent:
        event = await self._queue.get()
        if event is self._CLOSED:
            raise StopAsyncIteration
        return event


class LoggingStream(ExecutionStream):
    """Writes one log line per event."""

    # Event fields worth a key=value pair, in display order
    _FIELDS = ("node_id", "from_state", "to_state", "tx_hash", "transfer_id",
               "reason", "error", "duration_ms")

    def __init__(
        self,
        logger_name: str = "supertx.execution",
        level: int = logging.INFO,
    ) -> None:
        self._logger = logging.getLogger(logger_name)
        self._level = level

    async def emit(self, event: StreamEvent) -> None:
        self._logger.log(self._level, self.format_event(event))

    async def close(self) -> None:
        pass

    def format_event(self, event: StreamEvent) -> str:
        parts = [f"[{event.run_id}] {event.event_type}"]
        for name in self._FIELDS:
            value = getattr(event, name, None)
            if value is not None:
                parts.append(f"{name}={value}")
        return " ".join(parts)
