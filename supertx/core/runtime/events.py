"""Stream events for execution progress.

Events are emitted by the ExecutionCoordinator for every node and run state
change and consumed through the StatusMonitor (subscriptions, SSE, logging).
"""

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


class StreamEvent(BaseModel):
    """Base class for all stream events.

    All events have a type discriminator, timestamp, and run_id for routing.
    """

    event_type: str = Field(..., description="Event type discriminator")
    timestamp: datetime = Field(default_factory=utc_now, description="Event timestamp")
    run_id: str = Field(..., description="Run ID this event belongs to")

    model_config = {"frozen": True}

    @property
    def is_terminal(self) -> bool:
        """Whether this event ends the run's event stream."""
        return self.event_type in TERMINAL_EVENT_TYPES


# =============================================================================
# Run Lifecycle Events
# =============================================================================


class RunStartedEvent(StreamEvent):
    """Emitted when a run begins dispatching."""

    event_type: Literal["run_started"] = "run_started"
    plan_hash: str = Field(..., description="Hash of the plan being executed")
    total_nodes: int = Field(..., description="Total number of plan nodes")
    node_ids: List[str] = Field(
        default_factory=list, description="Node IDs in plan order"
    )


class RunConfirmedEvent(StreamEvent):
    """Emitted when every node of the run is Confirmed."""

    event_type: Literal["run_confirmed"] = "run_confirmed"
    duration_ms: Optional[int] = Field(
        None, description="Total execution time in milliseconds"
    )


class RunFailedEvent(StreamEvent):
    """Emitted once a failed run has settled every in-flight node."""

    event_type: Literal["run_failed"] = "run_failed"
    error: str = Field(..., description="Error of the first failing node")
    failed_node_ids: List[str] = Field(default_factory=list)
    confirmed_node_ids: List[str] = Field(
        default_factory=list, description="Nodes confirmed before the run ended"
    )
    blocked_node_ids: List[str] = Field(
        default_factory=list, description="Nodes never submitted"
    )


class RunCancelledEvent(StreamEvent):
    """Emitted when a run is cancelled before any node was submitted."""

    event_type: Literal["run_cancelled"] = "run_cancelled"


# =============================================================================
# Node Lifecycle Events
# =============================================================================


class NodeTransitionEvent(StreamEvent):
    """Emitted on every node state change."""

    event_type: Literal["node_transition"] = "node_transition"
    node_id: str = Field(..., description="Node ID")
    kind: str = Field(..., description="instruction or bridge")
    chain_id: int = Field(..., description="Chain the node runs on")
    from_state: str
    to_state: str
    tx_hash: Optional[str] = None
    transfer_id: Optional[str] = None


class NodeFailedEvent(StreamEvent):
    """Emitted when a node fails."""

    event_type: Literal["node_failed"] = "node_failed"
    node_id: str = Field(..., description="Node ID")
    reason: str = Field(..., description="Failure reason code")
    error: str = Field(..., description="Error message")


TERMINAL_EVENT_TYPES = frozenset({"run_confirmed", "run_failed", "run_cancelled"})
