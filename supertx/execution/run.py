"""ExecutionRun and NodeRecord models for execution tracking."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from supertx.core.models import ExecutionPlan, NodeKind, PlanSignature
from supertx.core.runtime.exceptions import InvalidTransitionError


def generate_run_id() -> str:
    """Generate a unique run ID."""
    return f"run_{uuid.uuid4().hex[:12]}"


class NodeState(str, Enum):
    """Per-node execution state."""

    PENDING = "pending"
    SUBMITTED = "submitted"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    AWAITING_BRIDGE = "awaiting_bridge"
    CONFIRMED = "confirmed"
    FAILED = "failed"


# Forward edges of the state machine. Failed is reachable from any
# non-terminal state; Confirmed and Failed have no way out.
_NEXT_STATES: Dict[NodeState, frozenset[NodeState]] = {
    NodeState.PENDING: frozenset({NodeState.SUBMITTED}),
    NodeState.SUBMITTED: frozenset(
        {NodeState.AWAITING_CONFIRMATION, NodeState.AWAITING_BRIDGE}
    ),
    NodeState.AWAITING_CONFIRMATION: frozenset({NodeState.CONFIRMED}),
    NodeState.AWAITING_BRIDGE: frozenset({NodeState.CONFIRMED}),
    NodeState.CONFIRMED: frozenset(),
    NodeState.FAILED: frozenset(),
}

TERMINAL_NODE_STATES = frozenset({NodeState.CONFIRMED, NodeState.FAILED})


def can_transition(current: NodeState, requested: NodeState) -> bool:
    """Whether ``current -> requested`` is a legal forward move."""
    if current in TERMINAL_NODE_STATES:
        return False
    if requested == NodeState.FAILED:
        return True
    return requested in _NEXT_STATES[current]


class FailureReason(str, Enum):
    """Reason codes attached to failed nodes."""

    DISPATCH_REJECTED = "dispatch_rejected"
    DISPATCH_ERROR = "dispatch_error"
    NO_DISPATCHER = "no_dispatcher"
    TRANSACTION_REVERTED = "transaction_reverted"
    FINALITY_TIMEOUT = "finality_timeout"
    BRIDGE_FAILED = "bridge_failed"
    BRIDGE_TIMEOUT = "bridge_timeout"


class NodeRecord(BaseModel):
    """State and dispatch details for a single plan node."""

    node_id: str
    kind: NodeKind
    chain_id: int
    state: NodeState = Field(default=NodeState.PENDING)
    submitted_at: datetime | None = None
    confirmed_at: datetime | None = None
    failed_at: datetime | None = None
    tx_hash: str | None = None
    transfer_id: str | None = None
    confirmations: int | None = None
    failure_reason: FailureReason | None = None
    error: str | None = None


RunStatus = Literal["pending", "running", "confirmed", "failed", "cancelled"]


class ExecutionRun(BaseModel):
    """Mutable execution record for one signed plan.

    Only the ExecutionCoordinator mutates a run, and only through
    ``apply_transition`` while holding the run's lock.
    """

    id: str
    plan: ExecutionPlan
    signature: PlanSignature
    status: RunStatus = Field(default="pending")
    finished: bool = Field(
        default=False,
        description="True once the terminal run event has been emitted",
    )
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    nodes: Dict[str, NodeRecord] = Field(default_factory=dict)
    error: str | None = None
    failed_node_id: str | None = Field(
        default=None, description="First node that failed"
    )

    @classmethod
    def create(
        cls,
        plan: ExecutionPlan,
        signature: PlanSignature,
        created_at: datetime,
        run_id: Optional[str] = None,
    ) -> "ExecutionRun":
        """New run with every node Pending."""
        return cls(
            id=run_id or generate_run_id(),
            plan=plan,
            signature=signature,
            created_at=created_at,
            nodes={
                node.id: NodeRecord(node_id=node.id, kind=node.kind, chain_id=node.chain_id)
                for node in plan.nodes
            },
        )

    @property
    def plan_hash(self) -> str:
        return self.plan.hash

    def apply_transition(
        self, node_id: str, requested: NodeState, **fields: Any
    ) -> NodeState:
        """Move a node forward and set the given record fields.

        Returns:
            The state the node left.

        Raises:
            InvalidTransitionError: If the move is not a forward step.
        """
        record = self.nodes[node_id]
        current = record.state
        if not can_transition(current, requested):
            raise InvalidTransitionError(node_id, current.value, requested.value)
        record.state = requested
        for name, value in fields.items():
            setattr(record, name, value)
        return current

    def node_ids_in(self, *states: NodeState) -> List[str]:
        """Node IDs in plan order whose state is one of ``states``."""
        return [
            node.id for node in self.plan.nodes if self.nodes[node.id].state in states
        ]

    def confirmed_node_ids(self) -> List[str]:
        return self.node_ids_in(NodeState.CONFIRMED)

    def failed_node_ids(self) -> List[str]:
        return self.node_ids_in(NodeState.FAILED)

    def pending_node_ids(self) -> List[str]:
        return self.node_ids_in(NodeState.PENDING)

    def started_node_ids(self) -> List[str]:
        """Nodes that have left Pending."""
        return [
            node.id
            for node in self.plan.nodes
            if self.nodes[node.id].state != NodeState.PENDING
        ]


class RunSnapshot(BaseModel):
    """Read-only view of a run returned by the StatusMonitor."""

    run_id: str
    plan_hash: str
    status: RunStatus
    finished: bool
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    nodes: List[NodeRecord] = Field(default_factory=list)
    confirmed_node_ids: List[str] = Field(default_factory=list)
    failed_node_ids: List[str] = Field(default_factory=list)
    pending_node_ids: List[str] = Field(default_factory=list)
    error: str | None = None
    failed_node_id: str | None = None

    @classmethod
    def from_run(cls, run: ExecutionRun) -> "RunSnapshot":
        return cls(
            run_id=run.id,
            plan_hash=run.plan_hash,
            status=run.status,
            finished=run.finished,
            created_at=run.created_at,
            started_at=run.started_at,
            completed_at=run.completed_at,
            nodes=[run.nodes[node.id].model_copy() for node in run.plan.nodes],
            confirmed_node_ids=run.confirmed_node_ids(),
            failed_node_ids=run.failed_node_ids(),
            pending_node_ids=run.pending_node_ids(),
            error=run.error,
            failed_node_id=run.failed_node_id,
        )
