"""Execution layer - authorize, dispatch and monitor signed plans."""

from supertx.execution.authorization import HashBindingVerifier
from supertx.execution.coordinator import ExecutionCoordinator, finality_reached
from supertx.execution.monitor import StatusMonitor, terminal_event_for
from supertx.execution.run import (
    TERMINAL_NODE_STATES,
    ExecutionRun,
    FailureReason,
    NodeRecord,
    NodeState,
    RunSnapshot,
    can_transition,
    generate_run_id,
)
from supertx.execution.storage import InMemoryRunStorage

__all__ = [
    "ExecutionCoordinator",
    "ExecutionRun",
    "FailureReason",
    "HashBindingVerifier",
    "InMemoryRunStorage",
    "NodeRecord",
    "NodeState",
    "RunSnapshot",
    "StatusMonitor",
    "TERMINAL_NODE_STATES",
    "can_transition",
    "finality_reached",
    "generate_run_id",
    "terminal_event_for",
]
