"""Runtime infrastructure - events, streams and exceptions."""

from supertx.core.runtime.events import (
    NodeFailedEvent,
    NodeTransitionEvent,
    RunCancelledEvent,
    RunConfirmedEvent,
    RunFailedEvent,
    RunStartedEvent,
    StreamEvent,
)
from supertx.core.runtime.exceptions import (
    AuthorizationError,
    BridgeFailureError,
    CancellationRejectedError,
    DependencyCycleError,
    DispatchRejectedError,
    ExecutionError,
    FeeTokenUnsupportedError,
    InvalidTransitionError,
    NoBridgeRouteError,
    PlanningError,
    ResolutionError,
    RunNotFoundError,
    SignatureMismatchError,
    SupertxError,
    UnknownChainError,
    UnsatisfiableRequirementError,
)
from supertx.core.runtime.stream import (
    AsyncQueueStream,
    ExecutionStream,
    LoggingStream,
    NoOpStream,
)

__all__ = [
    # Events
    "StreamEvent",
    "RunStartedEvent",
    "RunConfirmedEvent",
    "RunFailedEvent",
    "RunCancelledEvent",
    "NodeTransitionEvent",
    "NodeFailedEvent",
    # Streams
    "ExecutionStream",
    "NoOpStream",
    "AsyncQueueStream",
    "LoggingStream",
    # Exceptions
    "SupertxError",
    "ResolutionError",
    "UnsatisfiableRequirementError",
    "DependencyCycleError",
    "PlanningError",
    "NoBridgeRouteError",
    "FeeTokenUnsupportedError",
    "UnknownChainError",
    "AuthorizationError",
    "SignatureMismatchError",
    "ExecutionError",
    "DispatchRejectedError",
    "BridgeFailureError",
    "RunNotFoundError",
    "CancellationRejectedError",
    "InvalidTransitionError",
]
