"""Exceptions for the planning and execution layers.

Resolution and planning errors are raised synchronously while a quote is
built. Execution errors are raised by collaborators during a run and are
caught by the coordinator, which records them against the failing node.
"""


class SupertxError(Exception):
    """Base class for all engine errors."""

    pass


# =============================================================================
# Resolution
# =============================================================================


class ResolutionError(SupertxError):
    """Raised when an Instruction Set cannot be turned into a dependency graph."""

    pass


class UnsatisfiableRequirementError(ResolutionError):
    """Raised when no balance or prior Instruction can supply a requirement.

    Attributes:
        instruction_id: The consuming Instruction.
        token: Required token.
        amount: Required amount.
    """

    def __init__(self, instruction_id: str, token: str, amount: object) -> None:
        self.instruction_id = instruction_id
        self.token = token
        self.amount = amount
        super().__init__(
            f"unsatisfiable resource requirement: instruction '{instruction_id}' "
            f"needs {amount} {token}"
        )


class DependencyCycleError(ResolutionError):
    """Raised when Instructions depend on each other in a cycle.

    Attributes:
        cycle: Instruction IDs along the cycle, first ID repeated at the end.
    """

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(f"dependency cycle detected: {' -> '.join(cycle)}")


# =============================================================================
# Planning
# =============================================================================


class PlanningError(SupertxError):
    """Raised when a resolved graph cannot be turned into a quote."""

    pass


class NoBridgeRouteError(PlanningError):
    """Raised when no registered route moves a token between two chains."""

    def __init__(
        self, source_chain_id: int, destination_chain_id: int, token: str
    ) -> None:
        self.source_chain_id = source_chain_id
        self.destination_chain_id = destination_chain_id
        self.token = token
        super().__init__(
            f"no bridge route available for {token} from chain "
            f"{source_chain_id} to chain {destination_chain_id}"
        )


class FeeTokenUnsupportedError(PlanningError):
    """Raised when the fee token is not accepted on the fee chain."""

    def __init__(self, chain_id: int, token: str) -> None:
        self.chain_id = chain_id
        self.token = token
        super().__init__(f"fee token '{token}' is not supported on chain {chain_id}")


class UnknownChainError(PlanningError):
    """Raised when a chain ID is not in the registry."""

    def __init__(self, chain_id: int) -> None:
        self.chain_id = chain_id
        super().__init__(f"Chain '{chain_id}' not found in registry")


# =============================================================================
# Authorization
# =============================================================================


class AuthorizationError(SupertxError):
    """Raised when a run may not be created for a plan."""

    pass


class SignatureMismatchError(AuthorizationError):
    """Raised when a signature does not verify against the exact plan hash."""

    def __init__(self, plan_hash: str, reason: str = "") -> None:
        self.plan_hash = plan_hash
        self.reason = reason
        message = f"signature/plan mismatch for plan {plan_hash}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


# =============================================================================
# Execution
# =============================================================================


class ExecutionError(SupertxError):
    """General execution error."""

    pass


class DispatchRejectedError(ExecutionError):
    """Raised by a dispatcher or bridge provider that refuses a submission."""

    pass


class BridgeFailureError(ExecutionError):
    """Raised when a bridge reports an unrecoverable failure."""

    pass


class RunNotFoundError(SupertxError):
    """Raised when a run cannot be found."""

    pass


class CancellationRejectedError(SupertxError):
    """Raised when a run can no longer be cancelled.

    Attributes:
        run_id: The run the caller tried to cancel.
        submitted_node_ids: Nodes that already left Pending.
    """

    def __init__(self, run_id: str, submitted_node_ids: list[str]) -> None:
        self.run_id = run_id
        self.submitted_node_ids = submitted_node_ids
        super().__init__(
            f"Run '{run_id}' cannot be cancelled: nodes already submitted "
            f"({', '.join(submitted_node_ids)})"
        )


class InvalidTransitionError(SupertxError):
    """Raised when a node state change would move backwards."""

    def __init__(self, node_id: str, current: str, requested: str) -> None:
        self.node_id = node_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Invalid transition for node '{node_id}': {current} -> {requested}"
        )
