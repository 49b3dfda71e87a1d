"""ExecutionCoordinator - drives signed plans to completion."""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Dict, Mapping, Optional

from supertx.config import EngineSettings, get_settings
from supertx.core.models import (
    ExecutionPlan,
    FinalityKind,
    FinalityPolicy,
    NodeKind,
    PlanNode,
    PlanSignature,
    linearization_problems,
)
from supertx.core.registry import ChainRegistry
from supertx.core.runtime.events import (
    NodeFailedEvent,
    NodeTransitionEvent,
    RunCancelledEvent,
    RunStartedEvent,
)
from supertx.core.runtime.exceptions import (
    AuthorizationError,
    BridgeFailureError,
    CancellationRejectedError,
    DispatchRejectedError,
    ExecutionError,
    SignatureMismatchError,
)
from supertx.execution.authorization import HashBindingVerifier
from supertx.execution.monitor import StatusMonitor, terminal_event_for
from supertx.execution.run import ExecutionRun, FailureReason, NodeState
from supertx.interfaces.dispatch import (
    BridgeProvider,
    ChainDispatcher,
    TransactionStatus,
)
from supertx.interfaces.run_storage import RunStorageBackend
from supertx.interfaces.signing import SignatureVerifier

logger = logging.getLogger(__name__)


class _NodeFailure(Exception):
    """Internal signal carrying a node's failure reason."""

    def __init__(self, reason: FailureReason, error: str) -> None:
        super().__init__(error)
        self.reason = reason
        self.error = error


def finality_reached(
    policy: FinalityPolicy, status: TransactionStatus, now: datetime
) -> bool:
    """Whether a transaction status satisfies a chain's finality policy."""
    if not status.included:
        return False
    if policy.kind == FinalityKind.CONFIRMATIONS:
        return status.confirmations >= (policy.confirmations or 0)
    if status.included_at is None:
        return False
    return (now - status.included_at).total_seconds() >= (policy.seconds or 0)


class ExecutionCoordinator:
    """Executes signed ExecutionPlans.

    Handles:
    - Authorizing (plan, signature) pairs before any run exists
    - Dispatching nodes only after all their dependencies are Confirmed
    - Running independent branches concurrently
    - Bounded waits for chain finality and bridge settlement
    - Cancellation while nothing has been submitted
    """

    def __init__(
        self,
        registry: ChainRegistry,
        dispatchers: Mapping[int, ChainDispatcher],
        bridges: Mapping[str, BridgeProvider],
        verifier: Optional[SignatureVerifier] = None,
        storage: Optional[RunStorageBackend] = None,
        monitor: Optional[StatusMonitor] = None,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            registry: Chain registry for finality policies.
            dispatchers: One dispatcher per chain ID.
            bridges: One bridge provider per route ID.
            verifier: Signature verifier (default: HashBindingVerifier).
            storage: Run storage; defaults to the monitor's storage.
            monitor: Status monitor receiving events for every run.
            settings: Engine settings (timeouts, poll interval).
        """
        self.registry = registry
        self.dispatchers = dict(dispatchers)
        self.bridges = dict(bridges)
        self.verifier: SignatureVerifier = verifier or HashBindingVerifier()
        self.monitor = monitor or StatusMonitor(storage)
        self.storage: RunStorageBackend = storage or self.monitor.storage
        self.settings = settings or get_settings()

        self._runs: Dict[str, ExecutionRun] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._tasks: Dict[str, asyncio.Task[None]] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def authorize(
        self,
        plan: ExecutionPlan,
        signature: PlanSignature,
        run_id: Optional[str] = None,
    ) -> ExecutionRun:
        """Create a Pending run for a signed plan.

        Raises:
            AuthorizationError: If the node order is not executable.
            SignatureMismatchError: If the plan does not match its hash or
                the signature is not bound to that hash. No run is created.
        """
        problems = linearization_problems(plan.nodes)
        if problems:
            logger.warning(f"Rejected plan {plan.hash}: {problems}")
            raise AuthorizationError(
                f"Plan {plan.hash} cannot be executed: {'; '.join(problems)}"
            )
        if not plan.verify_hash():
            logger.warning(f"Rejected plan {plan.hash}: content does not match hash")
            raise SignatureMismatchError(plan.hash, "plan content does not match its hash")
        if not self.verifier.verify(plan.hash, signature):
            logger.warning(f"Rejected plan {plan.hash}: signature not bound to hash")
            raise SignatureMismatchError(plan.hash, "signature does not verify")

        run = ExecutionRun.create(plan, signature, datetime.now(UTC), run_id=run_id)
        self._runs[run.id] = run
        self._locks[run.id] = asyncio.Lock()
        self.monitor.track(run)
        await self.storage.save_run(run)
        logger.info(f"Authorized run: id={run.id}, plan={plan.hash}, nodes={len(plan.nodes)}")
        return run

    async def start(self, run_id: str) -> ExecutionRun:
        """Begin driving an authorized run in the background.

        Raises:
            RunNotFoundError: If the run is unknown.
            ExecutionError: If the run was already started or cancelled.
        """
        run = self._runs.get(run_id)
        if run is None:
            archived = await self.monitor.get_run(run_id)
            raise ExecutionError(
                f"Run '{run_id}' cannot be started (status: {archived.status})"
            )
        async with self._locks[run_id]:
            if run.status != "pending" or run_id in self._tasks:
                raise ExecutionError(
                    f"Run '{run_id}' cannot be started (status: {run.status})"
                )
            run.status = "running"
            run.started_at = datetime.now(UTC)

        await self.monitor.publish(
            RunStartedEvent(
                run_id=run.id,
                plan_hash=run.plan_hash,
                total_nodes=len(run.plan.nodes),
                node_ids=[node.id for node in run.plan.nodes],
            )
        )
        self._tasks[run_id] = asyncio.create_task(self._drive(run))
        logger.info(f"Started run: {run_id}")
        return run

    async def submit(self, plan: ExecutionPlan, signature: PlanSignature) -> ExecutionRun:
        """Authorize and start a run."""
        run = await self.authorize(plan, signature)
        return await self.start(run.id)

    async def execute(self, plan: ExecutionPlan, signature: PlanSignature) -> ExecutionRun:
        """Authorize, start and wait for a run to finish."""
        run = await self.submit(plan, signature)
        return await self.wait(run.id)

    async def wait(self, run_id: str) -> ExecutionRun:
        """Wait until a started run is terminal and return its final record."""
        task = self._tasks.get(run_id)
        if task is not None:
            await asyncio.shield(task)
        return await self.monitor.get_run(run_id)

    async def cancel(self, run_id: str) -> ExecutionRun:
        """Cancel a run whose nodes are all still Pending.

        Raises:
            RunNotFoundError: If the run is unknown.
            CancellationRejectedError: If any node already left Pending, or
                the run already finished.
        """
        logger.info(f"Cancelling run: {run_id}")
        run = self._runs.get(run_id)
        if run is None:
            archived = await self.monitor.get_run(run_id)
            if archived.status == "cancelled":
                return archived
            raise CancellationRejectedError(run_id, archived.started_node_ids())

        async with self._locks[run_id]:
            if run.status == "cancelled":
                return run
            started = run.started_node_ids()
            if started or run.finished:
                logger.warning(f"Cancellation rejected for run {run_id}: {started}")
                raise CancellationRejectedError(run_id, started)
            run.status = "cancelled"
            run.finished = True
            run.completed_at = datetime.now(UTC)

        await self.monitor.publish(RunCancelledEvent(run_id=run_id))
        if run_id not in self._tasks:
            await self._archive(run)
        logger.info(f"Run cancelled: {run_id}")
        return run

    async def get_run(self, run_id: str) -> ExecutionRun:
        """Live or archived run record."""
        return await self.monitor.get_run(run_id)

    # ------------------------------------------------------------------
    # Driving
    # ------------------------------------------------------------------

    async def _drive(self, run: ExecutionRun) -> None:
        """Run one task per node and finish the run once all settle."""
        settled = {node.id: asyncio.Event() for node in run.plan.nodes}
        tasks = [
            asyncio.create_task(self._drive_node(run, node, settled))
            for node in run.plan.nodes
        ]
        interrupted = False
        try:
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            interrupted = True
            logger.warning(f"[{run.id}] Run driver cancelled; stopping node tasks")
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        finally:
            await self._finish(run, interrupted=interrupted)

    async def _drive_node(
        self,
        run: ExecutionRun,
        node: PlanNode,
        settled: Dict[str, asyncio.Event],
    ) -> None:
        try:
            for dependency in node.depends_on:
                await settled[dependency].wait()

            blocked_by = [
                d for d in node.depends_on if run.nodes[d].state != NodeState.CONFIRMED
            ]
            if blocked_by:
                logger.info(
                    f"[{run.id}] Node {node.id} stays pending: "
                    f"dependencies not confirmed {blocked_by}"
                )
                return

            async with self._locks[run.id]:
                if run.status == "cancelled":
                    return
                if self.settings.halt_on_failure and run.status == "failed":
                    logger.info(f"[{run.id}] Node {node.id} held back: run failed")
                    return
                await self._transition(
                    run, node, NodeState.SUBMITTED, submitted_at=datetime.now(UTC)
                )

            try:
                if node.kind == NodeKind.INSTRUCTION:
                    await self._run_instruction(run, node)
                else:
                    await self._run_bridge(run, node)
            except _NodeFailure as failure:
                await self._fail(run, node, failure.reason, failure.error)
        except Exception as e:
            logger.error(
                f"[{run.id}] Unexpected error driving node {node.id}: {e}",
                exc_info=True,
            )
            if run.nodes[node.id].state in (
                NodeState.SUBMITTED,
                NodeState.AWAITING_CONFIRMATION,
                NodeState.AWAITING_BRIDGE,
            ):
                await self._fail(run, node, FailureReason.DISPATCH_ERROR, str(e))
        finally:
            settled[node.id].set()

    async def _run_instruction(self, run: ExecutionRun, node: PlanNode) -> None:
        dispatcher = self.dispatchers.get(node.chain_id)
        if dispatcher is None:
            raise _NodeFailure(
                FailureReason.NO_DISPATCHER, f"No dispatcher for chain {node.chain_id}"
            )

        try:
            receipt = await dispatcher.submit(node.chain_id, node.instruction, run.plan_hash)
        except DispatchRejectedError as e:
            raise _NodeFailure(FailureReason.DISPATCH_REJECTED, str(e)) from e
        except Exception as e:
            raise _NodeFailure(FailureReason.DISPATCH_ERROR, str(e)) from e

        async with self._locks[run.id]:
            await self._transition(
                run, node, NodeState.AWAITING_CONFIRMATION, tx_hash=receipt.tx_hash
            )

        policy = self.registry.get_chain(node.chain_id).finality
        status = await self._poll(
            run,
            node,
            lambda: dispatcher.get_status(node.chain_id, receipt.tx_hash),
            lambda s: s.reverted or finality_reached(policy, s, datetime.now(UTC)),
            self.settings.finality_timeout_seconds,
            FailureReason.FINALITY_TIMEOUT,
        )
        if status.reverted:
            raise _NodeFailure(
                FailureReason.TRANSACTION_REVERTED, f"Transaction {receipt.tx_hash} reverted"
            )

        async with self._locks[run.id]:
            await self._transition(
                run,
                node,
                NodeState.CONFIRMED,
                confirmed_at=datetime.now(UTC),
                confirmations=status.confirmations,
            )

    async def _run_bridge(self, run: ExecutionRun, node: PlanNode) -> None:
        step = node.bridge
        provider = self.bridges.get(step.route_id)
        if provider is None:
            raise _NodeFailure(
                FailureReason.NO_DISPATCHER, f"No bridge provider for route {step.route_id}"
            )

        try:
            transfer = await provider.initiate(step, run.plan_hash)
        except DispatchRejectedError as e:
            raise _NodeFailure(FailureReason.DISPATCH_REJECTED, str(e)) from e
        except BridgeFailureError as e:
            raise _NodeFailure(FailureReason.BRIDGE_FAILED, str(e)) from e
        except Exception as e:
            raise _NodeFailure(FailureReason.DISPATCH_ERROR, str(e)) from e

        async with self._locks[run.id]:
            await self._transition(
                run,
                node,
                NodeState.AWAITING_BRIDGE,
                transfer_id=transfer.transfer_id,
                tx_hash=transfer.tx_hash,
            )

        settlement = await self._poll(
            run,
            node,
            lambda: provider.get_settlement(step.route_id, transfer.transfer_id),
            lambda s: s.state != "pending",
            self.settings.bridge_timeout_seconds,
            FailureReason.BRIDGE_TIMEOUT,
        )
        if settlement.state == "failed":
            raise _NodeFailure(
                FailureReason.BRIDGE_FAILED,
                settlement.detail or f"Bridge transfer {transfer.transfer_id} failed",
            )

        async with self._locks[run.id]:
            await self._transition(
                run, node, NodeState.CONFIRMED, confirmed_at=datetime.now(UTC)
            )

    async def _poll(self, run, node, fetch, done, timeout, timeout_reason):
        """Poll ``fetch`` until ``done`` holds or the deadline passes.

        Errors from ``fetch`` are logged and retried until the deadline,
        except BridgeFailureError which fails the node immediately.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise _NodeFailure(
                    timeout_reason, f"Node {node.id} exceeded {timeout}s deadline"
                )
            try:
                result = await asyncio.wait_for(fetch(), timeout=remaining)
            except asyncio.TimeoutError:
                continue
            except BridgeFailureError as e:
                raise _NodeFailure(FailureReason.BRIDGE_FAILED, str(e)) from e
            except Exception as e:
                logger.warning(f"[{run.id}] Poll failed for node {node.id}: {e}")
            else:
                if done(result):
                    return result

            remaining = deadline - loop.time()
            await asyncio.sleep(max(0.0, min(self.settings.poll_interval_seconds, remaining)))

    # ------------------------------------------------------------------
    # State changes (callers hold the run lock, except _fail/_finish)
    # ------------------------------------------------------------------

    async def _transition(
        self, run: ExecutionRun, node: PlanNode, state: NodeState, **fields
    ) -> None:
        previous = run.apply_transition(node.id, state, **fields)
        record = run.nodes[node.id]
        logger.debug(f"[{run.id}] Node {node.id}: {previous.value} -> {state.value}")
        await self.monitor.publish(
            NodeTransitionEvent(
                run_id=run.id,
                node_id=node.id,
                kind=node.kind.value,
                chain_id=node.chain_id,
                from_state=previous.value,
                to_state=state.value,
                tx_hash=record.tx_hash,
                transfer_id=record.transfer_id,
            )
        )

    async def _fail(
        self, run: ExecutionRun, node: PlanNode, reason: FailureReason, error: str
    ) -> None:
        logger.error(f"[{run.id}] Node {node.id} failed: reason={reason.value}, error={error}")
        async with self._locks[run.id]:
            await self._transition(
                run,
                node,
                NodeState.FAILED,
                failed_at=datetime.now(UTC),
                failure_reason=reason,
                error=error,
            )
            if run.status != "failed":
                run.status = "failed"
                run.failed_node_id = node.id
                run.error = f"{node.id}: {error}"

        await self.monitor.publish(
            NodeFailedEvent(run_id=run.id, node_id=node.id, reason=reason.value, error=error)
        )
        await self.storage.save_run(run)

    async def _finish(self, run: ExecutionRun, interrupted: bool = False) -> None:
        """Derive the run outcome from its node records, then emit and archive."""
        if run.status == "cancelled":
            await self._archive(run)
            return

        async with self._locks[run.id]:
            unconfirmed = [
                node.id
                for node in run.plan.nodes
                if run.nodes[node.id].state != NodeState.CONFIRMED
            ]
            if not unconfirmed:
                run.status = "confirmed"
            elif run.status != "failed":
                run.status = "failed"
                if interrupted:
                    run.error = f"Run interrupted before nodes confirmed: {unconfirmed}"
                else:
                    run.error = f"Nodes never confirmed: {unconfirmed}"
            run.finished = True
            run.completed_at = datetime.now(UTC)

        if run.status == "failed":
            logger.error(
                f"Run failed: id={run.id}, failed={run.failed_node_ids()}, "
                f"confirmed={run.confirmed_node_ids()}, blocked={run.pending_node_ids()}"
            )
        else:
            logger.info(f"Run confirmed: id={run.id}")

        await self.monitor.publish(terminal_event_for(run))
        await self._archive(run)

    async def _archive(self, run: ExecutionRun) -> None:
        await self.storage.save_run(run)
        self.monitor.untrack(run.id)
        self._runs.pop(run.id, None)
        self._locks.pop(run.id, None)
        self._tasks.pop(run.id, None)
