"""Tests for ExecutionCoordinator."""

import asyncio
import random
from decimal import Decimal

import pytest
import pytest_asyncio

from supertx.config import EngineSettings
from supertx.core.models import (
    ExecutionPlan,
    FeeSpec,
    PlanSignature,
    compute_plan_hash,
)
from supertx.core.runtime.exceptions import (
    AuthorizationError,
    CancellationRejectedError,
    ExecutionError,
    SignatureMismatchError,
)
from supertx.execution import ExecutionCoordinator, FailureReason, NodeState
from supertx.planning import plan_supertransaction

OWNER = "0x" + "11" * 20
CHAINS = [10, 8453, 42161]


@pytest_asyncio.fixture
async def scenario_plan(chain_registry, balances, make_instruction):
    """Optimism output bridged to a Base consumer: [a, bridge:b:0, b]."""
    quote = await plan_supertransaction(
        [
            make_instruction("a", 10, produces=[("USDC", "100")]),
            make_instruction("b", 8453, requires=[("USDC", "100")]),
        ],
        OWNER,
        FeeSpec(chain_id=10, token="USDC"),
        chain_registry,
        balances,
    )
    return quote.plan


def _random_dag(rng: random.Random):
    count = rng.randint(2, 8)
    specs = []
    for index in range(count):
        earlier = [f"n{i}" for i in range(index)]
        depends_on = [n for n in earlier if rng.random() < 0.4]
        specs.append((f"n{index}", rng.choice(CHAINS), depends_on))
    return specs


def _descendants(plan, node_id):
    found = set()
    frontier = [node_id]
    while frontier:
        current = frontier.pop()
        for node in plan.nodes:
            if current in node.depends_on and node.id not in found:
                found.add(node.id)
                frontier.append(node.id)
    return found


class TestExecution:
    """Test successful execution."""

    @pytest.mark.asyncio
    async def test_execute_cross_chain_plan(
        self, coordinator, scenario_plan, sign, dispatcher, bridge, recorder
    ):
        run = await coordinator.execute(scenario_plan, sign(scenario_plan))

        assert run.status == "confirmed"
        assert run.finished
        assert run.confirmed_node_ids() == ["a", "bridge:b:0", "b"]
        assert dispatcher.submitted == ["a", "b"]
        assert bridge.initiated == ["bridge:b:0"]
        assert recorder.events[0].event_type == "run_started"
        assert recorder.events[-1].event_type == "run_confirmed"

    @pytest.mark.asyncio
    async def test_node_states_move_forward(
        self, coordinator, scenario_plan, sign, recorder
    ):
        await coordinator.execute(scenario_plan, sign(scenario_plan))

        assert recorder.transitions("a") == [
            "submitted",
            "awaiting_confirmation",
            "confirmed",
        ]
        assert recorder.transitions("bridge:b:0") == [
            "submitted",
            "awaiting_bridge",
            "confirmed",
        ]

    @pytest.mark.asyncio
    async def test_records_dispatch_details(self, coordinator, scenario_plan, sign):
        run = await coordinator.execute(scenario_plan, sign(scenario_plan))

        a = run.nodes["a"]
        assert a.tx_hash.startswith("0x")
        assert a.confirmations == 12
        assert a.submitted_at <= a.confirmed_at
        assert run.nodes["bridge:b:0"].transfer_id == "xfer-1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", range(15))
    async def test_no_node_starts_before_its_dependencies_confirm(
        self, coordinator, build_plan, sign, recorder, seed
    ):
        """Test dependency ordering holds for randomized DAGs across chains."""
        plan = build_plan(_random_dag(random.Random(seed)))

        run = await coordinator.execute(plan, sign(plan))

        assert run.status == "confirmed"
        events = [
            e for e in recorder.events
            if e.run_id == run.id and e.event_type == "node_transition"
        ]
        position = {(e.node_id, e.to_state): i for i, e in enumerate(events)}
        for node in plan.nodes:
            submitted = position[(node.id, "submitted")]
            for dependency in node.depends_on:
                assert position[(dependency, "confirmed")] < submitted

    @pytest.mark.asyncio
    async def test_time_based_finality(self, coordinator, build_plan, sign):
        plan = build_plan([("arb", 42161, ())])

        run = await coordinator.execute(plan, sign(plan))

        assert run.nodes["arb"].state == NodeState.CONFIRMED


class TestFailures:
    """Test node failures and how they affect the run."""

    @pytest.mark.asyncio
    async def test_bridge_timeout_blocks_consumer(
        self, coordinator, scenario_plan, sign, bridge, dispatcher, recorder
    ):
        bridge.stall.add("bridge:b:0")

        run = await coordinator.execute(scenario_plan, sign(scenario_plan))

        assert run.status == "failed"
        assert run.failed_node_id == "bridge:b:0"
        assert run.nodes["bridge:b:0"].failure_reason == FailureReason.BRIDGE_TIMEOUT
        assert run.nodes["a"].state == NodeState.CONFIRMED
        assert run.nodes["b"].state == NodeState.PENDING
        assert dispatcher.submitted == ["a"]

        terminal = recorder.events[-1]
        assert terminal.event_type == "run_failed"
        assert terminal.failed_node_ids == ["bridge:b:0"]
        assert terminal.confirmed_node_ids == ["a"]
        assert terminal.blocked_node_ids == ["b"]

    @pytest.mark.asyncio
    async def test_bridge_settlement_failure(
        self, coordinator, scenario_plan, sign, bridge
    ):
        bridge.fail.add("bridge:b:0")

        run = await coordinator.execute(scenario_plan, sign(scenario_plan))

        record = run.nodes["bridge:b:0"]
        assert record.failure_reason == FailureReason.BRIDGE_FAILED
        assert record.error == "liquidity exhausted"

    @pytest.mark.asyncio
    async def test_independent_branch_still_settles(
        self, coordinator, build_plan, sign, dispatcher
    ):
        """Test a failure only blocks the failing node's descendants."""
        plan = build_plan([
            ("x", 10, ()),
            ("y", 8453, ("x",)),
            ("z", 42161, ()),
        ])
        dispatcher.reject.add("x")

        run = await coordinator.execute(plan, sign(plan))

        assert run.status == "failed"
        assert run.nodes["x"].failure_reason == FailureReason.DISPATCH_REJECTED
        assert run.nodes["y"].state == NodeState.PENDING
        assert run.nodes["z"].state == NodeState.CONFIRMED
        assert "y" not in dispatcher.submitted

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", range(10))
    async def test_failure_never_releases_descendants(
        self, coordinator, build_plan, sign, dispatcher, seed
    ):
        """Test only nodes without a path from the failed node are submitted."""
        rng = random.Random(1000 + seed)
        plan = build_plan(_random_dag(rng))
        failing = rng.choice(plan.nodes).id
        dispatcher.reject.add(failing)

        run = await coordinator.execute(plan, sign(plan))

        descendants = _descendants(plan, failing)
        assert run.status == "failed"
        assert run.failed_node_ids() == [failing]
        for node_id in descendants:
            assert run.nodes[node_id].state == NodeState.PENDING
            assert node_id not in dispatcher.submitted
        for node in plan.nodes:
            if node.id != failing and node.id not in descendants:
                assert run.nodes[node.id].state == NodeState.CONFIRMED

    @pytest.mark.asyncio
    async def test_halt_on_failure_holds_back_new_submissions(
        self, chain_registry, dispatcher, bridge, monitor, build_plan, sign
    ):
        settings = EngineSettings(
            poll_interval_seconds=0.001, finality_timeout_seconds=1.0, halt_on_failure=True
        )
        coordinator = ExecutionCoordinator(
            chain_registry,
            {chain_id: dispatcher for chain_id in chain_registry.chains},
            {},
            monitor=monitor,
            settings=settings,
        )
        plan = build_plan([
            ("x", 10, ()),
            ("w", 8453, ()),
            ("after_w", 8453, ("w",)),
        ])
        dispatcher.reject.add("x")
        dispatcher.slow["w"] = 5

        run = await coordinator.execute(plan, sign(plan))

        assert run.nodes["w"].state == NodeState.CONFIRMED
        assert run.nodes["after_w"].state == NodeState.PENDING
        assert "after_w" not in dispatcher.submitted

    @pytest.mark.asyncio
    async def test_reverted_transaction(self, coordinator, build_plan, sign, dispatcher):
        plan = build_plan([("a", 10, ())])
        dispatcher.revert.add("a")

        run = await coordinator.execute(plan, sign(plan))

        assert run.nodes["a"].failure_reason == FailureReason.TRANSACTION_REVERTED

    @pytest.mark.asyncio
    async def test_finality_timeout(
        self, chain_registry, dispatcher, monitor, build_plan, sign
    ):
        settings = EngineSettings(
            poll_interval_seconds=0.001, finality_timeout_seconds=0.05
        )
        coordinator = ExecutionCoordinator(
            chain_registry, {10: dispatcher}, {}, monitor=monitor, settings=settings
        )
        plan = build_plan([("a", 10, ())])
        dispatcher.stall.add("a")

        run = await coordinator.execute(plan, sign(plan))

        assert run.nodes["a"].failure_reason == FailureReason.FINALITY_TIMEOUT

    @pytest.mark.asyncio
    async def test_missing_dispatcher(
        self, chain_registry, monitor, fast_settings, build_plan, sign
    ):
        coordinator = ExecutionCoordinator(
            chain_registry, {}, {}, monitor=monitor, settings=fast_settings
        )
        plan = build_plan([("a", 10, ())])

        run = await coordinator.execute(plan, sign(plan))

        assert run.nodes["a"].failure_reason == FailureReason.NO_DISPATCHER
        assert run.status == "failed"


class TestAuthorization:
    """Test the signature check in front of run creation."""

    @pytest.mark.asyncio
    async def test_signature_for_other_plan(self, coordinator, scenario_plan, monitor):
        signature = PlanSignature(plan_hash="0x" + "00" * 32, signature="0xdead")

        with pytest.raises(SignatureMismatchError, match="signature/plan mismatch"):
            await coordinator.submit(scenario_plan, signature)

        assert await monitor.list_snapshots() == []

    @pytest.mark.asyncio
    async def test_tampered_plan(self, coordinator, scenario_plan, sign):
        signature = sign(scenario_plan)
        tampered = scenario_plan.model_copy(
            update={
                "fee": scenario_plan.fee.model_copy(update={"amount": Decimal("0")})
            }
        )

        with pytest.raises(SignatureMismatchError):
            await coordinator.authorize(tampered, signature)

    @pytest.mark.asyncio
    async def test_empty_signature(self, coordinator, scenario_plan):
        signature = PlanSignature(plan_hash=scenario_plan.hash, signature="")

        with pytest.raises(SignatureMismatchError):
            await coordinator.authorize(scenario_plan, signature)

    @pytest.mark.asyncio
    async def test_authorize_creates_pending_run(self, coordinator, scenario_plan, sign):
        run = await coordinator.authorize(scenario_plan, sign(scenario_plan))

        assert run.id.startswith("run_")
        assert run.status == "pending"
        assert run.started_node_ids() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "depends_on, message",
        [
            (("ghost",), "unknown node 'ghost'"),
            (("b",), "does not precede"),
        ],
    )
    async def test_unexecutable_node_order_rejected(
        self, coordinator, build_plan, monitor, depends_on, message
    ):
        """Test plans built without validation are still refused before a run exists."""
        valid = build_plan([("a", 10, ()), ("b", 10, ("a",))])
        nodes = (valid.nodes[0].model_copy(update={"depends_on": depends_on}), valid.nodes[1])
        plan = ExecutionPlan.model_construct(
            nodes=nodes, fee=valid.fee, hash=compute_plan_hash(nodes, valid.fee)
        )
        signature = PlanSignature(plan_hash=plan.hash, signature="0x01")

        with pytest.raises(AuthorizationError, match=message):
            await coordinator.authorize(plan, signature)

        assert await monitor.list_snapshots() == []


class TestCancellation:
    """Test cancel semantics."""

    @pytest.mark.asyncio
    async def test_cancel_before_start(
        self, coordinator, scenario_plan, sign, recorder, dispatcher
    ):
        run = await coordinator.authorize(scenario_plan, sign(scenario_plan))

        cancelled = await coordinator.cancel(run.id)

        assert cancelled.status == "cancelled"
        assert recorder.events[-1].event_type == "run_cancelled"
        assert dispatcher.submitted == []
        stored = await coordinator.get_run(run.id)
        assert stored.status == "cancelled"

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent_once_cancelled(
        self, coordinator, scenario_plan, sign
    ):
        run = await coordinator.authorize(scenario_plan, sign(scenario_plan))
        await coordinator.cancel(run.id)

        again = await coordinator.cancel(run.id)

        assert again.status == "cancelled"

    @pytest.mark.asyncio
    async def test_cancel_after_submission_rejected(
        self, coordinator, scenario_plan, sign
    ):
        run = await coordinator.execute(scenario_plan, sign(scenario_plan))

        with pytest.raises(CancellationRejectedError) as exc_info:
            await coordinator.cancel(run.id)

        assert exc_info.value.submitted_node_ids == ["a", "bridge:b:0", "b"]

    @pytest.mark.asyncio
    async def test_cancelled_run_cannot_start(self, coordinator, scenario_plan, sign):
        run = await coordinator.authorize(scenario_plan, sign(scenario_plan))
        await coordinator.cancel(run.id)

        with pytest.raises(ExecutionError, match="cannot be started"):
            await coordinator.start(run.id)


class TestRunOutcome:
    """Test the run status is derived from its node records."""

    @pytest.mark.asyncio
    async def test_interrupted_run_is_failed(
        self, coordinator, build_plan, sign, dispatcher, recorder
    ):
        plan = build_plan([("a", 10, ()), ("b", 8453, ("a",))])
        dispatcher.stall.add("a")
        run = await coordinator.submit(plan, sign(plan))
        for _ in range(200):
            if "a" in dispatcher.submitted:
                break
            await asyncio.sleep(0.001)

        task = coordinator._tasks[run.id]
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        stored = await coordinator.get_run(run.id)
        assert stored.status == "failed"
        assert stored.finished
        assert "interrupted" in stored.error
        event_types = [e.event_type for e in recorder.events]
        assert "run_confirmed" not in event_types
        assert event_types[-1] == "run_failed"
        assert recorder.events[-1].blocked_node_ids == ["b"]

    @pytest.mark.asyncio
    async def test_unconfirmed_nodes_fail_run(
        self, coordinator, build_plan, sign, recorder, monkeypatch
    ):
        """Test a run whose node tasks end without confirming is not Confirmed."""

        async def leave_pending(run, node, settled):
            settled[node.id].set()

        monkeypatch.setattr(coordinator, "_drive_node", leave_pending)
        plan = build_plan([("a", 10, ()), ("b", 8453, ("a",))])

        run = await coordinator.execute(plan, sign(plan))

        assert run.status == "failed"
        assert run.error == "Nodes never confirmed: ['a', 'b']"
        terminal = recorder.events[-1]
        assert terminal.event_type == "run_failed"
        assert terminal.blocked_node_ids == ["a", "b"]
