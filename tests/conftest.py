"""Pytest configuration and fixtures."""

import asyncio
import sys
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from supertx.config import EngineSettings, set_settings  # noqa: E402
from supertx.core.models import (  # noqa: E402
    BridgeRoute,
    Call,
    ChainDescriptor,
    ExecutionPlan,
    FeeInstruction,
    FinalityPolicy,
    Instruction,
    NodeKind,
    PlanNode,
    PlanSignature,
    ResourceOutput,
    ResourceRequirement,
    compute_plan_hash,
)
from supertx.core.registry import ChainRegistry  # noqa: E402
from supertx.core.runtime.exceptions import (  # noqa: E402
    BridgeFailureError,
    DispatchRejectedError,
)
from supertx.core.runtime.stream import ExecutionStream  # noqa: E402
from supertx.execution import ExecutionCoordinator, StatusMonitor  # noqa: E402
from supertx.interfaces import (  # noqa: E402
    BridgeTransfer,
    SettlementStatus,
    TransactionReceipt,
    TransactionStatus,
)
from supertx.planning import StaticBalanceService  # noqa: E402

OPTIMISM = 10
BASE = 8453
ARBITRUM = 42161

OWNER = "0x" + "11" * 20
TARGET = "0x" + "ab" * 20


# =============================================================================
# Fakes
# =============================================================================


class FakeDispatcher:
    """In-memory ChainDispatcher serving every chain.

    Instructions listed in ``reject`` are refused, those in ``revert`` are
    included but reverted, and those in ``stall`` are never included.
    ``slow`` maps an instruction ID to the number of status polls it stays
    unincluded for.
    """

    def __init__(self, confirmations: int = 12) -> None:
        self.confirmations = confirmations
        self.reject: set[str] = set()
        self.revert: set[str] = set()
        self.stall: set[str] = set()
        self.slow: dict[str, int] = {}
        self.submitted: list[str] = []
        self._by_tx: dict[str, str] = {}
        self._sent_at: dict[str, datetime] = {}
        self._polls: dict[str, int] = {}

    async def submit(self, chain_id: int, instruction: Instruction, plan_hash: str):
        await asyncio.sleep(0)
        if instruction.id in self.reject:
            raise DispatchRejectedError(f"relayer refused {instruction.id}")
        self.submitted.append(instruction.id)
        tx_hash = f"0x{len(self._by_tx) + 1:064x}"
        self._by_tx[tx_hash] = instruction.id
        self._sent_at[tx_hash] = datetime.now(timezone.utc)
        return TransactionReceipt(tx_hash=tx_hash)

    async def get_status(self, chain_id: int, tx_hash: str) -> TransactionStatus:
        await asyncio.sleep(0)
        instruction_id = self._by_tx[tx_hash]
        self._polls[tx_hash] = self._polls.get(tx_hash, 0) + 1
        if instruction_id in self.stall:
            return TransactionStatus(included=False)
        if self._polls[tx_hash] <= self.slow.get(instruction_id, 0):
            return TransactionStatus(included=False)
        included_at = self._sent_at[tx_hash]
        if instruction_id in self.revert:
            return TransactionStatus(
                included=True, confirmations=1, included_at=included_at, reverted=True
            )
        return TransactionStatus(
            included=True, confirmations=self.confirmations, included_at=included_at
        )


class FakeBridge:
    """In-memory BridgeProvider serving every route.

    Steps listed in ``stall`` never settle; those in ``fail`` settle as
    failed; those in ``reject`` are refused at initiation.
    """

    def __init__(self) -> None:
        self.reject: set[str] = set()
        self.fail: set[str] = set()
        self.stall: set[str] = set()
        self.initiated: list[str] = []
        self._by_transfer: dict[str, str] = {}

    async def initiate(self, step, plan_hash: str) -> BridgeTransfer:
        await asyncio.sleep(0)
        if step.id in self.reject:
            raise BridgeFailureError(f"bridge refused {step.id}")
        self.initiated.append(step.id)
        transfer_id = f"xfer-{len(self._by_transfer) + 1}"
        self._by_transfer[transfer_id] = step.id
        return BridgeTransfer(transfer_id=transfer_id)

    async def get_settlement(self, route_id: str, transfer_id: str) -> SettlementStatus:
        await asyncio.sleep(0)
        step_id = self._by_transfer[transfer_id]
        if step_id in self.stall:
            return SettlementStatus(state="pending")
        if step_id in self.fail:
            return SettlementStatus(state="failed", detail="liquidity exhausted")
        return SettlementStatus(state="settled")


class RecordingStream(ExecutionStream):
    """Keeps every emitted event in order."""

    def __init__(self) -> None:
        self.events = []

    async def emit(self, event) -> None:
        self.events.append(event)

    async def close(self) -> None:
        pass

    def of_type(self, event_type: str):
        return [e for e in self.events if e.event_type == event_type]

    def transitions(self, node_id: str) -> list[str]:
        return [
            e.to_state
            for e in self.events
            if e.event_type == "node_transition" and e.node_id == node_id
        ]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings():
    """Reset global settings before each test."""
    set_settings(None)
    yield
    set_settings(None)


@pytest.fixture
def fast_settings():
    """Settings with short polls and deadlines."""
    return EngineSettings(
        poll_interval_seconds=0.001,
        finality_timeout_seconds=1.0,
        bridge_timeout_seconds=0.2,
        quote_ttl_seconds=60,
    )


@pytest.fixture
def chain_registry():
    """Optimism, Base and Arbitrum, with USDC routes between Optimism and Base."""
    chains = [
        ChainDescriptor(
            chain_id=OPTIMISM,
            name="Optimism",
            finality=FinalityPolicy(kind="confirmations", confirmations=10),
            supported_routes=frozenset({"across-op-base", "cctp-op-base"}),
            fee_tokens=frozenset({"USDC", "ETH"}),
            gas_unit_cost=Decimal("0.000001"),
        ),
        ChainDescriptor(
            chain_id=BASE,
            name="Base",
            finality=FinalityPolicy(kind="confirmations", confirmations=5),
            supported_routes=frozenset({"across-base-op"}),
            fee_tokens=frozenset({"USDC"}),
            gas_unit_cost=Decimal("0.000002"),
        ),
        ChainDescriptor(
            chain_id=ARBITRUM,
            name="Arbitrum",
            finality=FinalityPolicy(kind="time", seconds=0.001),
            fee_tokens=frozenset({"ETH"}),
        ),
    ]
    routes = [
        BridgeRoute(
            id="across-op-base",
            provider="across",
            source_chain_id=OPTIMISM,
            destination_chain_id=BASE,
            tokens=frozenset({"USDC", "WETH"}),
            fee_bps=5,
            estimated_seconds=60,
        ),
        BridgeRoute(
            id="cctp-op-base",
            provider="cctp",
            source_chain_id=OPTIMISM,
            destination_chain_id=BASE,
            tokens=frozenset({"USDC"}),
            fee_bps=5,
            flat_fee=Decimal("0.25"),
            estimated_seconds=900,
        ),
        BridgeRoute(
            id="across-base-op",
            provider="across",
            source_chain_id=BASE,
            destination_chain_id=OPTIMISM,
            tokens=frozenset({"USDC"}),
            fee_bps=5,
        ),
    ]
    return ChainRegistry(chains, routes)


@pytest.fixture
def balances():
    """Empty balance service; tests add what they need."""
    return StaticBalanceService()


@pytest.fixture
def make_instruction():
    """Factory for Instructions with one call.

    ``requires`` entries are ``(token, amount)`` or ``(token, amount, producer_id)``;
    ``produces`` entries are ``(token, amount)``.
    """

    def _make(
        instruction_id: str,
        chain_id: int,
        requires=(),
        produces=(),
        gas_limit: int = 100_000,
    ) -> Instruction:
        return Instruction(
            id=instruction_id,
            chain_id=chain_id,
            calls=(Call(to=TARGET, data="0xa9059cbb", gas_limit=gas_limit),),
            requires=tuple(
                ResourceRequirement(
                    token=r[0],
                    amount=Decimal(str(r[1])),
                    producer_id=r[2] if len(r) > 2 else None,
                )
                for r in requires
            ),
            produces=tuple(
                ResourceOutput(token=token, amount=Decimal(str(amount)))
                for token, amount in produces
            ),
        )

    return _make


@pytest.fixture
def build_plan(make_instruction):
    """Factory for hashed plans of instruction nodes.

    Takes ``(node_id, chain_id, depends_on)`` tuples in plan order.
    """

    def _build(specs) -> ExecutionPlan:
        nodes = tuple(
            PlanNode(
                id=node_id,
                kind=NodeKind.INSTRUCTION,
                chain_id=chain_id,
                depends_on=tuple(depends_on),
                instruction=make_instruction(node_id, chain_id),
            )
            for node_id, chain_id, depends_on in specs
        )
        fee = FeeInstruction(chain_id=OPTIMISM, token="USDC", amount=Decimal("0"))
        return ExecutionPlan(nodes=nodes, fee=fee, hash=compute_plan_hash(nodes, fee))

    return _build


@pytest.fixture
def sign():
    """Signature bound to a plan's hash."""

    def _sign(plan: ExecutionPlan) -> PlanSignature:
        return PlanSignature(plan_hash=plan.hash, signature="0x" + "5a" * 65, signer=OWNER)

    return _sign


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def bridge():
    return FakeBridge()


@pytest.fixture
def recorder():
    return RecordingStream()


@pytest.fixture
def monitor(recorder):
    return StatusMonitor(sink=recorder)


@pytest.fixture
def coordinator(chain_registry, dispatcher, bridge, monitor, fast_settings):
    """Coordinator wired to the fakes for every chain and route."""
    return ExecutionCoordinator(
        registry=chain_registry,
        dispatchers={chain_id: dispatcher for chain_id in chain_registry.chains},
        bridges={route_id: bridge for route_id in chain_registry.routes},
        monitor=monitor,
        settings=fast_settings,
    )
