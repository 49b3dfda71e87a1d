"""Plan models - dependency edges, bridge steps and the signable plan.

The plan hash is computed here, next to the models it covers, so that any
party holding an ``ExecutionPlan`` can re-derive it without the planner.
"""

import hashlib
import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable

from pydantic import BaseModel, Field, model_validator

from supertx.core.models.instruction import Instruction, ResourceRequirement


class DependencyEdge(BaseModel):
    """Ordering (and possibly bridging) requirement between two Instructions."""

    id: str = Field(..., description="Unique edge ID")
    producer_id: str | None = Field(
        None,
        description="Producing Instruction ID. None when the resource comes "
        "from a balance the owner already holds on the source chain.",
    )
    consumer_id: str
    requirement: ResourceRequirement
    source_chain_id: int
    destination_chain_id: int

    model_config = {"frozen": True}

    @property
    def cross_chain(self) -> bool:
        """Whether satisfying this edge needs a bridge transfer."""
        return self.source_chain_id != self.destination_chain_id


class BridgeStep(BaseModel):
    """Synthesized transfer that satisfies one cross-chain DependencyEdge."""

    id: str
    edge_id: str
    source_chain_id: int
    destination_chain_id: int
    token: str
    amount: Decimal = Field(..., gt=0)
    route_id: str

    model_config = {"frozen": True}


class NodeKind(str, Enum):
    """Type of node in an ExecutionPlan."""

    INSTRUCTION = "instruction"
    BRIDGE = "bridge"


class PlanNode(BaseModel):
    """One entry of the plan's linearization."""

    id: str
    kind: NodeKind
    chain_id: int = Field(..., description="Chain the node is dispatched to")
    depends_on: tuple[str, ...] = Field(
        default_factory=tuple,
        description="Node IDs that must be Confirmed before this node starts",
    )
    instruction: Instruction | None = None
    bridge: BridgeStep | None = None
    estimated_cost: Decimal = Field(
        default=Decimal("0"), description="Estimated cost in fee-token units"
    )

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_payload(self) -> "PlanNode":
        if self.kind == NodeKind.INSTRUCTION and self.instruction is None:
            raise ValueError(f"Instruction node '{self.id}' has no instruction")
        if self.kind == NodeKind.BRIDGE and self.bridge is None:
            raise ValueError(f"Bridge node '{self.id}' has no bridge step")
        return self


class PlanSkeleton(BaseModel):
    """Linearized nodes and the edges they came from, before costing."""

    nodes: tuple[PlanNode, ...]
    edges: tuple[DependencyEdge, ...] = Field(default_factory=tuple)

    model_config = {"frozen": True}


class FeeSpec(BaseModel):
    """Where and in what token the caller pays for execution."""

    chain_id: int
    token: str

    model_config = {"frozen": True}


class FeeInstruction(BaseModel):
    """Fee payment covering the whole plan."""

    chain_id: int
    token: str
    amount: Decimal = Field(..., ge=0)

    model_config = {"frozen": True}


def _canonical(value: Any) -> Any:
    """Reduce a dumped model to JSON types with a single representation."""
    if isinstance(value, dict):
        return {str(k): _canonical(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted(_canonical(v) for v in value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def canonical_json(nodes: Iterable[PlanNode], fee: FeeInstruction) -> str:
    """Canonical JSON document covered by the plan hash."""
    document = {
        "nodes": [_canonical(node.model_dump()) for node in nodes],
        "fee": _canonical(fee.model_dump()),
    }
    return json.dumps(document, sort_keys=True, separators=(",", ":"))


def compute_plan_hash(nodes: Iterable[PlanNode], fee: FeeInstruction) -> str:
    """SHA-256 over the canonical plan document, 0x-prefixed."""
    digest = hashlib.sha256(canonical_json(nodes, fee).encode("utf-8"))
    return "0x" + digest.hexdigest()


def linearization_problems(nodes: Iterable[PlanNode]) -> list[str]:
    """Reasons a node order cannot be executed as given.

    Node IDs must be unique and every dependency must name a node that
    appears earlier in the order.
    """
    nodes = tuple(nodes)
    known = {node.id for node in nodes}
    seen: set[str] = set()
    problems: list[str] = []
    for node in nodes:
        if node.id in seen:
            problems.append(f"duplicate node id '{node.id}'")
        for dependency in node.depends_on:
            if dependency not in known:
                problems.append(
                    f"node '{node.id}' depends on unknown node '{dependency}'"
                )
            elif dependency not in seen:
                problems.append(
                    f"node '{node.id}' depends on '{dependency}', which does not precede it"
                )
        seen.add(node.id)
    return problems


class ExecutionPlan(BaseModel):
    """Immutable, hashed plan. The hash is the signing target."""

    nodes: tuple[PlanNode, ...]
    fee: FeeInstruction
    hash: str = Field(..., description="Canonical content hash")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_order(self) -> "ExecutionPlan":
        problems = linearization_problems(self.nodes)
        if problems:
            raise ValueError("; ".join(problems))
        return self

    def verify_hash(self) -> bool:
        """Recompute the hash from nodes and fee and compare."""
        return compute_plan_hash(self.nodes, self.fee) == self.hash


class ChainActions(BaseModel):
    """Per-chain list of actions shown to the signer."""

    chain_id: int
    chain_name: str
    actions: list[str] = Field(default_factory=list)


class QuoteSummary(BaseModel):
    """Human-reviewable audit of what a signature authorizes."""

    plan_hash: str
    chains: list[ChainActions] = Field(default_factory=list)
    total_fee: Decimal
    fee_token: str
    fee_chain_id: int
    bridge_count: int = 0
    instruction_count: int = 0


class Quote(BaseModel):
    """Plan plus its review summary, valid until ``expires_at``."""

    plan: ExecutionPlan
    summary: QuoteSummary
    created_at: datetime
    expires_at: datetime

    @property
    def plan_hash(self) -> str:
        return self.plan.hash


class PlanSignature(BaseModel):
    """Opaque signature returned by the external signing collaborator."""

    plan_hash: str = Field(..., description="Hash the signer claims to sign")
    signature: str = Field(..., description="Opaque signature bytes (hex)")
    signer: str | None = Field(None, description="Signer address, if known")

    model_config = {"frozen": True}
