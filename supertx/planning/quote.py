"""Quote Builder - cost estimates, fee instruction, hash and review summary."""

import logging
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Protocol

from supertx.config import EngineSettings, get_settings
from supertx.core.models import (
    ChainActions,
    ExecutionPlan,
    FeeInstruction,
    FeeSpec,
    NodeKind,
    PlanNode,
    PlanSkeleton,
    Quote,
    QuoteSummary,
    compute_plan_hash,
)
from supertx.core.registry import ChainRegistry
from supertx.core.runtime.exceptions import FeeTokenUnsupportedError, PlanningError

logger = logging.getLogger(__name__)


class CostEstimator(Protocol):
    """Estimates the cost of one plan node in fee-token units."""

    def estimate(self, node: PlanNode, registry: ChainRegistry) -> Decimal:
        ...


class GasCostEstimator:
    """Default estimator.

    Instructions cost their total gas ceiling times the chain's gas unit
    cost. Bridge steps cost the route's transfer fee.
    """

    def estimate(self, node: PlanNode, registry: ChainRegistry) -> Decimal:
        if node.kind == NodeKind.INSTRUCTION:
            chain = registry.get_chain(node.chain_id)
            return Decimal(node.instruction.total_gas) * chain.gas_unit_cost

        route = registry.get_route(node.bridge.route_id)
        if route is None:
            raise PlanningError(
                f"Bridge step '{node.id}' references unknown route "
                f"'{node.bridge.route_id}'"
            )
        return route.transfer_fee(node.bridge.amount)


class QuoteBuilder:
    """Assembles an immutable, hashed ExecutionPlan and its audit summary."""

    def __init__(
        self,
        registry: ChainRegistry,
        estimator: Optional[CostEstimator] = None,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        self.registry = registry
        self.estimator = estimator or GasCostEstimator()
        self.settings = settings or get_settings()

    def build(self, skeleton: PlanSkeleton, fee_spec: FeeSpec) -> Quote:
        """Cost every node, build the fee instruction and hash the plan.

        Args:
            skeleton: Linearized nodes from the BridgePlanner.
            fee_spec: Chain and token the caller pays fees in.

        Returns:
            Quote with the plan, summary and expiry.

        Raises:
            UnknownChainError: If the fee chain is not registered.
            FeeTokenUnsupportedError: If the fee token is not accepted there.
        """
        fee_chain = self.registry.get_chain(fee_spec.chain_id)
        if fee_spec.token not in fee_chain.fee_tokens:
            raise FeeTokenUnsupportedError(fee_spec.chain_id, fee_spec.token)

        nodes = tuple(
            node.model_copy(
                update={"estimated_cost": self.estimator.estimate(node, self.registry)}
            )
            for node in skeleton.nodes
        )
        total = sum((node.estimated_cost for node in nodes), Decimal("0"))
        fee = FeeInstruction(chain_id=fee_spec.chain_id, token=fee_spec.token, amount=total)

        plan = ExecutionPlan(nodes=nodes, fee=fee, hash=compute_plan_hash(nodes, fee))
        created_at = datetime.now(UTC)
        quote = Quote(
            plan=plan,
            summary=self.summarize(plan),
            created_at=created_at,
            expires_at=created_at + timedelta(seconds=self.settings.quote_ttl_seconds),
        )
        logger.info(
            f"Built quote: hash={plan.hash}, nodes={len(nodes)}, "
            f"fee={total} {fee_spec.token}"
        )
        return quote

    def summarize(self, plan: ExecutionPlan) -> QuoteSummary:
        """Per-chain action list describing what a signature authorizes."""
        by_chain: Dict[int, ChainActions] = {}

        def actions_for(chain_id: int) -> List[str]:
            if chain_id not in by_chain:
                chain = self.registry.get_chain(chain_id)
                by_chain[chain_id] = ChainActions(chain_id=chain_id, chain_name=chain.name)
            return by_chain[chain_id].actions

        for node in plan.nodes:
            if node.kind == NodeKind.INSTRUCTION:
                actions_for(node.chain_id).append(self._describe_instruction(node))
            else:
                step = node.bridge
                route = self.registry.get_route(step.route_id)
                destination = self.registry.get_chain(step.destination_chain_id)
                provider = route.provider if route else step.route_id
                actions_for(node.chain_id).append(
                    f"{node.id}: bridge {_fmt(step.amount)} {step.token} to "
                    f"{destination.name} via {provider} ({step.route_id})"
                )

        actions_for(plan.fee.chain_id).append(
            f"pay fee {_fmt(plan.fee.amount)} {plan.fee.token}"
        )

        return QuoteSummary(
            plan_hash=plan.hash,
            chains=list(by_chain.values()),
            total_fee=plan.fee.amount,
            fee_token=plan.fee.token,
            fee_chain_id=plan.fee.chain_id,
            bridge_count=sum(1 for n in plan.nodes if n.kind == NodeKind.BRIDGE),
            instruction_count=sum(
                1 for n in plan.nodes if n.kind == NodeKind.INSTRUCTION
            ),
        )

    @staticmethod
    def _describe_instruction(node: PlanNode) -> str:
        instruction = node.instruction
        targets = ", ".join(dict.fromkeys(call.to for call in instruction.calls))
        text = f"{node.id}: {len(instruction.calls)} call(s) to {targets}"
        if instruction.requires:
            needs = ", ".join(f"{_fmt(r.amount)} {r.token}" for r in instruction.requires)
            text += f"; needs {needs}"
        if instruction.produces:
            gives = ", ".join(f"{_fmt(o.amount)} {o.token}" for o in instruction.produces)
            text += f"; produces {gives}"
        return text


def _fmt(amount: Decimal) -> str:
    return format(amount.normalize(), "f")
