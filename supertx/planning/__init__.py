"""Planning layer - resolve, bridge, quote.

The pipeline runs entirely before any signature is requested:

    graph = await DependencyResolver(balances).resolve(instructions, owner)
    skeleton = BridgePlanner(registry).plan(graph)
    quote = QuoteBuilder(registry).build(skeleton, fee_spec)

``plan_supertransaction`` wires the three steps together.
"""

from typing import Iterable, Optional

from supertx.config import EngineSettings
from supertx.core.models import FeeSpec, Instruction, Quote
from supertx.core.registry import ChainRegistry
from supertx.interfaces.balances import BalanceService
from supertx.planning.balances import StaticBalanceService
from supertx.planning.bridge_planner import BridgePlanner
from supertx.planning.graph import DependencyGraph
from supertx.planning.quote import CostEstimator, GasCostEstimator, QuoteBuilder
from supertx.planning.resolver import DependencyResolver


async def plan_supertransaction(
    instructions: Iterable[Instruction],
    owner: str,
    fee_spec: FeeSpec,
    registry: ChainRegistry,
    balances: BalanceService,
    estimator: Optional[CostEstimator] = None,
    settings: Optional[EngineSettings] = None,
) -> Quote:
    """Resolve, plan and quote an Instruction Set.

    Raises:
        ResolutionError: Unsatisfiable requirement or dependency cycle.
        PlanningError: Missing bridge route, unknown chain or fee token.
    """
    graph = await DependencyResolver(balances, registry).resolve(instructions, owner)
    skeleton = BridgePlanner(registry).plan(graph)
    return QuoteBuilder(registry, estimator, settings).build(skeleton, fee_spec)


__all__ = [
    "BridgePlanner",
    "CostEstimator",
    "DependencyGraph",
    "DependencyResolver",
    "GasCostEstimator",
    "QuoteBuilder",
    "StaticBalanceService",
    "plan_supertransaction",
]
