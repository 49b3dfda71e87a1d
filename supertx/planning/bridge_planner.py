"""Bridge Planner - bridge steps and the plan linearization."""

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Dict, List, Tuple

from supertx.core.models import (
    BridgeStep,
    DependencyEdge,
    NodeKind,
    PlanNode,
    PlanSkeleton,
)
from supertx.core.registry import ChainRegistry
from supertx.core.runtime.exceptions import NoBridgeRouteError, PlanningError
from supertx.planning.graph import DependencyGraph

logger = logging.getLogger(__name__)


class BridgePlanner:
    """Selects bridge routes and produces the deterministic plan order.

    Linearization:
    - Instructions follow the graph's topological order (declaration order
      breaks ties).
    - A bridge step funded by an existing balance is placed immediately
      before its consumer.
    - A bridge step funded by an Instruction is placed immediately after
      its producer, ordered by its consumer's declaration position.
    """

    def __init__(self, registry: ChainRegistry) -> None:
        self.registry = registry

    def plan(self, graph: DependencyGraph) -> PlanSkeleton:
        """Build the linearized plan skeleton for a resolved graph.

        Raises:
            UnknownChainError: If an Instruction targets an unregistered chain.
            NoBridgeRouteError: If a cross-chain edge has no route.
        """
        for instruction in graph.instructions:
            self.registry.get_chain(instruction.chain_id)

        steps: Dict[str, BridgeStep] = {}
        for edge in graph.cross_chain_edges():
            steps[edge.id] = self._select_route(edge)

        order = graph.topological_order()

        before: Dict[str, List[BridgeStep]] = defaultdict(list)
        after: Dict[str, List[Tuple[int, BridgeStep]]] = defaultdict(list)
        for edge in graph.cross_chain_edges():
            step = steps[edge.id]
            if edge.producer_id is None:
                before[edge.consumer_id].append(step)
            else:
                after[edge.producer_id].append(
                    (graph.declaration_index(edge.consumer_id), step)
                )

        nodes: List[PlanNode] = []
        for instruction in order:
            for step in before[instruction.id]:
                nodes.append(self._bridge_node(step, depends_on=()))

            nodes.append(
                PlanNode(
                    id=instruction.id,
                    kind=NodeKind.INSTRUCTION,
                    chain_id=instruction.chain_id,
                    depends_on=self._instruction_dependencies(
                        graph.incoming_edges(instruction.id), steps
                    ),
                    instruction=instruction,
                )
            )

            for _, step in sorted(after[instruction.id], key=lambda pair: pair[0]):
                nodes.append(self._bridge_node(step, depends_on=(instruction.id,)))

        self._check_bridge_funding(nodes, graph)
        logger.info(
            f"Planned {len(nodes)} nodes ({len(steps)} bridge steps) "
            f"order={[n.id for n in nodes]}"
        )
        return PlanSkeleton(nodes=tuple(nodes), edges=graph.edges)

    def _select_route(self, edge: DependencyEdge) -> BridgeStep:
        token = edge.requirement.token
        routes = self.registry.routes_between(
            edge.source_chain_id, edge.destination_chain_id, token
        )
        if not routes:
            logger.warning(
                f"No bridge route for {token} "
                f"{edge.source_chain_id}->{edge.destination_chain_id}"
            )
            raise NoBridgeRouteError(
                edge.source_chain_id, edge.destination_chain_id, token
            )

        route = routes[0]
        logger.debug(f"Edge {edge.id} bridged via route {route.id}")
        return BridgeStep(
            id="bridge:" + edge.id.removeprefix("edge:"),
            edge_id=edge.id,
            source_chain_id=edge.source_chain_id,
            destination_chain_id=edge.destination_chain_id,
            token=token,
            amount=edge.requirement.amount,
            route_id=route.id,
        )

    @staticmethod
    def _bridge_node(step: BridgeStep, depends_on: Tuple[str, ...]) -> PlanNode:
        return PlanNode(
            id=step.id,
            kind=NodeKind.BRIDGE,
            chain_id=step.source_chain_id,
            depends_on=depends_on,
            bridge=step,
        )

    @staticmethod
    def _instruction_dependencies(
        incoming: List[DependencyEdge], steps: Dict[str, BridgeStep]
    ) -> Tuple[str, ...]:
        """Same-chain producers and the bridge steps feeding an Instruction."""
        depends_on: List[str] = []
        for edge in incoming:
            if edge.cross_chain:
                dependency = steps[edge.id].id
            elif edge.producer_id is not None:
                dependency = edge.producer_id
            else:
                continue
            if dependency not in depends_on:
                depends_on.append(dependency)
        return tuple(depends_on)

    @staticmethod
    def _check_bridge_funding(nodes: List[PlanNode], graph: DependencyGraph) -> None:
        """Re-check that no bridge step moves more than its producer left.

        Walks the plan in order and tracks, per producer and token, the
        output still unclaimed at that point.
        """
        edges = {edge.id: edge for edge in graph.edges}
        remaining: Dict[Tuple[str, str], Decimal] = {}
        for node in nodes:
            if node.kind == NodeKind.INSTRUCTION:
                for edge in graph.incoming_edges(node.id):
                    if edge.producer_id is not None and not edge.cross_chain:
                        key = (edge.producer_id, edge.requirement.token)
                        remaining[key] = (
                            remaining.get(key, Decimal("0")) - edge.requirement.amount
                        )
                for output in node.instruction.produces:
                    key = (node.id, output.token)
                    remaining[key] = remaining.get(key, Decimal("0")) + output.amount
                continue

            producer_id = edges[node.bridge.edge_id].producer_id
            if producer_id is None:
                continue
            key = (producer_id, node.bridge.token)
            if key not in remaining:
                raise PlanningError(
                    f"Bridge step '{node.id}' is ordered before its producer "
                    f"'{producer_id}'"
                )
            if node.bridge.amount > remaining[key]:
                raise PlanningError(
                    f"Bridge step '{node.id}' moves {node.bridge.amount} "
                    f"{node.bridge.token} but only {remaining[key]} is available"
                )
            remaining[key] -= node.bridge.amount
