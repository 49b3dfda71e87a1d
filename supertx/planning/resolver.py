"""Dependency Resolver - turns an Instruction Set into a DependencyGraph.

For every declared requirement the resolver looks for a source in this
order:

1. the producer pinned by ``requirement.producer_id``;
2. the owner's balance on the consumer's own chain (no edge);
3. a prior Instruction producing the token, same-chain producers first,
   then declaration order;
4. the owner's balance on another chain, lowest chain ID first.

Every source is claimed as it is assigned, so two consumers never count
on the same output or balance. A requirement with no source is an error
raised before any quote is built.
"""

import asyncio
import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence, Tuple

from supertx.core.models import DependencyEdge, Instruction, ResourceRequirement
from supertx.core.runtime.exceptions import (
    DependencyCycleError,
    ResolutionError,
    UnsatisfiableRequirementError,
)
from supertx.interfaces.balances import BalanceService
from supertx.planning.graph import DependencyGraph

if TYPE_CHECKING:
    from supertx.core.registry import ChainRegistry

logger = logging.getLogger(__name__)

RESERVED_ID_PREFIXES = ("edge:", "bridge:")


class DependencyResolver:
    """Builds the dependency graph for an Instruction Set."""

    def __init__(
        self,
        balances: BalanceService,
        registry: Optional["ChainRegistry"] = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            balances: Balance-query service for the owner's holdings.
            registry: When given, balances on every registered chain are
                searched. Otherwise only chains used by the Instruction Set.
        """
        self.balances = balances
        self.registry = registry

    async def resolve(
        self, instructions: Iterable[Instruction], owner: str
    ) -> DependencyGraph:
        """Resolve sources for every requirement and check for cycles.

        Args:
            instructions: Instructions in declaration order.
            owner: Account whose balances may fund requirements.

        Returns:
            Acyclic DependencyGraph.

        Raises:
            UnsatisfiableRequirementError: If a requirement has no source.
            DependencyCycleError: If pinned producers form a cycle.
            ResolutionError: On duplicate or reserved IDs, or unknown
                pinned producers.
        """
        ordered = list(instructions)
        self._validate_ids(ordered)
        logger.info(
            f"Resolving {len(ordered)} instructions for owner={owner}"
        )

        available = await self._load_balances(ordered, owner)
        outputs: Dict[Tuple[str, str], Decimal] = {}
        for instruction in ordered:
            for output in instruction.produces:
                key = (instruction.id, output.token)
                outputs[key] = outputs.get(key, Decimal("0")) + output.amount

        by_id = {instruction.id: instruction for instruction in ordered}
        edges: List[DependencyEdge] = []

        for position, consumer in enumerate(ordered):
            for req_index, requirement in enumerate(consumer.requires):
                edge_id = f"edge:{consumer.id}:{req_index}"
                edge = self._resolve_requirement(
                    edge_id,
                    consumer,
                    requirement,
                    ordered[:position],
                    by_id,
                    available,
                    outputs,
                )
                if edge is not None:
                    logger.debug(
                        f"Edge {edge.id}: producer={edge.producer_id} "
                        f"{edge.source_chain_id}->{edge.destination_chain_id} "
                        f"{requirement.amount} {requirement.token}"
                    )
                    edges.append(edge)

        graph = DependencyGraph(ordered, edges)
        cycle = graph.detect_cycle()
        if cycle:
            logger.warning(f"Dependency cycle detected: {' -> '.join(cycle)}")
            raise DependencyCycleError(cycle)

        logger.info(
            f"Resolved {len(edges)} edges "
            f"({len(graph.cross_chain_edges())} cross-chain)"
        )
        return graph

    def _validate_ids(self, instructions: Sequence[Instruction]) -> None:
        seen: set[str] = set()
        for instruction in instructions:
            if instruction.id in seen:
                raise ResolutionError(f"Duplicate instruction ID: '{instruction.id}'")
            if instruction.id.startswith(RESERVED_ID_PREFIXES):
                raise ResolutionError(
                    f"Instruction ID '{instruction.id}' uses a reserved prefix"
                )
            seen.add(instruction.id)

    async def _load_balances(
        self, instructions: Sequence[Instruction], owner: str
    ) -> Dict[Tuple[int, str], Decimal]:
        """Query every (chain, token) pair the requirements could draw on."""
        tokens = sorted(
            {req.token for instruction in instructions for req in instruction.requires}
        )
        if self.registry is not None:
            chain_ids = sorted(self.registry.chains.keys())
        else:
            chain_ids = sorted({instruction.chain_id for instruction in instructions})

        keys = [(chain_id, token) for chain_id in chain_ids for token in tokens]
        amounts = await asyncio.gather(
            *[self.balances.get_balance(owner, chain_id, token) for chain_id, token in keys]
        )
        return {key: Decimal(amount) for key, amount in zip(keys, amounts)}

    def _resolve_requirement(
        self,
        edge_id: str,
        consumer: Instruction,
        requirement: ResourceRequirement,
        prior: Sequence[Instruction],
        by_id: Dict[str, Instruction],
        available: Dict[Tuple[int, str], Decimal],
        outputs: Dict[Tuple[str, str], Decimal],
    ) -> Optional[DependencyEdge]:
        token = requirement.token
        amount = requirement.amount

        # 1. Pinned producer
        if requirement.producer_id is not None:
            producer = by_id.get(requirement.producer_id)
            if producer is None:
                raise ResolutionError(
                    f"Instruction '{consumer.id}' pins unknown producer "
                    f"'{requirement.producer_id}'"
                )
            if producer.id == consumer.id:
                raise DependencyCycleError([consumer.id, consumer.id])
            if outputs.get((producer.id, token), Decimal("0")) < amount:
                raise UnsatisfiableRequirementError(consumer.id, token, amount)
            outputs[(producer.id, token)] -= amount
            return self._edge(edge_id, producer.id, producer.chain_id, consumer, requirement)

        # 2. Balance already on the consumer's chain
        own_key = (consumer.chain_id, token)
        if available.get(own_key, Decimal("0")) >= amount:
            available[own_key] -= amount
            return None

        # 3. Prior producers, same chain first
        candidates = sorted(
            (
                instruction
                for instruction in prior
                if outputs.get((instruction.id, token), Decimal("0")) >= amount
            ),
            key=lambda i: (i.chain_id != consumer.chain_id, prior.index(i)),
        )
        if candidates:
            producer = candidates[0]
            outputs[(producer.id, token)] -= amount
            return self._edge(edge_id, producer.id, producer.chain_id, consumer, requirement)

        # 4. Balance on another chain
        for (chain_id, balance_token), balance in sorted(available.items()):
            if balance_token != token or chain_id == consumer.chain_id:
                continue
            if balance >= amount:
                available[(chain_id, token)] -= amount
                return self._edge(edge_id, None, chain_id, consumer, requirement)

        raise UnsatisfiableRequirementError(consumer.id, token, amount)

    @staticmethod
    def _edge(
        edge_id: str,
        producer_id: Optional[str],
        source_chain_id: int,
        consumer: Instruction,
        requirement: ResourceRequirement,
    ) -> DependencyEdge:
        return DependencyEdge(
            id=edge_id,
            producer_id=producer_id,
            consumer_id=consumer.id,
            requirement=requirement,
            source_chain_id=source_chain_id,
            destination_chain_id=consumer.chain_id,
        )
