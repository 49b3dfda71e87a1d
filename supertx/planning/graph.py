"""Dependency graph over Instructions."""

import heapq
from typing import Dict, List, Optional, Sequence, Set

from supertx.core.models import DependencyEdge, Instruction
from supertx.core.runtime.exceptions import DependencyCycleError


class DependencyGraph:
    """Directed graph whose nodes are Instructions and edges DependencyEdges.

    Edges without a producer (resources drawn from an existing balance on
    another chain) do not order Instructions against each other; they only
    add a bridge step in front of their consumer.
    """

    def __init__(
        self,
        instructions: Sequence[Instruction],
        edges: Sequence[DependencyEdge],
    ) -> None:
        self.instructions: tuple[Instruction, ...] = tuple(instructions)
        self.edges: tuple[DependencyEdge, ...] = tuple(edges)
        self._position: Dict[str, int] = {
            instruction.id: i for i, instruction in enumerate(self.instructions)
        }

    def declaration_index(self, instruction_id: str) -> int:
        return self._position[instruction_id]

    def incoming_edges(self, instruction_id: str) -> List[DependencyEdge]:
        return [e for e in self.edges if e.consumer_id == instruction_id]

    def cross_chain_edges(self) -> List[DependencyEdge]:
        return [e for e in self.edges if e.cross_chain]

    def _adjacency(self) -> Dict[str, List[str]]:
        adjacency: Dict[str, List[str]] = {i.id: [] for i in self.instructions}
        for edge in self.edges:
            if edge.producer_id is None:
                continue
            if edge.consumer_id not in adjacency[edge.producer_id]:
                adjacency[edge.producer_id].append(edge.consumer_id)
        return adjacency

    def detect_cycle(self) -> Optional[List[str]]:
        """Detect cycles with a depth-first search.

        Returns:
            The cycle as a list of Instruction IDs (first ID repeated at the
            end), or None if the graph is acyclic.
        """
        adjacency = self._adjacency()
        visited: Set[str] = set()
        rec_stack: Set[str] = set()
        path: List[str] = []

        def visit(node: str) -> Optional[List[str]]:
            visited.add(node)
            rec_stack.add(node)
            path.append(node)

            for neighbor in adjacency[node]:
                if neighbor not in visited:
                    found = visit(neighbor)
                    if found:
                        return found
                elif neighbor in rec_stack:
                    start = path.index(neighbor)
                    return path[start:] + [neighbor]

            path.pop()
            rec_stack.remove(node)
            return None

        for instruction in self.instructions:
            if instruction.id not in visited:
                cycle = visit(instruction.id)
                if cycle:
                    return cycle
        return None

    def topological_order(self) -> List[Instruction]:
        """Instructions in execution order.

        Kahn's algorithm with ties broken by declaration order, so an
        Instruction Set without dependencies keeps its declared order.

        Raises:
            DependencyCycleError: If the graph has a cycle.
        """
        adjacency = self._adjacency()
        in_degree: Dict[str, int] = {i.id: 0 for i in self.instructions}
        for targets in adjacency.values():
            for target in targets:
                in_degree[target] += 1

        ready = [self._position[i] for i, deg in in_degree.items() if deg == 0]
        heapq.heapify(ready)
        result: List[Instruction] = []

        while ready:
            instruction = self.instructions[heapq.heappop(ready)]
            result.append(instruction)
            for neighbor in adjacency[instruction.id]:
                in_degree[neighbor] -= 1
                if in_degree[neighbor] == 0:
                    heapq.heappush(ready, self._position[neighbor])

        if len(result) != len(self.instructions):
            raise DependencyCycleError(self.detect_cycle() or [])
        return result
