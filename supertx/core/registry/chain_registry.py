"""Chain Registry - static description of participating chains and routes.

The registry is built once at startup (usually from a JSON file named by
``EngineSettings.chains_file``) and is read-only afterwards, so a single
instance can be shared by every planner and run.

File format:
    ```json
    {
      "chains": [
        {
          "chain_id": 10,
          "name": "Optimism",
          "finality": {"kind": "confirmations", "confirmations": 10},
          "supported_routes": ["across-op-base-usdc"],
          "fee_tokens": ["USDC"],
          "gas_unit_cost": "0.000000002"
        }
      ],
      "routes": [
        {
          "id": "across-op-base-usdc",
          "provider": "across",
          "source_chain_id": 10,
          "destination_chain_id": 8453,
          "tokens": ["USDC"],
          "fee_bps": 5
        }
      ]
    }
    ```
"""

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, List, Mapping

from supertx.core.models.chain import BridgeRoute, ChainDescriptor
from supertx.core.runtime.exceptions import UnknownChainError

logger = logging.getLogger(__name__)


class RegistryValidationError(Exception):
    """Raised when chain and route definitions are inconsistent."""

    pass


class ChainRegistry:
    """Immutable lookup of chains and bridge routes."""

    def __init__(
        self,
        chains: Iterable[ChainDescriptor],
        routes: Iterable[BridgeRoute] = (),
    ) -> None:
        """Build the registry and validate cross-references.

        Args:
            chains: Chain descriptors, one per chain ID.
            routes: Bridge routes between registered chains.

        Raises:
            RegistryValidationError: On duplicate IDs or dangling references.
        """
        chain_map: dict[int, ChainDescriptor] = {}
        for chain in chains:
            if chain.chain_id in chain_map:
                raise RegistryValidationError(f"Duplicate chain ID: {chain.chain_id}")
            chain_map[chain.chain_id] = chain

        route_map: dict[str, BridgeRoute] = {}
        for route in routes:
            if route.id in route_map:
                raise RegistryValidationError(f"Duplicate route ID: {route.id}")
            for chain_id in (route.source_chain_id, route.destination_chain_id):
                if chain_id not in chain_map:
                    raise RegistryValidationError(
                        f"Route '{route.id}' references unknown chain {chain_id}"
                    )
            if route.source_chain_id == route.destination_chain_id:
                raise RegistryValidationError(
                    f"Route '{route.id}' has the same source and destination"
                )
            route_map[route.id] = route

        for chain in chain_map.values():
            for route_id in chain.supported_routes:
                if route_id not in route_map:
                    raise RegistryValidationError(
                        f"Chain {chain.chain_id} lists unknown route '{route_id}'"
                    )
                if route_map[route_id].source_chain_id != chain.chain_id:
                    raise RegistryValidationError(
                        f"Chain {chain.chain_id} lists route '{route_id}' "
                        "which does not originate on it"
                    )

        self._chains: Mapping[int, ChainDescriptor] = MappingProxyType(chain_map)
        self._routes: Mapping[str, BridgeRoute] = MappingProxyType(route_map)
        logger.debug(
            f"ChainRegistry built: {len(self._chains)} chains, {len(self._routes)} routes"
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChainRegistry":
        """Build a registry from a parsed chain document."""
        chains = [ChainDescriptor(**c) for c in data.get("chains", [])]
        routes = [BridgeRoute(**r) for r in data.get("routes", [])]
        return cls(chains, routes)

    @classmethod
    def from_file(cls, path: str | Path) -> "ChainRegistry":
        """Load a registry from a JSON chain document."""
        path = Path(path)
        logger.info(f"Loading chain registry from {path}")
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return cls.from_dict(data)

    @property
    def chains(self) -> Mapping[int, ChainDescriptor]:
        return self._chains

    @property
    def routes(self) -> Mapping[str, BridgeRoute]:
        return self._routes

    def get_chain(self, chain_id: int) -> ChainDescriptor:
        """Get a chain by ID.

        Raises:
            UnknownChainError: If the chain is not registered.
        """
        chain = self._chains.get(chain_id)
        if chain is None:
            raise UnknownChainError(chain_id)
        return chain

    def get_route(self, route_id: str) -> BridgeRoute | None:
        return self._routes.get(route_id)

    def list_chains(self) -> List[ChainDescriptor]:
        return sorted(self._chains.values(), key=lambda c: c.chain_id)

    def list_routes(self) -> List[BridgeRoute]:
        return sorted(self._routes.values(), key=lambda r: r.id)

    def routes_between(
        self, source_chain_id: int, destination_chain_id: int, token: str
    ) -> List[BridgeRoute]:
        """Routes supported by the source chain that carry ``token``.

        Results are ranked cheapest first, then fastest, then by route ID,
        so the first entry is a deterministic choice.
        """
        source = self.get_chain(source_chain_id)
        self.get_chain(destination_chain_id)

        candidates = [
            self._routes[route_id]
            for route_id in source.supported_routes
            if self._routes[route_id].carries(
                source_chain_id, destination_chain_id, token
            )
        ]
        return sorted(
            candidates,
            key=lambda r: (r.fee_bps, r.flat_fee, r.estimated_seconds, r.id),
        )
