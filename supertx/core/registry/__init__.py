"""Chain Registry - read-only chain and bridge route lookup."""

from supertx.core.registry.chain_registry import ChainRegistry, RegistryValidationError

__all__ = [
    "ChainRegistry",
    "RegistryValidationError",
]
