"""Core layer - models, chain registry and runtime primitives.

The core layer has no dependency on planning or execution.
"""

from supertx.core.registry import ChainRegistry

__all__ = [
    "ChainRegistry",
]
