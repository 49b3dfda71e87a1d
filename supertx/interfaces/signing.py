"""Signature verification interface.

The concrete signature scheme belongs to the signing collaborator. The
engine only needs to know whether a signature is bound to a plan hash.
"""

from typing import Protocol

from supertx.core.models import PlanSignature


class SignatureVerifier(Protocol):
    """Checks that a signature authorizes exactly one plan hash."""

    def verify(self, plan_hash: str, signature: PlanSignature) -> bool:
        """Return True if ``signature`` is valid for ``plan_hash``."""
        ...
