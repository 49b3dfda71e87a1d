"""Default signature verification."""

from supertx.core.models import PlanSignature


class HashBindingVerifier:
    """Accepts any non-empty signature that names the exact plan hash.

    The cryptographic check belongs to the signing collaborator; swap in a
    scheme-specific SignatureVerifier to verify the signature bytes too.
    """

    def verify(self, plan_hash: str, signature: PlanSignature) -> bool:
        if not signature.signature.strip():
            return False
        return signature.plan_hash.lower() == plan_hash.lower()
