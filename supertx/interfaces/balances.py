"""Balance-query interface used by the Dependency Resolver."""

from decimal import Decimal
from typing import Protocol


class BalanceService(Protocol):
    """Reads current holdings of an owner per chain and token.

    The resolver only calls this for chains that appear in the Instruction
    Set, so implementations may be backed by RPC calls or an indexer.
    """

    async def get_balance(self, owner: str, chain_id: int, token: str) -> Decimal:
        """Return the owner's spendable balance of ``token`` on ``chain_id``.

        Args:
            owner: Account the Instruction Set executes for.
            chain_id: Chain to query.
            token: Token identifier.

        Returns:
            Balance in token units; ``Decimal(0)`` when nothing is held.
        """
        ...
