"""In-memory BalanceService implementation."""

from decimal import Decimal
from typing import Dict, Tuple


class StaticBalanceService:
    """Balance service backed by a fixed table.

    Useful for tests, dry-run quoting, and callers that already hold a
    balance snapshot from their own indexer.
    """

    def __init__(self, balances: Dict[Tuple[str, int, str], Decimal] | None = None) -> None:
        """Initialize with an optional ``(owner, chain_id, token) -> amount`` table."""
        self._balances: Dict[Tuple[str, int, str], Decimal] = {}
        for (owner, chain_id, token), amount in (balances or {}).items():
            self.set_balance(owner, chain_id, token, amount)

    def set_balance(self, owner: str, chain_id: int, token: str, amount: Decimal) -> None:
        self._balances[(owner.lower(), chain_id, token)] = Decimal(amount)

    async def get_balance(self, owner: str, chain_id: int, token: str) -> Decimal:
        return self._balances.get((owner.lower(), chain_id, token), Decimal("0"))
