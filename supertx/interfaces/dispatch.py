"""Dispatch interfaces used by the Execution Coordinator.

One ChainDispatcher is registered per chain ID and one BridgeProvider per
bridge route ID. Both are polled for progress; neither is expected to block
until finality.
"""

from datetime import datetime
from typing import Literal, Protocol

from pydantic import BaseModel, Field

from supertx.core.models import BridgeStep, Instruction


class TransactionReceipt(BaseModel):
    """Acknowledgement that a chain accepted an Instruction's calls."""

    tx_hash: str


class TransactionStatus(BaseModel):
    """Inclusion and confirmation progress of a submitted transaction."""

    included: bool = False
    confirmations: int = Field(default=0, ge=0)
    included_at: datetime | None = None
    reverted: bool = False


class BridgeTransfer(BaseModel):
    """Acknowledgement that a bridge provider accepted a transfer."""

    transfer_id: str
    tx_hash: str | None = None


class SettlementStatus(BaseModel):
    """Settlement progress reported by a bridge provider."""

    state: Literal["pending", "settled", "failed"] = "pending"
    detail: str | None = None


class ChainDispatcher(Protocol):
    """Submits Instructions to a chain and reports their progress."""

    async def submit(
        self, chain_id: int, instruction: Instruction, plan_hash: str
    ) -> TransactionReceipt:
        """Dispatch the Instruction's calls.

        Raises:
            DispatchRejectedError: If the chain or relayer refuses the calls.
        """
        ...

    async def get_status(self, chain_id: int, tx_hash: str) -> TransactionStatus:
        """Return inclusion and confirmation progress for ``tx_hash``."""
        ...


class BridgeProvider(Protocol):
    """Initiates transfers over one bridge route and reports settlement."""

    async def initiate(self, step: BridgeStep, plan_hash: str) -> BridgeTransfer:
        """Start moving ``step.amount`` of ``step.token``.

        Raises:
            DispatchRejectedError: If the provider refuses the transfer.
        """
        ...

    async def get_settlement(self, route_id: str, transfer_id: str) -> SettlementStatus:
        """Return the settlement state of a transfer."""
        ...
