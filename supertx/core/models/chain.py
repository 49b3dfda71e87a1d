"""Chain and bridge route descriptors."""

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, model_validator


class FinalityKind(str, Enum):
    """How a chain decides a transaction is final."""

    CONFIRMATIONS = "confirmations"
    TIME = "time"


class FinalityPolicy(BaseModel):
    """Finality rule for a chain.

    Either a number of block confirmations or a number of seconds since
    inclusion. There is no default: every chain must state its own policy.
    """

    kind: FinalityKind
    confirmations: int | None = Field(
        default=None, ge=1, description="Required block confirmations"
    )
    seconds: float | None = Field(
        default=None, gt=0, description="Required seconds since inclusion"
    )

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_threshold(self) -> "FinalityPolicy":
        if self.kind == FinalityKind.CONFIRMATIONS and self.confirmations is None:
            raise ValueError("confirmation-based finality requires 'confirmations'")
        if self.kind == FinalityKind.TIME and self.seconds is None:
            raise ValueError("time-based finality requires 'seconds'")
        return self


class ChainDescriptor(BaseModel):
    """Static description of a participating chain."""

    chain_id: int = Field(..., description="Numeric chain identifier")
    name: str = Field(..., description="Human-readable chain name")
    finality: FinalityPolicy
    supported_routes: frozenset[str] = Field(
        default_factory=frozenset,
        description="Bridge route IDs that can originate on this chain",
    )
    fee_tokens: frozenset[str] = Field(
        default_factory=frozenset,
        description="Tokens accepted for fee payment on this chain",
    )
    gas_unit_cost: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Cost of one gas unit, expressed in fee-token units",
    )

    model_config = {"frozen": True}


class BridgeRoute(BaseModel):
    """A supported mechanism for moving a token from one chain to another."""

    id: str = Field(..., description="Unique route ID")
    provider: str = Field(..., description="Bridge provider name")
    source_chain_id: int
    destination_chain_id: int
    tokens: frozenset[str] = Field(..., description="Tokens this route carries")
    fee_bps: int = Field(default=0, ge=0, le=10_000)
    flat_fee: Decimal = Field(default=Decimal("0"), ge=0)
    estimated_seconds: float = Field(default=0.0, ge=0)

    model_config = {"frozen": True}

    def carries(self, source_chain_id: int, destination_chain_id: int, token: str) -> bool:
        """Whether this route moves ``token`` from source to destination."""
        return (
            self.source_chain_id == source_chain_id
            and self.destination_chain_id == destination_chain_id
            and token in self.tokens
        )

    def transfer_fee(self, amount: Decimal) -> Decimal:
        """Fee charged for moving ``amount`` over this route."""
        return self.flat_fee + amount * Decimal(self.fee_bps) / Decimal(10_000)
