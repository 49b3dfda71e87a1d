"""Instruction models - the user-declared per-chain operations."""

import re
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

_HEX_PATTERN = re.compile(r"^0x[0-9a-fA-F]*$")


class Call(BaseModel):
    """A single contract call inside an Instruction."""

    to: str = Field(..., description="Target contract address")
    data: str = Field(default="0x", description="Hex-encoded call payload")
    gas_limit: int = Field(..., gt=0, description="Gas ceiling for this call")
    value: int = Field(default=0, ge=0, description="Native value to transfer")

    model_config = {"frozen": True}

    @field_validator("to", "data")
    @classmethod
    def _check_hex(cls, value: str) -> str:
        if not _HEX_PATTERN.match(value):
            raise ValueError(f"'{value}' is not a 0x-prefixed hex string")
        return value.lower()


class ResourceRequirement(BaseModel):
    """Input an Instruction needs on its own chain before it can run."""

    token: str = Field(..., description="Token identifier, e.g. 'USDC'")
    amount: Decimal = Field(..., gt=0, description="Minimum amount required")
    producer_id: str | None = Field(
        default=None,
        description="Pin the Instruction that must supply this resource. "
        "When unset, the resolver searches balances and prior Instructions.",
    )

    model_config = {"frozen": True}


class ResourceOutput(BaseModel):
    """Resource an Instruction leaves on its own chain once confirmed."""

    token: str
    amount: Decimal = Field(..., gt=0)

    model_config = {"frozen": True}


class Instruction(BaseModel):
    """Ordered calls bound to one chain, with declared inputs and outputs."""

    id: str = Field(..., min_length=1, description="Unique instruction ID")
    chain_id: int = Field(..., description="Chain the calls execute on")
    calls: tuple[Call, ...] = Field(..., min_length=1)
    requires: tuple[ResourceRequirement, ...] = Field(default_factory=tuple)
    produces: tuple[ResourceOutput, ...] = Field(default_factory=tuple)

    model_config = {"frozen": True}

    @property
    def total_gas(self) -> int:
        """Sum of the gas ceilings of every call."""
        return sum(call.gas_limit for call in self.calls)

    def output_of(self, token: str) -> Decimal:
        """Total amount of ``token`` this instruction produces."""
        return sum(
            (output.amount for output in self.produces if output.token == token),
            Decimal("0"),
        )
