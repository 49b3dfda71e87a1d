"""Request and response schemas for API endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field

from supertx.core.models import (
    BridgeRoute,
    ChainDescriptor,
    ExecutionPlan,
    FeeSpec,
    Instruction,
    Quote,
    QuoteSummary,
)

# =============================================================================
# Request Schemas
# =============================================================================


class QuoteRequest(BaseModel):
    """Request schema for quoting an Instruction Set."""

    owner: str = Field(..., description="Account whose balances fund the plan")
    instructions: list[Instruction] = Field(..., min_length=1)
    fee: FeeSpec


class RunCreate(BaseModel):
    """Request schema for submitting a signed quote."""

    plan_hash: str
    signature: str
    signer: str | None = None


# =============================================================================
# Response Schemas
# =============================================================================


class ChainsResponse(BaseModel):
    """Registered chains and bridge routes."""

    chains: list[ChainDescriptor]
    routes: list[BridgeRoute]


class QuoteResponse(BaseModel):
    """A quote ready for signing."""

    plan_hash: str
    plan: ExecutionPlan
    summary: QuoteSummary
    created_at: datetime
    expires_at: datetime

    @classmethod
    def from_quote(cls, quote: Quote) -> "QuoteResponse":
        return cls(
            plan_hash=quote.plan_hash,
            plan=quote.plan,
            summary=quote.summary,
            created_at=quote.created_at,
            expires_at=quote.expires_at,
        )


class CancelResponse(BaseModel):
    """Response schema for a cancellation."""

    run_id: str
    status: str
    message: str
