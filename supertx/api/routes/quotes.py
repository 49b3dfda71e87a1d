"""Quotes router - resolve, plan and price an Instruction Set."""

import logging

from cachetools import TTLCache
from fastapi import APIRouter, Depends, HTTPException, status

from supertx.api.dependencies import (
    get_balances,
    get_estimator,
    get_quote_cache,
    get_registry,
)
from supertx.api.schemas import QuoteRequest, QuoteResponse
from supertx.config import get_settings
from supertx.core.models import Quote
from supertx.core.registry import ChainRegistry
from supertx.interfaces import BalanceService
from supertx.planning import plan_supertransaction

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=QuoteResponse, status_code=status.HTTP_201_CREATED)
async def create_quote(
    request: QuoteRequest,
    registry: ChainRegistry = Depends(get_registry),
    balances: BalanceService = Depends(get_balances),
    quotes: TTLCache[str, Quote] = Depends(get_quote_cache),
) -> QuoteResponse:
    """Build a quote for signing.

    Resolution and planning failures are mapped to 422 by the app's
    exception handlers.
    """
    logger.info(
        f"Quote request: owner={request.owner}, instructions={len(request.instructions)}"
    )
    quote = await plan_supertransaction(
        request.instructions,
        request.owner,
        request.fee,
        registry,
        balances,
        estimator=get_estimator(),
        settings=get_settings(),
    )
    quotes[quote.plan_hash] = quote
    logger.info(f"Quote created: {quote.plan_hash} ({len(quote.plan.nodes)} nodes)")
    return QuoteResponse.from_quote(quote)


@router.get("/{plan_hash}", response_model=QuoteResponse)
async def get_quote(
    plan_hash: str,
    quotes: TTLCache[str, Quote] = Depends(get_quote_cache),
) -> QuoteResponse:
    """Get a cached quote by plan hash."""
    quote = quotes.get(plan_hash)
    if quote is None:
        raise HTTPException(
            status_code=404, detail=f"Quote '{plan_hash}' not found or expired"
        )
    return QuoteResponse.from_quote(quote)
