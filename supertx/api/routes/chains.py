"""Chains router - registered chains and bridge routes."""

import logging

from fastapi import APIRouter, Depends

from supertx.api.dependencies import get_registry
from supertx.api.schemas import ChainsResponse
from supertx.core.registry import ChainRegistry

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=ChainsResponse)
async def list_chains(
    registry: ChainRegistry = Depends(get_registry),
) -> ChainsResponse:
    """List registered chains and the bridge routes between them."""
    return ChainsResponse(chains=registry.list_chains(), routes=registry.list_routes())
