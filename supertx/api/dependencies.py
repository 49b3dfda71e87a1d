"""FastAPI dependencies.

Wires the planning and execution layers as process-wide singletons:
- ChainRegistry (loaded from the configured chains file)
- BalanceService, chain dispatchers and bridge providers (injected)
- RunStorageBackend (MongoDB when configured, otherwise in-memory)
- StatusMonitor and ExecutionCoordinator
- Quote cache
"""

import logging
from typing import Mapping, Optional

from cachetools import TTLCache

from supertx.config import get_settings
from supertx.core.models import Quote
from supertx.core.registry import ChainRegistry
from supertx.core.runtime.stream import LoggingStream
from supertx.execution import ExecutionCoordinator, InMemoryRunStorage, StatusMonitor
from supertx.interfaces import (
    BalanceService,
    BridgeProvider,
    ChainDispatcher,
    RunStorageBackend,
    SignatureVerifier,
)
from supertx.planning import CostEstimator, StaticBalanceService

logger = logging.getLogger(__name__)

# Global singletons
_registry: Optional[ChainRegistry] = None
_balances: Optional[BalanceService] = None
_estimator: Optional[CostEstimator] = None
_verifier: Optional[SignatureVerifier] = None
_dispatchers: dict[int, ChainDispatcher] = {}
_bridges: dict[str, BridgeProvider] = {}
_storage: Optional[RunStorageBackend] = None
_monitor: Optional[StatusMonitor] = None
_coordinator: Optional[ExecutionCoordinator] = None

# Quote cache (TTLCache drops quotes once they can no longer be signed)
_quotes: Optional[TTLCache[str, Quote]] = None


def configure_services(
    registry: Optional[ChainRegistry] = None,
    balances: Optional[BalanceService] = None,
    dispatchers: Optional[Mapping[int, ChainDispatcher]] = None,
    bridges: Optional[Mapping[str, BridgeProvider]] = None,
    verifier: Optional[SignatureVerifier] = None,
    storage: Optional[RunStorageBackend] = None,
    estimator: Optional[CostEstimator] = None,
) -> None:
    """Inject collaborators before the first request.

    Arguments left as None keep their current value. The coordinator is
    rebuilt on next use so it picks up the new collaborators.
    """
    global _registry, _balances, _dispatchers, _bridges, _verifier
    global _storage, _estimator, _monitor, _coordinator

    if registry is not None:
        _registry = registry
    if balances is not None:
        _balances = balances
    if dispatchers is not None:
        _dispatchers = dict(dispatchers)
    if bridges is not None:
        _bridges = dict(bridges)
    if verifier is not None:
        _verifier = verifier
    if storage is not None:
        _storage = storage
        _monitor = None
    if estimator is not None:
        _estimator = estimator

    _coordinator = None
    logger.info(
        f"Services configured: dispatchers={sorted(_dispatchers)}, bridges={sorted(_bridges)}"
    )


def get_registry() -> ChainRegistry:
    """Get the ChainRegistry singleton.

    Loaded from ``SUPERTX_CHAINS_FILE``; empty when no file is configured.
    """
    global _registry
    if _registry is None:
        settings = get_settings()
        if settings.chains_file:
            _registry = ChainRegistry.from_file(settings.chains_file)
        else:
            logger.warning("No chains file configured; chain registry is empty")
            _registry = ChainRegistry([])
        logger.info(f"Registry initialized: {len(_registry.chains)} chains")
    return _registry


def get_balances() -> BalanceService:
    global _balances
    if _balances is None:
        _balances = StaticBalanceService()
    return _balances


def get_estimator() -> Optional[CostEstimator]:
    return _estimator


def get_quote_cache() -> TTLCache[str, Quote]:
    """Get the quote cache, sized and timed from settings."""
    global _quotes
    if _quotes is None:
        settings = get_settings()
        _quotes = TTLCache(
            maxsize=settings.quote_cache_size, ttl=settings.quote_ttl_seconds
        )
    return _quotes


async def get_storage() -> RunStorageBackend:
    """Get the run storage singleton, started on first use."""
    global _storage
    if _storage is None:
        settings = get_settings()
        if settings.mongo_uri:
            from supertx.mongodb import MongoDBRunStorage

            logger.debug(f"Initializing MongoDBRunStorage with db={settings.mongo_db}")
            _storage = MongoDBRunStorage(
                settings.mongo_uri,
                settings.mongo_db,
                runs_collection=settings.runs_collection,
            )
        else:
            _storage = InMemoryRunStorage()
        await _storage.startup()
        logger.info(f"Run storage initialized: {type(_storage).__name__}")
    return _storage


async def get_monitor() -> StatusMonitor:
    global _monitor
    if _monitor is None:
        storage = await get_storage()
        _monitor = StatusMonitor(storage, sink=LoggingStream())
    return _monitor


async def get_coordinator() -> ExecutionCoordinator:
    """Get the ExecutionCoordinator singleton."""
    global _coordinator
    if _coordinator is None:
        logger.debug("Initializing ExecutionCoordinator...")
        monitor = await get_monitor()
        _coordinator = ExecutionCoordinator(
            registry=get_registry(),
            dispatchers=_dispatchers,
            bridges=_bridges,
            verifier=_verifier,
            storage=monitor.storage,
            monitor=monitor,
            settings=get_settings(),
        )
        logger.info("ExecutionCoordinator initialized")
    return _coordinator


async def cleanup() -> None:
    """Release resources on shutdown."""
    global _registry, _balances, _estimator, _verifier, _dispatchers, _bridges
    global _storage, _monitor, _coordinator, _quotes

    logger.debug("Starting cleanup of global resources...")

    if _storage is not None:
        await _storage.shutdown()
        logger.debug("Run storage shutdown complete")

    quote_count = len(_quotes) if _quotes is not None else 0

    _registry = None
    _balances = None
    _estimator = None
    _verifier = None
    _dispatchers = {}
    _bridges = {}
    _storage = None
    _monitor = None
    _coordinator = None
    _quotes = None
    logger.info(f"Cleanup complete: cleared {quote_count} quotes")
