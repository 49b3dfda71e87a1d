"""Pytest fixtures for API tests."""

import pytest
from fastapi.testclient import TestClient

from supertx.api import dependencies
from supertx.api.main import create_app
from supertx.config import set_settings
from supertx.execution import InMemoryRunStorage


@pytest.fixture
def client(chain_registry, balances, dispatcher, bridge, fast_settings):
    """Create a test client wired to the in-memory fakes."""
    set_settings(fast_settings)
    dependencies.configure_services(
        registry=chain_registry,
        balances=balances,
        dispatchers={chain_id: dispatcher for chain_id in chain_registry.chains},
        bridges={route_id: bridge for route_id in chain_registry.routes},
        storage=InMemoryRunStorage(),
    )
    app = create_app()

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def quote_request():
    """Optimism output consumed on Base."""
    target = "0x" + "ab" * 20
    return {
        "owner": "0x" + "11" * 20,
        "instructions": [
            {
                "id": "a",
                "chain_id": 10,
                "calls": [{"to": target, "gas_limit": 100000}],
                "produces": [{"token": "USDC", "amount": "100"}],
            },
            {
                "id": "b",
                "chain_id": 8453,
                "calls": [{"to": target, "gas_limit": 100000}],
                "requires": [{"token": "USDC", "amount": "100"}],
            },
        ],
        "fee": {"chain_id": 10, "token": "USDC"},
    }
