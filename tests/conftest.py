"""
Shared fixtures for price cache tests.
"""
import pytest

from app.price_cache import PriceCacheConfig, build_price_coordinator
from tests.helpers import FakeClock, FakeQuoteClient


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    """Backoff delays requested by the direct lookup."""
    return []


@pytest.fixture
def client():
    return FakeQuoteClient(prices={("solana", "usd"): 142.50})


@pytest.fixture
def config():
    return PriceCacheConfig(ttl_seconds=180.0, max_attempts=3, backoff_base_seconds=1.0)


@pytest.fixture
def coordinator(config, client, clock, sleeps):
    return build_price_coordinator(config, client=client, clock=clock, sleep=sleeps.append)
