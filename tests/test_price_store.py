"""
Tests for cache keys and the TTL store.
"""
import math

import pytest

from app.price_cache import CacheKey, CacheStore, InvalidValueError, QuoteSource


# =============================================================================
# CacheKey
# =============================================================================

def test_key_is_case_and_whitespace_normalized():
    assert CacheKey("SOL", " USD ") == CacheKey("sol", "usd")
    assert hash(CacheKey("Btc", "Eur")) == hash(CacheKey("btc", "eur"))


def test_key_defaults_to_usd():
    assert CacheKey("eth").fiat == "usd"


def test_key_parse():
    assert CacheKey.parse("BTC/EUR") == CacheKey("btc", "eur")
    assert CacheKey.parse("solana") == CacheKey("solana", "usd")
    assert CacheKey.parse("solana", default_fiat="gbp") == CacheKey("solana", "gbp")
    assert str(CacheKey("SOL", "USD")) == "sol/usd"


@pytest.mark.parametrize("asset,fiat", [("", "usd"), ("  ", "usd"), ("sol", "")])
def test_key_rejects_empty_parts(asset, fiat):
    with pytest.raises(ValueError):
        CacheKey(asset, fiat)


# =============================================================================
# CacheStore
# =============================================================================

@pytest.fixture
def store(clock):
    return CacheStore(ttl_seconds=180.0, clock=clock)


def test_get_missing_key_returns_none(store):
    assert store.get(CacheKey("sol")) is None
    assert CacheKey("sol") not in store
    assert len(store) == 0


def test_put_stamps_ttl_from_now(store, clock):
    entry = store.put(CacheKey("sol"), 142.5, QuoteSource.DIRECT)

    assert entry.value == 142.5
    assert entry.fetched_at == clock.now
    assert entry.expires_at == entry.fetched_at + 180.0
    assert entry.source is QuoteSource.DIRECT
    assert store.get(CacheKey("SOL", "USD")) is entry


def test_freshness_ends_exactly_at_expiry(store, clock):
    entry = store.put(CacheKey("sol"), 142.5, QuoteSource.DIRECT)

    clock.advance(179.9)
    assert store.is_fresh(entry)

    clock.advance(0.1)
    assert clock.now == entry.expires_at
    assert not store.is_fresh(entry)

    clock.advance(600)
    assert not store.is_fresh(entry)


def test_put_replaces_whole_entry(store, clock):
    key = CacheKey("sol")
    first = store.put(key, 140.0, QuoteSource.DIRECT)
    clock.advance(200)
    second = store.put(key, 150.0, QuoteSource.SEARCH)

    assert store.get(key) is second
    assert second.expires_at == clock.now + 180.0
    # The previous entry object is untouched
    assert first.value == 140.0
    assert first.source is QuoteSource.DIRECT
    assert len(store) == 1


@pytest.mark.parametrize("value", [0, -1.5, math.nan, math.inf, True, "142.5", None])
def test_put_rejects_invalid_values(store, value):
    with pytest.raises(InvalidValueError):
        store.put(CacheKey("sol"), value, QuoteSource.DIRECT)
    assert store.get(CacheKey("sol")) is None


def test_snapshot_is_a_copy(store):
    store.put(CacheKey("sol"), 142.5, QuoteSource.DIRECT)
    snapshot = store.snapshot()
    store.put(CacheKey("btc"), 65000.0, QuoteSource.DIRECT)

    assert list(snapshot) == [CacheKey("sol")]
    assert len(store) == 2
