"""
Tests for the background refresher.
"""
from app.price_cache import BackgroundRefresher, CacheKey, ExhaustedError, PriceQuote
from tests.helpers import wait_until


SOL = CacheKey("sol", "usd")
BOGUS = CacheKey("no-such-coin", "usd")


def test_refresh_all_isolates_failing_keys(coordinator, client):
    refresher = BackgroundRefresher(coordinator, [BOGUS, SOL])

    results = refresher.refresh_all()

    assert isinstance(results[BOGUS], ExhaustedError)
    assert isinstance(results[SOL], PriceQuote)
    assert results[SOL].value == 142.50
    assert refresher.cycles == 1
    assert coordinator.store.get(SOL) is not None


def test_refresh_all_forces_upstream_call_for_fresh_keys(coordinator, client):
    coordinator.get_price("sol")
    refresher = BackgroundRefresher(coordinator, [SOL])

    refresher.refresh_all()

    assert len(client.price_calls) == 2


def test_refresh_all_without_keys(coordinator):
    refresher = BackgroundRefresher(coordinator, [])
    assert refresher.refresh_all() == {}
    assert refresher.cycles == 0


def test_duplicate_hot_keys_are_refreshed_once(coordinator, client):
    refresher = BackgroundRefresher(coordinator, [SOL, CacheKey("SOL", "USD")])
    refresher.refresh_all()
    assert refresher.hot_keys == [SOL]
    assert len(client.price_calls) == 1


def test_start_primes_cache_and_stop_joins(coordinator, client):
    refresher = BackgroundRefresher(coordinator, [SOL], interval_seconds=3600)

    refresher.start()
    try:
        assert wait_until(lambda: refresher.cycles >= 1)
        assert refresher.is_running
        refresher.start()  # already running
    finally:
        refresher.stop(timeout=5)

    assert not refresher.is_running
    assert coordinator.store.get(SOL).value == 142.50
    assert len(client.price_calls) == 1


def test_thread_survives_failing_cycles(coordinator, client):
    refresher = BackgroundRefresher(coordinator, [BOGUS], interval_seconds=0.01)

    refresher.start()
    try:
        assert wait_until(lambda: refresher.cycles >= 3)
        assert refresher.is_running
    finally:
        refresher.stop(timeout=5)
