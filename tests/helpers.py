"""
Test doubles: a controllable clock and an in-memory CoinGecko stand-in.
"""
import threading
import time

from app.price_cache.errors import TransientUpstreamError


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeQuoteClient:
    """
    Scripted upstream.

    prices maps (coin_id, fiat) to a value, an exception, or a list of
    those consumed one per call (the last one repeats).
    """

    def __init__(self, prices=None, search_results=None, delay: float = 0.0):
        self.prices = dict(prices or {})
        self.search_results = dict(search_results or {})
        self.delay = delay
        self.price_calls = []
        self.search_calls = []
        self.closed = False
        self._lock = threading.Lock()

    @staticmethod
    def _next(outcomes):
        if isinstance(outcomes, list):
            return outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        return outcomes

    def simple_price(self, coin_id, fiat):
        with self._lock:
            self.price_calls.append((coin_id, fiat))
            outcome = self._next(self.prices.get((coin_id, fiat)))
        if self.delay:
            time.sleep(self.delay)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def search(self, query):
        with self._lock:
            self.search_calls.append(query)
            outcome = self.search_results.get(query, [])
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self):
        self.closed = True


def upstream_down():
    return TransientUpstreamError("CoinGecko returned status 503", status_code=503)


def wait_until(predicate, timeout: float = 5.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()

