"""
Request coalescing to prevent duplicate upstream price calls.

When multiple concurrent requests ask for the same quote, only one
upstream fetch runs and every requester shares its outcome.
"""
import threading
import time
import logging
from concurrent.futures import Future
from typing import Dict, Callable, Any, Hashable
from dataclasses import dataclass, field

logger = logging.getLogger("price_cache.coalescer")


@dataclass
class InFlightRequest:
    """Tracks an in-progress upstream fetch."""
    future: Future = field(default_factory=Future)
    started_at: float = field(default_factory=time.time)
    waiter_count: int = 0


class RequestCoalescer:
    """
    Ensures concurrent requests for the same key share one upstream fetch.

    Pattern:
    - First request for a key registers it and runs the fetch
    - Later requests for the same key block on the shared Future
    - When the fetch finishes the key is released, then the Future is
      resolved once with the value or the exception
    - The next request after that starts a new fetch

    Usage:
        coalescer = RequestCoalescer()
        price = coalescer.get_or_fetch(
            key=CacheKey("sol", "usd"),
            fetch_fn=lambda: chain.fetch(key),
        )
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._in_flight: Dict[Hashable, InFlightRequest] = {}
        self._lock = threading.Lock()
        self._coalesced_total = 0

    def get_or_fetch(self, key: Hashable, fetch_fn: Callable[[], Any]) -> Any:
        """
        Either join an existing in-flight fetch or initiate a new one.

        Args:
            key: Identifies the upstream request
            fetch_fn: Called by the initiating thread only

        Returns:
            The fetched value (shared among all concurrent callers)

        Raises:
            Exception: Any error from fetch_fn, re-raised in every caller
        """
        with self._lock:
            in_flight = self._in_flight.get(key)
            if in_flight is not None:
                in_flight.waiter_count += 1
                self._coalesced_total += 1
                is_initiator = False
                logger.debug(
                    f"Coalescing request for {key} "
                    f"(waiters: {in_flight.waiter_count})"
                )
            else:
                in_flight = InFlightRequest(started_at=self._clock())
                self._in_flight[key] = in_flight
                is_initiator = True
                logger.debug(f"Initiating fetch for {key}")

        if not is_initiator:
            # Upstream calls are individually time-bounded, so this returns
            return in_flight.future.result()

        try:
            result = fetch_fn()
        except BaseException as e:
            self._release(key, in_flight)
            in_flight.future.set_exception(e)
            if in_flight.waiter_count:
                logger.warning(
                    f"Fetch failed for {key}, failing {in_flight.waiter_count} waiter(s): {e}"
                )
            raise

        self._release(key, in_flight)
        in_flight.future.set_result(result)
        return result

    def _release(self, key: Hashable, in_flight: InFlightRequest) -> None:
        with self._lock:
            if self._in_flight.get(key) is in_flight:
                del self._in_flight[key]

    def is_in_flight(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._in_flight

    @property
    def active_requests(self) -> int:
        """Number of currently in-flight requests."""
        with self._lock:
            return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        """Get coalescer statistics."""
        now = self._clock()
        with self._lock:
            return {
                "active_requests": len(self._in_flight),
                "active_keys": [str(k) for k in self._in_flight],
                "in_flight_age_seconds": {
                    str(k): round(now - req.started_at, 3)
                    for k, req in self._in_flight.items()
                },
                "coalesced_total": self._coalesced_total,
            }
