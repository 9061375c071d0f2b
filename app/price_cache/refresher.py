"""
Background refresh of hot price keys.

Keeps frequently requested quotes warm so request handlers rarely wait on
an upstream call. Runs on a daemon thread for the lifetime of the app.
"""
import threading
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, Optional, Union

from .core import CacheKey, PriceQuote
from .coordinator import PriceCoordinator

logger = logging.getLogger("price_cache.refresher")


class BackgroundRefresher:
    """
    Force-refreshes a fixed set of keys every interval.

    A failing key is logged and skipped; it never aborts the cycle or the
    thread, and is retried on the next tick.
    """

    def __init__(
        self,
        coordinator: PriceCoordinator,
        hot_keys: Iterable[CacheKey],
        interval_seconds: float = 180.0,
        max_workers: int = 4,
    ):
        """
        Args:
            coordinator: Coordinator whose entry point is refreshed
            hot_keys: Keys to keep warm
            interval_seconds: Delay between cycles (normally the cache TTL)
            max_workers: Keys refreshed in parallel per cycle
        """
        self._coordinator = coordinator
        self._hot_keys = list(dict.fromkeys(hot_keys))
        self._interval = interval_seconds
        self._max_workers = max(1, max_workers)
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._cycles = 0

    @property
    def hot_keys(self):
        return list(self._hot_keys)

    @property
    def cycles(self) -> int:
        """Completed refresh cycles."""
        return self._cycles

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _refresh_key(self, key: CacheKey) -> Union[PriceQuote, Exception]:
        try:
            return self._coordinator.get_quote(key.asset, key.fiat, force_refresh=True)
        except Exception as e:
            logger.warning(f"Failed to update price for {key}: {e}")
            return e

    def refresh_all(self) -> Dict[CacheKey, Union[PriceQuote, Exception]]:
        """
        Refresh every hot key once.

        Returns:
            key -> refreshed quote, or the exception that key failed with
        """
        if not self._hot_keys:
            return {}

        logger.info(f"Updating price cache for {len(self._hot_keys)} keys...")
        workers = min(self._max_workers, len(self._hot_keys))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="price-refresh") as pool:
            outcomes = list(pool.map(self._refresh_key, self._hot_keys))

        results = dict(zip(self._hot_keys, outcomes))
        failed = sum(1 for outcome in outcomes if isinstance(outcome, Exception))
        self._cycles += 1
        logger.info(
            f"Price cache update complete ({len(outcomes) - failed} ok, {failed} failed)"
        )
        return results

    def _run(self) -> None:
        # First cycle runs immediately to prime the cache at startup
        while True:
            self.refresh_all()
            if self._stop_event.wait(self._interval):
                break

    def start(self) -> None:
        """Start the refresh thread (no-op if already running)."""
        if self.is_running:
            return
        self._stop_event.clear()
        logger.info(
            f"Starting price cache auto-update (every {self._interval:.0f}s) for: "
            f"{', '.join(str(k) for k in self._hot_keys)}"
        )
        self._thread = threading.Thread(
            target=self._run,
            name="price-refresher",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the refresh thread to exit and wait for it."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Price refresher did not stop within timeout")
            else:
                self._thread = None
                logger.info("Price cache auto-update stopped")
