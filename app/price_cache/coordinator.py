"""
Price cache orchestration: TTL reads, single-flight refresh, fallback chain.
"""
import threading
import logging
import time
from typing import Any, Callable, Dict, Optional

from .core import CacheKey, Clock, PriceCacheConfig, PriceQuote
from .coalescer import RequestCoalescer
from .coingecko import CoinGeckoClient
from .errors import ExhaustedError
from .sources import FetchResult, SourceChain, build_default_chain
from .store import CacheStore

logger = logging.getLogger("price_cache.coordinator")


class PriceCoordinator:
    """
    Single entry point for price reads, with:
    - Fresh hits served straight from the store
    - At most one upstream fetch per key; concurrent callers share it
    - Direct -> search -> stale fallback through the source chain
    - Hit/miss/coalescing stats for diagnostics

    The coordinator is the only writer of its store.
    """

    def __init__(
        self,
        chain: SourceChain,
        store: CacheStore,
        coalescer: Optional[RequestCoalescer] = None,
        default_fiat: str = "usd",
        client: Optional[Any] = None,
    ):
        """
        Args:
            chain: Strategies tried on a cache miss
            store: Cache store (shared with the chain's stale fallback)
            coalescer: Single-flight registry (created if omitted)
            default_fiat: Fiat used when a caller passes none
            client: Upstream client closed by close(), if it has a close method
        """
        self._chain = chain
        self._store = store
        self._coalescer = coalescer or RequestCoalescer()
        self._default_fiat = default_fiat
        self._client = client

        self._stats_lock = threading.Lock()
        self._stats = {
            "hits_fresh": 0,
            "misses": 0,
            "forced_refreshes": 0,
            "stale_served": 0,
            "exhausted": 0,
        }

    @property
    def store(self) -> CacheStore:
        return self._store

    def close(self) -> None:
        """Release the upstream client's connections."""
        close = getattr(self._client, "close", None)
        if close is not None:
            close()
            logger.info("Closed price upstream client")

    def _bump(self, stat: str) -> None:
        with self._stats_lock:
            self._stats[stat] += 1

    def get_price(
        self,
        asset: str,
        fiat: Optional[str] = None,
        force_refresh: bool = False,
    ) -> float:
        """
        Get the current price of asset in fiat.

        Raises:
            ExhaustedError: no fresh, fetched or stale value is available
        """
        return self.get_quote(asset, fiat, force_refresh).value

    def get_quote(
        self,
        asset: str,
        fiat: Optional[str] = None,
        force_refresh: bool = False,
    ) -> PriceQuote:
        """
        Same as get_price but returns the value with its source and timestamps.

        Args:
            asset: Ticker symbol or CoinGecko id ("sol", "solana", ...)
            fiat: Quote currency, defaults to the configured fiat
            force_refresh: Skip the fresh-entry check and go upstream

        Raises:
            ExhaustedError: no fresh, fetched or stale value is available
        """
        fiat = (fiat or "").strip() or self._default_fiat
        key = CacheKey(asset, fiat)

        if not force_refresh:
            entry = self._store.get(key)
            if entry is not None and self._store.is_fresh(entry):
                logger.debug(
                    f"CACHE HIT (fresh): {key} = {entry.value} "
                    f"[expires in {entry.expires_in_seconds(self._store.now()):.0f}s]"
                )
                self._bump("hits_fresh")
                return PriceQuote.from_entry(key, entry)
            logger.info(f"CACHE MISS: {key}")
            self._bump("misses")
        else:
            logger.info(f"FORCE REFRESH: {key}")
            self._bump("forced_refreshes")

        return self._coalescer.get_or_fetch(key, lambda: self._refresh(key))

    def _refresh(self, key: CacheKey) -> PriceQuote:
        """Run the source chain once; only called by the single-flight initiator."""
        try:
            result: FetchResult = self._chain.fetch(key)
        except ExhaustedError:
            self._bump("exhausted")
            raise

        if result.stale:
            # Stale values never touch the store, so expires_at is untouched
            self._bump("stale_served")
            return PriceQuote.from_entry(key, result.entry, stale=True)

        entry = self._store.put(key, result.value, result.source)
        logger.info(f"Got price for {key}: {entry.value} via {result.source.value}")
        return PriceQuote.from_entry(key, entry)

    def get_cache_info(self) -> Dict[str, Dict[str, Any]]:
        """Per-key diagnostics: value, age, time to expiry and source."""
        now = self._store.now()
        return {
            str(key): {
                "value": entry.value,
                "age_seconds": round(entry.age_seconds(now)),
                "expires_in_seconds": round(entry.expires_in_seconds(now)),
                "source": entry.source.value,
            }
            for key, entry in sorted(self._store.snapshot().items(), key=lambda kv: str(kv[0]))
        }

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._stats_lock:
            stats = dict(self._stats)
        lookups = stats["hits_fresh"] + stats["misses"]
        hit_rate = (stats["hits_fresh"] / lookups * 100) if lookups > 0 else 0
        stats.update({
            "entries": len(self._store),
            "hit_rate_percent": round(hit_rate, 1),
            "sources": self._chain.source_names,
            "coalescer": self._coalescer.get_stats(),
        })
        return stats


def build_price_coordinator(
    config: PriceCacheConfig,
    client: Optional[Any] = None,
    base_url: Optional[str] = None,
    api_key: Optional[str] = None,
    default_fiat: str = "usd",
    clock: Clock = time.time,
    sleep: Callable[[float], None] = time.sleep,
) -> PriceCoordinator:
    """
    Wire a store, the default direct -> search -> stale chain and a
    coordinator together.

    Args:
        config: TTL, retry and timeout settings
        client: Upstream client; a CoinGeckoClient is created if omitted
        base_url: CoinGecko API root for the created client
        api_key: CoinGecko demo key for the created client
    """
    if client is None:
        client_kwargs: Dict[str, Any] = {
            "timeout": config.request_timeout_seconds,
            "api_key": api_key,
        }
        if base_url:
            client_kwargs["base_url"] = base_url
        client = CoinGeckoClient(**client_kwargs)

    store = CacheStore(ttl_seconds=config.ttl_seconds, clock=clock)
    chain = build_default_chain(
        client,
        store,
        max_attempts=config.max_attempts,
        backoff_base_seconds=config.backoff_base_seconds,
        sleep=sleep,
    )
    return PriceCoordinator(
        chain,
        store,
        coalescer=RequestCoalescer(clock=clock),
        default_fiat=default_fiat,
        client=client,
    )
