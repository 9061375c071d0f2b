"""
Quote strategies and the ordered chain that tries them.

Each strategy either produces a valid price for a key or raises a
SourceError. The chain tries them in priority order and raises
ExhaustedError only when every one has failed.
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from .core import CacheEntry, CacheKey, QuoteSource, is_valid_price
from .coingecko import resolve_coin_id
from .errors import (
    ExhaustedError,
    InvalidValueError,
    NoStaleValueError,
    SourceError,
    TransientUpstreamError,
    UnresolvedSymbolError,
)
from .store import CacheStore

logger = logging.getLogger("price_cache.sources")


class QuoteClient(Protocol):
    """Upstream endpoints used by the strategies (see CoinGeckoClient)."""

    def simple_price(self, coin_id: str, fiat: str) -> Optional[Any]:
        ...

    def search(self, query: str) -> List[Dict[str, Any]]:
        ...


@dataclass(frozen=True)
class FetchResult:
    """A price produced by one strategy."""
    value: float
    source: QuoteSource
    entry: Optional[CacheEntry] = None  # Set when served from the store

    @property
    def stale(self) -> bool:
        return self.source is QuoteSource.STALE


class PriceSource(Protocol):
    """
    One way of obtaining a quote.

    Implementations:
    - DirectLookupSource: synonym table + /simple/price, with retries
    - SearchLookupSource: /search, then one /simple/price call
    - StaleFallbackSource: last stored value, however old
    """

    name: str

    def fetch(self, key: CacheKey) -> FetchResult:
        """Return a valid price for key or raise SourceError."""
        ...


def _checked_price(raw: Any, coin_id: str, key: CacheKey) -> float:
    if raw is None:
        raise UnresolvedSymbolError(f"CoinGecko has no {key.fiat} price for '{coin_id}'")
    if not is_valid_price(raw):
        raise InvalidValueError(f"CoinGecko returned invalid price {raw!r} for '{coin_id}'")
    return float(raw)


class DirectLookupSource:
    """
    Quote by canonical coin id, retried on transient upstream failures.

    Attempt n (1-based) that fails transiently is followed by a sleep of
    n * backoff_base_seconds, except after the last attempt where the error
    is raised. Unknown ids and invalid values are not retried.
    """

    name = "direct"

    def __init__(
        self,
        client: QuoteClient,
        max_attempts: int = 3,
        backoff_base_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._client = client
        self._max_attempts = max(1, max_attempts)
        self._backoff_base = backoff_base_seconds
        self._sleep = sleep

    def fetch(self, key: CacheKey) -> FetchResult:
        coin_id = resolve_coin_id(key.asset)
        attempt = 1
        while True:
            logger.info(
                f"[Attempt {attempt}/{self._max_attempts}] Fetching {coin_id}/{key.fiat} from CoinGecko"
            )
            try:
                raw = self._client.simple_price(coin_id, key.fiat)
            except TransientUpstreamError as e:
                if attempt >= self._max_attempts:
                    raise
                delay = attempt * self._backoff_base
                logger.warning(
                    f"CoinGecko attempt {attempt}/{self._max_attempts} for {key} failed: {e} "
                    f"(retrying in {delay:.1f}s)"
                )
                self._sleep(delay)
                attempt += 1
                continue

            return FetchResult(_checked_price(raw, coin_id, key), QuoteSource.DIRECT)


class SearchLookupSource:
    """
    Resolve the symbol through /search, then quote the first candidate once.
    """

    name = "search"

    def __init__(self, client: QuoteClient):
        self._client = client

    def fetch(self, key: CacheKey) -> FetchResult:
        logger.info(f"Searching CoinGecko for '{key.asset}'")
        candidates = self._client.search(key.asset)
        if not candidates:
            raise UnresolvedSymbolError(f"CoinGecko search found nothing for '{key.asset}'")

        found_id = candidates[0]["id"]
        raw = self._client.simple_price(found_id, key.fiat)
        value = _checked_price(raw, found_id, key)
        logger.info(f"Resolved '{key.asset}' to '{found_id}' via search")
        return FetchResult(value, QuoteSource.SEARCH)


class StaleFallbackSource:
    """
    Serve the last stored value for the key, regardless of its age.
    """

    name = "stale"

    def __init__(self, store: CacheStore):
        self._store = store

    def fetch(self, key: CacheKey) -> FetchResult:
        entry = self._store.get(key)
        if entry is None:
            raise NoStaleValueError(f"No previous price stored for {key}")

        age_minutes = entry.age_seconds(self._store.now()) / 60
        logger.warning(
            f"Using stale cached price for {key}: {entry.value} ({age_minutes:.0f} minutes old)"
        )
        return FetchResult(entry.value, QuoteSource.STALE, entry=entry)


class SourceChain:
    """
    Tries strategies in fixed priority order until one yields a price.
    """

    def __init__(self, sources: Sequence[PriceSource]):
        if not sources:
            raise ValueError("SourceChain needs at least one source")
        self._sources = list(sources)

    @property
    def source_names(self) -> List[str]:
        return [source.name for source in self._sources]

    def fetch(self, key: CacheKey) -> FetchResult:
        """
        Raises:
            ExhaustedError: every strategy failed
        """
        failures: List[Tuple[str, SourceError]] = []
        for source in self._sources:
            try:
                return source.fetch(key)
            except SourceError as e:
                logger.warning(f"Source '{source.name}' failed for {key}: {e}")
                failures.append((source.name, e))

        logger.error(f"All price sources exhausted for {key}")
        raise ExhaustedError(key, failures)


def build_default_chain(
    client: QuoteClient,
    store: CacheStore,
    max_attempts: int = 3,
    backoff_base_seconds: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> SourceChain:
    """direct -> search -> stale."""
    return SourceChain([
        DirectLookupSource(client, max_attempts, backoff_base_seconds, sleep=sleep),
        SearchLookupSource(client),
        StaleFallbackSource(store),
    ])
