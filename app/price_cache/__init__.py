"""
Price cache with TTL, request coalescing and multi-source fallback.
"""
from .core import CacheEntry, CacheKey, PriceCacheConfig, PriceQuote, QuoteSource
from .errors import (
    ExhaustedError,
    InvalidValueError,
    NoStaleValueError,
    PriceCacheError,
    SourceError,
    TransientUpstreamError,
    UnresolvedSymbolError,
)
from .store import CacheStore
from .coalescer import RequestCoalescer
from .coingecko import CoinGeckoClient, resolve_coin_id
from .sources import (
    DirectLookupSource,
    SearchLookupSource,
    SourceChain,
    StaleFallbackSource,
    build_default_chain,
)
from .coordinator import PriceCoordinator, build_price_coordinator
from .refresher import BackgroundRefresher

__all__ = [
    # Core types
    "CacheEntry",
    "CacheKey",
    "PriceCacheConfig",
    "PriceQuote",
    "QuoteSource",
    # Errors
    "PriceCacheError",
    "SourceError",
    "TransientUpstreamError",
    "UnresolvedSymbolError",
    "InvalidValueError",
    "NoStaleValueError",
    "ExhaustedError",
    # Store + coalescing
    "CacheStore",
    "RequestCoalescer",
    # Upstream
    "CoinGeckoClient",
    "resolve_coin_id",
    # Source chain
    "DirectLookupSource",
    "SearchLookupSource",
    "StaleFallbackSource",
    "SourceChain",
    "build_default_chain",
    # Coordinator
    "PriceCoordinator",
    "build_price_coordinator",
    "BackgroundRefresher",
]
