"""
Core price cache data structures.
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from numbers import Real
from typing import Any, Callable, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from config.settings import Settings


DEFAULT_FIAT = "usd"

Clock = Callable[[], float]


class QuoteSource(Enum):
    """Strategy that produced a cached price."""
    DIRECT = "coingecko-direct"    # /simple/price with a known coin id
    SEARCH = "coingecko-search"    # /search, then /simple/price
    STALE = "stale-cache"          # Last known value past its TTL


@dataclass(frozen=True)
class CacheKey:
    """
    Asset + fiat pair identifying one cached quote.

    Both parts are lowercased on construction so "SOL/USD" and "sol/usd"
    share an entry.
    """
    asset: str
    fiat: str = DEFAULT_FIAT

    def __post_init__(self):
        asset = (self.asset or "").strip().lower()
        fiat = (self.fiat or "").strip().lower()
        if not asset:
            raise ValueError("asset must be a non-empty string")
        if not fiat:
            raise ValueError("fiat must be a non-empty string")
        object.__setattr__(self, "asset", asset)
        object.__setattr__(self, "fiat", fiat)

    @classmethod
    def parse(cls, text: str, default_fiat: str = DEFAULT_FIAT) -> "CacheKey":
        """Build a key from "asset/fiat" (or a bare asset)."""
        asset, sep, fiat = text.partition("/")
        return cls(asset, fiat if sep else default_fiat)

    def __str__(self) -> str:
        return f"{self.asset}/{self.fiat}"


def is_valid_price(value: Any) -> bool:
    """True for a finite, strictly positive number."""
    if isinstance(value, bool) or not isinstance(value, Real):
        return False
    return math.isfinite(value) and value > 0


@dataclass(frozen=True)
class CacheEntry:
    """
    A cached quote. Immutable: a refresh replaces the whole entry.
    """
    value: float
    fetched_at: float
    expires_at: float
    source: QuoteSource

    def age_seconds(self, now: float) -> float:
        """Seconds since the value was fetched."""
        return now - self.fetched_at

    def expires_in_seconds(self, now: float) -> float:
        """Seconds until the entry goes stale (negative once stale)."""
        return self.expires_at - now


@dataclass(frozen=True)
class PriceQuote:
    """
    A price as delivered to callers, with where it came from.
    """
    key: CacheKey
    value: float
    source: QuoteSource
    fetched_at: float
    expires_at: float

    @property
    def stale(self) -> bool:
        return self.source is QuoteSource.STALE

    @classmethod
    def from_entry(cls, key: CacheKey, entry: CacheEntry, stale: bool = False) -> "PriceQuote":
        return cls(
            key=key,
            value=entry.value,
            source=QuoteSource.STALE if stale else entry.source,
            fetched_at=entry.fetched_at,
            expires_at=entry.expires_at,
        )


@dataclass
class PriceCacheConfig:
    """
    Tunables for a price coordinator.

    Mirrors the price_* options in config.settings.
    """
    ttl_seconds: float = 180.0
    max_attempts: int = 3
    backoff_base_seconds: float = 1.0
    request_timeout_seconds: float = 15.0
    hot_keys: List[CacheKey] = field(default_factory=list)
    refresh_interval_seconds: Optional[float] = None  # None = ttl_seconds
    refresh_workers: int = 4

    def __post_init__(self):
        if self.ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_base_seconds < 0:
            raise ValueError("backoff_base_seconds must not be negative")
        if self.request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be positive")

    @property
    def refresh_interval(self) -> float:
        return self.refresh_interval_seconds or self.ttl_seconds

    @classmethod
    def from_settings(cls, settings: "Settings") -> "PriceCacheConfig":
        """Build from application settings."""
        return cls(
            ttl_seconds=settings.price_cache_ttl_seconds,
            max_attempts=settings.price_max_attempts,
            backoff_base_seconds=settings.price_backoff_base_seconds,
            request_timeout_seconds=settings.price_request_timeout_seconds,
            hot_keys=[
                CacheKey.parse(text, settings.default_fiat)
                for text in settings.price_hot_keys
            ],
            refresh_workers=settings.price_refresh_workers,
        )
