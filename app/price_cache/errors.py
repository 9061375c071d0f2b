"""
Price cache error taxonomy.

SourceError subclasses describe one strategy failing and are handled inside
the source chain. ExhaustedError is the only error callers see.
"""
from typing import List, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from .core import CacheKey


class PriceCacheError(Exception):
    """Base class for price cache errors."""


class SourceError(PriceCacheError):
    """A single quote strategy failed; the chain moves on to the next one."""


class TransientUpstreamError(SourceError):
    """Non-2xx response, timeout or network failure on one upstream call."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UnresolvedSymbolError(SourceError):
    """The upstream does not know the requested asset."""


class InvalidValueError(SourceError):
    """The upstream returned a zero, negative, non-finite or non-numeric price."""


class NoStaleValueError(SourceError):
    """No previous value exists to fall back on."""


class ExhaustedError(PriceCacheError):
    """Every strategy failed and there is no previous value to serve."""

    def __init__(
        self,
        key: "CacheKey",
        failures: Optional[List[Tuple[str, SourceError]]] = None,
    ):
        self.key = key
        self.failures = failures or []
        details = "; ".join(f"{name}: {err}" for name, err in self.failures)
        message = f"Failed to fetch price for {key} after multiple attempts"
        if details:
            message = f"{message} ({details})"
        super().__init__(message)
