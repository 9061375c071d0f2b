"""
CoinGecko API client for the price cache.
Handles the two endpoints the source chain needs: simple price and search.
"""
import logging
from typing import Any, Dict, List, Optional

import requests

from .errors import TransientUpstreamError

logger = logging.getLogger("price_cache.coingecko")

DEFAULT_BASE_URL = "https://api.coingecko.com/api/v3"

# Common ticker symbols -> CoinGecko coin ids
COIN_ID_SYNONYMS: Dict[str, str] = {
    "sol": "solana",
    "solana": "solana",
    "usdc": "usd-coin",
    "usdt": "tether",
    "eurc": "euro-coin",
    "btc": "bitcoin",
    "bitcoin": "bitcoin",
    "eth": "ethereum",
    "ethereum": "ethereum",
}

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9",
    "User-Agent": "price-cache/0.1 (+https://www.coingecko.com/en/api)",
}


def resolve_coin_id(symbol: str) -> str:
    """Map a ticker symbol to its CoinGecko id; unknown symbols pass through."""
    normalized = (symbol or "").strip().lower()
    return COIN_ID_SYNONYMS.get(normalized, normalized)


class CoinGeckoClient:
    """
    Minimal CoinGecko REST client.

    Every transport-level problem (timeout, connection error, non-2xx status,
    unparseable body) is raised as TransientUpstreamError so callers only
    deal with one failure type. Retrying is left to the caller.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 15.0,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            base_url: API root, without trailing slash
            timeout: Per-request timeout in seconds
            api_key: Optional demo API key
            session: Shared requests session (created if omitted)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._headers = dict(DEFAULT_HEADERS)
        if api_key:
            self._headers["x-cg-demo-api-key"] = api_key

    def _get(self, endpoint: str, params: Dict[str, Any]) -> Any:
        url = f"{self.base_url}/{endpoint}"
        try:
            response = self._session.get(
                url,
                params=params,
                headers=self._headers,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise TransientUpstreamError(f"Timeout after {self.timeout}s calling {endpoint}") from e
        except requests.RequestException as e:
            raise TransientUpstreamError(f"Request to {endpoint} failed: {e}") from e

        if not response.ok:
            body = (response.text or "")[:200]
            raise TransientUpstreamError(
                f"CoinGecko {endpoint} returned status {response.status_code}: {body}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise TransientUpstreamError(f"CoinGecko {endpoint} returned invalid JSON") from e

    def simple_price(self, coin_id: str, fiat: str) -> Optional[Any]:
        """
        Fetch the raw quote for one coin in one fiat currency.

        Returns:
            The value as returned by the API, or None when the coin id or
            currency is missing from the response (unknown to CoinGecko).
        """
        fiat = fiat.lower()
        data = self._get("simple/price", {"ids": coin_id, "vs_currencies": fiat})
        if not isinstance(data, dict):
            return None
        prices = data.get(coin_id)
        if not isinstance(prices, dict):
            return None
        return prices.get(fiat)

    def search(self, query: str) -> List[Dict[str, Any]]:
        """Search coins by name or symbol; best match first."""
        data = self._get("search", {"query": query})
        if not isinstance(data, dict):
            return []
        coins = data.get("coins") or []
        return [coin for coin in coins if isinstance(coin, dict) and coin.get("id")]

    def close(self) -> None:
        self._session.close()
