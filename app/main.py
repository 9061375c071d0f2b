"""
Price Cache Service - Main FastAPI Application
Crypto prices served from an in-process cache backed by CoinGecko
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from app.price_cache import (
    BackgroundRefresher,
    ExhaustedError,
    PriceCacheConfig,
    PriceCoordinator,
    build_price_coordinator,
)
from config.settings import settings

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger("price_api")

# Version tracking
APP_VERSION = "v0.1.0"
APP_NAME = "Price Cache"


def _build_state(app: FastAPI) -> None:
    """Create the coordinator and refresher owned by this app instance."""
    config = PriceCacheConfig.from_settings(settings)
    coordinator = build_price_coordinator(
        config,
        base_url=settings.coingecko_base_url,
        api_key=settings.coingecko_api_key,
        default_fiat=settings.default_fiat,
    )
    app.state.price_coordinator = coordinator
    app.state.price_refresher = BackgroundRefresher(
        coordinator,
        config.hot_keys,
        interval_seconds=config.refresh_interval,
        max_workers=config.refresh_workers,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    refresher: Optional[BackgroundRefresher] = getattr(app.state, "price_refresher", None)
    if settings.price_refresh_enabled and refresher is not None:
        refresher.start()
    try:
        yield
    finally:
        if refresher is not None:
            refresher.stop(timeout=5)
        coordinator: Optional[PriceCoordinator] = getattr(app.state, "price_coordinator", None)
        if coordinator is not None:
            coordinator.close()


app = FastAPI(
    title=APP_NAME,
    description="Cached crypto prices with request coalescing and stale fallback",
    version=APP_VERSION,
    lifespan=lifespan,
)
_build_state(app)


def get_coordinator(request: Request) -> PriceCoordinator:
    return request.app.state.price_coordinator


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok", "source": "coingecko"}


@app.get("/version")
def version_info():
    """Version information endpoint."""
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "full": f"{APP_NAME} {APP_VERSION}",
    }


@app.get("/api/price")
def get_price(
    request: Request,
    crypto: Optional[str] = Query(None, description="Ticker or CoinGecko id, e.g. sol"),
    fiat: str = Query("USD", description="Quote currency"),
    refresh: bool = Query(False, description="Bypass the fresh cache entry"),
):
    """
    Get a cached price.

    Served from cache while fresh (3 minutes by default). On a miss the
    upstream is called once no matter how many requests are waiting, and a
    previous value is returned (flagged stale) if CoinGecko is unavailable.
    """
    if not crypto or not crypto.strip():
        raise HTTPException(status_code=400, detail="crypto parameter required")

    coordinator = get_coordinator(request)
    try:
        quote = coordinator.get_quote(crypto, fiat, force_refresh=refresh)
    except ExhaustedError as e:
        logger.error(f"Failed to get price for {crypto}: {e}")
        return JSONResponse(
            status_code=503,
            content={
                "error": "Failed to fetch price from CoinGecko after multiple attempts",
                "crypto": crypto,
                "fiat": e.key.fiat,
                "details": str(e),
            },
        )

    now = coordinator.store.now()
    return {
        "crypto": crypto,
        "fiat": quote.key.fiat,
        "price": quote.value,
        "source": quote.source.value,
        "stale": quote.stale,
        "age": round(now - quote.fetched_at),
        "expiresIn": round(quote.expires_at - now),
    }


@app.get("/api/price/cache")
def price_cache_info(request: Request):
    """Per-key cache contents for diagnostics."""
    return get_coordinator(request).get_cache_info()


@app.get("/cache/stats")
def cache_stats(request: Request):
    """Get cache statistics."""
    stats = get_coordinator(request).get_stats()
    refresher: Optional[BackgroundRefresher] = getattr(request.app.state, "price_refresher", None)
    if refresher is not None:
        stats["refresher"] = {
            "running": refresher.is_running,
            "cycles": refresher.cycles,
            "hot_keys": [str(k) for k in refresher.hot_keys],
        }
    return stats
