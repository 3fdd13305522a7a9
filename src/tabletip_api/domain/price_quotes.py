from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Annotated, Any, Callable, Protocol

import httpx
from fastapi import Depends

from tabletip_api.domain.errors import SettlementErrorCode, settlement_error
from tabletip_api.settings import Settings, get_settings

logger = logging.getLogger(__name__)

COINGECKO_IDS: dict[str, str] = {
    "ETH": "ethereum",
    "MATIC": "matic-network",
}

Clock = Callable[[], float]


class PriceQuoteProvider(Protocol):
    async def get_usd_price(self, symbol: str) -> Decimal:
        ...


@dataclass(frozen=True)
class CachedPrice:
    price: Decimal
    fetched_at: float


async def fetch_coingecko_price(
    price_api_url: str, coin_id: str, *, timeout: float = 10.0
) -> dict[str, Any]:
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.get(price_api_url, params={"ids": coin_id, "vs_currencies": "usd"})
    response.raise_for_status()
    return response.json()


def _parse_usd_price(payload: Any, coin_id: str) -> Decimal | None:
    if not isinstance(payload, dict):
        return None
    entry = payload.get(coin_id)
    if not isinstance(entry, dict):
        return None
    raw = entry.get("usd")
    if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
        return None
    try:
        price = Decimal(str(raw))
    except InvalidOperation:
        return None
    if not price.is_finite() or price <= 0:
        return None
    return price


class CoinGeckoPriceQuoteProvider:
    """USD price quotes with a process-local cache of the last price per symbol.

    An entry is served only while younger than ``cache_ttl_seconds``; an expired entry is
    never returned as a fallback when the upstream request fails.
    """

    def __init__(
        self,
        price_api_url: str,
        *,
        cache_ttl_seconds: float = 60.0,
        timeout_seconds: float = 10.0,
        clock: Clock = time.monotonic,
    ) -> None:
        self._price_api_url = price_api_url
        self._cache_ttl_seconds = cache_ttl_seconds
        self._timeout_seconds = timeout_seconds
        self._clock = clock
        self._cache: dict[str, CachedPrice] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _cached(self, symbol: str) -> Decimal | None:
        entry = self._cache.get(symbol)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at >= self._cache_ttl_seconds:
            return None
        return entry.price

    async def get_usd_price(self, symbol: str) -> Decimal:
        key = symbol.upper()
        coin_id = COINGECKO_IDS.get(key)
        if coin_id is None:
            raise settlement_error(
                SettlementErrorCode.price_unavailable,
                f"Unsupported token: {symbol}",
                {"token_symbol": symbol},
            )

        cached = self._cached(key)
        if cached is not None:
            return cached

        # One fetch in flight per symbol; other symbols are not held up.
        async with self._locks.setdefault(key, asyncio.Lock()):
            cached = self._cached(key)
            if cached is not None:
                return cached
            try:
                payload = await fetch_coingecko_price(
                    self._price_api_url, coin_id, timeout=self._timeout_seconds
                )
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning(
                    "price_quote_failed",
                    extra={"token_symbol": key, "error": str(exc)},
                )
                payload = None

            price = _parse_usd_price(payload, coin_id)
            if price is None:
                raise settlement_error(
                    SettlementErrorCode.price_unavailable,
                    f"Price unavailable for {key}",
                    {"token_symbol": key},
                )
            self._cache[key] = CachedPrice(price=price, fetched_at=self._clock())
            return price


@lru_cache(maxsize=4)
def _shared_price_provider(
    price_api_url: str, cache_ttl_seconds: float, timeout_seconds: float
) -> CoinGeckoPriceQuoteProvider:
    return CoinGeckoPriceQuoteProvider(
        price_api_url,
        cache_ttl_seconds=cache_ttl_seconds,
        timeout_seconds=timeout_seconds,
    )


def get_price_quote_provider(settings: Settings = Depends(get_settings)) -> PriceQuoteProvider:
    # One provider per configuration so the cache survives across requests.
    return _shared_price_provider(
        str(settings.price_api_url),
        settings.price_cache_ttl_seconds,
        settings.price_timeout_seconds,
    )


PriceQuoteProviderDep = Annotated[PriceQuoteProvider, Depends(get_price_quote_provider)]
