"""CoinGecko public API client. Free tier, no key required.

Every lookup goes through the shared TTL cache, so polling and concurrent
requests for the same coin hit the network at most once per TTL window.
"""

import logging
from typing import Any

import httpx

from config import settings
from errors import FetchError
from services.cache import TTLCache

logger = logging.getLogger(__name__)

PRICE_PARAMS = {
    "localization": "false",
    "tickers": "false",
    "market_data": "true",
    "community_data": "false",
    "developer_data": "false",
    "sparkline": "false",
}


class CoinGeckoClient:
    def __init__(
        self,
        cache: TTLCache,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.cache = cache
        self.base_url = (base_url or settings.coingecko_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self._transport = transport

    async def get_crypto_price(self, coin_id: str) -> dict:
        """Current USD market data for one coin."""
        return await self.cache.get(price_key(coin_id), lambda: self._fetch_price(coin_id))

    async def get_multiple_crypto_prices(self, coin_ids: list[str]) -> list[dict]:
        """Market data for several coins, in the order requested."""
        by_key = {price_key(coin_id): coin_id for coin_id in coin_ids}
        return await self.cache.get_many(
            [price_key(coin_id) for coin_id in coin_ids],
            lambda key: lambda: self._fetch_price(by_key[key]),
        )

    async def get_historical_data(self, coin_id: str, days: int = 7) -> dict:
        """Raw market chart: {"prices": [[ms, usd], ...], "market_caps": ..., "total_volumes": ...}."""
        return await self.cache.get(
            history_key(coin_id, days), lambda: self._fetch_history(coin_id, days)
        )

    async def ping(self) -> bool:
        """Uncached upstream connectivity check."""
        await self._get_json("/ping")
        return True

    async def _fetch_price(self, coin_id: str) -> dict:
        data = await self._get_json(f"/coins/{coin_id}", params=PRICE_PARAMS)
        try:
            market = data["market_data"]
            return {
                "id": data["id"],
                "name": data["name"],
                "symbol": data["symbol"],
                "current_price": market["current_price"]["usd"],
                "price_change_percentage_24h": market["price_change_percentage_24h"],
                "market_cap": market["market_cap"]["usd"],
                "total_volume": market["total_volume"]["usd"],
            }
        except (KeyError, TypeError) as e:
            logger.error("Malformed price data for %s: missing %s", coin_id, e)
            raise FetchError(None, f"Malformed price data for {coin_id}") from e

    async def _fetch_history(self, coin_id: str, days: int) -> dict:
        data = await self._get_json(
            f"/coins/{coin_id}/market_chart",
            params={"vs_currency": "usd", "days": days},
        )
        if not isinstance(data, dict) or "prices" not in data:
            logger.error("Malformed market chart for %s (%d days)", coin_id, days)
            raise FetchError(None, f"Malformed historical data for {coin_id}")
        return data

    async def _get_json(self, path: str, params: dict | None = None) -> Any:
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        ) as client:
            try:
                resp = await client.get(path, params=params)
            except httpx.HTTPError as e:
                logger.error("CoinGecko request failed for %s: %s", path, e)
                raise FetchError(None, f"CoinGecko request failed: {e}") from e

        if resp.is_error:
            logger.error("CoinGecko returned HTTP %d for %s", resp.status_code, path)
            raise FetchError(resp.status_code, f"HTTP error! status: {resp.status_code}")

        try:
            return resp.json()
        except ValueError as e:
            logger.error("CoinGecko returned invalid JSON for %s", path)
            raise FetchError(resp.status_code, "Invalid JSON from CoinGecko") from e


def price_key(coin_id: str) -> str:
    return f"price_{coin_id}"


def history_key(coin_id: str, days: int) -> str:
    return f"history_{coin_id}_{days}"
