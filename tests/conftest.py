"""Shared fixtures: a controllable clock and a mocked CoinGecko upstream."""

import httpx
import pytest

from services.cache import TTLCache
from services.coingecko import CoinGeckoClient

BASE_URL = "https://api.test/api/v3"


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def coin_payload(coin_id, name, symbol, price, change):
    return {
        "id": coin_id,
        "name": name,
        "symbol": symbol,
        "market_data": {
            "current_price": {"usd": price},
            "price_change_percentage_24h": change,
            "market_cap": {"usd": price * 1_000_000},
            "total_volume": {"usd": price * 10_000},
        },
    }


COINS = {
    "bitcoin": coin_payload("bitcoin", "Bitcoin", "btc", 45000, 2.5),
    "ethereum": coin_payload("ethereum", "Ethereum", "eth", 3200, -1.2),
}


class Upstream:
    """MockTransport handler that records every request path."""

    def __init__(self, coins=None, status: int = 200):
        self.coins = dict(COINS if coins is None else coins)
        self.status = status
        self.paths: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api/v3")
        self.paths.append(path)
        if self.status != 200:
            return httpx.Response(self.status, json={"error": "upstream down"})
        if path == "/ping":
            return httpx.Response(200, json={"gecko_says": "(V3) To the Moon!"})
        parts = path.strip("/").split("/")
        if len(parts) >= 2 and parts[0] == "coins" and parts[1] in self.coins:
            if len(parts) == 3 and parts[2] == "market_chart":
                days = int(request.url.params["days"])
                return httpx.Response(200, json={"prices": [[0, 1.0]] * days, "market_caps": [], "total_volumes": []})
            return httpx.Response(200, json=self.coins[parts[1]])
        return httpx.Response(404, json={"error": "coin not found"})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
def client(upstream, clock):
    return CoinGeckoClient(
        TTLCache(ttl_seconds=300, clock=clock),
        base_url=BASE_URL,
        timeout=5,
        transport=httpx.MockTransport(upstream),
    )
