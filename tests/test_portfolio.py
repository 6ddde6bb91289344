"""Tests for portfolio aggregation and value history."""

import asyncio
import math

import pandas as pd
import pytest

from errors import ComputationError, FetchError
from services.portfolio import (
    DEMO_ASSETS,
    compute_portfolio_totals,
    load_portfolio,
    portfolio_history,
    previous_value,
)
from services.refresher import PeriodicRefresher

from conftest import coin_payload

BTC = {"id": "bitcoin", "name": "Bitcoin", "symbol": "BTC", "price": 45000, "holdings": 0.5, "change24h": 2.5}
ETH = {"id": "ethereum", "name": "Ethereum", "symbol": "ETH", "price": 3200, "holdings": 2.0, "change24h": -1.2}


def test_two_asset_scenario():
    result = compute_portfolio_totals([BTC, ETH])

    assert [a["value"] for a in result["assets"]] == [22500, 6400]
    assert result["total_value"] == pytest.approx(28900)
    assert previous_value(22500, 2.5) == pytest.approx(21951.22, abs=0.01)
    assert previous_value(6400, -1.2) == pytest.approx(6477.73, abs=0.01)
    assert result["daily_change"] == pytest.approx(471.05, abs=0.01)
    assert result["daily_percentage"] == pytest.approx(1.657, abs=0.001)


def test_inputs_not_mutated():
    compute_portfolio_totals([BTC])
    assert "value" not in BTC


def test_allocation_and_best_performer():
    result = compute_portfolio_totals([BTC, ETH])

    allocations = [a["allocation"] for a in result["assets"]]
    assert sum(allocations) == pytest.approx(100)
    assert allocations[0] == pytest.approx(22500 / 28900 * 100)
    assert result["best_performer"] == {"id": "bitcoin", "symbol": "BTC", "change24h": 2.5}


def test_minus_100_percent_stays_finite():
    wiped = {"id": "luna", "name": "Terra", "symbol": "LUNA", "price": 0.0001, "holdings": 1000, "change24h": -100}
    result = compute_portfolio_totals([BTC, wiped])

    assert math.isfinite(result["total_value"])
    assert math.isfinite(result["daily_change"])
    assert result["daily_percentage"] is not None
    assert math.isfinite(result["daily_percentage"])


def test_only_asset_at_minus_100_has_undefined_percentage():
    wiped = {"id": "luna", "name": "Terra", "symbol": "LUNA", "price": 0.5, "holdings": 10, "change24h": -100}
    result = compute_portfolio_totals([wiped])

    assert result["total_value"] == pytest.approx(5)
    assert result["daily_change"] == pytest.approx(5)
    assert result["daily_percentage"] is None


def test_empty_portfolio():
    result = compute_portfolio_totals([])

    assert result["total_value"] == 0
    assert result["daily_change"] == 0
    assert result["daily_percentage"] is None
    assert result["best_performer"] is None


@pytest.mark.parametrize("field", ["price", "holdings", "change24h"])
def test_non_finite_input_raises(field):
    with pytest.raises(ComputationError):
        compute_portfolio_totals([{**BTC, field: float("nan")}])


def test_missing_field_raises():
    asset = {k: v for k, v in BTC.items() if k != "price"}
    with pytest.raises(ComputationError):
        compute_portfolio_totals([asset])


@pytest.mark.asyncio
async def test_load_portfolio_live(client, upstream):
    result = await load_portfolio(client, {"bitcoin": 0.5, "ethereum": 2.0})

    assert result["source"] == "live"
    assert [a["symbol"] for a in result["assets"]] == ["BTC", "ETH"]
    assert result["total_value"] == pytest.approx(28900)
    assert sorted(upstream.paths) == ["/coins/bitcoin", "/coins/ethereum"]


@pytest.mark.asyncio
async def test_load_portfolio_uses_cache_on_repeat(client, upstream):
    await load_portfolio(client, {"bitcoin": 0.5, "ethereum": 2.0})
    await load_portfolio(client, {"bitcoin": 0.5, "ethereum": 2.0})

    assert len(upstream.paths) == 2


@pytest.mark.asyncio
async def test_load_portfolio_falls_back_to_demo(client, upstream):
    upstream.status = 503

    result = await load_portfolio(client, {"bitcoin": 0.5})

    assert result["source"] == "demo"
    assert [a["id"] for a in result["assets"]] == [a["id"] for a in DEMO_ASSETS]
    assert result["total_value"] == pytest.approx(30150)


class FakeHistoryClient:
    def __init__(self, charts):
        self.charts = charts
        self.requests = []

    async def get_historical_data(self, coin_id, days=7):
        self.requests.append((coin_id, days))
        if coin_id not in self.charts:
            raise FetchError(404, "HTTP error! status: 404")
        return self.charts[coin_id]


def daily_chart(values, start="2026-01-01"):
    stamps = pd.date_range(start, periods=len(values), freq="D", tz="UTC")
    return {"prices": [[int(ts.timestamp() * 1000), v] for ts, v in zip(stamps, values)]}


@pytest.mark.asyncio
async def test_portfolio_history_weekly():
    fake = FakeHistoryClient({
        "bitcoin": daily_chart([100 + i for i in range(8)]),
        "ethereum": daily_chart([10] * 8),
    })

    result = await portfolio_history(fake, {"bitcoin": 1.0, "ethereum": 2.0}, "7d")

    assert sorted(fake.requests) == [("bitcoin", 7), ("ethereum", 7)]
    assert result["values"] == [121.0, 122.0, 123.0, 124.0, 125.0, 126.0, 127.0]
    assert result["labels"][0] == "Jan 2"
    assert result["labels"][-1] == "Jan 8"
    assert result["summary"] == {
        "start": 121.0,
        "end": 127.0,
        "high": 127.0,
        "low": 121.0,
        "change_pct": 4.96,
    }


@pytest.mark.asyncio
async def test_portfolio_history_no_data():
    fake = FakeHistoryClient({"bitcoin": {"prices": []}})

    result = await portfolio_history(fake, {"bitcoin": 1.0}, "24h")

    assert result == {"period": "24h", "labels": [], "values": [], "summary": None}


@pytest.mark.asyncio
async def test_portfolio_history_unknown_period():
    with pytest.raises(ValueError):
        await portfolio_history(FakeHistoryClient({}), {"bitcoin": 1.0}, "5y")


@pytest.mark.asyncio
async def test_portfolio_history_propagates_fetch_error():
    with pytest.raises(FetchError):
        await portfolio_history(FakeHistoryClient({}), {"bitcoin": 1.0}, "30d")


@pytest.mark.asyncio
async def test_null_upstream_price_falls_back_to_demo(client, upstream):
    broken = coin_payload("bitcoin", "Bitcoin", "btc", 45000, 2.5)
    broken["market_data"]["current_price"]["usd"] = None
    upstream.coins["bitcoin"] = broken

    result = await load_portfolio(client, {"bitcoin": 0.5, "ethereum": 2.0})

    assert result["source"] == "demo"
    assert result["total_value"] == pytest.approx(30150)


@pytest.mark.asyncio
async def test_overlapping_refresh_cycles_fetch_once_per_key(client, upstream, clock):
    holdings = {"bitcoin": 0.5, "ethereum": 2.0}
    refresher = PeriodicRefresher(lambda: load_portfolio(client, holdings), interval_seconds=30)

    await refresher.refresh_once()
    assert len(upstream.paths) == 2

    clock.advance(301)
    await asyncio.gather(refresher.refresh_once(), refresher.refresh_once())

    assert sorted(upstream.paths[2:]) == ["/coins/bitcoin", "/coins/ethereum"]
    assert refresher.cycles == 3
    assert refresher.last_error is None
    assert len(client.cache) == 2
    for key in ["price_bitcoin", "price_ethereum"]:
        assert client.cache.entry(key).fetched_at == clock.now
    assert client.cache.in_flight == 0
