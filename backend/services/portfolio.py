"""Portfolio aggregation: position values, daily change and value history.

Daily change is backed out from each asset's 24h percentage change:
the position was worth value / (1 + change24h / 100) a day ago.
"""

import asyncio
import logging
import math

import pandas as pd

from errors import ComputationError, FetchError
from services.coingecko import CoinGeckoClient

logger = logging.getLogger(__name__)

# Placeholder portfolio served when CoinGecko is unreachable
DEMO_ASSETS = [
    {"id": "bitcoin", "name": "Bitcoin", "symbol": "BTC", "price": 45000, "change24h": 2.5, "holdings": 0.5},
    {"id": "ethereum", "name": "Ethereum", "symbol": "ETH", "price": 3200, "change24h": -1.2, "holdings": 2.0},
    {"id": "cardano", "name": "Cardano", "symbol": "ADA", "price": 1.25, "change24h": 5.8, "holdings": 1000},
]

# period -> (days of history, points kept, pandas resample rule, label format)
PERIODS = {
    "24h": (1, 24, "1h", "hour"),
    "7d": (7, 7, "1D", "day"),
    "30d": (30, 30, "1D", "day"),
    "1y": (365, 12, "MS", "month"),
}


def previous_value(value: float, change24h: float) -> float:
    """Value 24h ago. A -100% (or worse) move means the position was worth nothing."""
    if change24h <= -100:
        return 0.0
    return value / (1 + change24h / 100)


def compute_portfolio_totals(assets: list[dict]) -> dict:
    """Aggregate asset records {price, change24h, holdings, ...} into totals.

    daily_percentage is None when the portfolio was worth nothing 24h ago.
    Raises ComputationError on non-finite inputs.
    """
    priced = []
    total_value = 0.0
    daily_change = 0.0

    for asset in assets:
        price = _finite(asset, "price")
        holdings = _finite(asset, "holdings")
        change24h = _finite(asset, "change24h")

        value = price * holdings
        if not math.isfinite(value):
            raise ComputationError(f"Position value overflow for {asset.get('id')}")

        total_value += value
        daily_change += value - previous_value(value, change24h)
        priced.append({**asset, "value": value})

    yesterday = total_value - daily_change
    daily_percentage = daily_change / yesterday * 100 if yesterday > 0 else None

    for asset in priced:
        asset["allocation"] = asset["value"] / total_value * 100 if total_value > 0 else 0.0

    best = max(priced, key=lambda a: a["change24h"]) if priced else None

    return {
        "assets": priced,
        "total_value": total_value,
        "daily_change": daily_change,
        "daily_percentage": daily_percentage,
        "best_performer": (
            {"id": best["id"], "symbol": best["symbol"], "change24h": best["change24h"]}
            if best
            else None
        ),
    }


def _finite(asset: dict, field: str) -> float:
    try:
        number = float(asset[field])
    except (KeyError, TypeError, ValueError) as e:
        raise ComputationError(f"Asset {asset.get('id')} has no numeric {field}") from e
    if not math.isfinite(number):
        raise ComputationError(f"Asset {asset.get('id')} has non-finite {field}: {number}")
    return number


async def load_portfolio(client: CoinGeckoClient, holdings: dict[str, float]) -> dict:
    """Live portfolio from CoinGecko, or the demo portfolio if loading fails."""
    coin_ids = list(holdings)
    try:
        prices = await client.get_multiple_crypto_prices(coin_ids)
        assets = [
            {
                "id": coin_id,
                "name": data["name"],
                "symbol": data["symbol"].upper(),
                "price": data["current_price"],
                "change24h": data["price_change_percentage_24h"] or 0.0,
                "holdings": holdings[coin_id],
            }
            for coin_id, data in zip(coin_ids, prices)
        ]
        result = compute_portfolio_totals(assets)
    except (FetchError, ComputationError) as e:
        logger.warning("Portfolio load failed, serving demo data: %s", e)
        result = compute_portfolio_totals(DEMO_ASSETS)
        result["source"] = "demo"
        return result

    result["source"] = "live"
    return result


async def portfolio_history(
    client: CoinGeckoClient, holdings: dict[str, float], period: str = "24h"
) -> dict:
    """Total portfolio value over `period`, resampled to the period's grid."""
    if period not in PERIODS:
        raise ValueError(f"Unknown period: {period}. Supported: {list(PERIODS)}")
    days, points, rule, label_kind = PERIODS[period]

    coin_ids = list(holdings)
    charts = await asyncio.gather(
        *[client.get_historical_data(coin_id, days=days) for coin_id in coin_ids]
    )

    series = {}
    for coin_id, chart in zip(coin_ids, charts):
        df = pd.DataFrame(chart.get("prices", []), columns=["ts", "price"])
        if df.empty:
            logger.warning("No price history for %s over %s", coin_id, period)
            continue
        prices = pd.Series(
            df["price"].astype(float).values,
            index=pd.to_datetime(df["ts"], unit="ms", utc=True),
        )
        series[coin_id] = prices.resample(rule).last() * holdings[coin_id]

    if not series:
        return {"period": period, "labels": [], "values": [], "summary": None}

    combined = pd.DataFrame(series).ffill().dropna()
    total = combined.sum(axis=1).tail(points)

    values = [round(float(v), 2) for v in total]
    return {
        "period": period,
        "labels": [_label(ts, label_kind) for ts in total.index],
        "values": values,
        "summary": _summarize(values),
    }


def _label(ts: pd.Timestamp, kind: str) -> str:
    if kind == "hour":
        return f"{ts.hour}:00"
    if kind == "day":
        return f"{ts:%b} {ts.day}"
    return f"{ts:%b}"


def _summarize(values: list[float]) -> dict | None:
    if not values:
        return None
    start, end = values[0], values[-1]
    return {
        "start": start,
        "end": end,
        "high": max(values),
        "low": min(values),
        "change_pct": round((end - start) / start * 100, 2) if start else None,
    }
