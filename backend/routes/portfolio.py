"""Portfolio and asset routes.

GET  /portfolio                   → totals, assets, allocation, best performer
POST /portfolio/refresh           → drop cached prices and reload
GET  /portfolio/history           → portfolio value over 24h / 7d / 30d / 1y
GET  /assets                      → batch price lookup (?ids=bitcoin,ethereum)
GET  /assets/{coin_id}            → single coin market data
GET  /assets/{coin_id}/history    → raw market chart for N days
"""

import logging

from fastapi import APIRouter, Depends, Query, Request

from config import settings
from services.coingecko import CoinGeckoClient
from services.portfolio import load_portfolio, portfolio_history

logger = logging.getLogger(__name__)

router = APIRouter()


def get_client(request: Request) -> CoinGeckoClient:
    return request.app.state.coingecko


@router.get("/portfolio")
async def portfolio(client: CoinGeckoClient = Depends(get_client)) -> dict:
    """Current portfolio with 24h change, computed from cached prices."""
    result = await load_portfolio(client, settings.holdings)
    result["_summary"] = _summarize(result)
    return result


@router.post("/portfolio/refresh")
async def refresh_portfolio(client: CoinGeckoClient = Depends(get_client)) -> dict:
    """Force a reload of every price, bypassing the TTL."""
    dropped = client.cache.invalidate("price_")
    logger.info("Manual refresh: dropped %d cached prices", dropped)
    result = await load_portfolio(client, settings.holdings)
    result["_summary"] = _summarize(result)
    return result


@router.get("/portfolio/history")
async def history(
    period: str = Query("24h"),
    client: CoinGeckoClient = Depends(get_client),
) -> dict:
    """Portfolio value series for the chart, plus a start/end/high/low summary."""
    return await portfolio_history(client, settings.holdings, period)


@router.get("/assets")
async def assets(
    ids: str = Query(..., description="Comma-separated CoinGecko coin ids"),
    client: CoinGeckoClient = Depends(get_client),
) -> dict:
    coin_ids = [c.strip().lower() for c in ids.split(",") if c.strip()]
    if not coin_ids:
        raise ValueError("At least one coin id is required")
    return {"assets": await client.get_multiple_crypto_prices(coin_ids)}


@router.get("/assets/{coin_id}")
async def asset(coin_id: str, client: CoinGeckoClient = Depends(get_client)) -> dict:
    return await client.get_crypto_price(coin_id.lower())


@router.get("/assets/{coin_id}/history")
async def asset_history(
    coin_id: str,
    days: int = Query(7, ge=1, le=365),
    client: CoinGeckoClient = Depends(get_client),
) -> dict:
    return await client.get_historical_data(coin_id.lower(), days=days)


def _summarize(result: dict) -> str:
    pct = result["daily_percentage"]
    pct_text = f"{pct:+.2f}%" if pct is not None else "n/a"
    best = result["best_performer"]
    best_text = f", best performer {best['symbol']} ({best['change24h']:+.2f}%)" if best else ""
    return (
        f"Portfolio worth ${result['total_value']:,.2f} across {len(result['assets'])} assets, "
        f"24h change ${result['daily_change']:,.2f} ({pct_text}){best_text}"
    )
