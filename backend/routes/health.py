"""Health and readiness check routes."""

import logging

from fastapi import APIRouter, Request

from config import settings

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/ready")
async def ready() -> dict:
    """Lightweight readiness check — no external calls."""
    return {"status": "ok", "service": "portfolio-dashboard", "commit": settings.git_sha}


@router.get("/health")
async def health(request: Request) -> dict:
    """Deep health check that verifies CoinGecko connectivity."""
    client = request.app.state.coingecko
    refresher = request.app.state.refresher
    result = {
        "status": "ok",
        "service": "portfolio-dashboard",
        "commit": settings.git_sha,
        "upstream": "not_tested",
        "cache": {"entries": len(client.cache), "in_flight": client.cache.in_flight},
        "refresher": refresher.status(),
    }

    try:
        await client.ping()
        result["upstream"] = "connected"
    except Exception as e:
        logger.exception("CoinGecko health check failed")
        result["upstream"] = "error"
        result["upstream_error"] = str(e)

    return result
