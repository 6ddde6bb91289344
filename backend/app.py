"""FastAPI application entry point for the portfolio dashboard API."""

import logging
import sys

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from errors import register_error_handlers
from services.cache import TTLCache
from services.coingecko import CoinGeckoClient
from services.portfolio import load_portfolio
from services.refresher import PeriodicRefresher

# Structured logging: JSON for production, human-readable for local
if settings.is_production:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}',
        stream=sys.stdout,
    )
else:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

logger = logging.getLogger(__name__)


def create_app(client: CoinGeckoClient | None = None) -> FastAPI:
    app = FastAPI(title="Portfolio Dashboard API", version="1.0.0")

    # One cache per process, owned by the CoinGecko client
    if client is None:
        client = CoinGeckoClient(TTLCache(ttl_seconds=settings.cache_ttl_seconds))
    app.state.coingecko = client
    app.state.refresher = PeriodicRefresher(
        lambda: load_portfolio(client, settings.holdings),
        interval_seconds=settings.refresh_interval_seconds,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Security headers
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # Centralized error handlers
    register_error_handlers(app)

    from routes.health import router as health_router
    from routes.portfolio import router as portfolio_router

    app.include_router(health_router)
    app.include_router(portfolio_router)

    @app.on_event("startup")
    async def _startup() -> None:
        problems = settings.validate()
        if problems:
            logger.warning("Configuration problems: %s", "; ".join(problems))
        app.state.refresher.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await app.state.refresher.stop()

    return app


app = create_app()
