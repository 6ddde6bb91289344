"""Centralized configuration — all env vars in one place."""

import os

DEFAULT_HOLDINGS = "bitcoin:0.5,ethereum:2.0,cardano:1000,polkadot:50,chainlink:40"


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self):
        self.cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
        self.git_sha: str = os.getenv("GIT_SHA", "unknown")
        self.environment: str = os.getenv("ENVIRONMENT", "local")

        # CoinGecko
        self.coingecko_base_url: str = os.getenv(
            "COINGECKO_BASE_URL", "https://api.coingecko.com/api/v3"
        ).rstrip("/")
        self.http_timeout_seconds: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

        # Cache and polling
        self.cache_ttl_seconds: float = float(os.getenv("CACHE_TTL_SECONDS", "300"))
        self.refresh_interval_seconds: float = float(os.getenv("REFRESH_INTERVAL_SECONDS", "30"))

        # Portfolio: comma-separated coin_id:amount pairs
        self.holdings_raw: str = os.getenv("PORTFOLIO_HOLDINGS", DEFAULT_HOLDINGS)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def holdings(self) -> dict[str, float]:
        """Parsed holdings, in configured order. Malformed pairs are skipped."""
        return parse_holdings(self.holdings_raw)

    def validate(self) -> list[str]:
        """Return list of configuration problems (empty when valid)."""
        problems = []
        if self.cache_ttl_seconds <= 0:
            problems.append("CACHE_TTL_SECONDS must be positive")
        if self.refresh_interval_seconds < 0:
            problems.append("REFRESH_INTERVAL_SECONDS must not be negative")
        if not self.holdings:
            problems.append("PORTFOLIO_HOLDINGS has no valid coin:amount pairs")
        return problems


def parse_holdings(raw: str) -> dict[str, float]:
    """Parse "bitcoin:0.5,ethereum:2" into {"bitcoin": 0.5, "ethereum": 2.0}."""
    holdings: dict[str, float] = {}
    for pair in raw.split(","):
        coin_id, sep, amount = pair.strip().partition(":")
        if not sep or not coin_id.strip():
            continue
        try:
            holdings[coin_id.strip().lower()] = float(amount)
        except ValueError:
            continue
    return holdings


settings = Settings()
