"""Configuration management for the gateway."""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

API_PLAN_HEADERS = {
    "demo": "x-cg-demo-api-key",
    "pro": "x-cg-pro-api-key",
}


def _int_list(raw: str) -> list[int]:
    """Parse a comma-separated list of integers, ignoring blanks."""
    return [int(part) for part in raw.split(",") if part.strip()]


def _str_list(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass
class UpstreamConfig:
    """Market-data provider configuration."""

    base_url: str = "https://api.coingecko.com/api/v3"
    api_key: str | None = None
    api_plan: str = "demo"
    timeout_seconds: float = 8.0
    max_retries: int = 0
    retry_backoff_seconds: float = 0.5
    max_connections: int = 10

    @property
    def api_key_header(self) -> str:
        """Header name the provider expects the API key in."""
        return API_PLAN_HEADERS.get(self.api_plan, API_PLAN_HEADERS["demo"])


@dataclass
class GatewayConfig:
    """Gateway behaviour configuration."""

    service_name: str = "Market Gateway"
    allowed_days: list[int] = field(default_factory=lambda: [1, 7, 14, 30, 90, 180, 365])
    default_days: int = 7
    max_batch_size: int = 50
    cache_ttl: int = 0  # Seconds, 0 disables the response cache
    asset_table_path: str | None = None


@dataclass
class RateLimitConfig:
    """Inbound rate limit configuration."""

    requests: int = 120  # 0 disables rate limiting
    window_seconds: int = 60


@dataclass
class LogConfig:
    """Structured logging configuration."""

    level: str = "INFO"
    file_path: str | None = None


class Config:
    """Main application configuration."""

    def __init__(self):
        self.upstream = UpstreamConfig(
            base_url=os.getenv("COINGECKO_BASE_URL", "https://api.coingecko.com/api/v3").rstrip("/"),
            api_key=os.getenv("COINGECKO_API_KEY") or None,
            api_plan=os.getenv("COINGECKO_API_PLAN", "demo").lower(),
            timeout_seconds=float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "8")),
            max_retries=int(os.getenv("UPSTREAM_MAX_RETRIES", "0")),
            retry_backoff_seconds=float(os.getenv("UPSTREAM_RETRY_BACKOFF_SECONDS", "0.5")),
            max_connections=int(os.getenv("UPSTREAM_MAX_CONNECTIONS", "10")),
        )

        self.gateway = GatewayConfig(
            service_name=os.getenv("SERVICE_NAME", "Market Gateway"),
            allowed_days=_int_list(os.getenv("HISTORY_ALLOWED_DAYS", "1,7,14,30,90,180,365")),
            default_days=int(os.getenv("HISTORY_DEFAULT_DAYS", "7")),
            max_batch_size=int(os.getenv("MAX_BATCH_SIZE", "50")),
            cache_ttl=int(os.getenv("CACHE_TTL_SECONDS", "0")),
            asset_table_path=os.getenv("ASSET_TABLE_PATH") or None,
        )

        self.rate_limit = RateLimitConfig(
            requests=int(os.getenv("RATE_LIMIT_REQUESTS", "120")),
            window_seconds=int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60")),
        )

        self.log = LogConfig(
            level=os.getenv("LOG_LEVEL", "INFO").upper(),
            file_path=os.getenv("LOG_FILE") or None,
        )

        self.cors_allowed_origins = _str_list(os.getenv("CORS_ALLOWED_ORIGINS", "*"))

    def validate(self) -> bool:
        """
        Validate configuration.

        Returns:
            True if configuration is valid

        Raises:
            ValueError if configuration is invalid
        """
        if not self.upstream.base_url.startswith(("http://", "https://")):
            raise ValueError("COINGECKO_BASE_URL must be an http(s) URL")
        if self.upstream.api_plan not in API_PLAN_HEADERS:
            raise ValueError(
                f"Invalid COINGECKO_API_PLAN: {self.upstream.api_plan}. "
                f"Use one of {', '.join(sorted(API_PLAN_HEADERS))}"
            )

        # Upstream calls must stay within single-digit seconds
        if not 0 < self.upstream.timeout_seconds < 10:
            raise ValueError("UPSTREAM_TIMEOUT_SECONDS must be between 0 and 10 (exclusive)")
        if self.upstream.max_retries < 0 or self.upstream.max_retries > 1:
            raise ValueError("UPSTREAM_MAX_RETRIES must be 0 or 1")
        if self.upstream.retry_backoff_seconds < 0:
            raise ValueError("UPSTREAM_RETRY_BACKOFF_SECONDS must not be negative")
        if self.upstream.max_connections < 1:
            raise ValueError("UPSTREAM_MAX_CONNECTIONS must be at least 1")

        if not self.gateway.allowed_days or any(d < 1 for d in self.gateway.allowed_days):
            raise ValueError("HISTORY_ALLOWED_DAYS must list positive day counts")
        if self.gateway.default_days not in self.gateway.allowed_days:
            raise ValueError(
                f"HISTORY_DEFAULT_DAYS={self.gateway.default_days} is not in HISTORY_ALLOWED_DAYS"
            )
        if self.gateway.max_batch_size < 1:
            raise ValueError("MAX_BATCH_SIZE must be at least 1")
        if self.gateway.cache_ttl < 0:
            raise ValueError("CACHE_TTL_SECONDS must not be negative")

        if self.rate_limit.requests < 0 or self.rate_limit.window_seconds < 1:
            raise ValueError("Invalid rate limit configuration")

        if self.log.level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid LOG_LEVEL: {self.log.level}")

        return True


# Global config instance
config = Config()
