"""
Configuration management for the pmstream client.

Loads settings from environment variables with validation.
"""

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeedSettings(BaseSettings):
    """
    pmstream client settings.

    Loads from environment variables with POLYMARKET_ prefix.
    """
    model_config = SettingsConfigDict(
        env_prefix="POLYMARKET_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # API URLs
    clob_url: str = Field(
        default="https://clob.polymarket.com",
        description="CLOB API URL"
    )
    gamma_url: str = Field(
        default="https://gamma-api.polymarket.com",
        description="Gamma API URL"
    )

    # Chain configuration
    chain_id: int = Field(default=137, description="Polygon chain ID")

    # Timeouts and retries
    request_timeout: float = Field(default=30.0, ge=1.0, description="Request timeout (seconds)")
    connect_timeout: float = Field(default=10.0, ge=1.0, description="Connection timeout (seconds)")
    max_retries: int = Field(default=3, ge=0, le=10, description="Max retry attempts")
    retry_backoff_base: float = Field(default=2.0, ge=1.0, description="Backoff multiplier")
    retry_backoff_max: float = Field(default=60.0, ge=1.0, description="Max backoff delay")

    # Circuit breaker
    circuit_breaker_threshold: int = Field(default=5, ge=1, description="Failures before opening")
    circuit_breaker_timeout: float = Field(default=60.0, ge=1.0, description="Reset timeout")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_requests: bool = Field(default=False, description="Log all HTTP requests")

    # Metrics
    enable_metrics: bool = Field(default=False, description="Enable Prometheus metrics")
    metrics_port: Optional[int] = Field(default=None, ge=1024, le=65535,
                                        description="Metrics server port (no server if unset)")

    # WebSocket order-book feed
    ws_url: str = Field(
        default="wss://ws-subscriptions-clob.polymarket.com",
        description="WebSocket base URL (channel path is appended)"
    )
    ws_auto_reconnect: bool = Field(default=True, description="Auto-reconnect on drop")
    ws_reconnect_delay: float = Field(default=5.0, ge=0.0, description="WS reconnect delay")
    ws_max_reconnects: int = Field(default=10, ge=0,
                                   description="Max WS reconnect attempts (0 = unbounded)")
    ws_ping_interval: float = Field(default=10.0, gt=0.0, description="PING interval (seconds)")
    ws_proxy_url: Optional[str] = Field(None, description="Forward proxy for the feed")
    ws_debug: bool = Field(default=False, description="Verbose per-frame logging")

    # Connection pooling
    pool_connections: int = Field(default=10, ge=1, le=200,
                                  description="HTTP connection pool size")
    pool_maxsize: int = Field(default=20, ge=1, le=500,
                              description="Max connections per pool")

    def __repr__(self) -> str:
        """Safe repr without sensitive data."""
        return (
            f"FeedSettings("
            f"clob_url={self.clob_url}, "
            f"ws_url={self.ws_url}, "
            f"chain_id={self.chain_id}"
            ")"
        )


def get_settings() -> FeedSettings:
    """
    Get pmstream settings.

    Returns:
        Validated settings instance
    """
    return FeedSettings()
