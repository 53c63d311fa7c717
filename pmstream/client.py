"""
Main pmstream client.

Wires settings, REST clients and credential issuance into ready-to-connect
feed clients.
"""

from typing import Any, Optional
import logging
import threading

from .config import get_settings, FeedSettings
from .models import (
    ApiCredentials,
    ChannelType,
    INITIAL_CURSOR,
    PaginationPolicy,
    Trade,
    TradeParams,
    WebSocketOptions,
)
from .auth.authenticator import Authenticator, address_from_key
from .auth.credentials import (
    CredentialProvider,
    ClobCredentialProvider,
    StaticCredentialProvider,
)
from .api.gamma import GammaAPI
from .api.clob import CLOBAPI
from .ws.client import WebSocketClient
from .ws.dispatcher import FeedCallbacks
from .utils.retry import CircuitBreaker
from .exceptions import AuthenticationError, MarketDataError
from .metrics import FeedMetrics, get_metrics

logger = logging.getLogger(__name__)


class FeedClient:
    """
    Entry point for market discovery, credentials and live feeds.

    Usage:
        client = FeedClient()
        feed = client.market_feed(callbacks=FeedCallbacks(on_book=print))
        feed.connect()
        feed.wait()
    """

    def __init__(
        self,
        settings: Optional[FeedSettings] = None,
        private_key: Optional[str] = None,
        credentials: Optional[ApiCredentials] = None,
        enable_circuit_breaker: bool = True,
        metrics: Optional[FeedMetrics] = None
    ):
        """
        Initialize client.

        Args:
            settings: Optional settings (loads from env if not provided)
            private_key: Wallet key for user-channel feeds and trade history
            credentials: Existing API key triple (skips derivation)
            enable_circuit_breaker: Guard REST calls with a circuit breaker
            metrics: Feed metrics (from settings if not provided)
        """
        self.settings = settings or get_settings()
        self.authenticator = Authenticator(chain_id=self.settings.chain_id)

        self.circuit_breaker = None
        if enable_circuit_breaker:
            self.circuit_breaker = CircuitBreaker(
                failure_threshold=self.settings.circuit_breaker_threshold,
                timeout=self.settings.circuit_breaker_timeout,
                name="pmstream"
            )

        self.gamma = GammaAPI(settings=self.settings, circuit_breaker=self.circuit_breaker)
        self.clob = CLOBAPI(
            settings=self.settings,
            authenticator=self.authenticator,
            circuit_breaker=self.circuit_breaker
        )

        self._private_key = private_key
        self.credential_provider: CredentialProvider
        if credentials is not None:
            self.credential_provider = StaticCredentialProvider(credentials)
        else:
            self.credential_provider = ClobCredentialProvider(self.clob, self.authenticator)

        if metrics is None:
            metrics = (
                get_metrics(enabled=True, port=self.settings.metrics_port)
                if self.settings.enable_metrics
                else FeedMetrics(enabled=False)
            )
        self.metrics = metrics

        self._feeds: list[WebSocketClient] = []
        self._feeds_lock = threading.Lock()

        logger.info(f"FeedClient initialized: {self.settings!r}")

    # ========== Discovery ==========

    def discover_asset_ids(self, max_markets: Optional[int] = None, page_size: int = 100) -> list[str]:
        """
        Token IDs of currently active markets.

        Raises:
            MarketDataError: If the Gamma API fails
        """
        markets = self.gamma.list_active_markets(page_size=page_size, max_markets=max_markets)
        asset_ids = self.gamma.collect_asset_ids(markets)
        logger.info(f"Discovered {len(asset_ids)} asset ids from {len(markets)} markets")
        return asset_ids

    # ========== Feeds ==========

    def _options(self, channel: ChannelType, **overrides: Any) -> WebSocketOptions:
        values: dict[str, Any] = {
            "channel": channel,
            "auto_reconnect": self.settings.ws_auto_reconnect,
            "reconnect_delay": self.settings.ws_reconnect_delay,
            "max_reconnect_attempts": self.settings.ws_max_reconnects,
            "ping_interval": self.settings.ws_ping_interval,
            "proxy_url": self.settings.ws_proxy_url,
            "debug": self.settings.ws_debug,
            "connect_timeout": self.settings.connect_timeout,
        }
        values.update(overrides)
        return WebSocketOptions(**values)

    def _register(self, feed: WebSocketClient) -> WebSocketClient:
        with self._feeds_lock:
            self._feeds.append(feed)
        return feed

    def market_feed(
        self,
        asset_ids: Optional[list[str]] = None,
        callbacks: Optional[FeedCallbacks] = None,
        **options: Any
    ) -> WebSocketClient:
        """
        Create (but do not connect) a market-channel feed.

        Args:
            asset_ids: Token IDs to subscribe (discovered if None)
            callbacks: Event callbacks
            **options: WebSocketOptions overrides

        Raises:
            MarketDataError: If discovery fails or finds nothing
        """
        if asset_ids is None:
            asset_ids = self.discover_asset_ids()
            if not asset_ids:
                raise MarketDataError("No active markets with order books found")

        feed = WebSocketClient(
            self._options(ChannelType.MARKET, asset_ids=asset_ids, **options),
            callbacks,
            ws_url=self.settings.ws_url,
            metrics=self.metrics
        )
        return self._register(feed)

    def user_feed(
        self,
        markets: list[str],
        callbacks: Optional[FeedCallbacks] = None,
        **options: Any
    ) -> WebSocketClient:
        """
        Create (but do not connect) a user-channel feed.

        Credentials are derived on every connect.

        Args:
            markets: Condition IDs to subscribe
            callbacks: Order and trade callbacks
            **options: WebSocketOptions overrides

        Raises:
            AuthenticationError: No private key or credentials configured
        """
        if self._private_key is None and not isinstance(self.credential_provider, StaticCredentialProvider):
            raise AuthenticationError("User feed requires a private key or API credentials")

        feed = WebSocketClient(
            self._options(ChannelType.USER, markets=markets, **options),
            callbacks,
            credential_provider=self.credential_provider,
            signing_key=self._private_key,
            ws_url=self.settings.ws_url,
            metrics=self.metrics
        )
        return self._register(feed)

    # ========== Trade History ==========

    def get_trades(
        self,
        params: Optional[TradeParams] = None,
        only_first_page: bool = False,
        next_cursor: str = INITIAL_CURSOR,
        policy: PaginationPolicy = PaginationPolicy.BEST_EFFORT
    ) -> list[Trade]:
        """
        Trade history for the configured wallet.

        Raises:
            AuthenticationError: No private key configured
        """
        if self._private_key is None:
            raise AuthenticationError("Trade history requires a private key")

        address = address_from_key(self._private_key)
        credentials = self.credential_provider.derive_credentials(self._private_key)
        return self.clob.get_trades(
            address,
            credentials,
            params=params,
            only_first_page=only_first_page,
            next_cursor=next_cursor,
            policy=policy
        )

    # ========== Shutdown ==========

    def close(self) -> None:
        """Disconnect every feed created by this client and close HTTP sessions."""
        with self._feeds_lock:
            feeds, self._feeds = self._feeds, []
        for feed in feeds:
            feed.disconnect()
        self.gamma.close()
        self.clob.close()
        logger.info("FeedClient closed")

    def __enter__(self) -> "FeedClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
