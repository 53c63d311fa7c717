"""
pmstream

Durable, authenticated real-time order-book feed for Polymarket's CLOB,
with the REST helpers needed to seed it (market discovery, API key
issuance, trade history).
"""

from .client import FeedClient
from .config import FeedSettings, get_settings
from .models import (
    Side,
    ChannelType,
    PaginationPolicy,
    ApiCredentials,
    WebSocketOptions,
    Market,
    Trade,
    TradeParams,
    TradePage,
)
from .exceptions import (
    PolymarketError,
    APIError,
    AuthenticationError,
    ValidationError,
    RateLimitError,
    TimeoutError,
    CircuitBreakerError,
    MarketDataError,
    WebSocketError,
    WebSocketConnectionError,
    WebSocketSendError,
    FrameDecodeError,
)
from .ws import (
    WebSocketClient,
    FeedCallbacks,
    ConnectionState,
    EventType,
    BookMessage,
    PriceChangeMessage,
    TickSizeChangeMessage,
    LastTradePriceMessage,
    OrderMessage,
    TradeMessage,
    parse_message,
    downcast,
)
from .auth import ClobCredentialProvider, StaticCredentialProvider
from .logging_config import setup_logging

__version__ = "0.1.0"

__all__ = [
    "FeedClient",
    "FeedSettings",
    "get_settings",
    "Side",
    "ChannelType",
    "PaginationPolicy",
    "ApiCredentials",
    "WebSocketOptions",
    "Market",
    "Trade",
    "TradeParams",
    "TradePage",
    "PolymarketError",
    "APIError",
    "AuthenticationError",
    "ValidationError",
    "RateLimitError",
    "TimeoutError",
    "CircuitBreakerError",
    "MarketDataError",
    "WebSocketError",
    "WebSocketConnectionError",
    "WebSocketSendError",
    "FrameDecodeError",
    "WebSocketClient",
    "FeedCallbacks",
    "ConnectionState",
    "EventType",
    "BookMessage",
    "PriceChangeMessage",
    "TickSizeChangeMessage",
    "LastTradePriceMessage",
    "OrderMessage",
    "TradeMessage",
    "parse_message",
    "downcast",
    "ClobCredentialProvider",
    "StaticCredentialProvider",
    "setup_logging",
]
