"""Real-time order-book feed over WebSocket."""

from .client import WebSocketClient, Connection, DEFAULT_WS_URL
from .dispatcher import EventDispatcher, FeedCallbacks
from .messages import (
    PING,
    PONG,
    EventType,
    OrderSummary,
    PriceChange,
    BookMessage,
    PriceChangeMessage,
    TickSizeChangeMessage,
    LastTradePriceMessage,
    OrderMessage,
    TradeMessage,
    MarketChannelMessage,
    parse_message,
    iter_frame_payloads,
    downcast,
    encode_subscribe,
)
from .reconnect import ConnectionState, ReconnectController
from .subscriptions import SubscriptionRegistry
from .transport import build_ssl_context, proxy_options, dial

__all__ = [
    "WebSocketClient",
    "Connection",
    "DEFAULT_WS_URL",
    "EventDispatcher",
    "FeedCallbacks",
    "PING",
    "PONG",
    "EventType",
    "OrderSummary",
    "PriceChange",
    "BookMessage",
    "PriceChangeMessage",
    "TickSizeChangeMessage",
    "LastTradePriceMessage",
    "OrderMessage",
    "TradeMessage",
    "MarketChannelMessage",
    "parse_message",
    "iter_frame_payloads",
    "downcast",
    "encode_subscribe",
    "ConnectionState",
    "ReconnectController",
    "SubscriptionRegistry",
    "build_ssl_context",
    "proxy_options",
    "dial",
]
