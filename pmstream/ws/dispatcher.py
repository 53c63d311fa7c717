"""
Callback dispatch for decoded feed events.

Dispatch is synchronous on the reader thread: a slow callback delays the
frames behind it. Exceptions raised by user callbacks are logged and never
reach the reader.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional
import logging

from ..metrics import FeedMetrics
from .messages import (
    BookMessage,
    EventType,
    LastTradePriceMessage,
    MarketChannelMessage,
    OrderMessage,
    PriceChangeMessage,
    TickSizeChangeMessage,
    TradeMessage,
)

logger = logging.getLogger(__name__)


@dataclass
class FeedCallbacks:
    """
    Callbacks for a feed connection. All are optional.

    Typed callbacks receive only their own event kind; ``on_message``
    receives every event, after the typed callback.
    """
    on_book: Optional[Callable[[BookMessage], None]] = None
    on_price_change: Optional[Callable[[PriceChangeMessage], None]] = None
    on_tick_size_change: Optional[Callable[[TickSizeChangeMessage], None]] = None
    on_last_trade_price: Optional[Callable[[LastTradePriceMessage], None]] = None
    on_order: Optional[Callable[[OrderMessage], None]] = None
    on_trade: Optional[Callable[[TradeMessage], None]] = None
    on_message: Optional[Callable[[MarketChannelMessage], None]] = None
    on_error: Optional[Callable[[Exception], None]] = None
    on_connect: Optional[Callable[[], None]] = None
    on_disconnect: Optional[Callable[[Optional[int], str], None]] = None
    on_reconnect: Optional[Callable[[int], None]] = None


_TYPED_CALLBACKS = {
    EventType.BOOK: "on_book",
    EventType.PRICE_CHANGE: "on_price_change",
    EventType.TICK_SIZE_CHANGE: "on_tick_size_change",
    EventType.LAST_TRADE_PRICE: "on_last_trade_price",
    EventType.ORDER: "on_order",
    EventType.TRADE: "on_trade",
}


class EventDispatcher:
    """Routes events and lifecycle notifications to FeedCallbacks."""

    def __init__(
        self,
        callbacks: Optional[FeedCallbacks] = None,
        channel: str = "market",
        metrics: Optional[FeedMetrics] = None,
        log: Optional[logging.Logger] = None
    ):
        self.callbacks = callbacks or FeedCallbacks()
        self.channel = channel
        self.metrics = metrics
        self._log = log or logger

    def _invoke(self, name: str, func: Callable[..., Any], *args: Any) -> None:
        try:
            func(*args)
        except Exception as e:
            self._log.error(f"{name} callback error: {e}", exc_info=True)

    def dispatch(self, message: MarketChannelMessage) -> None:
        """Invoke the typed callback for ``message``, then ``on_message``."""
        name = _TYPED_CALLBACKS.get(message.event_type)
        handler = getattr(self.callbacks, name) if name else None
        if handler is not None:
            self._invoke(name, handler, message)

        if self.callbacks.on_message is not None:
            self._invoke("on_message", self.callbacks.on_message, message)

        if self.metrics:
            self.metrics.track_event(self.channel, message.event_type.value)

    def report_error(self, error: Exception) -> None:
        """Deliver a runtime error to ``on_error``, or log it if unset."""
        if self.callbacks.on_error is not None:
            self._invoke("on_error", self.callbacks.on_error, error)
        else:
            self._log.error(f"Feed error ({self.channel}): {error}")

    def notify_connect(self) -> None:
        if self.callbacks.on_connect is not None:
            self._invoke("on_connect", self.callbacks.on_connect)

    def notify_disconnect(self, code: Optional[int], reason: str) -> None:
        if self.callbacks.on_disconnect is not None:
            self._invoke("on_disconnect", self.callbacks.on_disconnect, code, reason)

    def notify_reconnect(self, attempt: int) -> None:
        if self.callbacks.on_reconnect is not None:
            self._invoke("on_reconnect", self.callbacks.on_reconnect, attempt)
