"""
Custom exceptions for the pmstream client.

Connect-time failures are raised; failures after a feed is running are
delivered to the error callback as instances of these types.
"""

from typing import Optional, Any


class PolymarketError(Exception):
    """Base exception for all pmstream errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class APIError(PolymarketError):
    """API request failed."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 response: Optional[Any] = None):
        super().__init__(message, {"status_code": status_code, "response": response})
        self.status_code = status_code
        self.response = response


class AuthenticationError(PolymarketError):
    """Authentication or credential derivation failed."""
    pass


class ValidationError(PolymarketError):
    """Input validation failed."""
    pass


class RateLimitError(PolymarketError):
    """Rate limit exceeded."""

    def __init__(self, message: str, endpoint: str, retry_after: Optional[float] = None):
        super().__init__(message, {"endpoint": endpoint, "retry_after": retry_after})
        self.endpoint = endpoint
        self.retry_after = retry_after


class TimeoutError(PolymarketError):
    """Request timed out."""
    pass


class CircuitBreakerError(PolymarketError):
    """Circuit breaker is open, requests blocked."""
    pass


class MarketDataError(PolymarketError):
    """Market data unavailable or invalid."""
    pass


# WebSocket exceptions
class WebSocketError(PolymarketError):
    """WebSocket feed error."""
    pass


class WebSocketConnectionError(WebSocketError):
    """Failed to establish the feed (credentials, proxy, dial or TLS)."""
    pass


class WebSocketSendError(WebSocketError):
    """Failed to write a frame (subscribe or heartbeat)."""

    def __init__(self, message: str, frame: Optional[str] = None):
        super().__init__(message, {"frame": frame})
        self.frame = frame


class FrameDecodeError(WebSocketError):
    """Inbound payload could not be decoded into an event."""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message, {"raw": raw})
        self.raw = raw
