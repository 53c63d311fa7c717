"""
Prometheus metrics for feed monitoring.
"""

from typing import Optional
import logging

from prometheus_client import CollectorRegistry, Counter, Gauge, start_http_server

logger = logging.getLogger(__name__)


class FeedMetrics:
    """
    Prometheus metrics collector for the order-book feed.

    Tracks:
    - Frames received and events dispatched
    - Decode errors
    - Disconnects and reconnect attempts
    - Connection state
    """

    def __init__(
        self,
        enabled: bool = True,
        port: Optional[int] = None,
        registry: Optional[CollectorRegistry] = None
    ):
        """
        Initialize metrics.

        Args:
            enabled: Enable metrics collection
            port: Metrics HTTP server port (no server if None)
            registry: Collector registry (a private one is created if None)
        """
        self.enabled = enabled
        self.registry = registry or CollectorRegistry()

        if not self.enabled:
            return

        self.frames_received = Counter(
            'pmstream_frames_received_total',
            'Text frames received from the feed',
            ['channel'],
            registry=self.registry
        )

        self.events_dispatched = Counter(
            'pmstream_events_dispatched_total',
            'Decoded events dispatched to callbacks',
            ['channel', 'event_type'],
            registry=self.registry
        )

        self.decode_errors = Counter(
            'pmstream_decode_errors_total',
            'Payloads that failed to decode',
            ['channel'],
            registry=self.registry
        )

        self.disconnects = Counter(
            'pmstream_disconnects_total',
            'Feed disconnects',
            ['channel'],
            registry=self.registry
        )

        self.reconnect_attempts = Counter(
            'pmstream_reconnect_attempts_total',
            'Scheduled reconnect attempts',
            ['channel'],
            registry=self.registry
        )

        self.connected = Gauge(
            'pmstream_connected',
            'Feed connection state (1=connected, 0=not connected)',
            ['channel'],
            registry=self.registry
        )

        if port is not None:
            try:
                start_http_server(port, registry=self.registry)
                logger.info(f"Metrics server started on port {port}")
            except OSError as e:
                logger.error(f"Failed to start metrics server: {e}")

    def track_frame(self, channel: str) -> None:
        """Record an inbound text frame."""
        if self.enabled:
            self.frames_received.labels(channel=channel).inc()

    def track_event(self, channel: str, event_type: str) -> None:
        """Record a dispatched event."""
        if self.enabled:
            self.events_dispatched.labels(channel=channel, event_type=event_type).inc()

    def track_decode_error(self, channel: str) -> None:
        """Record a decode failure."""
        if self.enabled:
            self.decode_errors.labels(channel=channel).inc()

    def track_disconnect(self, channel: str) -> None:
        """Record a disconnect."""
        if self.enabled:
            self.disconnects.labels(channel=channel).inc()

    def track_reconnect_attempt(self, channel: str) -> None:
        """Record a scheduled reconnect attempt."""
        if self.enabled:
            self.reconnect_attempts.labels(channel=channel).inc()

    def set_connected(self, channel: str, connected: bool) -> None:
        """Set connection state."""
        if self.enabled:
            self.connected.labels(channel=channel).set(1 if connected else 0)


# Global metrics instance
_metrics: Optional[FeedMetrics] = None


def get_metrics(enabled: bool = True, port: Optional[int] = None) -> FeedMetrics:
    """Get or create the shared metrics instance."""
    global _metrics
    if _metrics is None:
        _metrics = FeedMetrics(enabled=enabled, port=port)
    return _metrics
