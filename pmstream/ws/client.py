"""
WebSocket client for the CLOB order-book feed.

One client owns at most one live connection, served by two daemon threads:
a reader that decodes and dispatches frames, and a heartbeat that sends
PING every ``ping_interval`` seconds. A dropped connection is redialed on a
timer thread with the full current subscription set.

Example:
    client = WebSocketClient(
        WebSocketOptions(asset_ids=["1234..."]),
        FeedCallbacks(on_book=handle_book)
    )
    with client:
        client.wait()
"""

import threading
import time
from typing import Callable, Iterable, Optional, Union
import logging

import websocket
from websocket import ABNF, WebSocketException

from ..auth.credentials import CredentialProvider
from ..exceptions import (
    FrameDecodeError,
    WebSocketConnectionError,
    WebSocketSendError,
)
from ..metrics import FeedMetrics
from ..models import ApiCredentials, ChannelType, WebSocketOptions
from . import transport
from .dispatcher import EventDispatcher, FeedCallbacks
from .messages import PING, PONG, encode_subscribe, iter_frame_payloads, parse_message
from .reconnect import ConnectionState, ReconnectController
from .subscriptions import SubscriptionRegistry

logger = logging.getLogger(__name__)

DEFAULT_WS_URL = "wss://ws-subscriptions-clob.polymarket.com"
JOIN_TIMEOUT = 5.0


def _parse_close_frame(data: bytes) -> tuple[Optional[int], str]:
    """Status code and reason from a close frame body."""
    if data and len(data) >= 2:
        code = 256 * data[0] + data[1]
        return code, data[2:].decode("utf-8", errors="replace")
    return None, ""


class Connection:
    """
    One live transport session.

    Owned by WebSocketClient; writes go through ``write_lock``.
    """

    def __init__(self, sock: websocket.WebSocket, credentials: Optional[ApiCredentials] = None):
        self.sock = sock
        self.credentials = credentials
        self.stop_event = threading.Event()
        self.write_lock = threading.Lock()
        self.closing = False  # set when the close was requested locally
        self.reader: Optional[threading.Thread] = None
        self.heartbeat: Optional[threading.Thread] = None
        self.opened_at = time.time()

    def send(self, text: str) -> None:
        with self.write_lock:
            self.sock.send(text)

    def close(self) -> None:
        """Stop the heartbeat and unblock the reader."""
        self.closing = True
        self.stop_event.set()

        # Skip the close handshake if a writer is mid-send
        if self.write_lock.acquire(blocking=False):
            try:
                self.sock.send_close()
            except (WebSocketException, OSError) as e:
                logger.debug(f"Close frame not sent: {e}")
            finally:
                self.write_lock.release()

        try:
            self.sock.abort()
        except (WebSocketException, OSError) as e:
            logger.debug(f"Error aborting socket: {e}")

    def discard(self) -> None:
        """Close a connection whose reader never started."""
        self.close()
        try:
            self.sock.shutdown()
        except (WebSocketException, OSError) as e:
            logger.debug(f"Error shutting down socket: {e}")

    def join(self, timeout: float = JOIN_TIMEOUT) -> None:
        current = threading.current_thread()
        for thread in (self.reader, self.heartbeat):
            if thread is not None and thread is not current:
                thread.join(timeout=timeout)


class WebSocketClient:
    """
    Durable subscription to the market or user channel.

    Provides:
    - Subscribe frames that always carry the complete subscription set
    - Typed event callbacks (see FeedCallbacks)
    - PING heartbeat
    - Automatic redial with a fixed delay and an optional attempt cap

    Thread-safe: every public method may be called from any thread,
    including from inside callbacks.
    """

    def __init__(
        self,
        options: Optional[WebSocketOptions] = None,
        callbacks: Optional[FeedCallbacks] = None,
        credential_provider: Optional[CredentialProvider] = None,
        signing_key: Optional[str] = None,
        ws_url: str = DEFAULT_WS_URL,
        dialer: Callable[..., websocket.WebSocket] = transport.dial,
        metrics: Optional[FeedMetrics] = None,
        timer_factory: Callable[..., threading.Timer] = threading.Timer
    ):
        """
        Initialize WebSocket client.

        Args:
            options: Connection options (market channel defaults if None)
            callbacks: Event and lifecycle callbacks
            credential_provider: Issues API credentials (user channel only)
            signing_key: Wallet key handed to the credential provider
            ws_url: Feed base URL; ``/ws/<channel>`` is appended
            dialer: Opens the socket (see transport.dial)
            metrics: Prometheus metrics (disabled if None)
            timer_factory: Reconnect timer factory
        """
        self.options = options or WebSocketOptions()
        self.channel = ChannelType(self.options.channel)
        self.url = f"{ws_url.rstrip('/')}/ws/{self.channel.value}"

        self._log = self.options.logger or logger
        self._credential_provider = credential_provider
        self._signing_key = signing_key
        self._dialer = dialer
        self._metrics = metrics or FeedMetrics(enabled=False)

        self._lock = threading.RLock()
        self._subscriptions = SubscriptionRegistry(self.options.initial_ids, lock=self._lock)
        self._dispatcher = EventDispatcher(
            callbacks,
            channel=self.channel.value,
            metrics=self._metrics,
            log=self._log
        )
        self._reconnect = ReconnectController(
            delay=self.options.reconnect_delay,
            max_attempts=self.options.max_reconnect_attempts,
            lock=self._lock,
            timer_factory=timer_factory
        )

        self._connection: Optional[Connection] = None
        self._should_reconnect = self.options.auto_reconnect
        # Bumped by disconnect() so an in-flight dial can tell it was cancelled
        self._epoch = 0

        # Monitoring
        self._frames_received = 0
        self._decode_errors = 0
        self._total_reconnections = 0
        self._last_pong: Optional[float] = None

        self._log.info(f"WebSocket client initialized: {self.url}")

    @property
    def callbacks(self) -> FeedCallbacks:
        return self._dispatcher.callbacks

    @property
    def state(self) -> ConnectionState:
        return self._reconnect.state

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect.attempts

    @property
    def subscriptions(self) -> list[str]:
        return self._subscriptions.snapshot()

    def is_connected(self) -> bool:
        with self._lock:
            return self._connection is not None and self._reconnect.state == ConnectionState.CONNECTED

    # ========== Lifecycle ==========

    def connect(self) -> "WebSocketClient":
        """
        Open the feed and send the subscription set.

        No-op while connected or connecting. Cancels a pending redial and
        connects immediately.

        Returns:
            Self for chaining

        Raises:
            WebSocketConnectionError: Credential, proxy, dial or subscribe
                failure; the client is left IDLE
        """
        with self._lock:
            if self._reconnect.state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
                self._log.debug(f"connect() ignored in state {self._reconnect.state.value}")
                return self
            self._should_reconnect = self.options.auto_reconnect
            self._reconnect.mark_connecting()
            epoch = self._epoch

        try:
            self._establish(epoch)
        except WebSocketConnectionError as e:
            self._abandon_connect(epoch)
            self._log.error(f"Connect failed: {e}")
            raise
        except BaseException:
            self._abandon_connect(epoch)
            raise
        return self

    def _abandon_connect(self, epoch: int) -> None:
        with self._lock:
            if epoch == self._epoch and self._reconnect.state == ConnectionState.CONNECTING:
                self._reconnect.mark_idle()

    def disconnect(self) -> None:
        """
        Close the feed and disable reconnection. Idempotent.

        Safe to call from any thread, including callbacks.
        """
        with self._lock:
            self._should_reconnect = False
            self._epoch += 1
            conn = self._connection
            self._connection = None
            self._reconnect.mark_idle()

        if conn is not None:
            conn.close()
            self._metrics.set_connected(self.channel.value, False)
            conn.join()
            self._log.info(f"Disconnected from {self.url}")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the feed stops for good (disconnected or gave up).

        Returns:
            False if ``timeout`` elapsed first
        """
        return self._reconnect.wait_stopped(timeout)

    def __enter__(self) -> "WebSocketClient":
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()

    # ========== Subscriptions ==========

    def subscribe(self, ids: Union[str, Iterable[str]]) -> list[str]:
        """
        Add identifiers and, if connected, resend the full set.

        Send failures are delivered to ``on_error``.

        Returns:
            Identifiers that were newly added
        """
        added = self._subscriptions.add(ids)

        with self._lock:
            conn = self._connection

        if conn is not None:
            try:
                sent = self._send_subscription(conn)
                self._log.info(f"Subscribed: {len(added)} new, {len(sent)} total")
            except (WebSocketException, OSError) as e:
                self._dispatcher.report_error(
                    WebSocketSendError(f"Failed to send subscribe frame: {e}")
                )
        return added

    def unsubscribe(self, ids: Union[str, Iterable[str]]) -> list[str]:
        """
        Remove identifiers locally.

        The feed has no unsubscribe frame: the server keeps sending events
        for removed ids until the next connect.

        Returns:
            Identifiers that were removed
        """
        removed = self._subscriptions.remove(ids)
        if removed:
            self._log.info(f"Unsubscribed locally: {len(removed)} ids")
        return removed

    # ========== Private Methods ==========

    def _derive_credentials(self) -> Optional[ApiCredentials]:
        if self.channel != ChannelType.USER:
            return None
        if self._credential_provider is None:
            raise WebSocketConnectionError("User channel requires a credential provider")
        try:
            return self._credential_provider.derive_credentials(self._signing_key)
        except Exception as e:
            raise WebSocketConnectionError(f"Credential derivation failed: {e}") from e

    def _send_subscription(self, conn: Connection) -> list[str]:
        # Snapshot under the write lock so the last frame sent is the current set
        with conn.write_lock:
            ids = self._subscriptions.snapshot()
            frame = encode_subscribe(self.channel, ids, conn.credentials)
            conn.sock.send(frame)
        if self.options.debug:
            self._log.debug(f"Sent {self.channel.value} subscribe frame with {len(ids)} ids")
        return ids

    def _establish(self, epoch: int) -> None:
        """
        Dial, subscribe and start workers.

        Quietly abandons if disconnect() ran meanwhile.

        Raises:
            WebSocketConnectionError: For any failure, whatever its origin
        """
        try:
            self._open(epoch)
        except WebSocketConnectionError:
            raise
        except Exception as e:
            raise WebSocketConnectionError(f"Connect failed: {type(e).__name__}: {e}") from e

    def _open(self, epoch: int) -> None:
        transport.proxy_options(self.options.proxy_url)
        credentials = self._derive_credentials()

        sock = self._dialer(
            self.url,
            proxy_url=self.options.proxy_url,
            timeout=self.options.connect_timeout
        )
        conn = Connection(sock, credentials)

        with self._lock:
            if epoch != self._epoch:
                self._log.debug("Dial finished after disconnect, dropping socket")
                conn.discard()
                return
            self._connection = conn

        try:
            ids = self._send_subscription(conn)
        except Exception as e:
            with self._lock:
                if self._connection is conn:
                    self._connection = None
            conn.discard()
            raise WebSocketConnectionError(f"Failed to send subscribe frame: {e}") from e

        with self._lock:
            if epoch != self._epoch or self._connection is not conn:
                return
            if self._reconnect.attempts > 0:
                self._total_reconnections += 1
            self._reconnect.mark_connected()

            conn.reader = threading.Thread(
                target=self._read_loop,
                args=(conn,),
                daemon=True,
                name=f"pmstream-{self.channel.value}-reader"
            )
            conn.heartbeat = threading.Thread(
                target=self._heartbeat_loop,
                args=(conn,),
                daemon=True,
                name=f"pmstream-{self.channel.value}-heartbeat"
            )
            conn.reader.start()
            conn.heartbeat.start()

        self._metrics.set_connected(self.channel.value, True)
        self._log.info(f"WebSocket connected: {self.url} ({len(ids)} subscriptions)")
        self._dispatcher.notify_connect()

    def _read_loop(self, conn: Connection) -> None:
        code: Optional[int] = None
        reason = ""
        try:
            while not conn.stop_event.is_set():
                opcode, frame = conn.sock.recv_data_frame(True)
                if opcode == ABNF.OPCODE_CLOSE:
                    code, reason = _parse_close_frame(frame.data)
                    break
                if opcode in (ABNF.OPCODE_TEXT, ABNF.OPCODE_BINARY):
                    data = frame.data
                    if isinstance(data, (bytes, bytearray)):
                        data = data.decode("utf-8", errors="replace")
                    self._handle_text(data)
        except (WebSocketException, OSError) as e:
            reason = str(e)
            if not conn.closing:
                self._log.warning(f"WebSocket read failed: {e}")
        except Exception as e:
            reason = str(e)
            self._log.error(f"Reader error: {e}", exc_info=True)
        finally:
            if conn.closing and code is None:
                code, reason = websocket.STATUS_NORMAL, "client disconnect"
            self._handle_disconnect(conn, code, reason)
            try:
                conn.sock.shutdown()
            except (WebSocketException, OSError) as e:
                self._log.debug(f"Error shutting down socket: {e}")

    def _handle_text(self, text: str) -> None:
        if text.strip() == PONG:
            self._last_pong = time.time()
            if self.options.debug:
                self._log.debug("PONG received")
            return

        self._frames_received += 1
        self._metrics.track_frame(self.channel.value)

        for payload in iter_frame_payloads(text):
            try:
                message = parse_message(payload)
            except FrameDecodeError as e:
                self._decode_errors += 1
                self._metrics.track_decode_error(self.channel.value)
                if self.options.debug:
                    self._log.debug(f"Undecodable payload: {e.raw!r}")
                self._dispatcher.report_error(e)
                continue
            self._dispatcher.dispatch(message)

    def _heartbeat_loop(self, conn: Connection) -> None:
        while not conn.stop_event.wait(self.options.ping_interval):
            try:
                conn.send(PING)
            except (WebSocketException, OSError) as e:
                if not conn.stop_event.is_set():
                    self._dispatcher.report_error(
                        WebSocketSendError(f"Failed to send PING: {e}", frame=PING)
                    )
                return
            if self.options.debug:
                self._log.debug("PING sent")

    def _handle_disconnect(self, conn: Connection, code: Optional[int], reason: str) -> None:
        conn.stop_event.set()
        attempt: Optional[int] = None

        with self._lock:
            was_current = self._connection is conn
            if was_current:
                self._connection = None
            reconnect = (
                was_current
                and not conn.closing
                and self._should_reconnect
                and self._reconnect.state == ConnectionState.CONNECTED
            )
            if reconnect:
                attempt = self._reconnect.next_attempt()
            elif was_current and self._reconnect.state == ConnectionState.CONNECTED:
                self._reconnect.mark_idle()
            epoch = self._epoch

        self._metrics.track_disconnect(self.channel.value)
        self._metrics.set_connected(self.channel.value, False)
        self._log.info(f"WebSocket closed: {code} - {reason}")
        self._dispatcher.notify_disconnect(code, reason)

        if reconnect:
            self._after_attempt(attempt, epoch)

    def _after_attempt(self, attempt: Optional[int], epoch: int) -> None:
        """Notify and arm the redial timer for ``attempt``; None means the cap was hit."""
        if attempt is None:
            self._log.warning(
                f"Giving up after {self.options.max_reconnect_attempts} reconnect attempts"
            )
            return

        self._metrics.track_reconnect_attempt(self.channel.value)
        self._dispatcher.notify_reconnect(attempt)

        with self._lock:
            if epoch != self._epoch or self._reconnect.state != ConnectionState.RECONNECT_PENDING:
                return
            self._log.info(
                f"Reconnecting in {self.options.reconnect_delay}s (attempt {attempt})..."
            )
            self._reconnect.arm(self._redial)

    def _redial(self) -> None:
        with self._lock:
            if not self._should_reconnect or self._reconnect.state != ConnectionState.RECONNECT_PENDING:
                return
            self._reconnect.mark_connecting()
            epoch = self._epoch

        try:
            self._establish(epoch)
        except WebSocketConnectionError as e:
            self._log.warning(f"Reconnect attempt {self._reconnect.attempts} failed: {e}")
            self._dispatcher.report_error(e)
            with self._lock:
                if epoch != self._epoch or self._reconnect.state != ConnectionState.CONNECTING:
                    return
                attempt = self._reconnect.next_attempt()
            self._after_attempt(attempt, epoch)

    # ========== Monitoring Methods ==========

    def stats(self) -> dict:
        """
        Get connection statistics for monitoring.

        Returns:
            dict: state, uptime, subscription count, frame counters, reconnects
        """
        with self._lock:
            conn = self._connection
            connected = self.is_connected()
            uptime_seconds = int(time.time() - conn.opened_at) if conn and connected else None

            return {
                "channel": self.channel.value,
                "state": self._reconnect.state.value,
                "connected": connected,
                "uptime_seconds": uptime_seconds,
                "subscriptions": len(self._subscriptions),
                "frames_received": self._frames_received,
                "decode_errors": self._decode_errors,
                "total_reconnections": self._total_reconnections,
                "current_reconnect_attempts": self._reconnect.attempts,
                "last_pong_seconds_ago": int(time.time() - self._last_pong) if self._last_pong else None,
                "auto_reconnect_enabled": self.options.auto_reconnect,
            }
