"""
Connection state machine and reconnect scheduling.

    IDLE --connect--> CONNECTING --ok--> CONNECTED
    CONNECTING --connect failed--> IDLE
    CONNECTED --drop--> RECONNECT_PENDING --delay--> CONNECTING
    CONNECTING --redial failed--> RECONNECT_PENDING
    RECONNECT_PENDING / CONNECTED / CONNECTING --cap reached--> TERMINATED
    any --disconnect--> IDLE

The attempt counter increments on every entry into RECONNECT_PENDING and
resets on entry into CONNECTED.
"""

from enum import Enum
from typing import Callable, Optional
import logging
import threading

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Feed connection states."""
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECT_PENDING = "reconnect_pending"
    TERMINATED = "terminated"


_TRANSITIONS: dict[ConnectionState, frozenset] = {
    ConnectionState.IDLE: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset({
        ConnectionState.CONNECTED,
        ConnectionState.IDLE,
        ConnectionState.RECONNECT_PENDING,
        ConnectionState.TERMINATED,
    }),
    ConnectionState.CONNECTED: frozenset({
        ConnectionState.RECONNECT_PENDING,
        ConnectionState.TERMINATED,
        ConnectionState.IDLE,
    }),
    ConnectionState.RECONNECT_PENDING: frozenset({
        ConnectionState.CONNECTING,
        ConnectionState.TERMINATED,
        ConnectionState.IDLE,
    }),
    ConnectionState.TERMINATED: frozenset({
        ConnectionState.CONNECTING,
        ConnectionState.IDLE,
    }),
}

_STOPPED = (ConnectionState.IDLE, ConnectionState.TERMINATED)


class ReconnectController:
    """
    Owns the connection state, the attempt counter and the delay timer.

    Holds no transport: the client drives it with ``mark_*`` calls and
    gives it the redial callback to run when the delay elapses.
    """

    def __init__(
        self,
        delay: float = 5.0,
        max_attempts: int = 0,
        lock: Optional[threading.RLock] = None,
        timer_factory: Callable[..., threading.Timer] = threading.Timer
    ):
        """
        Initialize controller.

        Args:
            delay: Seconds between a drop and the redial
            max_attempts: Attempt cap (0 = unbounded)
            lock: Lock shared with the owning client
            timer_factory: threading.Timer compatible factory
        """
        self.delay = delay
        self.max_attempts = max_attempts
        self._lock = lock or threading.RLock()
        self._stopped = threading.Condition(self._lock)
        self._timer_factory = timer_factory

        self._state = ConnectionState.IDLE
        self._attempts = 0
        self._timer: Optional[threading.Timer] = None
        self._generation = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def timer_pending(self) -> bool:
        """True while a redial is armed."""
        with self._lock:
            return self._timer is not None

    def _transition(self, new_state: ConnectionState) -> None:
        with self._lock:
            if new_state not in _TRANSITIONS[self._state]:
                raise RuntimeError(
                    f"Invalid connection state transition: "
                    f"{self._state.value} -> {new_state.value}"
                )
            logger.debug(f"Connection state: {self._state.value} -> {new_state.value}")
            self._state = new_state
            if new_state in _STOPPED:
                self._stopped.notify_all()

    def mark_connecting(self) -> None:
        with self._lock:
            self.cancel()
            self._transition(ConnectionState.CONNECTING)

    def mark_connected(self) -> None:
        with self._lock:
            self._transition(ConnectionState.CONNECTED)
            self._attempts = 0

    def mark_idle(self) -> None:
        """Stop: disarm any timer and return to IDLE. Idempotent."""
        with self._lock:
            self.cancel()
            if self._state != ConnectionState.IDLE:
                self._transition(ConnectionState.IDLE)

    def next_attempt(self) -> Optional[int]:
        """
        Enter RECONNECT_PENDING for another attempt.

        Returns:
            The new attempt number, or None if the cap is reached (the
            state is then TERMINATED)
        """
        with self._lock:
            if self.max_attempts > 0 and self._attempts >= self.max_attempts:
                self._transition(ConnectionState.TERMINATED)
                return None
            self._attempts += 1
            self._transition(ConnectionState.RECONNECT_PENDING)
            return self._attempts

    def arm(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` on a daemon timer thread after ``delay``."""
        with self._lock:
            self.cancel()
            self._generation += 1
            timer = self._timer_factory(self.delay, self._fire, args=(self._generation, callback))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def _fire(self, generation: int, callback: Callable[[], None]) -> None:
        with self._lock:
            # Cancelled or superseded after the timer thread started
            if generation != self._generation or self._timer is None:
                return
            self._timer = None
        callback()

    def cancel(self) -> None:
        """Disarm the pending timer, if any."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        """Block until IDLE or TERMINATED; False on timeout."""
        with self._stopped:
            return self._stopped.wait_for(lambda: self._state in _STOPPED, timeout)
