"""Network reachability observers."""
import logging
import socket
import threading
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

Listener = Callable[[bool], None]


class ConnectivityObserverBase(ABC):
    """
    Reports whether the network is reachable.

    Every call to is_connected() re-probes; subscribers are notified only when
    the observed value differs from the previous observation.
    """

    def __init__(self):
        self._listeners: List[Listener] = []
        self._last: Optional[bool] = None
        self._lock = threading.Lock()

    @abstractmethod
    def _probe(self) -> bool:
        pass

    def is_connected(self) -> bool:
        connected = self._probe()
        self._publish(connected)
        return connected

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a callable that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, connected: bool) -> None:
        with self._lock:
            changed = self._last is not None and self._last != connected
            self._last = connected
            listeners = list(self._listeners) if changed else []
        if changed:
            logging.info(f"Connectivity changed: {'online' if connected else 'offline'}")
        for listener in listeners:
            listener(connected)


class SocketConnectivityObserver(ConnectivityObserverBase):
    """Treats a successful TCP connect to a well-known host as reachability."""

    def __init__(self, host: str = "1.1.1.1", port: int = 53, timeout: float = 3.0):
        super().__init__()
        self.host = host
        self.port = port
        self.timeout = timeout

    def _probe(self) -> bool:
        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout):
                return True
        except OSError as e:
            logging.debug(f"Connectivity probe to {self.host}:{self.port} failed: {e}")
            return False


class ManualConnectivityObserver(ConnectivityObserverBase):
    """Connectivity set explicitly, for offline mode and tests."""

    def __init__(self, connected: bool = True):
        super().__init__()
        self._connected = connected
        self._last = connected

    def set_connected(self, connected: bool) -> None:
        self._connected = connected
        self._publish(connected)

    def _probe(self) -> bool:
        return self._connected
