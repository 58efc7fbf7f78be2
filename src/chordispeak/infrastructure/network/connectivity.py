"""
Process-wide network reachability tracking.

A ConnectivityMonitor is created once at process start, started, handed by
reference to every TransportClient, and stopped on exit. Its state is written
only by its own update path and read by any number of transports.
"""

import ipaddress
import socket
import threading
from enum import Enum
from typing import Callable, List, Optional, Tuple
from urllib.parse import urlparse

from chordispeak.shared.logging import get_logger

logger = get_logger(__name__)

Probe = Callable[[], Tuple[bool, Optional["InterfaceKind"]]]


class InterfaceKind(str, Enum):
    """Kind of local interface used to reach the service."""

    LOOPBACK = "loopback"
    IPV4 = "ipv4"
    IPV6 = "ipv6"


def _interface_kind(local_address: str) -> Optional[InterfaceKind]:
    try:
        address = ipaddress.ip_address(local_address.split("%")[0])
    except ValueError:
        return None
    if address.is_loopback:
        return InterfaceKind.LOOPBACK
    return InterfaceKind.IPV6 if address.version == 6 else InterfaceKind.IPV4


def tcp_probe(host: str, port: int, timeout: float = 3.0) -> Probe:
    """Build a probe that reports whether a TCP connection to host:port succeeds."""

    def probe() -> Tuple[bool, Optional[InterfaceKind]]:
        try:
            with socket.create_connection((host, port), timeout=timeout) as sock:
                return True, _interface_kind(sock.getsockname()[0])
        except OSError:
            return False, None

    return probe


class ConnectivityMonitor:
    """
    Tracks whether a usable network path to the service currently exists.

    The state may be stale: it is a fail-fast hint for transports, not a
    guarantee that a request will reach the server.
    """

    def __init__(
        self,
        probe: Probe,
        check_interval: float = 5.0,
        initially_reachable: bool = True
    ):
        """
        Initialize monitor.

        Args:
            probe: Callable returning (reachable, interface kind)
            check_interval: Seconds between background probes
            initially_reachable: State reported before the first probe
        """
        self._probe = probe
        self.check_interval = check_interval
        self._reachable = initially_reachable
        self._interface: Optional[InterfaceKind] = None
        self._lock = threading.Lock()
        self._subscribers: List[Callable[[bool], None]] = []
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def for_url(
        cls,
        base_url: str,
        host: Optional[str] = None,
        port: Optional[int] = None,
        check_interval: float = 5.0,
        probe_timeout: float = 3.0
    ) -> "ConnectivityMonitor":
        """Create a monitor that probes the host serving base_url."""
        parsed = urlparse(base_url)
        probe_host = host or parsed.hostname
        if not probe_host:
            raise ValueError(f"Cannot determine host to probe from {base_url!r}")
        probe_port = port or parsed.port or (443 if parsed.scheme == "https" else 80)
        return cls(tcp_probe(probe_host, probe_port, probe_timeout), check_interval=check_interval)

    def is_reachable(self) -> bool:
        """Latest known reachability (non-blocking)."""
        return self._reachable

    @property
    def interface(self) -> Optional[InterfaceKind]:
        return self._interface

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        """
        Register a callback for reachability changes.

        Returns:
            Function that removes the subscription
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def update(self, reachable: bool, interface: Optional[InterfaceKind] = None) -> None:
        """Record a new path state and notify subscribers if reachability changed."""
        with self._lock:
            changed = reachable != self._reachable
            self._reachable = reachable
            self._interface = interface if reachable else None
            subscribers = list(self._subscribers) if changed else []

        if not changed:
            return

        if reachable:
            kind = interface.value if interface else "unknown"
            logger.info(f"Network reachable (interface: {kind})")
        else:
            logger.warning("Network unreachable")

        for callback in subscribers:
            try:
                callback(reachable)
            except Exception:
                logger.exception("Connectivity subscriber failed")

    def check_now(self) -> bool:
        """Probe immediately and update the state."""
        reachable, interface = self._probe()
        self.update(reachable, interface)
        return reachable

    def start(self) -> None:
        """Probe once synchronously, then keep probing in the background."""
        if self.running:
            return
        self._stop_event.clear()
        self.check_now()
        self._thread = threading.Thread(
            target=self._run,
            name="connectivity-monitor",
            daemon=True
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop background probing."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop_event.wait(self.check_interval):
            self.check_now()

    def __enter__(self) -> "ConnectivityMonitor":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
