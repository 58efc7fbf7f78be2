"""Network reachability package."""

from chordispeak.infrastructure.network.connectivity import (
    ConnectivityMonitor,
    InterfaceKind,
    tcp_probe,
)

__all__ = ["ConnectivityMonitor", "InterfaceKind", "tcp_probe"]
