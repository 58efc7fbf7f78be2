"""
Unit tests for connectivity monitoring.
"""

import socket

import pytest
from unittest.mock import Mock, MagicMock, patch

from chordispeak.infrastructure.network.connectivity import (
    ConnectivityMonitor,
    InterfaceKind,
    tcp_probe,
)


class TestConnectivityMonitor:
    """Test ConnectivityMonitor state and subscriptions."""

    def test_initial_state(self):
        """Test state before the first probe."""
        assert ConnectivityMonitor(Mock()).is_reachable()
        assert not ConnectivityMonitor(Mock(), initially_reachable=False).is_reachable()

    def test_check_now_updates_state(self):
        """Test a probe result becomes the current state."""
        probe = Mock(return_value=(False, None))
        monitor = ConnectivityMonitor(probe)

        assert monitor.check_now() is False
        assert not monitor.is_reachable()

        probe.return_value = (True, InterfaceKind.IPV4)
        assert monitor.check_now() is True
        assert monitor.is_reachable()
        assert monitor.interface is InterfaceKind.IPV4

    def test_subscribers_notified_on_change_only(self):
        """Test subscribers hear transitions, not repeats."""
        monitor = ConnectivityMonitor(Mock())
        events = []
        monitor.subscribe(events.append)

        monitor.update(True, InterfaceKind.IPV4)
        monitor.update(False)
        monitor.update(False)
        monitor.update(True, InterfaceKind.IPV6)

        assert events == [False, True]

    def test_unsubscribe(self):
        """Test a removed subscriber is no longer called."""
        monitor = ConnectivityMonitor(Mock())
        events = []
        unsubscribe = monitor.subscribe(events.append)

        unsubscribe()
        unsubscribe()
        monitor.update(False)

        assert events == []

    def test_failing_subscriber_does_not_block_others(self):
        """Test one broken subscriber does not stop notification."""
        monitor = ConnectivityMonitor(Mock())
        events = []
        monitor.subscribe(Mock(side_effect=RuntimeError("bad")))
        monitor.subscribe(events.append)

        monitor.update(False)

        assert events == [False]

    def test_interface_cleared_when_unreachable(self):
        """Test no interface is reported without a path."""
        monitor = ConnectivityMonitor(Mock())
        monitor.update(True, InterfaceKind.LOOPBACK)
        monitor.update(False, InterfaceKind.LOOPBACK)
        assert monitor.interface is None

    def test_start_probes_synchronously_and_stop(self):
        """Test start runs a first probe and stop ends the thread."""
        probe = Mock(return_value=(False, None))
        monitor = ConnectivityMonitor(probe, check_interval=60.0)

        with monitor:
            assert monitor.running
            assert not monitor.is_reachable()
            probe.assert_called_once()

        assert not monitor.running

    def test_for_url_uses_scheme_port(self):
        """Test probe target derivation from the base URL."""
        with patch('chordispeak.infrastructure.network.connectivity.tcp_probe') as mock_probe:
            ConnectivityMonitor.for_url("https://example.com/api")
            mock_probe.assert_called_once_with("example.com", 443, 3.0)

            ConnectivityMonitor.for_url("http://localhost:8080", port=None)
            mock_probe.assert_called_with("localhost", 8080, 3.0)

    def test_for_url_without_host(self):
        """Test a URL without host is rejected."""
        with pytest.raises(ValueError):
            ConnectivityMonitor.for_url("not a url")


class TestTcpProbe:
    """Test the socket probe."""

    def test_probe_success(self):
        """Test a connected socket reports its interface kind."""
        sock = MagicMock()
        sock.__enter__.return_value = sock
        sock.getsockname.return_value = ("127.0.0.1", 50000)

        with patch('chordispeak.infrastructure.network.connectivity.socket.create_connection',
                   return_value=sock) as mock_connect:
            assert tcp_probe("example.com", 443, timeout=1.0)() == (True, InterfaceKind.LOOPBACK)
            mock_connect.assert_called_once_with(("example.com", 443), timeout=1.0)

    def test_probe_failure(self):
        """Test connection errors report unreachable."""
        with patch('chordispeak.infrastructure.network.connectivity.socket.create_connection',
                   side_effect=socket.timeout()):
            assert tcp_probe("example.com", 443)() == (False, None)
