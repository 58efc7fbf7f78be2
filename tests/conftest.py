import sys
import os

import pytest
from unittest.mock import Mock

# Ensure src/ is on sys.path so the 'chordispeak' package is importable without installing
SRC = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src'))
if SRC not in sys.path:
    sys.path.insert(0, SRC)


class FakeConnectivity:
    """Connectivity stand-in whose reachability tests flip directly."""

    def __init__(self, reachable=True):
        self.reachable = reachable

    def is_reachable(self):
        return self.reachable

    def subscribe(self, callback):
        return lambda: None


def make_response(status_code=200, json_data=None, content=b"", json_error=None):
    """Build a mock requests.Response."""
    response = Mock()
    response.status_code = status_code
    response.content = content
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def connectivity():
    return FakeConnectivity()


@pytest.fixture
def http_session():
    """Mock requests.Session with a real headers dict."""
    session = Mock()
    session.headers = {}
    return session
