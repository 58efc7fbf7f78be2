"""Infrastructure layer package."""

from chordispeak.infrastructure.config import ConfigLoader, ClientConfig
from chordispeak.infrastructure.network import ConnectivityMonitor
from chordispeak.infrastructure.http import TransportClient, UploadCoordinator
from chordispeak.infrastructure.api import ChordiSpeakClient

__all__ = [
    "ConfigLoader",
    "ClientConfig",
    "ConnectivityMonitor",
    "TransportClient",
    "UploadCoordinator",
    "ChordiSpeakClient",
]
