"""Factories wiring clients and sessions from configuration."""

from typing import Optional

import requests

from chordispeak.application.session import ProcessingSession
from chordispeak.application.task_monitor import TaskMonitor
from chordispeak.infrastructure.api.client import ChordiSpeakClient
from chordispeak.infrastructure.config.loader import ClientConfig
from chordispeak.infrastructure.http.transport import TransportClient
from chordispeak.infrastructure.http.uploader import UploadCoordinator
from chordispeak.infrastructure.network.connectivity import ConnectivityMonitor
from chordispeak.shared.logging import get_logger
from chordispeak.shared.metrics import MetricsCollector

logger = get_logger(__name__)


def create_connectivity_monitor(config: ClientConfig, start: bool = True) -> ConnectivityMonitor:
    """Create the process-wide connectivity monitor, started unless asked otherwise."""
    monitor = ConnectivityMonitor.for_url(
        config.base_url,
        host=config.connectivity_probe_host,
        port=config.connectivity_probe_port,
        check_interval=config.connectivity_check_interval,
    )
    if start:
        monitor.start()
    return monitor


def create_client(
    config: ClientConfig,
    connectivity: ConnectivityMonitor,
    metrics: Optional[MetricsCollector] = None,
    session: Optional[requests.Session] = None
) -> ChordiSpeakClient:
    """Create a service client sharing one transport between all endpoints."""
    transport = TransportClient(
        base_url=config.base_url,
        connectivity=connectivity,
        request_timeout=config.request_timeout,
        resource_timeout=config.resource_timeout,
        max_retry_attempts=config.max_retry_attempts,
        retry_delay=config.retry_delay,
        app_version=config.app_version,
        session=session,
        metrics=metrics,
    )
    uploader = UploadCoordinator(transport, max_upload_bytes=config.max_upload_bytes)
    return ChordiSpeakClient(transport, uploader)


def create_session(
    config: ClientConfig,
    connectivity: Optional[ConnectivityMonitor] = None,
    metrics: Optional[MetricsCollector] = None,
    session: Optional[requests.Session] = None
) -> ProcessingSession:
    """
    Create a processing session with all dependencies from config.

    When no connectivity monitor is passed, one is created and started, and
    the session stops it on close().
    """
    owned = connectivity is None
    if connectivity is None:
        connectivity = create_connectivity_monitor(config)

    client = create_client(config, connectivity, metrics=metrics, session=session)
    monitor = TaskMonitor(client, poll_interval=config.poll_interval, metrics=metrics)
    logger.debug(f"Session created for {config.base_url}")

    return ProcessingSession(client, monitor, connectivity if owned else None)
