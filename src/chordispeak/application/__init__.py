"""Application layer package."""

from chordispeak.application.task_monitor import MonitorState, TaskMonitor, TaskSnapshot
from chordispeak.application.session import ProcessingSession
from chordispeak.application.factories import (
    create_client,
    create_connectivity_monitor,
    create_session,
)

__all__ = [
    "MonitorState",
    "TaskMonitor",
    "TaskSnapshot",
    "ProcessingSession",
    "create_client",
    "create_connectivity_monitor",
    "create_session",
]
