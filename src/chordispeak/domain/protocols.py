"""Protocol definitions for dependency inversion."""

from pathlib import Path
from typing import Protocol, Callable, Optional

from .models import Job, ChordTimeline, UploadAck, HealthStatus
from ..shared.types import ProgressCallback


class IConnectivity(Protocol):
    """Read side of the process-wide reachability state."""

    def is_reachable(self) -> bool:
        """Latest known reachability, without blocking."""
        ...

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        """Register for reachability changes; returns an unsubscribe function."""
        ...


class IChordiSpeakClient(Protocol):
    """Interface for the remote processing service endpoints."""

    def check_health(self) -> HealthStatus:
        """Query server health."""
        ...

    def upload(
        self,
        file_bytes: bytes,
        filename: str,
        on_progress: Optional[ProgressCallback] = None
    ) -> UploadAck:
        """Submit an audio file for processing."""
        ...

    def upload_file(self, file_path: Path, on_progress: Optional[ProgressCallback] = None) -> UploadAck:
        """Submit a local audio file for processing."""
        ...

    def get_status(self, task_id: str) -> Job:
        """Fetch the current status of a job."""
        ...

    def download_audio(self, task_id: str) -> bytes:
        """Fetch the processed audio of a completed job."""
        ...

    def get_chords(self, task_id: str) -> ChordTimeline:
        """Fetch the detected chord timeline of a completed job."""
        ...

    def cancel(self, task_id: str) -> None:
        """Ask the server to cancel a job."""
        ...
