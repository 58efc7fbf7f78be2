"""Caller-facing facade: submit a file, follow the job, collect the results."""

from pathlib import Path
from typing import Callable, Optional, Tuple

from chordispeak.application.task_monitor import MonitorState, TaskMonitor, UpdateCallback
from chordispeak.domain.exceptions import TaskStateError
from chordispeak.domain.models import ChordTimeline, HealthStatus, Job, JobHandle
from chordispeak.domain.protocols import IChordiSpeakClient
from chordispeak.infrastructure.network.connectivity import ConnectivityMonitor
from chordispeak.shared.logging import get_logger
from chordispeak.shared.types import PathLike, ProgressCallback

logger = get_logger(__name__)


class ProcessingSession:
    """
    One job at a time against the processing service.

    Wraps the upload, the TaskMonitor and result access behind the narrow
    interface presentation code needs.
    """

    def __init__(
        self,
        client: IChordiSpeakClient,
        monitor: TaskMonitor,
        connectivity: Optional[ConnectivityMonitor] = None
    ):
        self._client = client
        self._monitor = monitor
        self._connectivity = connectivity

    @property
    def monitor(self) -> TaskMonitor:
        return self._monitor

    @property
    def state(self) -> MonitorState:
        return self._monitor.state

    def check_health(self) -> HealthStatus:
        return self._client.check_health()

    def submit(
        self,
        file_path: Optional[PathLike] = None,
        file_bytes: Optional[bytes] = None,
        filename: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None
    ) -> JobHandle:
        """
        Upload a file and start monitoring the job it creates.

        Pass either ``file_path`` or ``file_bytes`` with ``filename``. A
        finished or interrupted previous job is reset first.

        Raises:
            TaskStateError: If a job is still being polled
            TransportError: If the upload fails (it is never retried)
        """
        if self._monitor.state is MonitorState.POLLING:
            raise TaskStateError("A job is still running; cancel or reset it first")
        if self._monitor.state is not MonitorState.IDLE:
            self._monitor.reset()

        if file_path is not None:
            path = Path(file_path)
            ack = self._client.upload_file(path, on_progress)
            name = path.name
        elif file_bytes is not None and filename:
            ack = self._client.upload(file_bytes, filename, on_progress)
            name = filename
        else:
            raise ValueError("Provide file_path, or file_bytes together with filename")

        self._monitor.start(Job.submitted(ack.task_id, name))
        return JobHandle(job_id=ack.task_id, filename=name)

    def status(self) -> Optional[Job]:
        """Current Job snapshot, None when idle."""
        return self._monitor.job

    def cancel(self) -> None:
        self._monitor.cancel()

    def reset(self) -> None:
        self._monitor.reset()

    def resume(self) -> None:
        self._monitor.resume()

    def on_update(self, callback: UpdateCallback) -> Callable[[], None]:
        return self._monitor.on_update(callback)

    def wait(self, timeout: Optional[float] = None) -> MonitorState:
        return self._monitor.wait(timeout)

    def result(self) -> Tuple[bytes, ChordTimeline]:
        """
        Processed audio and chord timeline of the completed job.

        Raises:
            TaskStateError: If the job has not completed
            TransportError: If fetching either artifact failed
        """
        result = self._monitor.result()
        if result.errors:
            raise result.errors[0]
        return result.audio, result.timeline

    def close(self) -> None:
        """Stop connectivity monitoring owned by this session."""
        if self._connectivity is not None:
            self._connectivity.stop()

    def __enter__(self) -> "ProcessingSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
