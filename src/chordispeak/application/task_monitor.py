"""
Polling state machine for one remote processing job.

    IDLE -> SUBMITTED -> POLLING -> COMPLETED | FAILED | CANCELLED
                            |  ^
                            v  | resume()
                        INTERRUPTED

Every state change happens under one lock. Network calls are made outside
the lock, and their results are applied only if the monitor is still in the
state (and generation) that issued them. A status check that fails at the
transport layer moves the monitor to INTERRUPTED: the job outcome is unknown,
the last known Job is kept, and the caller may resume() or reset().

Snapshots are queued under the lock and handed to callbacks by one thread
at a time, in the order the changes were made.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Deque, List, Optional

from chordispeak.domain.exceptions import JobFailedError, TaskStateError, TransportError
from chordispeak.domain.models import Job, TaskResult, TaskState
from chordispeak.domain.protocols import IChordiSpeakClient
from chordispeak.shared.logging import get_logger
from chordispeak.shared.metrics import MetricsCollector

logger = get_logger(__name__)


class MonitorState(str, Enum):
    """Lifecycle state of a TaskMonitor."""

    IDLE = "idle"
    SUBMITTED = "submitted"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    INTERRUPTED = "interrupted"

    @property
    def is_terminal(self) -> bool:
        return self in (MonitorState.COMPLETED, MonitorState.FAILED, MonitorState.CANCELLED)


@dataclass(frozen=True)
class TaskSnapshot:
    """Read-only view of a monitor handed to update callbacks."""

    state: MonitorState
    job: Optional[Job]
    error: Optional[Exception] = None
    result: Optional[TaskResult] = None


UpdateCallback = Callable[[TaskSnapshot], None]


class TaskMonitor:
    """Tracks one in-flight job from submission to a terminal outcome."""

    def __init__(
        self,
        client: IChordiSpeakClient,
        poll_interval: float = 2.0,
        background: bool = True,
        fetch_results: bool = True,
        metrics: Optional[MetricsCollector] = None
    ):
        """
        Initialize monitor.

        Args:
            client: Service client used for status, result and cancel calls
            poll_interval: Seconds between status polls
            background: Poll on a daemon thread; when False the caller drives
                polling through poll_once()
            fetch_results: Download audio and chords once the job completes
            metrics: Optional metrics collector
        """
        self._client = client
        self.poll_interval = poll_interval
        self._background = background
        self._fetch_results_enabled = fetch_results
        self._metrics = metrics

        self._lock = threading.RLock()
        self._state = MonitorState.IDLE
        self._job: Optional[Job] = None
        self._error: Optional[Exception] = None
        self._result: Optional[TaskResult] = None
        self._generation = 0
        self._cancel_pending = False
        self._started_at: Optional[float] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._callbacks: List[UpdateCallback] = []
        self._updates: Deque[TaskSnapshot] = deque()
        self._dispatching = False

    # ------------------------------------------------------------------
    # Read side

    @property
    def state(self) -> MonitorState:
        with self._lock:
            return self._state

    @property
    def job(self) -> Optional[Job]:
        with self._lock:
            return self._job

    @property
    def error(self) -> Optional[Exception]:
        """Last surfaced error: transport failure, job failure, or result fetch failure."""
        with self._lock:
            return self._error

    def snapshot(self) -> TaskSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def result(self) -> TaskResult:
        """
        Fetched artifacts of a completed job.

        Raises:
            TaskStateError: If the job has not completed or results are not in yet
        """
        with self._lock:
            if self._state is not MonitorState.COMPLETED:
                raise TaskStateError(f"No result: task is {self._state.value}")
            if self._result is None:
                raise TaskStateError("Task completed but results have not been fetched yet")
            return self._result

    def on_update(self, callback: UpdateCallback) -> Callable[[], None]:
        """
        Register a callback invoked on every state change or Job update.

        Returns:
            Function that removes the callback
        """
        with self._lock:
            self._callbacks.append(callback)

        def remove() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return remove

    # ------------------------------------------------------------------
    # Lifecycle

    def start(self, job: Job) -> None:
        """
        Begin tracking a submitted job.

        Raises:
            TaskStateError: If the monitor is not idle
            ValueError: If the job has no id
        """
        if not job.job_id:
            raise ValueError("Cannot monitor a job without a job_id")

        with self._lock:
            if self._state is not MonitorState.IDLE:
                raise TaskStateError(f"Cannot start: task is {self._state.value}, reset first")
            self._generation += 1
            self._job = job
            self._error = None
            self._result = None
            self._state = MonitorState.SUBMITTED
            self._publish_locked()
            self._started_at = time.monotonic()
        logger.info(f"Monitoring task {job.job_id} ({job.filename or 'unnamed'})")
        self._dispatch()

        with self._lock:
            if self._state is not MonitorState.SUBMITTED:
                return
            self._state = MonitorState.POLLING
            self._publish_locked()
            self._launch_locked()
        self._dispatch()

    def resume(self) -> None:
        """
        Restart polling after an interrupted status check.

        Raises:
            TaskStateError: If the monitor is not interrupted
        """
        with self._lock:
            if self._state is not MonitorState.INTERRUPTED:
                raise TaskStateError(f"Cannot resume: task is {self._state.value}")
            self._error = None
            self._state = MonitorState.POLLING
            snapshot = self._publish_locked()
            self._launch_locked()
        logger.info(f"Resumed polling task {snapshot.job.job_id}")
        self._dispatch()

    def cancel(self) -> None:
        """
        Ask the server to cancel the job.

        On acknowledgement polling stops and the state becomes CANCELLED;
        poll results that arrive meanwhile are discarded. If the cancel call
        fails the monitor keeps polling and the error is raised.

        Raises:
            TaskStateError: If the monitor is not polling
            TransportError: If the cancel request fails
        """
        with self._lock:
            if self._state is not MonitorState.POLLING:
                raise TaskStateError(f"Cannot cancel: task is {self._state.value}")
            if self._cancel_pending:
                raise TaskStateError("Cancellation already in progress")
            self._cancel_pending = True
            job_id = self._job.job_id
            generation = self._generation

        try:
            self._client.cancel(job_id)
        except TransportError as e:
            with self._lock:
                if generation == self._generation:
                    self._cancel_pending = False
            logger.error(f"Cancel of task {job_id} failed: {e}")
            raise

        with self._lock:
            if generation != self._generation:
                return
            self._cancel_pending = False
            self._job = replace(self._job, status=TaskState.CANCELLED, error=None)
            self._enter_terminal_locked(MonitorState.CANCELLED)
            self._publish_locked()
        logger.info(f"Task {job_id} cancelled")
        self._dispatch()

    def reset(self) -> None:
        """
        Return to IDLE, clearing the job and any results.

        Resetting while polling cancels the job first; if that cancel fails
        its error is raised and nothing is reset.
        """
        if self.state is MonitorState.POLLING:
            self.cancel()

        with self._lock:
            if self._state is MonitorState.POLLING:
                raise TaskStateError("Task resumed polling during reset; cancel it first")
            self._generation += 1
            self._stop_event.set()
            self._state = MonitorState.IDLE
            self._job = None
            self._error = None
            self._result = None
            self._cancel_pending = False
            self._started_at = None
            self._publish_locked()
        self._dispatch()

    def wait(self, timeout: Optional[float] = None) -> MonitorState:
        """Block until background polling (and result fetching) finishes."""
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        return self.state

    # ------------------------------------------------------------------
    # Polling

    def poll_once(self) -> bool:
        """
        Perform one status check and apply it.

        Returns:
            True while the monitor should keep polling
        """
        return self._poll(self._stop_event)

    def _poll(self, stop_event: threading.Event) -> bool:
        with self._lock:
            if stop_event.is_set() or self._state is not MonitorState.POLLING:
                return False
            if self._cancel_pending:
                return True
            job_id = self._job.job_id
            generation = self._generation

        self._count('status_polls')
        try:
            update = self._client.get_status(job_id)
        except TransportError as e:
            with self._lock:
                if not self._accepts_locked(generation):
                    logger.debug(f"Discarding failed status check for task {job_id}")
                    return False
                self._error = e
                self._state = MonitorState.INTERRUPTED
                self._stop_event.set()
                snapshot = self._publish_locked()
            logger.error(f"Status check for task {job_id} failed, polling stopped: {e}")
            self._dispatch()
            return False

        with self._lock:
            if not self._accepts_locked(generation):
                logger.debug(f"Discarding stale status for task {job_id}: {update.status.value}")
                return False
            self._job = self._job.merged_with(update)
            status = self._job.status
            if status is TaskState.COMPLETED:
                self._enter_terminal_locked(MonitorState.COMPLETED)
            elif status is TaskState.FAILED:
                self._error = JobFailedError(self._job.error)
                self._enter_terminal_locked(MonitorState.FAILED)
            elif status is TaskState.CANCELLED:
                self._enter_terminal_locked(MonitorState.CANCELLED)
            snapshot = self._publish_locked()

        logger.info(str(snapshot.job))
        if snapshot.state is MonitorState.FAILED:
            logger.error(f"Task {job_id} failed: {snapshot.job.error}")
        self._dispatch()

        if snapshot.state is MonitorState.COMPLETED and self._fetch_results_enabled:
            self._fetch_results(snapshot.job, generation)

        return snapshot.state is MonitorState.POLLING

    def _fetch_results(self, job: Job, generation: int) -> None:
        """Fetch audio and chords independently; failures are surfaced, state stays COMPLETED."""
        result = TaskResult(artifact_name=job.artifact_name)

        try:
            result.audio = self._client.download_audio(job.job_id)
        except TransportError as e:
            logger.error(f"Failed to download audio for task {job.job_id}: {e}")
            result.errors.append(e)

        try:
            result.timeline = self._client.get_chords(job.job_id)
        except TransportError as e:
            logger.error(f"Failed to get chord data for task {job.job_id}: {e}")
            result.errors.append(e)

        with self._lock:
            if generation != self._generation:
                return
            self._result = result
            if result.errors:
                self._error = result.errors[0]
            self._publish_locked()
        self._dispatch()

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.poll_interval):
            if not self._poll(stop_event):
                break

    # ------------------------------------------------------------------
    # Helpers (call with the lock held where named *_locked)

    def _accepts_locked(self, generation: int) -> bool:
        return (
            generation == self._generation
            and self._state is MonitorState.POLLING
            and not self._cancel_pending
        )

    def _launch_locked(self) -> None:
        self._stop_event = threading.Event()
        if not self._background:
            return
        self._thread = threading.Thread(
            target=self._run,
            args=(self._stop_event,),
            name=f"task-monitor-{self._job.job_id}",
            daemon=True
        )
        self._thread.start()

    def _enter_terminal_locked(self, state: MonitorState) -> None:
        self._state = state
        self._stop_event.set()
        if self._started_at is not None and self._metrics is not None:
            self._metrics.record_metric('task_duration', time.monotonic() - self._started_at)
        self._started_at = None

    def _snapshot_locked(self) -> TaskSnapshot:
        return TaskSnapshot(
            state=self._state,
            job=self._job,
            error=self._error,
            result=self._result,
        )

    def _publish_locked(self) -> TaskSnapshot:
        snapshot = self._snapshot_locked()
        self._updates.append(snapshot)
        return snapshot

    def _dispatch(self) -> None:
        """Deliver queued snapshots in order; a thread already dispatching delivers ours too."""
        with self._lock:
            if self._dispatching:
                return
            self._dispatching = True
        try:
            while True:
                with self._lock:
                    if not self._updates:
                        self._dispatching = False
                        return
                    snapshot = self._updates.popleft()
                    callbacks = list(self._callbacks)
                for callback in callbacks:
                    try:
                        callback(snapshot)
                    except Exception:
                        logger.exception("Task update callback failed")
        except BaseException:
            with self._lock:
                self._dispatching = False
            raise

    def _count(self, name: str) -> None:
        if self._metrics is not None:
            self._metrics.increment_counter(name)
