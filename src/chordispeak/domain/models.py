"""Domain models for remote chord-vocal processing jobs."""

from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any, List, Tuple, Iterator

DEFAULT_FAILURE_MESSAGE = "Task failed"
DEFAULT_ARTIFACT_NAME = "chord_vocals.mp3"


class TaskState(str, Enum):
    """Job status as reported by the server."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @property
    def is_active(self) -> bool:
        return self in (TaskState.QUEUED, TaskState.PROCESSING)

    @property
    def is_terminal(self) -> bool:
        return not self.is_active

    @classmethod
    def from_wire(cls, value: Any) -> "TaskState":
        """
        Map a status string reported by the server.

        The server reports failures as ``error``. Statuses this client does
        not know are treated as still processing, so polling continues.

        Raises:
            TypeError: If the status is not a string
        """
        if not isinstance(value, str):
            raise TypeError(f"Status must be a string, got: {value!r}")
        text = value.strip().lower()
        if text in _WIRE_ALIASES:
            return _WIRE_ALIASES[text]
        try:
            return cls(text)
        except ValueError:
            return cls.PROCESSING


_WIRE_ALIASES = {
    "error": TaskState.FAILED,
}


class StepState(str, Enum):
    """Position of a pipeline stage relative to the current step."""

    DONE = "done"
    CURRENT = "current"
    PENDING = "pending"


class PipelineStage(Enum):
    """
    Ordered server-side pipeline stages.

    Each stage owns a closed progress sub-range (percent). Ranges ascend and
    are contiguous: a stage's upper bound is the next stage's lower bound.
    ``estimate`` is the fraction shown when the server omits a numeric
    progress value while the job is in that stage.
    """

    UPLOADED = ("Uploaded", 0, 5, 0.05)
    AUDIO_PREPARATION = ("Audio Preparation", 5, 10, 0.10)
    VOCAL_SEPARATION = ("Vocal Separation", 10, 25, 0.25)
    VOICE_SAMPLE_EXTRACTION = ("Voice Sample Extraction", 25, 30, 0.30)
    CHORD_DETECTION = ("Chord Detection", 30, 65, 0.65)
    TTS_SYNTHESIS = ("TTS Synthesis", 65, 85, 0.85)
    AUDIO_MIXING = ("Audio Mixing", 85, 100, 0.95)
    COMPLETED = ("Completed", 100, 100, 1.0)

    def __init__(self, label: str, low: int, high: int, estimate: float):
        self.label = label
        self.low = low
        self.high = high
        self.estimate = estimate

    @property
    def progress_range(self) -> Tuple[int, int]:
        return (self.low, self.high)

    @property
    def index(self) -> int:
        return list(PipelineStage).index(self)

    @classmethod
    def from_step(cls, step: Optional[str]) -> Optional["PipelineStage"]:
        """
        Match a free-form server step name to a stage.

        Exact (case-insensitive) label matches win; otherwise the first stage
        whose label appears inside the step text is used.
        """
        if not step:
            return None
        text = step.strip().lower()
        for stage in cls:
            if stage.label.lower() == text:
                return stage
        for stage in cls:
            if stage.label.lower() in text:
                return stage
        # "Voice Sample Extraction" is sometimes reported as "voice sample ..."
        if "voice sample" in text:
            return cls.VOICE_SAMPLE_EXTRACTION
        return None

    @classmethod
    def checklist(cls, current_step: Optional[str]) -> List[Tuple["PipelineStage", StepState]]:
        """Mark every stage as done, current or pending for the given step."""
        current = cls.from_step(current_step)
        current_index = current.index if current else 0
        items = []
        for stage in cls:
            if stage is current:
                items.append((stage, StepState.CURRENT))
            elif stage.index < current_index:
                items.append((stage, StepState.DONE))
            else:
                items.append((stage, StepState.PENDING))
        return items


def estimate_progress_from_step(step: Optional[str]) -> float:
    """Estimate progress in [0.0, 1.0] from a step name alone."""
    stage = PipelineStage.from_step(step)
    return stage.estimate if stage else 0.0


@dataclass(frozen=True)
class Job:
    """
    Snapshot of one remote processing job.

    Snapshots are immutable; the task monitor replaces its snapshot on every
    applied poll. ``error`` is set if and only if ``status`` is FAILED.
    """

    job_id: Optional[str]
    status: TaskState = TaskState.QUEUED
    step: str = PipelineStage.UPLOADED.label
    progress: Optional[int] = None
    filename: Optional[str] = None
    error: Optional[str] = None
    output_file: Optional[str] = None

    def __post_init__(self):
        if self.progress is not None and not 0 <= self.progress <= 100:
            raise ValueError(f"Progress must be within 0-100, got: {self.progress}")
        if self.status is TaskState.FAILED and not self.error:
            raise ValueError("A failed job must carry an error message")
        if self.status is not TaskState.FAILED and self.error:
            raise ValueError(f"Only failed jobs carry an error, status is {self.status.value}")

    @classmethod
    def submitted(cls, job_id: str, filename: Optional[str]) -> "Job":
        """Initial snapshot right after the server accepted an upload."""
        return cls(
            job_id=job_id,
            status=TaskState.QUEUED,
            step=PipelineStage.UPLOADED.label,
            progress=0,
            filename=filename,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        """
        Build a snapshot from a ``/status`` payload.

        A failed status without a message gets a default one; an error
        attached to a non-failed status is dropped.

        Raises:
            KeyError, TypeError, ValueError: If the payload is malformed
        """
        status = TaskState.from_wire(data["status"])
        error = data.get("error")
        if status is TaskState.FAILED:
            error = error or DEFAULT_FAILURE_MESSAGE
        else:
            error = None

        progress = data.get("progress")
        if progress is not None:
            if isinstance(progress, bool) or not isinstance(progress, (int, float)):
                raise TypeError(f"Progress must be numeric, got: {progress!r}")
            progress = int(progress)

        step = data.get("step")
        if not isinstance(step, str):
            raise TypeError(f"Step must be a string, got: {step!r}")

        return cls(
            job_id=data.get("task_id"),
            status=status,
            step=step,
            progress=progress,
            filename=data.get("filename"),
            error=error,
            output_file=data.get("output_file"),
        )

    def merged_with(self, update: "Job") -> "Job":
        """
        Apply a fresh poll result on top of this snapshot.

        The job id never changes once assigned, the source filename is kept
        when the server omits it, and progress never moves backwards. When
        the update reads lower than this snapshot (a smaller number, or no
        number and an earlier stage), the current reading is kept as a number.
        """
        progress = update.progress
        floor = self.estimated_progress()
        if update.estimated_progress() < floor:
            progress = int(round(floor * 100))
        return replace(
            update,
            job_id=self.job_id or update.job_id,
            filename=update.filename or self.filename,
            progress=progress,
        )

    @property
    def stage(self) -> Optional[PipelineStage]:
        return PipelineStage.from_step(self.step)

    def estimated_progress(self) -> float:
        """Progress fraction: 1.0 once completed, else the numeric value or the step estimate."""
        if self.status is TaskState.COMPLETED:
            return 1.0
        if self.progress is not None:
            return self.progress / 100.0
        return estimate_progress_from_step(self.step)

    @property
    def artifact_name(self) -> str:
        """Suggested file name for the processed audio."""
        if not self.filename:
            return DEFAULT_ARTIFACT_NAME
        stem = Path(self.filename).stem
        return f"{stem}_{DEFAULT_ARTIFACT_NAME}" if stem else DEFAULT_ARTIFACT_NAME

    def __str__(self) -> str:
        progress = f"{self.estimated_progress() * 100:.0f}%"
        return f"Job {self.job_id} ({self.status.value}, {self.step}, {progress})"


def format_time(seconds: float) -> str:
    """Format seconds as m:ss."""
    total = int(seconds)
    return f"{total // 60}:{total % 60:02d}"


@dataclass(frozen=True)
class ChordEvent:
    """One detected chord."""

    label: str
    start_time: float
    end_time: float
    confidence: float

    def __post_init__(self):
        if not self.label:
            raise ValueError("Chord label cannot be empty")
        if self.end_time <= self.start_time:
            raise ValueError(
                f"Chord end time must be after start time ({self.start_time} >= {self.end_time})"
            )
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be within 0.0-1.0, got: {self.confidence}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChordEvent":
        return cls(
            label=str(data["chord"]),
            start_time=float(data["start_time"]),
            end_time=float(data["end_time"]),
            confidence=float(data["confidence"]),
        )

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def time_range_label(self) -> str:
        return f"{format_time(self.start_time)} - {format_time(self.end_time)}"

    def __str__(self) -> str:
        return f"{self.label} [{self.time_range_label}] {self.confidence * 100:.0f}%"


@dataclass(frozen=True)
class ChordTimeline:
    """Time-ascending sequence of chord events; gaps are allowed."""

    events: Tuple[ChordEvent, ...] = ()

    def __post_init__(self):
        ordered = tuple(sorted(self.events, key=lambda e: (e.start_time, e.end_time)))
        object.__setattr__(self, "events", ordered)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChordTimeline":
        chords = data["chords"]
        if not isinstance(chords, list):
            raise TypeError(f"'chords' must be a list, got: {type(chords).__name__}")
        return cls(events=tuple(ChordEvent.from_dict(item) for item in chords))

    def __iter__(self) -> Iterator[ChordEvent]:
        return iter(self.events)

    def __len__(self) -> int:
        return len(self.events)

    @property
    def total_duration(self) -> float:
        if not self.events:
            return 0.0
        return max(e.end_time for e in self.events) - self.events[0].start_time

    def chord_at(self, seconds: float) -> Optional[ChordEvent]:
        """Chord sounding at the given time, if any."""
        for event in self.events:
            if event.start_time <= seconds < event.end_time:
                return event
        return None

    def most_common(self, limit: int = 9) -> List[Tuple[str, int]]:
        """Chord labels with their occurrence counts, most frequent first."""
        return Counter(e.label for e in self.events).most_common(limit)


@dataclass(frozen=True)
class UploadAck:
    """Server acknowledgement of an accepted upload."""

    task_id: str
    status: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UploadAck":
        task_id = data["task_id"]
        if not isinstance(task_id, str) or not task_id:
            raise ValueError(f"Invalid task_id in upload response: {task_id!r}")
        return cls(task_id=task_id, status=str(data.get("status", TaskState.QUEUED.value)))


@dataclass(frozen=True)
class GpuInfo:
    """GPU details reported by the server health endpoint."""

    pytorch_version: str = ""
    cuda_available: bool = False
    cuda_device_count: int = 0
    cuda_device_name: str = ""
    cuda_memory_allocated_gb: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GpuInfo":
        return cls(
            pytorch_version=str(data.get("pytorch_version", "")),
            cuda_available=bool(data.get("cuda_available", False)),
            cuda_device_count=int(data.get("cuda_device_count", 0)),
            cuda_device_name=str(data.get("cuda_device_name", "")),
            cuda_memory_allocated_gb=float(data.get("cuda_memory_allocated_gb", 0.0)),
        )


@dataclass(frozen=True)
class HealthStatus:
    """Decoded ``/health`` response."""

    status: str
    version: str
    name: str
    gpu: GpuInfo = field(default_factory=GpuInfo)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HealthStatus":
        gpu = data.get("gpu") or {}
        if not isinstance(gpu, dict):
            raise TypeError(f"'gpu' must be an object, got: {type(gpu).__name__}")
        return cls(
            status=str(data["status"]),
            version=str(data["version"]),
            name=str(data["name"]),
            gpu=GpuInfo.from_dict(gpu),
        )

    @property
    def is_healthy(self) -> bool:
        return self.status.lower() in ("healthy", "ok")

    def __str__(self) -> str:
        gpu = self.gpu.cuda_device_name if self.gpu.cuda_available else "no GPU"
        return f"{self.name} v{self.version}: {self.status} ({gpu})"


@dataclass(frozen=True)
class JobHandle:
    """Reference to a submitted job returned to callers."""

    job_id: str
    filename: str
    submitted_at: datetime = field(default_factory=datetime.now)


@dataclass
class TaskResult:
    """Artifacts fetched after a job completes."""

    audio: Optional[bytes] = None
    timeline: Optional[ChordTimeline] = None
    artifact_name: str = DEFAULT_ARTIFACT_NAME
    errors: List[Exception] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.audio is not None and self.timeline is not None

    def save(self, directory: Path) -> Path:
        """
        Write the processed audio into a directory.

        Raises:
            ValueError: If no audio was fetched
        """
        if self.audio is None:
            raise ValueError("No processed audio to save")
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / self.artifact_name
        path.write_bytes(self.audio)
        return path
