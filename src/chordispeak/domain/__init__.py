"""Domain layer package."""

from .models import (
    TaskState,
    StepState,
    PipelineStage,
    Job,
    ChordEvent,
    ChordTimeline,
    UploadAck,
    GpuInfo,
    HealthStatus,
    JobHandle,
    TaskResult,
    estimate_progress_from_step,
)
from .exceptions import (
    DomainException,
    ConfigurationError,
    TaskStateError,
    JobFailedError,
    ErrorKind,
    TransportError,
    classify_status,
)
from .protocols import IConnectivity, IChordiSpeakClient

__all__ = [
    # Models
    "TaskState",
    "StepState",
    "PipelineStage",
    "Job",
    "ChordEvent",
    "ChordTimeline",
    "UploadAck",
    "GpuInfo",
    "HealthStatus",
    "JobHandle",
    "TaskResult",
    "estimate_progress_from_step",
    # Exceptions
    "DomainException",
    "ConfigurationError",
    "TaskStateError",
    "JobFailedError",
    "ErrorKind",
    "TransportError",
    "classify_status",
    # Protocols
    "IConnectivity",
    "IChordiSpeakClient",
]
