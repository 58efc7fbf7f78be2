"""
ChordiSpeak service API client.

Infrastructure layer mapping service endpoints onto domain models.
"""

from pathlib import Path
from typing import Optional
from urllib.parse import quote

from chordispeak.domain.models import ChordTimeline, HealthStatus, Job, UploadAck
from chordispeak.infrastructure.http.transport import (
    ApiRequest,
    TransportClient,
    ignore_body,
    json_decoder,
    raw_bytes,
)
from chordispeak.infrastructure.http.uploader import UploadCoordinator
from chordispeak.shared.logging import get_logger
from chordispeak.shared.types import ProgressCallback

logger = get_logger(__name__)


def _task_path(prefix: str, task_id: str) -> str:
    if not task_id:
        raise ValueError("task_id is required")
    return f"/{prefix}/{quote(task_id, safe='')}"


class ChordiSpeakClient:
    """
    Endpoint client for the remote chord-vocal processing service.

    All calls go through the shared TransportClient, so they inherit its
    connectivity check, timeouts, retry policy and error classification.
    """

    def __init__(self, transport: TransportClient, uploader: Optional[UploadCoordinator] = None):
        self.transport = transport
        self.uploader = uploader or UploadCoordinator(transport)

    def check_health(self) -> HealthStatus:
        """GET /health"""
        health = self.transport.execute(
            ApiRequest("GET", "/health"),
            json_decoder(HealthStatus.from_dict)
        )
        logger.info(f"Server health: {health}")
        return health

    def upload(
        self,
        file_bytes: bytes,
        filename: str,
        on_progress: Optional[ProgressCallback] = None
    ) -> UploadAck:
        """POST /upload (multipart, field ``file``); never retried."""
        return self.uploader.upload(file_bytes, filename, "/upload", on_progress)

    def upload_file(self, file_path: Path, on_progress: Optional[ProgressCallback] = None) -> UploadAck:
        """POST /upload with the content of a local file."""
        return self.uploader.upload_file(file_path, "/upload", on_progress)

    def get_status(self, task_id: str) -> Job:
        """GET /status/{task_id}"""
        return self.transport.execute(
            ApiRequest("GET", _task_path("status", task_id)),
            json_decoder(Job.from_dict)
        )

    def download_audio(self, task_id: str) -> bytes:
        """GET /download/{task_id}, returning raw audio bytes."""
        audio = self.transport.execute(
            ApiRequest("GET", _task_path("download", task_id), transfer=True),
            raw_bytes
        )
        logger.info(f"Downloaded {len(audio)} bytes of processed audio for task {task_id}")
        return audio

    def get_chords(self, task_id: str) -> ChordTimeline:
        """GET /chords/{task_id}"""
        timeline = self.transport.execute(
            ApiRequest("GET", _task_path("chords", task_id)),
            json_decoder(ChordTimeline.from_dict)
        )
        logger.info(f"Received {len(timeline)} chords for task {task_id}")
        return timeline

    def cancel(self, task_id: str) -> None:
        """POST /cancel/{task_id}; any 2xx counts as acknowledgement."""
        logger.info(f"Cancelling task {task_id}")
        self.transport.execute(
            ApiRequest("POST", _task_path("cancel", task_id)),
            ignore_body
        )
