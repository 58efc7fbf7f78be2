"""Multipart upload with progress reporting."""

import mimetypes
import uuid
from pathlib import Path
from typing import Optional, Tuple

from chordispeak.domain.exceptions import ErrorKind, TransportError
from chordispeak.domain.models import UploadAck
from chordispeak.infrastructure.http.transport import ApiRequest, TransportClient, json_decoder
from chordispeak.shared.logging import get_logger
from chordispeak.shared.types import ProgressCallback

logger = get_logger(__name__)

DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024
DEFAULT_CONTENT_TYPE = "audio/mpeg"
FILE_FIELD = "file"


def _quote(filename: str) -> str:
    return filename.replace("\r", "").replace("\n", "").replace('"', '\\"')


def build_multipart(
    file_bytes: bytes,
    filename: str,
    field_name: str = FILE_FIELD,
    boundary: Optional[str] = None
) -> Tuple[bytes, str]:
    """
    Build a multipart/form-data body holding exactly one file part.

    A fresh boundary is drawn until its delimiter does not occur in the
    file content.

    Returns:
        (body, content type header value)
    """
    boundary = boundary or uuid.uuid4().hex
    while f"\r\n--{boundary}".encode("ascii") in file_bytes:
        boundary = uuid.uuid4().hex

    content_type = mimetypes.guess_type(filename)[0] or DEFAULT_CONTENT_TYPE
    head = (
        f"--{boundary}\r\n"
        f'Content-Disposition: form-data; name="{field_name}"; filename="{_quote(filename)}"\r\n'
        f"Content-Type: {content_type}\r\n\r\n"
    ).encode("utf-8")
    tail = f"\r\n--{boundary}--\r\n".encode("ascii")

    return head + file_bytes + tail, f"multipart/form-data; boundary={boundary}"


class ProgressReader:
    """
    Read-only file-like view over a request body that reports how much of it
    has been consumed by the HTTP layer.

    Reported fractions never decrease, even if the body is re-read.
    """

    def __init__(self, data: bytes, callback: Optional[ProgressCallback] = None):
        self._data = data
        self._callback = callback
        self._position = 0
        self._reported = 0.0

    def __len__(self) -> int:
        return len(self._data)

    @property
    def reported(self) -> float:
        return self._reported

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            size = len(self._data) - self._position
        chunk = self._data[self._position:self._position + size]
        self._position += len(chunk)
        if chunk:
            self.report(self._position / len(self._data))
        return chunk

    def report(self, fraction: float) -> None:
        fraction = min(max(fraction, 0.0), 1.0)
        if fraction < self._reported:
            return
        self._reported = fraction
        if self._callback is None:
            return
        try:
            self._callback(fraction)
        except Exception:
            logger.exception("Upload progress callback failed")


class UploadCoordinator:
    """
    Uploads one audio file per call through the transport.

    Uploads are never retried: re-sending would create a duplicate job on the
    server. A failed upload must be resubmitted by the caller.
    """

    def __init__(
        self,
        transport: TransportClient,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    ):
        """
        Initialize upload coordinator.

        Args:
            transport: Transport used to send the request
            max_upload_bytes: Largest accepted payload
        """
        self._transport = transport
        self.max_upload_bytes = max_upload_bytes

    def upload(
        self,
        file_bytes: bytes,
        filename: str,
        destination: str = "/upload",
        on_progress: Optional[ProgressCallback] = None
    ) -> UploadAck:
        """
        Upload file content as a multipart request.

        Args:
            file_bytes: File content
            filename: Original file name sent with the part
            destination: Path of the upload endpoint
            on_progress: Receives non-decreasing fractions, 1.0 on success

        Returns:
            Server acknowledgement with the assigned task id

        Raises:
            TransportError: FILE_TOO_LARGE before any network call, or the
                classified failure of the request
        """
        self._check_size(len(file_bytes))

        body, content_type = build_multipart(file_bytes, filename)
        reader = ProgressReader(body, on_progress)

        logger.info(f"Uploading {filename} ({len(file_bytes)} bytes)")
        ack = self._transport.execute(
            ApiRequest(
                method="POST",
                path=destination,
                headers={"Content-Type": content_type},
                body=reader,
                transfer=True,
            ),
            json_decoder(UploadAck.from_dict),
            retry=False,
        )

        # Completion is reported even if the HTTP layer already read every byte
        reader.report(1.0)
        logger.info(f"Upload accepted: task {ack.task_id}")
        return ack

    def upload_file(
        self,
        file_path: Path,
        destination: str = "/upload",
        on_progress: Optional[ProgressCallback] = None
    ) -> UploadAck:
        """
        Read a local file and upload it.

        Raises:
            TransportError: FILE_TOO_LARGE, FILE_READ_ERROR, or a request failure
        """
        try:
            self._check_size(file_path.stat().st_size)
            file_bytes = file_path.read_bytes()
        except OSError as e:
            raise TransportError(ErrorKind.FILE_READ_ERROR, detail=str(e)) from e

        return self.upload(file_bytes, file_path.name, destination, on_progress)

    def _check_size(self, size: int) -> None:
        if size > self.max_upload_bytes:
            logger.error(f"Refusing upload of {size} bytes (limit {self.max_upload_bytes})")
            raise TransportError(ErrorKind.FILE_TOO_LARGE, limit_bytes=self.max_upload_bytes)
