"""HTTP transport package."""

from chordispeak.infrastructure.http.transport import (
    ApiRequest,
    TransportClient,
    json_decoder,
    raw_bytes,
    ignore_body,
    classify_request_exception,
)
from chordispeak.infrastructure.http.uploader import UploadCoordinator, build_multipart

__all__ = [
    "ApiRequest",
    "TransportClient",
    "json_decoder",
    "raw_bytes",
    "ignore_body",
    "classify_request_exception",
    "UploadCoordinator",
    "build_multipart",
]
