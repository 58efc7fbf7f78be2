"""Tests for UploadCoordinator."""

import pytest
from pathlib import Path
from unittest.mock import Mock

from chordispeak.domain.exceptions import ErrorKind, TransportError
from chordispeak.domain.models import UploadAck
from chordispeak.infrastructure.http.transport import TransportClient
from chordispeak.infrastructure.http.uploader import (
    ProgressReader,
    UploadCoordinator,
    build_multipart,
)
from conftest import make_response


def consume(session_request):
    """Make the mocked session read the request body like a real adapter."""

    def side_effect(method, url, data=None, **kwargs):
        while data.read(8192):
            pass
        return make_response(200, {"task_id": "task-42", "status": "queued"})

    session_request.side_effect = side_effect


class TestBuildMultipart:
    """Test multipart body construction."""

    def test_single_file_part(self):
        """Test the body holds one part named 'file'."""
        body, content_type = build_multipart(b"ID3data", "song.mp3", boundary="abc123")

        assert content_type == "multipart/form-data; boundary=abc123"
        assert body.startswith(b"--abc123\r\n")
        assert b'Content-Disposition: form-data; name="file"; filename="song.mp3"' in body
        assert b"Content-Type: audio/mpeg\r\n\r\nID3data\r\n--abc123--\r\n" in body
        assert body.count(b"--abc123\r\n") == 1

    def test_content_type_guessed_from_name(self):
        """Test the part type follows the file extension."""
        body, _ = build_multipart(b"RIFF", "take.wav", boundary="b")
        assert b"Content-Type: audio/" in body

    def test_unknown_extension_defaults(self):
        body, _ = build_multipart(b"x", "audio.unknownext", boundary="b")
        assert b"Content-Type: audio/mpeg" in body

    def test_boundary_not_in_content(self):
        """Test a colliding boundary is replaced."""
        content = b"data\r\n--collide\r\nmore"
        body, content_type = build_multipart(content, "a.mp3", boundary="collide")
        assert "boundary=collide" not in content_type


class TestProgressReader:
    """Test progress reporting reader."""

    def test_reports_non_decreasing_fractions(self):
        """Test fractions rise to 1.0 while reading."""
        seen = []
        reader = ProgressReader(b"x" * 100, seen.append)

        while reader.read(30):
            pass

        assert seen == sorted(seen)
        assert seen[-1] == 1.0
        assert len(reader) == 100

    def test_never_goes_backwards(self):
        """Test lower fractions are not reported."""
        seen = []
        reader = ProgressReader(b"x" * 10, seen.append)
        reader.report(0.5)
        reader.report(0.2)
        assert seen == [0.5]
        assert reader.reported == 0.5

    def test_callback_errors_are_contained(self):
        """Test a failing callback does not break reading."""
        reader = ProgressReader(b"abc", Mock(side_effect=RuntimeError("ui gone")))
        assert reader.read() == b"abc"


class TestUploadCoordinator:
    """Test UploadCoordinator implementation."""

    @pytest.fixture
    def transport(self, http_session, connectivity):
        return TransportClient(
            "https://api.example.com",
            connectivity,
            session=http_session,
            sleep=lambda s: None,
        )

    @pytest.fixture
    def uploader(self, transport):
        return UploadCoordinator(transport, max_upload_bytes=50 * 1024 * 1024)

    def test_upload_success(self, uploader, http_session):
        """Test successful upload returns the task id and reports progress."""
        consume(http_session.request)
        progress = []

        ack = uploader.upload(b"\x00" * 200_000, "song.mp3", on_progress=progress.append)

        assert ack == UploadAck(task_id="task-42", status="queued")
        assert progress == sorted(progress)
        assert progress[-1] == 1.0

        args, kwargs = http_session.request.call_args
        assert args[:2] == ("POST", "https://api.example.com/upload")
        assert kwargs['headers']['Content-Type'].startswith("multipart/form-data; boundary=")
        assert kwargs['timeout'] == (30.0, 120.0)

    def test_progress_completes_when_body_not_streamed(self, uploader, http_session):
        """Test 1.0 is reported after success even if the body was never read."""
        http_session.request.return_value = make_response(200, {"task_id": "t", "status": "queued"})
        progress = []

        uploader.upload(b"abc", "a.mp3", on_progress=progress.append)

        assert progress == [1.0]

    def test_file_too_large_makes_no_request(self, uploader, http_session):
        """Test a 60MiB payload is refused before any network call."""
        with pytest.raises(TransportError) as exc_info:
            uploader.upload(b"\x00" * (60 * 1024 * 1024), "big.mp3")

        assert exc_info.value.kind is ErrorKind.FILE_TOO_LARGE
        assert "50MB" in str(exc_info.value)
        http_session.request.assert_not_called()

    def test_upload_not_retried(self, uploader, http_session):
        """Test a 500 on upload surfaces without a second attempt."""
        http_session.request.return_value = make_response(500)

        with pytest.raises(TransportError) as exc_info:
            uploader.upload(b"abc", "a.mp3")

        assert exc_info.value.kind is ErrorKind.SERVER_ERROR
        assert http_session.request.call_count == 1

    def test_upload_file(self, uploader, http_session, tmp_path):
        """Test uploading from disk sends the file name."""
        consume(http_session.request)
        song = tmp_path / "track.mp3"
        song.write_bytes(b"ID3" + b"\x00" * 64)

        ack = uploader.upload_file(song)

        assert ack.task_id == "task-42"

    def test_upload_file_missing(self, uploader, http_session, tmp_path):
        """Test unreadable files map to FILE_READ_ERROR."""
        with pytest.raises(TransportError) as exc_info:
            uploader.upload_file(tmp_path / "missing.mp3")

        assert exc_info.value.kind is ErrorKind.FILE_READ_ERROR
        http_session.request.assert_not_called()

    def test_upload_file_too_large_checked_before_read(self, transport, http_session, tmp_path):
        """Test the size limit is enforced from file metadata."""
        song = tmp_path / "big.mp3"
        song.write_bytes(b"\x00" * 2048)
        uploader = UploadCoordinator(transport, max_upload_bytes=1024)

        with pytest.raises(TransportError) as exc_info:
            uploader.upload_file(Path(song))

        assert exc_info.value.kind is ErrorKind.FILE_TOO_LARGE
        assert "2048" not in str(exc_info.value)
