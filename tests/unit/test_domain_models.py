"""
Unit tests for domain models.
"""

import pytest

from chordispeak.domain.models import (
    ChordEvent,
    ChordTimeline,
    HealthStatus,
    Job,
    PipelineStage,
    StepState,
    TaskResult,
    TaskState,
    UploadAck,
    estimate_progress_from_step,
    format_time,
)


class TestPipelineStage:
    """Test pipeline stage table."""

    def test_ranges_are_contiguous(self):
        """Test each stage starts where the previous one ends."""
        stages = list(PipelineStage)
        assert stages[0].low == 0
        assert stages[-1].progress_range == (100, 100)
        for previous, current in zip(stages, stages[1:]):
            assert previous.high == current.low
            assert current.low <= current.high

    def test_estimates_ascend(self):
        """Test step estimates never go backwards."""
        estimates = [stage.estimate for stage in PipelineStage]
        assert estimates == sorted(estimates)
        assert PipelineStage.COMPLETED.estimate == 1.0

    @pytest.mark.parametrize("step,stage", [
        ("Vocal Separation", PipelineStage.VOCAL_SEPARATION),
        ("chord detection", PipelineStage.CHORD_DETECTION),
        ("Running TTS Synthesis (3/10)", PipelineStage.TTS_SYNTHESIS),
        ("Extracting voice sample", PipelineStage.VOICE_SAMPLE_EXTRACTION),
        ("Completed", PipelineStage.COMPLETED),
    ])
    def test_from_step(self, step, stage):
        """Test step names map to stages."""
        assert PipelineStage.from_step(step) is stage

    def test_from_step_unknown(self):
        """Test unknown steps map to nothing."""
        assert PipelineStage.from_step("Warming up") is None
        assert PipelineStage.from_step("") is None
        assert estimate_progress_from_step("Warming up") == 0.0

    def test_checklist_marks_done_current_pending(self):
        """Test checklist around the current step."""
        items = dict(PipelineStage.checklist("Chord Detection"))
        assert items[PipelineStage.UPLOADED] is StepState.DONE
        assert items[PipelineStage.VOICE_SAMPLE_EXTRACTION] is StepState.DONE
        assert items[PipelineStage.CHORD_DETECTION] is StepState.CURRENT
        assert items[PipelineStage.AUDIO_MIXING] is StepState.PENDING

    def test_checklist_unknown_step_is_all_pending(self):
        """Test no stage is done for an unknown step."""
        states = {state for _, state in PipelineStage.checklist("???")}
        assert states == {StepState.PENDING}


class TestJob:
    """Test Job model."""

    def test_submitted_snapshot(self):
        """Test the snapshot created right after an upload."""
        job = Job.submitted("task-1", "song.mp3")
        assert job.status is TaskState.QUEUED
        assert job.step == "Uploaded"
        assert job.progress == 0
        assert job.error is None

    def test_failed_requires_error(self):
        """Test a failed job without message is rejected."""
        with pytest.raises(ValueError):
            Job(job_id="t", status=TaskState.FAILED)

    def test_error_only_on_failed(self):
        """Test a non-failed job cannot carry an error."""
        with pytest.raises(ValueError):
            Job(job_id="t", status=TaskState.PROCESSING, error="oops")

    @pytest.mark.parametrize("progress", [-1, 101])
    def test_progress_bounds(self, progress):
        """Test progress outside 0-100 is rejected."""
        with pytest.raises(ValueError):
            Job(job_id="t", progress=progress)

    def test_from_dict(self):
        """Test decoding a status payload."""
        job = Job.from_dict({
            "task_id": "abc",
            "status": "processing",
            "step": "Vocal Separation",
            "progress": 20,
            "filename": "song.mp3",
        })
        assert job.job_id == "abc"
        assert job.status is TaskState.PROCESSING
        assert job.progress == 20
        assert job.filename == "song.mp3"

    def test_from_dict_failed_without_message(self):
        """Test failed status gets the default message."""
        job = Job.from_dict({"status": "failed", "step": "Chord Detection"})
        assert job.error == "Task failed"

    def test_from_dict_drops_error_when_not_failed(self):
        """Test stray error text on an active job is dropped."""
        job = Job.from_dict({"status": "processing", "step": "x", "error": "stale"})
        assert job.error is None

    def test_from_dict_error_status_is_failure(self):
        """Test the server's 'error' status decodes as a failed job with its message."""
        job = Job.from_dict({"task_id": "abc", "status": "error", "error": "OOM", "step": "Error: OOM"})
        assert job.status is TaskState.FAILED
        assert job.error == "OOM"

    def test_from_dict_unknown_status_keeps_processing(self):
        """Test an unrecognised status is treated as still running."""
        job = Job.from_dict({"status": "warming_up", "step": "Audio Preparation"})
        assert job.status is TaskState.PROCESSING
        assert job.status.is_active

    @pytest.mark.parametrize("payload", [
        {"step": "x"},
        {"status": 3, "step": "x"},
        {"status": "queued"},
        {"status": "queued", "step": "x", "progress": "half"},
    ])
    def test_from_dict_rejects_malformed(self, payload):
        """Test malformed payloads raise."""
        with pytest.raises((KeyError, TypeError, ValueError)):
            Job.from_dict(payload)

    def test_merged_with_keeps_identity_and_filename(self):
        """Test merge keeps job id and filename when the update omits them."""
        current = Job.submitted("task-1", "song.mp3")
        update = Job(job_id=None, status=TaskState.PROCESSING, step="Vocal Separation", progress=15)
        merged = current.merged_with(update)
        assert merged.job_id == "task-1"
        assert merged.filename == "song.mp3"
        assert merged.step == "Vocal Separation"

    def test_merged_with_progress_never_decreases(self):
        """Test progress is monotonic across merges."""
        current = Job(job_id="t", status=TaskState.PROCESSING, step="Chord Detection", progress=40)
        update = Job(job_id="t", status=TaskState.PROCESSING, step="Chord Detection", progress=35)
        assert current.merged_with(update).progress == 40

    def test_merged_with_missing_progress_does_not_fall_back_lower(self):
        """Test a numeric reading survives an update that only names an earlier-estimated step."""
        current = Job(job_id="t", status=TaskState.PROCESSING, step="TTS Synthesis", progress=80)
        update = Job(job_id="t", status=TaskState.PROCESSING, step="Chord Detection")

        merged = current.merged_with(update)

        assert merged.progress == 80
        assert merged.estimated_progress() == 0.8

    def test_merged_with_step_estimate_advances(self):
        """Test later-stage steps still move the estimate forward without numbers."""
        current = Job.submitted("t", "a.mp3")
        update = Job(job_id="t", status=TaskState.PROCESSING, step="Vocal Separation")

        merged = current.merged_with(update)

        assert merged.progress is None
        assert merged.estimated_progress() == 0.25

    def test_merged_with_lower_number_after_step_estimate(self):
        """Test a number below the previous step estimate does not move progress back."""
        current = Job(job_id="t", status=TaskState.PROCESSING, step="Chord Detection")
        update = Job(job_id="t", status=TaskState.PROCESSING, step="Chord Detection", progress=40)
        assert current.merged_with(update).progress == 65

    def test_estimated_progress(self):
        """Test numeric progress wins over the step estimate."""
        assert Job(job_id="t", step="Chord Detection", progress=42).estimated_progress() == 0.42
        assert Job(job_id="t", step="Chord Detection").estimated_progress() == 0.65

    def test_completed_reads_as_full_progress(self):
        """Test a completed job reports 1.0 with or without numeric progress."""
        assert Job(job_id="t", status=TaskState.COMPLETED, step="Completed", progress=100).estimated_progress() == 1.0
        assert Job(job_id="t", status=TaskState.COMPLETED, step="Completed").estimated_progress() == 1.0
        assert Job(job_id="t", status=TaskState.COMPLETED, step="Complete").estimated_progress() == 1.0
        assert Job(job_id="t", status=TaskState.COMPLETED, step="Audio Mixing").estimated_progress() == 1.0
        assert Job(job_id="t", status=TaskState.COMPLETED, step="Audio Mixing", progress=90).estimated_progress() == 1.0

    def test_artifact_name(self):
        """Test output name derives from the source file."""
        assert Job(job_id="t", filename="my song.wav").artifact_name == "my song_chord_vocals.mp3"
        assert Job(job_id="t").artifact_name == "chord_vocals.mp3"


class TestChordTimeline:
    """Test chord events and timelines."""

    def test_event_validation(self):
        """Test invalid events are rejected."""
        with pytest.raises(ValueError):
            ChordEvent("C", 2.0, 2.0, 0.5)
        with pytest.raises(ValueError):
            ChordEvent("C", 0.0, 1.0, 1.5)
        with pytest.raises(ValueError):
            ChordEvent("", 0.0, 1.0, 0.5)

    def test_from_dict_sorts_events(self):
        """Test events are ordered by start time."""
        timeline = ChordTimeline.from_dict({"chords": [
            {"chord": "G", "start_time": 4.0, "end_time": 6.0, "confidence": 0.8},
            {"chord": "C", "start_time": 0.0, "end_time": 2.0, "confidence": 0.9},
        ]})
        assert [e.label for e in timeline] == ["C", "G"]
        assert len(timeline) == 2
        assert timeline.total_duration == 6.0

    def test_from_dict_requires_list(self):
        """Test chords must be a list."""
        with pytest.raises(TypeError):
            ChordTimeline.from_dict({"chords": "C G Am"})

    def test_chord_at_allows_gaps(self):
        """Test lookups inside and between chords."""
        timeline = ChordTimeline((
            ChordEvent("C", 0.0, 2.0, 0.9),
            ChordEvent("G", 4.0, 6.0, 0.8),
        ))
        assert timeline.chord_at(1.0).label == "C"
        assert timeline.chord_at(3.0) is None
        assert timeline.chord_at(4.0).label == "G"

    def test_most_common(self):
        """Test chord frequency summary."""
        timeline = ChordTimeline(tuple(
            ChordEvent(label, float(i), float(i) + 1, 0.5)
            for i, label in enumerate(["C", "G", "C", "Am", "C", "G"])
        ))
        assert timeline.most_common(2) == [("C", 3), ("G", 2)]

    def test_formatting(self):
        """Test m:ss time labels."""
        assert format_time(75.9) == "1:15"
        event = ChordEvent("Am", 61.0, 65.5, 0.87)
        assert event.time_range_label == "1:01 - 1:05"
        assert str(event) == "Am [1:01 - 1:05] 87%"


class TestOtherModels:
    """Test acknowledgement, health and result models."""

    def test_upload_ack(self):
        """Test upload acknowledgement decoding."""
        ack = UploadAck.from_dict({"task_id": "abc", "status": "queued"})
        assert ack.task_id == "abc"
        with pytest.raises(ValueError):
            UploadAck.from_dict({"task_id": ""})

    def test_health_status(self):
        """Test health decoding with GPU info."""
        health = HealthStatus.from_dict({
            "status": "healthy",
            "version": "2.1",
            "name": "ChordiSpeak",
            "gpu": {"cuda_available": True, "cuda_device_name": "L4"},
        })
        assert health.is_healthy
        assert health.gpu.cuda_device_name == "L4"
        assert str(health) == "ChordiSpeak v2.1: healthy (L4)"

    def test_health_status_rejects_non_object_gpu(self):
        """Test a malformed gpu field fails as a decode error type."""
        with pytest.raises(TypeError):
            HealthStatus.from_dict({"status": "ok", "version": "1", "name": "n", "gpu": ["L4"]})

    def test_task_result_save(self, tmp_path):
        """Test saving processed audio."""
        result = TaskResult(audio=b"mp3", artifact_name="song_chord_vocals.mp3")
        path = result.save(tmp_path / "out")
        assert path.read_bytes() == b"mp3"
        assert path.name == "song_chord_vocals.mp3"
        assert not result.is_complete

    def test_task_result_save_without_audio(self, tmp_path):
        """Test saving without audio fails."""
        with pytest.raises(ValueError):
            TaskResult().save(tmp_path)
