"""Tests for the video job activities and the durable orchestration body."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from iklankilat.services import media, video_jobs
from iklankilat.services.gemini import VideoOperationState
from iklankilat.shared.state_file import FileJobStateStore
from iklankilat.specs.common.errors import MediaGenerationError, ValidationError
from iklankilat.specs.models.http import VideoJobRequest


class FakeContext:
    """Records what the orchestrator schedules; tasks are plain tuples."""

    def __init__(self, data):
        self._input = data
        self.current_utc_datetime = datetime(2025, 3, 5, 3, 0, tzinfo=timezone.utc)
        self.calls = []

    def get_input(self):
        return self._input

    def call_activity(self, name, payload):
        self.calls.append((name, payload))
        return ("activity", name, payload)

    def create_timer(self, fire_at):
        self.calls.append(("timer", fire_at))
        return ("timer", fire_at)


def drive(gen, handlers):
    """Run an orchestrator generator, answering activities from ``handlers``."""
    try:
        task = gen.send(None)
        while True:
            if task[0] == "timer":
                task = gen.send(None)
                continue
            try:
                value = handlers[task[1]](task[2])
            except Exception as exc:
                task = gen.throw(exc)
                continue
            task = gen.send(value)
    except StopIteration as stop:
        return stop.value


@pytest.fixture
def store(tmp_path):
    return FileJobStateStore(state_dir=tmp_path)


@pytest.fixture
def uploads():
    with patch.object(media, "upload_media", side_effect=lambda data, mime, folder, name=None: f"https://blob/{folder}/{name or 'x'}") as upload:
        yield upload


class TestPrepareJob:
    def test_storyboard_job(self, store, uploads):
        request = VideoJobRequest(
            kind="storyboard",
            storyboard=[{"scene": 1, "visual": "Kopi", "text": "Pagi", "duration": 3}],
        )
        job = video_jobs.prepare_job("u1", request, store)
        assert 'Scene 1 (3s): Kopi. On-screen text: "Pagi".' in job["prompt"]
        assert job["referenceImageUrl"] is None
        entry = store.get_status(job["jobId"])
        assert entry["status"] == "pending"
        assert entry["userId"] == "u1"

    def test_storyboard_uses_first_image_in_media(self, store, uploads, png_data_url):
        request = VideoJobRequest(
            kind="storyboard",
            storyboard=[{"scene": 1, "visual": "Kopi", "duration": 3}],
            media=["data:video/mp4;base64,AAAA", png_data_url],
        )
        job = video_jobs.prepare_job("u1", request, store)
        assert job["referenceImageUrl"] == "https://blob/video-inputs/x"
        assert uploads.call_args.args[1] == "image/png"

    def test_storyboard_required(self, store):
        with pytest.raises(ValidationError, match="storyboard"):
            video_jobs.prepare_job("u1", VideoJobRequest(kind="storyboard"), store)

    def test_image_to_video_limits(self, store, png_data_url):
        with pytest.raises(ValidationError):
            video_jobs.prepare_job("u1", VideoJobRequest(kind="image_to_video"), store)
        with pytest.raises(ValidationError, match="at most 10"):
            video_jobs.prepare_job("u1", VideoJobRequest(kind="image_to_video", images=[png_data_url] * 11), store)

    def test_image_to_video_prompt(self, store, uploads, png_data_url):
        request = VideoJobRequest(kind="image_to_video", images=[png_data_url] * 2, headline="Promo", music="Calm")
        job = video_jobs.prepare_job("u1", request, store)
        assert "sequence of all the provided images" in job["prompt"]
        assert job["referenceImageUrl"] is not None
        assert job["kind"] == "image_to_video"


class TestActivities:
    def test_start_submits_with_reference(self, store, gemini, png_bytes):
        gemini.start_video_generation.return_value = "operations/1"
        payload = {"jobId": "j1", "userId": "u1", "prompt": "p", "referenceImageUrl": "https://blob/ref.png"}
        with patch.object(media, "fetch_media", return_value=(png_bytes, "image/png")):
            out = video_jobs.start_job(payload, gemini, store)
        assert out["operationName"] == "operations/1"
        gemini.start_video_generation.assert_called_once_with("p", (png_bytes, "image/png"))
        assert store.get_status("j1")["statusMessage"].startswith("Sending request to AI video generator")

    def test_poll_reports_check_number(self, store, gemini):
        gemini.get_video_operation.return_value = VideoOperationState(done=False)
        out = video_jobs.poll_job({"jobId": "j1", "operationName": "operations/1", "check": 3}, gemini, store)
        assert out == {"done": False, "videoUri": None, "error": None}
        assert store.get_status("j1")["statusMessage"] == "Assembling video... Please wait. [Check 3]"

    def test_finalize_uploads_and_completes(self, store, gemini, uploads):
        gemini.download_video.return_value = b"mp4"
        summary = video_jobs.finalize_job(
            {"jobId": "j1", "userId": "u1", "kind": "storyboard", "videoUri": "https://files/v"}, gemini, store
        )
        assert summary == {"videoUrl": "https://blob/videos/j1", "kind": "storyboard"}
        entry = store.get_status("j1")
        assert entry["status"] == "completed"
        assert entry["isComplete"] is True

    def test_finalize_without_uri(self, store, gemini):
        with pytest.raises(MediaGenerationError, match="failed to return a valid URL"):
            video_jobs.finalize_job({"jobId": "j1", "videoUri": None}, gemini, store)

    def test_fail_records_error(self, store):
        video_jobs.fail_job({"jobId": "j1", "userId": "u1", "error": "blocked"}, store)
        entry = store.get_status("j1")
        assert entry["status"] == "failed"
        assert entry["summary"]["error"] == "blocked"
        assert entry["statusMessage"] == "Error: blocked"


class TestOrchestration:
    def _handlers(self, polls, finalize=None, fail=None):
        states = iter(polls)
        return {
            video_jobs.START_ACTIVITY: lambda p: {**p, "operationName": "operations/1"},
            video_jobs.POLL_ACTIVITY: lambda p: next(states),
            video_jobs.FINALIZE_ACTIVITY: finalize or (lambda p: {"videoUrl": "https://blob/videos/j1", "kind": p.get("kind")}),
            video_jobs.FAIL_ACTIVITY: fail or (lambda p: {"error": p["error"], "kind": p.get("kind")}),
        }

    def test_polls_until_done_then_finalizes(self):
        ctx = FakeContext({"jobId": "j1", "kind": "storyboard", "prompt": "p"})
        handlers = self._handlers([{"done": False}, {"done": True, "videoUri": "https://files/v"}])
        result = drive(video_jobs.run_video_orchestration(ctx, interval=10, limit=5), handlers)

        assert result == {"status": "completed", "videoUrl": "https://blob/videos/j1", "kind": "storyboard"}
        names = [c[0] for c in ctx.calls]
        assert names == ["video_start", "timer", "video_poll", "timer", "video_poll", "video_finalize"]
        assert [c[1]["check"] for c in ctx.calls if c[0] == "video_poll"] == [1, 2]
        assert ctx.calls[1][1] == datetime(2025, 3, 5, 3, 0, 10, tzinfo=timezone.utc)
        assert ctx.calls[-1][1]["videoUri"] == "https://files/v"

    def test_operation_error_runs_fail_activity(self):
        ctx = FakeContext({"jobId": "j1", "prompt": "p"})
        handlers = self._handlers([{"done": True, "error": "Safety filter"}])
        result = drive(video_jobs.run_video_orchestration(ctx, interval=1, limit=5), handlers)
        assert result["status"] == "failed"
        assert result["error"] == "Safety filter"
        assert ctx.calls[-1][0] == "video_fail"

    def test_gives_up_after_poll_limit(self):
        ctx = FakeContext({"jobId": "j1", "prompt": "p"})
        handlers = self._handlers([{"done": False}] * 3)
        result = drive(video_jobs.run_video_orchestration(ctx, interval=1, limit=2), handlers)
        assert result["status"] == "failed"
        assert "not ready after 2 checks" in result["error"]
        assert len([c for c in ctx.calls if c[0] == "video_poll"]) == 2

    def test_activity_failure_is_reported(self):
        ctx = FakeContext({"jobId": "j1", "prompt": "p"})

        def _boom(payload):
            raise RuntimeError("Video generation failed: quota")

        handlers = self._handlers([])
        handlers[video_jobs.START_ACTIVITY] = _boom
        result = drive(video_jobs.run_video_orchestration(ctx, interval=1, limit=2), handlers)
        assert result == {"status": "failed", "error": "Video generation failed: quota", "kind": None}
