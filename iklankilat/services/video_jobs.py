"""Long-running video generation as a durable orchestration.

The HTTP starter validates the request and uploads the reference image,
then the orchestrator submits the Veo job and polls it on a durable timer
until it is done. Progress messages go to the job state store for the
status endpoint.
"""

import os
import uuid
from datetime import timedelta
from typing import Any, Dict, Optional

from iklankilat.services import media, prompts
from iklankilat.services.gemini import GeminiService
from iklankilat.shared.logging_utils import error as log_error, info as log_info
from iklankilat.shared.state import JobStateStore
from iklankilat.specs.common.enums import JobStatus, VideoJobKind
from iklankilat.specs.common.errors import MediaGenerationError, ValidationError
from iklankilat.specs.models.http import VideoJobRequest


START_ACTIVITY = "video_start"
POLL_ACTIVITY = "video_poll"
FINALIZE_ACTIVITY = "video_finalize"
FAIL_ACTIVITY = "video_fail"
ORCHESTRATOR = "video_orchestrator"

MAX_IMAGES = 10
PHASE = "video"


def poll_interval_seconds() -> int:
    return int(os.getenv("VIDEO_POLL_INTERVAL_SECONDS", "10"))


def max_polls() -> int:
    return int(os.getenv("VIDEO_MAX_POLLS", "60"))


def prepare_job(user_id: str, request: VideoJobRequest, store: JobStateStore) -> Dict[str, Any]:
    """Validate a video request and build the orchestration input."""
    kind = VideoJobKind(request.kind)
    if kind == VideoJobKind.STORYBOARD:
        if not request.storyboard:
            raise ValidationError("Generate a storyboard first.")
        prompt = prompts.build_storyboard_video_prompt(request.storyboard)
        candidates = request.media
    else:
        if not request.images:
            raise ValidationError("At least one image is required.")
        if len(request.images) > MAX_IMAGES:
            raise ValidationError(f"Upload at most {MAX_IMAGES} images.")
        prompt = prompts.build_images_video_prompt(
            len(request.images), request.style, request.headline, request.music
        )
        candidates = request.images[:1]

    reference_url = None
    for item in candidates:
        data, mime = media.fetch_media(item)
        if mime.startswith("image/"):
            reference_url = media.upload_media(data, mime, folder="video-inputs")
            break

    job_id = uuid.uuid4().hex
    store.set_status(job_id, JobStatus.PENDING.value, summary={"kind": kind.value}, user_id=user_id, phase=PHASE)
    store.add_event(job_id, action="accepted", message="Video job accepted.", phase=PHASE)
    log_info(job_id, "video:accepted", userId=user_id, kind=kind.value, hasReference=bool(reference_url))
    return {
        "jobId": job_id,
        "userId": user_id,
        "kind": kind.value,
        "prompt": prompt,
        "referenceImageUrl": reference_url,
    }


def start_job(payload: Dict[str, Any], gemini: GeminiService, store: JobStateStore) -> Dict[str, Any]:
    job_id = payload["jobId"]
    store.set_status(job_id, JobStatus.IN_PROGRESS.value, user_id=payload.get("userId"), phase=PHASE)
    store.add_event(job_id, action="prompt", message="Constructing video prompt...", phase=PHASE)

    image = None
    if payload.get("referenceImageUrl"):
        store.add_event(job_id, action="reference", message="Preparing reference image...", phase=PHASE)
        image = media.fetch_media(payload["referenceImageUrl"])

    store.add_event(
        job_id,
        action="submit",
        message="Sending request to AI video generator... (this may take several minutes)",
        phase=PHASE,
    )
    operation_name = gemini.start_video_generation(payload["prompt"], image)
    log_info(job_id, "video:submitted", operation=operation_name)
    return {**payload, "operationName": operation_name}


def poll_job(payload: Dict[str, Any], gemini: GeminiService, store: JobStateStore) -> Dict[str, Any]:
    job_id = payload["jobId"]
    check = int(payload.get("check", 1))
    store.add_event(
        job_id,
        action="poll",
        message=f"Assembling video... Please wait. [Check {check}]",
        data={"check": check},
        phase=PHASE,
    )
    state = gemini.get_video_operation(payload["operationName"])
    return {"done": state.done, "videoUri": state.video_uri, "error": state.error}


def finalize_job(payload: Dict[str, Any], gemini: GeminiService, store: JobStateStore) -> Dict[str, Any]:
    job_id = payload["jobId"]
    if not payload.get("videoUri"):
        raise MediaGenerationError("Video generation failed to return a valid URL.")
    store.add_event(job_id, action="fetch", message="Fetching generated video...", phase=PHASE)
    video = gemini.download_video(payload["videoUri"])
    video_url = media.upload_media(video, "video/mp4", folder="videos", name=job_id)
    summary = {"videoUrl": video_url, "kind": payload.get("kind")}
    store.set_status(job_id, JobStatus.COMPLETED.value, summary=summary, user_id=payload.get("userId"), phase=PHASE)
    store.add_event(job_id, action="completed", message="Video is ready.", status=JobStatus.COMPLETED.value, phase=PHASE)
    log_info(job_id, "video:completed", bytes=len(video))
    return summary


def fail_job(payload: Dict[str, Any], store: JobStateStore) -> Dict[str, Any]:
    job_id = payload["jobId"]
    message = payload.get("error") or "Video generation failed."
    summary = {"error": message, "kind": payload.get("kind")}
    store.set_status(job_id, JobStatus.FAILED.value, summary=summary, user_id=payload.get("userId"), phase=PHASE)
    store.add_event(job_id, action="failed", message=f"Error: {message}", status=JobStatus.FAILED.value, phase=PHASE)
    log_error(job_id, "video:failed", error=message)
    return summary


def run_video_orchestration(context, interval: Optional[int] = None, limit: Optional[int] = None):
    """Orchestrator body: submit, poll on a durable timer, then store the video."""
    data = context.get_input() or {}
    interval = poll_interval_seconds() if interval is None else interval
    limit = max_polls() if limit is None else limit
    try:
        job = yield context.call_activity(START_ACTIVITY, data)
        state: Dict[str, Any] = {"done": False}
        check = 0
        while not state.get("done"):
            if check >= limit:
                raise MediaGenerationError(f"Video was not ready after {limit} checks.")
            check += 1
            yield context.create_timer(context.current_utc_datetime + timedelta(seconds=interval))
            state = yield context.call_activity(POLL_ACTIVITY, {**job, "check": check})
        if state.get("error"):
            raise MediaGenerationError(state["error"])
        result = yield context.call_activity(FINALIZE_ACTIVITY, {**job, "videoUri": state.get("videoUri")})
        return {"status": JobStatus.COMPLETED.value, **result}
    except Exception as exc:
        summary = yield context.call_activity(FAIL_ACTIVITY, {**data, "error": str(exc)})
        return {"status": JobStatus.FAILED.value, **summary}
