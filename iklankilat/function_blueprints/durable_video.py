import asyncio

import azure.functions as func
import azure.durable_functions as df

from iklankilat.function_blueprints.http_utils import error_response, json_response, parse_body, require_user
from iklankilat.services import video_jobs
from iklankilat.services.gemini import get_gemini_service
from iklankilat.shared.state import get_job_store
from iklankilat.specs.models.http import VideoJobAccepted, VideoJobRequest

# Durable Functions Blueprint, compatible with FunctionApp.register_functions
bp = df.Blueprint()


def _stage_video_job(req: func.HttpRequest) -> dict:
    user = require_user(req)
    body = parse_body(req, VideoJobRequest)
    return video_jobs.prepare_job(user.uid, body, get_job_store())


async def accept_video_job(req: func.HttpRequest) -> dict:
    """Authenticate, validate and stage the job on a worker thread.

    Staging may fetch and upload a reference image and writes job state,
    none of which may block the event loop the starter shares.
    """
    return await asyncio.to_thread(_stage_video_job, req)


@bp.function_name(name="video_jobs_start")
@bp.route(route="videos/jobs", methods=["POST"], auth_level=func.AuthLevel.ANONYMOUS)
@bp.durable_client_input(client_name="client")
async def video_jobs_start(req: func.HttpRequest, client: df.DurableOrchestrationClient) -> func.HttpResponse:
    try:
        job_input = await accept_video_job(req)
    except Exception as exc:
        return error_response(exc, route="videos/jobs")

    job_id = job_input["jobId"]
    await client.start_new(video_jobs.ORCHESTRATOR, job_id, job_input)
    resp = VideoJobAccepted(jobId=job_id, next=f"/api/jobs/{job_id}")
    return json_response(resp, status_code=202)


@bp.function_name(name=video_jobs.ORCHESTRATOR)
@bp.orchestration_trigger(context_name="context")
def video_orchestrator(context: df.DurableOrchestrationContext):
    result = yield from video_jobs.run_video_orchestration(context)
    return result


@bp.function_name(name=video_jobs.START_ACTIVITY)
@bp.activity_trigger(input_name="data")
def video_start(data: dict) -> dict:
    return video_jobs.start_job(data, get_gemini_service(), get_job_store())


@bp.function_name(name=video_jobs.POLL_ACTIVITY)
@bp.activity_trigger(input_name="data")
def video_poll(data: dict) -> dict:
    return video_jobs.poll_job(data, get_gemini_service(), get_job_store())


@bp.function_name(name=video_jobs.FINALIZE_ACTIVITY)
@bp.activity_trigger(input_name="data")
def video_finalize(data: dict) -> dict:
    return video_jobs.finalize_job(data, get_gemini_service(), get_job_store())


@bp.function_name(name=video_jobs.FAIL_ACTIVITY)
@bp.activity_trigger(input_name="data")
def video_fail(data: dict) -> dict:
    return video_jobs.fail_job(data, get_job_store())
