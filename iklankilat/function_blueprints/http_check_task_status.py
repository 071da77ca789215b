import azure.functions as func

from iklankilat.function_blueprints.http_utils import error_response, json_response, require_user
from iklankilat.shared.logging_utils import info as log_info
from iklankilat.shared.state import get_job_store
from iklankilat.specs.common.enums import JobStatus
from iklankilat.specs.common.errors import PermissionDeniedError
from iklankilat.specs.models import TaskStatusResponse


bp = func.Blueprint()


@bp.function_name(name="check_task_status")
@bp.route(route="jobs/{jobId}", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def check_task_status(req: func.HttpRequest) -> func.HttpResponse:
    job_id = req.route_params.get("jobId")
    try:
        user = require_user(req)
        state = get_job_store().get_status(job_id)
        if state is not None and state.get("userId") not in (None, user.uid):
            raise PermissionDeniedError("Permission denied or job not found.")
    except Exception as exc:
        return error_response(exc, route="jobs/{jobId}")

    if state is None:
        log_info(job_id, "status:not_found")
        # Not recorded yet; the orchestration may still be starting
        resp = TaskStatusResponse(jobId=job_id, status=JobStatus.PENDING, isComplete=False)
    else:
        log_info(job_id, "status:found", phase=state.get("currentPhase"), status=state.get("status"))
        resp = TaskStatusResponse(
            jobId=job_id,
            currentPhase=state.get("currentPhase") or "video",
            status=state.get("status") or JobStatus.PENDING,
            isComplete=bool(state.get("isComplete")),
            statusMessage=state.get("statusMessage"),
            lastUpdateUtc=state.get("lastUpdateUtc"),
            summary=state.get("summary"),
        )
    return json_response(resp)
