from functools import lru_cache

import azure.functions as func

from iklankilat.function_blueprints.http_utils import error_response, json_response, parse_body, require_user
from iklankilat.services.calendar_grid import build_calendar_grid
from iklankilat.services.repository import get_repository
from iklankilat.services.scheduling import SchedulingService
from iklankilat.specs.common.datetime_utils import resolve_timezone, utc_now
from iklankilat.specs.common.errors import ValidationError
from iklankilat.specs.models.http import (
    InstagramConnectionRequest,
    ScheduledListResponse,
    ScheduleRequest,
    UpdatePostStatusRequest,
)


bp = func.Blueprint()


@lru_cache(maxsize=1)
def get_scheduling_service() -> SchedulingService:
    return SchedulingService(get_repository())


def _int_param(req: func.HttpRequest, name: str, default: int) -> int:
    raw = req.params.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"Query parameter '{name}' must be an integer")


@bp.function_name(name="schedules_create")
@bp.route(route="schedules", methods=["POST"], auth_level=func.AuthLevel.ANONYMOUS)
def schedules_create(req: func.HttpRequest) -> func.HttpResponse:
    """Schedule a saved project; requires a connected Instagram account (409 otherwise)."""
    try:
        user = require_user(req)
        body = parse_body(req, ScheduleRequest)
        result = get_scheduling_service().schedule(user, body)
    except Exception as exc:
        return error_response(exc, route="schedules")
    return json_response(result, status_code=200 if result.rescheduled else 201)


@bp.function_name(name="schedules_list")
@bp.route(route="schedules", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def schedules_list(req: func.HttpRequest) -> func.HttpResponse:
    try:
        user = require_user(req)
        posts = get_repository().list_scheduled_app_projects(user.uid)
    except Exception as exc:
        return error_response(exc, route="schedules")
    return json_response(ScheduledListResponse(posts=posts))


@bp.function_name(name="schedules_update_status")
@bp.route(route="schedules/{postId}", methods=["PATCH"], auth_level=func.AuthLevel.ANONYMOUS)
def schedules_update_status(req: func.HttpRequest) -> func.HttpResponse:
    try:
        user = require_user(req)
        body = parse_body(req, UpdatePostStatusRequest)
        post = get_scheduling_service().update_status(user, req.route_params.get("postId"), body.status)
    except Exception as exc:
        return error_response(exc, route="schedules/{postId}")
    return json_response(post)


@bp.function_name(name="calendar_month")
@bp.route(route="calendar", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def calendar_month(req: func.HttpRequest) -> func.HttpResponse:
    """Month grid of scheduled posts; defaults to the current month in ``timezone``."""
    try:
        user = require_user(req)
        tz_name = req.params.get("timezone") or "UTC"
        today = utc_now().astimezone(resolve_timezone(tz_name)).date()
        year = _int_param(req, "year", today.year)
        month = _int_param(req, "month", today.month)
        posts = get_repository().list_scheduled_app_projects(user.uid)
        grid = build_calendar_grid(year, month, posts, tz_name)
    except Exception as exc:
        return error_response(exc, route="calendar")
    return json_response(grid)


@bp.function_name(name="settings_instagram")
@bp.route(route="settings/instagram", methods=["PUT"], auth_level=func.AuthLevel.ANONYMOUS)
def settings_instagram(req: func.HttpRequest) -> func.HttpResponse:
    """Toggle the Instagram connection flag; no platform OAuth happens here."""
    try:
        user = require_user(req)
        body = parse_body(req, InstagramConnectionRequest)
        profile = get_repository().update_instagram_connection(
            user.uid, body.connected, body.instagramHandle, email=user.email or ""
        )
    except Exception as exc:
        return error_response(exc, route="settings/instagram")
    user.isInstagramConnected = profile.isInstagramConnected
    user.instagramHandle = profile.instagramHandle
    return json_response(user)
