from functools import lru_cache

import azure.functions as func

from iklankilat.function_blueprints.http_utils import error_response, json_response, parse_body, require_user
from iklankilat.services.projects import ProjectService
from iklankilat.services.prompts import QUICK_START_IDEAS
from iklankilat.services.repository import get_repository
from iklankilat.shared.logging_utils import info as log_info
from iklankilat.specs.models.http import ProjectListResponse, SaveProjectRequest, UpdateProjectRequest


bp = func.Blueprint()


@lru_cache(maxsize=1)
def get_project_service() -> ProjectService:
    return ProjectService(get_repository())


@bp.function_name(name="projects_create")
@bp.route(route="projects", methods=["POST"], auth_level=func.AuthLevel.ANONYMOUS)
def projects_create(req: func.HttpRequest) -> func.HttpResponse:
    try:
        user = require_user(req)
        body = parse_body(req, SaveProjectRequest)
        result = get_project_service().create(user.uid, body)
    except Exception as exc:
        return error_response(exc, route="projects")
    return json_response(result, status_code=201)


@bp.function_name(name="projects_list")
@bp.route(route="projects", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def projects_list(req: func.HttpRequest) -> func.HttpResponse:
    """Dashboard: the user's projects, newest first."""
    try:
        user = require_user(req)
        projects = get_repository().list_app_projects(user.uid)
    except Exception as exc:
        return error_response(exc, route="projects")
    log_info(user.uid, "projects:listed", count=len(projects))
    return json_response(ProjectListResponse(projects=projects, quickStartIdeas=QUICK_START_IDEAS))


@bp.function_name(name="projects_get")
@bp.route(route="projects/{projectId}", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def projects_get(req: func.HttpRequest) -> func.HttpResponse:
    try:
        user = require_user(req)
        project = get_repository().get_app_project(user.uid, req.route_params.get("projectId"))
    except Exception as exc:
        return error_response(exc, route="projects/{projectId}")
    return json_response(project)


@bp.function_name(name="projects_update")
@bp.route(route="projects/{projectId}", methods=["PATCH"], auth_level=func.AuthLevel.ANONYMOUS)
def projects_update(req: func.HttpRequest) -> func.HttpResponse:
    try:
        user = require_user(req)
        body = parse_body(req, UpdateProjectRequest)
        project = get_project_service().update(user.uid, req.route_params.get("projectId"), body)
    except Exception as exc:
        return error_response(exc, route="projects/{projectId}")
    return json_response(project)


@bp.function_name(name="projects_delete")
@bp.route(route="projects/{projectId}", methods=["DELETE"], auth_level=func.AuthLevel.ANONYMOUS)
def projects_delete(req: func.HttpRequest) -> func.HttpResponse:
    try:
        user = require_user(req)
        result = get_project_service().delete(user.uid, req.route_params.get("projectId"))
    except Exception as exc:
        return error_response(exc, route="projects/{projectId}")
    return json_response(result)


@bp.function_name(name="projects_download")
@bp.route(route="projects/{projectId}/download", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def projects_download(req: func.HttpRequest) -> func.HttpResponse:
    try:
        user = require_user(req)
        data, mime, filename = get_project_service().download(user.uid, req.route_params.get("projectId"))
    except Exception as exc:
        return error_response(exc, route="projects/{projectId}/download")
    return func.HttpResponse(
        body=data,
        mimetype=mime,
        status_code=200,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
