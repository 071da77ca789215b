import azure.functions as func

from iklankilat.function_blueprints.http_utils import error_response, json_response, parse_body, require_user
from iklankilat.services.auth import get_auth_service
from iklankilat.shared.logging_utils import info as log_info
from iklankilat.specs.models.http import GoogleSignInRequest, LoginRequest, RegisterRequest


bp = func.Blueprint()


@bp.function_name(name="auth_register")
@bp.route(route="auth/register", methods=["POST"], auth_level=func.AuthLevel.ANONYMOUS)
def auth_register(req: func.HttpRequest) -> func.HttpResponse:
    try:
        body = parse_body(req, RegisterRequest)
        session = get_auth_service().register_user(body.email, body.password, body.displayName)
    except Exception as exc:
        return error_response(exc, route="auth/register")
    return json_response(session, status_code=201)


@bp.function_name(name="auth_login")
@bp.route(route="auth/login", methods=["POST"], auth_level=func.AuthLevel.ANONYMOUS)
def auth_login(req: func.HttpRequest) -> func.HttpResponse:
    try:
        body = parse_body(req, LoginRequest)
        session = get_auth_service().login_user(body.email, body.password)
    except Exception as exc:
        return error_response(exc, route="auth/login")
    return json_response(session)


@bp.function_name(name="auth_google")
@bp.route(route="auth/google", methods=["POST"], auth_level=func.AuthLevel.ANONYMOUS)
def auth_google(req: func.HttpRequest) -> func.HttpResponse:
    try:
        body = parse_body(req, GoogleSignInRequest)
        session = get_auth_service().sign_in_with_google(body.idToken)
    except Exception as exc:
        return error_response(exc, route="auth/google")
    return json_response(session)


@bp.function_name(name="auth_me")
@bp.route(route="me", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def auth_me(req: func.HttpRequest) -> func.HttpResponse:
    try:
        user = require_user(req)
    except Exception as exc:
        return error_response(exc, route="me")
    log_info(user.uid, "auth:me")
    return json_response(user)
