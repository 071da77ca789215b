from typing import Optional, Type, TypeVar, Union

import azure.functions as func
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from iklankilat.services.auth import get_auth_service
from iklankilat.shared.logging_utils import error as log_error
from iklankilat.specs.common.errors import IklanKilatError, ValidationError
from iklankilat.specs.models import AppUser, ErrorResponse


M = TypeVar("M", bound=BaseModel)


def json_response(model: BaseModel, status_code: int = 200, headers: Optional[dict] = None) -> func.HttpResponse:
    return func.HttpResponse(
        body=model.model_dump_json(),
        mimetype="application/json",
        status_code=status_code,
        headers=headers,
    )


def error_response(exc: Union[IklanKilatError, Exception], route: Optional[str] = None) -> func.HttpResponse:
    """Render an exception as ``ErrorResponse``; unknown errors become a 500."""
    if isinstance(exc, IklanKilatError):
        err = ErrorResponse(message=str(exc), errorCode=exc.code, details=exc.details or None)
        status = exc.status_code
    else:
        log_error(None, "http:unhandled_error", route=route, error=str(exc), errorType=type(exc).__name__)
        err = ErrorResponse(message="Internal server error", errorCode="INTERNAL_ERROR")
        status = 500
    return json_response(err, status_code=status)


def parse_body(req: func.HttpRequest, model: Type[M]) -> M:
    try:
        data = req.get_json()
    except ValueError:
        raise ValidationError("Invalid JSON body")
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object")
    try:
        return model(**data)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Invalid request: {exc.error_count()} validation error(s)",
            details={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
        )


def require_user(req: func.HttpRequest) -> AppUser:
    return get_auth_service().require_user(req.headers)


def optional_user(req: func.HttpRequest) -> Optional[AppUser]:
    resolved = get_auth_service().authenticate(req.headers)
    return resolved[1] if resolved else None
