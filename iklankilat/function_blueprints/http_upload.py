import azure.functions as func

from iklankilat.function_blueprints.http_utils import error_response, json_response, parse_body
from iklankilat.services.media import upload_data_url
from iklankilat.specs.common.errors import ValidationError
from iklankilat.specs.models.http import UploadRequest, UploadResponse


bp = func.Blueprint()


@bp.function_name(name="upload_media")
@bp.route(route="uploads", methods=["POST"], auth_level=func.AuthLevel.ANONYMOUS)
def upload_media(req: func.HttpRequest) -> func.HttpResponse:
    """Accept ``{"file": "data:<mime>;base64,..."}`` and return the hosted URL."""
    try:
        body = parse_body(req, UploadRequest)
        if not body.file:
            raise ValidationError("File not provided")
        url = upload_data_url(body.file)
    except Exception as exc:
        return error_response(exc, route="uploads")
    return json_response(UploadResponse(url=url))
