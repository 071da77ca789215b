import azure.functions as func

from iklankilat.function_blueprints.http_utils import (
    error_response,
    json_response,
    optional_user,
    parse_body,
    require_user,
)
from iklankilat.services.editor import get_editor_service
from iklankilat.services.gemini import get_gemini_service
from iklankilat.shared.logging_utils import info as log_info
from iklankilat.specs.models.http import (
    AspectRatioRequest,
    CropRequest,
    GenerateCopyRequest,
    GenerateVisualRequest,
    StoryboardRequest,
    StoryboardResponse,
    VoiceoverRequest,
)


bp = func.Blueprint()

GUEST_HEADER = "X-Guest-Id"


@bp.function_name(name="editor_generate_visual")
@bp.route(route="editor/visual", methods=["POST"], auth_level=func.AuthLevel.ANONYMOUS)
def editor_generate_visual(req: func.HttpRequest) -> func.HttpResponse:
    """Idea or photo -> master visual. Guests are metered by ``X-Guest-Id``."""
    try:
        user = optional_user(req)
        body = parse_body(req, GenerateVisualRequest)
        result = get_editor_service().generate_visual(body, user=user, guest_id=req.headers.get(GUEST_HEADER))
    except Exception as exc:
        return error_response(exc, route="editor/visual")
    return json_response(result)


@bp.function_name(name="editor_aspect_ratio")
@bp.route(route="editor/aspect-ratio", methods=["POST"], auth_level=func.AuthLevel.ANONYMOUS)
def editor_aspect_ratio(req: func.HttpRequest) -> func.HttpResponse:
    try:
        body = parse_body(req, AspectRatioRequest)
        result = get_editor_service().adjust_aspect_ratio(body.originalImage, body.aspectRatio, body.mode)
    except Exception as exc:
        return error_response(exc, route="editor/aspect-ratio")
    return json_response(result)


@bp.function_name(name="editor_crop")
@bp.route(route="editor/crop", methods=["POST"], auth_level=func.AuthLevel.ANONYMOUS)
def editor_crop(req: func.HttpRequest) -> func.HttpResponse:
    try:
        body = parse_body(req, CropRequest)
        result = get_editor_service().crop_to_aspect_ratio(body.image, body.aspectRatio)
    except Exception as exc:
        return error_response(exc, route="editor/crop")
    return json_response(result)


@bp.function_name(name="editor_copy")
@bp.route(route="editor/copy", methods=["POST"], auth_level=func.AuthLevel.ANONYMOUS)
def editor_copy(req: func.HttpRequest) -> func.HttpResponse:
    try:
        body = parse_body(req, GenerateCopyRequest)
        result = get_editor_service().generate_copy(body.selectedImage)
    except Exception as exc:
        return error_response(exc, route="editor/copy")
    return json_response(result)


@bp.function_name(name="editor_voiceover")
@bp.route(route="editor/voiceover", methods=["POST"], auth_level=func.AuthLevel.ANONYMOUS)
def editor_voiceover(req: func.HttpRequest) -> func.HttpResponse:
    try:
        body = parse_body(req, VoiceoverRequest)
        result = get_editor_service().generate_voiceover(body.caption)
    except Exception as exc:
        return error_response(exc, route="editor/voiceover")
    return json_response(result)


@bp.function_name(name="video_storyboard")
@bp.route(route="videos/storyboard", methods=["POST"], auth_level=func.AuthLevel.ANONYMOUS)
def video_storyboard(req: func.HttpRequest) -> func.HttpResponse:
    try:
        user = require_user(req)
        body = parse_body(req, StoryboardRequest)
        scenes = get_gemini_service().generate_storyboard(body.prompt, body.goal.value)
    except Exception as exc:
        return error_response(exc, route="videos/storyboard")
    log_info(user.uid, "video:storyboard_generated", scenes=len(scenes))
    return json_response(
        StoryboardResponse(storyboard=scenes, totalDuration=sum(s.duration for s in scenes))
    )
