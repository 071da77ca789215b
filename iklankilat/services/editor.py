"""Editor wizard steps: visual, aspect ratio, caption, voiceover.

Each step is stateless; the client carries the wizard state forward and
every step checks the input the previous step should have produced.
"""

from functools import lru_cache
from typing import Optional

from iklankilat.media.canvas import recompose_image_on_canvas
from iklankilat.services.gemini import GeminiService, get_gemini_service
from iklankilat.services.guest_quota import GuestQuota
from iklankilat.services.media import fetch_media, to_data_url
from iklankilat.shared.logging_utils import error as log_error, info as log_info
from iklankilat.specs.common.enums import AspectRatio, EditorMode, OutpaintType
from iklankilat.specs.common.errors import IklanKilatError, MediaGenerationError, ValidationError
from iklankilat.specs.models.domain import AppUser
from iklankilat.specs.models.http import (
    GenerateCopyResponse,
    GenerateVisualRequest,
    GenerateVisualResponse,
    ImageResponse,
    VoiceoverResponse,
)


MASTER_ASPECT_RATIO = AspectRatio.SQUARE


class EditorService:
    def __init__(self, gemini: GeminiService, guest_quota: Optional[GuestQuota] = None):
        self.gemini = gemini
        self.guest_quota = guest_quota or GuestQuota()

    def generate_visual(
        self,
        request: GenerateVisualRequest,
        user: Optional[AppUser] = None,
        guest_id: Optional[str] = None,
    ) -> GenerateVisualResponse:
        """Generate the master (1:1) visual from an idea or a product photo."""
        mode = EditorMode(request.mode)
        if mode == EditorMode.IDEA and not (request.prompt or "").strip():
            raise ValidationError("Enter an idea or description first.")
        if mode == EditorMode.PHOTO and not request.image:
            raise ValidationError("Please upload a product photo first.")

        left = None
        if user is None:
            left = self.guest_quota.reserve(guest_id)

        try:
            if mode == EditorMode.IDEA:
                image_urls = self.gemini.generate_images_from_idea(
                    request.prompt, request.style, MASTER_ASPECT_RATIO.value
                )
            else:
                data, mime = fetch_media(request.image)
                image_urls = [self.gemini.enhance_image(data, mime, MASTER_ASPECT_RATIO.value)]
        except Exception:
            if user is None:
                self.guest_quota.refund(guest_id)
            raise

        log_info(user.uid if user else None, "editor:visual_generated", mode=mode.value, images=len(image_urls))
        return GenerateVisualResponse(
            imageUrls=image_urls,
            selectedImage=image_urls[0],
            aspectRatio=MASTER_ASPECT_RATIO,
            guestGenerationsLeft=left,
        )

    def adjust_aspect_ratio(self, original_image: str, aspect_ratio: AspectRatio, mode: EditorMode) -> ImageResponse:
        """Re-frame the master image; 1:1 returns it untouched.

        The original is centered on a transparent canvas of the target ratio,
        then the model paints the margin: a background enhancement for idea
        visuals, a photographic outpaint for product photos.
        """
        aspect_ratio = AspectRatio(aspect_ratio)
        if not original_image:
            raise ValidationError("Generate or upload an image first.")
        if aspect_ratio == MASTER_ASPECT_RATIO:
            return ImageResponse(imageUrl=original_image, aspectRatio=aspect_ratio)

        try:
            data, _ = fetch_media(original_image)
            canvas_url = to_data_url(recompose_image_on_canvas(data, aspect_ratio.ratio), "image/png")
            if EditorMode(mode) == EditorMode.IDEA:
                image_url = self.gemini.enhance_canvas_background(canvas_url)
            else:
                image_url = self.gemini.outpaint_image(canvas_url, aspect_ratio.value, OutpaintType.PHOTOGRAPHIC)
        except (IklanKilatError, OSError) as exc:
            # OSError covers images PIL cannot decode
            log_error(None, "editor:aspect_ratio_failed", aspectRatio=aspect_ratio.value, error=str(exc))
            raise MediaGenerationError("Failed to adjust the image.", details={"cause": str(exc)})
        return ImageResponse(imageUrl=image_url, aspectRatio=aspect_ratio)

    def crop_to_aspect_ratio(self, image: str, aspect_ratio: AspectRatio) -> ImageResponse:
        aspect_ratio = AspectRatio(aspect_ratio)
        if not image:
            raise ValidationError("Generate or upload an image first.")
        return ImageResponse(imageUrl=self.gemini.crop_image(image, aspect_ratio.value), aspectRatio=aspect_ratio)

    def generate_copy(self, selected_image: Optional[str]) -> GenerateCopyResponse:
        if not selected_image:
            raise ValidationError("Select an image before generating copy.")
        captions, hashtags = self.gemini.generate_copy_and_hashtags(selected_image)
        return GenerateCopyResponse(
            captions=captions,
            selectedCaption=captions[0] if captions else "",
            hashtags=hashtags,
        )

    def generate_voiceover(self, caption: Optional[str]) -> VoiceoverResponse:
        if not (caption or "").strip():
            raise ValidationError("Write or generate a caption before creating a voiceover.")
        return VoiceoverResponse(audioUrl=self.gemini.generate_voiceover(caption.strip()))


@lru_cache(maxsize=1)
def get_editor_service() -> EditorService:
    return EditorService(get_gemini_service())
