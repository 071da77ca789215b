"""Wrapper over the Google Gen AI SDK for every generative call the studio makes."""

import json
import os
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Tuple

import requests
from google import genai
from google.genai import errors as genai_errors, types

from iklankilat.media.audio import pcm_to_wav
from iklankilat.services import prompts
from iklankilat.services.media import fetch_media, to_data_url
from iklankilat.shared.logging_utils import info as log_info, warning as log_warning
from iklankilat.specs.common.enums import OutpaintType
from iklankilat.specs.common.errors import (
    ConfigurationError,
    ContentGenerationError,
    MediaGenerationError,
)
from iklankilat.specs.models.domain import Scene


DEFAULT_TEXT_MODEL = "gemini-2.5-flash"
DEFAULT_IMAGEN_MODEL = "imagen-4.0-generate-001"
DEFAULT_IMAGE_EDIT_MODEL = "gemini-2.5-flash-image-preview"
DEFAULT_TTS_MODEL = "gemini-2.5-flash-preview-tts"
DEFAULT_VIDEO_MODEL = "veo-2.0-generate-001"
VOICE_NAME = "Zephyr"
HTTP_TIMEOUT_MS = 120_000
VIDEO_DOWNLOAD_TIMEOUT_SECONDS = 120


@dataclass
class VideoOperationState:
    done: bool
    video_uri: Optional[str] = None
    error: Optional[str] = None


@contextmanager
def _api_errors(error_cls, action: str):
    """Re-raise Gen AI SDK failures as application errors."""
    try:
        yield
    except genai_errors.APIError as exc:
        raise error_cls(f"{action} failed: {exc.message or exc}", details={"code": exc.code, "status": exc.status}) from exc


def _first_inline_data(response) -> Optional[types.Blob]:
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline is not None and inline.data:
                return inline
    return None


class GeminiService:
    def __init__(self, client: Optional[genai.Client] = None, api_key: Optional[str] = None):
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        if client is None:
            if not self.api_key:
                raise ConfigurationError("GEMINI_API_KEY environment variable not set")
            client = genai.Client(api_key=self.api_key, http_options={"timeout": HTTP_TIMEOUT_MS})
        self.client = client
        self.text_model = os.getenv("GEMINI_TEXT_MODEL", DEFAULT_TEXT_MODEL)
        self.imagen_model = os.getenv("GEMINI_IMAGEN_MODEL", DEFAULT_IMAGEN_MODEL)
        self.image_edit_model = os.getenv("GEMINI_IMAGE_EDIT_MODEL", DEFAULT_IMAGE_EDIT_MODEL)
        self.tts_model = os.getenv("GEMINI_TTS_MODEL", DEFAULT_TTS_MODEL)
        self.video_model = os.getenv("GEMINI_VIDEO_MODEL", DEFAULT_VIDEO_MODEL)

    # ---- images ----------------------------------------------------------

    def enhance_prompts(self, prompt: str, style: str) -> List[str]:
        """Ask the text model for prompt variants; falls back to the raw prompt."""
        try:
            response = self.client.models.generate_content(
                model=self.text_model,
                contents=prompts.prompter_instruction(prompt, style),
            )
            text = response.text
        except Exception as exc:
            log_warning(None, "gemini:enhance_prompts:fallback", error=str(exc))
            text = None
        return prompts.parse_enhanced_prompts(text, prompt)

    def _generate_one_image(self, enhanced_prompt: str, aspect_ratio: str) -> List[str]:
        with _api_errors(MediaGenerationError, "Image generation"):
            response = self.client.models.generate_images(
                model=self.imagen_model,
                prompt=prompts.image_generation_prompt(enhanced_prompt),
                config=types.GenerateImagesConfig(number_of_images=1, aspect_ratio=aspect_ratio),
            )
        urls = []
        for generated in getattr(response, "generated_images", None) or []:
            image = getattr(generated, "image", None)
            if image is not None and image.image_bytes:
                urls.append(to_data_url(image.image_bytes, "image/png"))
        return urls

    def generate_images_from_idea(self, prompt: str, style: str, aspect_ratio: str = "1:1") -> List[str]:
        enhanced = self.enhance_prompts(prompt, style)
        with ThreadPoolExecutor(max_workers=len(enhanced)) as pool:
            batches = list(pool.map(lambda p: self._generate_one_image(p, aspect_ratio), enhanced))
        image_urls = [url for batch in batches for url in batch]
        if not image_urls:
            raise MediaGenerationError("Image generation succeeded but no valid image data was found.")
        log_info(None, "gemini:images_generated", count=len(image_urls), aspectRatio=aspect_ratio)
        return image_urls

    def _edit_image(self, data: bytes, mime_type: str, instruction: str, missing_message: str) -> bytes:
        with _api_errors(MediaGenerationError, "Image editing"):
            response = self.client.models.generate_content(
                model=self.image_edit_model,
                contents=[types.Part.from_bytes(data=data, mime_type=mime_type), instruction],
                config=types.GenerateContentConfig(response_modalities=["IMAGE", "TEXT"]),
            )
        inline = _first_inline_data(response)
        if inline is None:
            raise MediaGenerationError(missing_message)
        return inline.data

    def enhance_image(self, data: bytes, mime_type: str, aspect_ratio: Optional[str] = None) -> str:
        result = self._edit_image(
            data, mime_type, prompts.enhance_product_prompt(aspect_ratio), "API did not return an enhanced image."
        )
        return to_data_url(result, "image/png")

    def crop_image(self, image_url: str, aspect_ratio: str) -> str:
        data, mime = fetch_media(image_url)
        result = self._edit_image(
            data,
            mime,
            prompts.CROP_PROMPT.format(aspect_ratio=aspect_ratio),
            "API did not return a cropped image.",
        )
        return to_data_url(result, mime)

    def enhance_canvas_background(self, image_url: str) -> str:
        data, mime = fetch_media(image_url)
        result = self._edit_image(data, mime, prompts.CANVAS_BACKGROUND_PROMPT, "API did not return an enhanced image.")
        return to_data_url(result, mime)

    def outpaint_image(
        self,
        image_url: str,
        aspect_ratio: str,
        outpaint_type: OutpaintType = OutpaintType.PHOTOGRAPHIC,
    ) -> str:
        data, mime = fetch_media(image_url)
        result = self._edit_image(
            data,
            mime,
            prompts.outpaint_prompt(aspect_ratio, outpaint_type),
            "API did not return an outpainted image.",
        )
        return to_data_url(result, mime)

    # ---- text & audio ----------------------------------------------------

    def generate_copy_and_hashtags(self, image_url: str) -> Tuple[List[str], str]:
        data, mime = fetch_media(image_url)
        with _api_errors(ContentGenerationError, "Copy generation"):
            response = self.client.models.generate_content(
                model=self.text_model,
                contents=[types.Part.from_bytes(data=data, mime_type=mime), prompts.COPY_PROMPT],
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=prompts.COPY_RESPONSE_SCHEMA,
                ),
            )
        if not response.text:
            raise ContentGenerationError("API did not return valid JSON text for copy.")
        try:
            payload = json.loads(prompts.strip_code_fences(response.text))
            captions = [str(c) for c in payload.get("captions") or []]
            hashtags = str(payload.get("hashtags") or "")
        except (json.JSONDecodeError, AttributeError) as exc:
            raise ContentGenerationError("API did not return valid JSON text for copy.", details={"error": str(exc)})
        return captions, hashtags

    def generate_voiceover(self, caption: str) -> str:
        with _api_errors(MediaGenerationError, "Voiceover generation"):
            response = self.client.models.generate_content(
                model=self.tts_model,
                contents=prompts.VOICEOVER_PROMPT.format(caption=caption),
                config=types.GenerateContentConfig(
                    response_modalities=["AUDIO"],
                    speech_config=types.SpeechConfig(
                        voice_config=types.VoiceConfig(
                            prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=VOICE_NAME)
                        )
                    ),
                ),
            )
        inline = _first_inline_data(response)
        if inline is None:
            raise MediaGenerationError("No audio data received.")
        return to_data_url(pcm_to_wav(inline.data), "audio/wav")

    def generate_storyboard(self, prompt: str, goal: str) -> List[Scene]:
        with _api_errors(ContentGenerationError, "Storyboard generation"):
            response = self.client.models.generate_content(
                model=self.text_model,
                contents=prompts.STORYBOARD_PROMPT.format(prompt=prompt, goal=goal),
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=prompts.STORYBOARD_RESPONSE_SCHEMA,
                ),
            )
        if not response.text:
            raise ContentGenerationError("API did not return valid JSON text for the storyboard.")
        try:
            return prompts.parse_storyboard(response.text)
        except ValueError as exc:
            raise ContentGenerationError("Storyboard reply could not be parsed.", details={"error": str(exc)})

    # ---- video -----------------------------------------------------------

    def start_video_generation(
        self,
        prompt: str,
        image: Optional[Tuple[bytes, str]] = None,
    ) -> str:
        """Submit a Veo job and return the long-running operation name."""
        kwargs = {}
        if image is not None:
            kwargs["image"] = types.Image(image_bytes=image[0], mime_type=image[1])
        with _api_errors(MediaGenerationError, "Video generation"):
            operation = self.client.models.generate_videos(
                model=self.video_model,
                prompt=prompt,
                config=types.GenerateVideosConfig(number_of_videos=1),
                **kwargs,
            )
        if not operation.name:
            raise MediaGenerationError("Video generation did not return an operation handle.")
        return operation.name

    def get_video_operation(self, operation_name: str) -> VideoOperationState:
        with _api_errors(MediaGenerationError, "Video status check"):
            operation = self.client.operations.get(types.GenerateVideosOperation(name=operation_name))
        if not operation.done:
            return VideoOperationState(done=False)
        if operation.error:
            return VideoOperationState(done=True, error=str(operation.error.get("message") or operation.error))
        videos = getattr(operation.response, "generated_videos", None) or []
        uri = videos[0].video.uri if videos and videos[0].video else None
        return VideoOperationState(done=True, video_uri=uri)

    def download_video(self, uri: str) -> bytes:
        headers = {"x-goog-api-key": self.api_key} if self.api_key else {}
        try:
            resp = requests.get(uri, headers=headers, timeout=VIDEO_DOWNLOAD_TIMEOUT_SECONDS)
        except requests.RequestException as exc:
            raise MediaGenerationError(f"Failed to download video file: {exc}")
        if not resp.ok:
            raise MediaGenerationError(
                f"Failed to download video file. Status: {resp.status_code}. Body: {resp.text[:500]}"
            )
        if not resp.content:
            raise MediaGenerationError("Could not retrieve video data from the download link (empty body).")
        return resp.content


@lru_cache(maxsize=1)
def get_gemini_service() -> GeminiService:
    return GeminiService()
