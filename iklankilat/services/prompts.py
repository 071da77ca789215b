"""Prompt templates and the small parsers around them."""

import json
import re
from typing import Any, List, Optional, Sequence

from iklankilat.specs.common.enums import MusicMood, OutpaintType, VideoStyle
from iklankilat.specs.models.domain import Scene


PROMPT_VARIANTS = 3

PROMPTER_INSTRUCTION = """Based on the user's initial idea, generate {count} distinct and detailed prompts for an image generation AI.
The prompts should be creative, descriptive, and provide different artistic directions while staying true to the core concept.
Incorporate the preferred style into the description.

User's Idea: "{prompt}"
Preferred Style: "{style}"

Return the result ONLY as a valid JSON array of strings. Example:
["A detailed prompt variation 1", "A detailed prompt variation 2", "A detailed prompt variation 3"]"""

IMAGE_GENERATION_PROMPT = """Create a professional, high-quality visual design for: "{prompt}".
Target audience: Indonesia.

If the design type or description implies that text is required, include clean and legible text.
If the design type focuses on visuals, avoid adding any text.

Ensure the final image looks polished and marketing-ready."""

ENHANCE_PRODUCT_PROMPT = (
    "Enhance this product photo for a social media ad. Make the product stand out, improve the "
    "lighting, and give it a professional, clean background suitable for marketing. Do not add "
    "text or other objects."
)

CROP_PROMPT = (
    "Crop this image to a {aspect_ratio} aspect ratio. The primary subject should be centered as "
    "much as possible. Do not add, remove, or change any other elements in the image."
)

CANVAS_BACKGROUND_PROMPT = """You are a digital artist. The provided image has a central element placed on a simple, empty background that was just added.
Your task is to enhance ONLY the background to make it look professionally designed.

1.  Make the background more visually appealing by adding a subtle, clean gradient, a very light texture, or abstract, modern graphic elements that match the style and colors of the central subject.
2.  **CRITICAL RULE:** Do NOT touch, alter, crop, or change the central element in any way. It is a fixed layer and must remain perfectly preserved as-is. The enhancement should only happen in the background area.
3.  Ensure the final result looks polished and marketing-ready."""

OUTPAINT_PHOTOGRAPHIC_PROMPT = (
    "Expand this image to fill a {aspect_ratio} aspect ratio canvas. The original image should be "
    "perfectly centered and preserved. Intelligently generate and fill the new, empty areas of the "
    "background to match the existing scene. Do not change, add, or remove any elements from the "
    "original image content."
)

OUTPAINT_DESIGN_PROMPT = """You are an expert digital artist creating a new composition. Your task is to place the provided design onto a new, larger background.

**Primary Goal:** Create a new canvas with a {aspect_ratio} aspect ratio, fill it with a matching background, and then place the original image on top without any changes.

**Step-by-Step Instructions:**
1.  **Create New Canvas:** First, generate a blank canvas that is the target aspect ratio: {aspect_ratio}.
2.  **Analyze & Fill Background:** Look at the provided image and identify its background style (e.g., solid color, gradient, simple texture). Fill the ENTIRE new blank canvas from edge to edge with this identified background style.
3.  **Composite Original Image:** After the background is ready, place the original image perfectly in the center, on top of the new background.

**ABSOLUTE RULE:** The original image is a fixed, untouchable layer. It must NOT be cropped, scaled, altered, or have its content changed in any way. The final output must show the full, original image centered on the new background."""

COPY_PROMPT = "Based on this image, generate marketing copy. The target audience is in Indonesia."

COPY_RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "captions": {
            "type": "ARRAY",
            "description": "3 distinct, engaging marketing captions in Bahasa Indonesia. Each caption must be unique.",
            "items": {"type": "STRING"},
        },
        "hashtags": {
            "type": "STRING",
            "description": (
                "A single string of relevant hashtags in Bahasa Indonesia, separated by spaces "
                "(e.g., #produkkuliner #diskonjakarta #makananviral)."
            ),
        },
    },
    "required": ["captions", "hashtags"],
}

VOICEOVER_PROMPT = "Read the following text aloud with a clear and friendly voice: {caption}"

STORYBOARD_PROMPT = (
    "You are an expert video scriptwriter for social media ads. Create a scene-by-scene storyboard "
    'for a short video ad (around 15-20 seconds). Product/Service: "{prompt}". Video Goal: "{goal}". '
    "The output must be a JSON array of scenes. Each scene needs a short duration (2-4 seconds)."
)

STORYBOARD_RESPONSE_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "scene": {"type": "INTEGER", "description": "Scene number, starting from 1."},
            "visual": {"type": "STRING", "description": "A concise description of the visual action for the scene."},
            "text": {"type": "STRING", "description": "On-screen text for the scene. Keep it very short."},
            "duration": {"type": "INTEGER", "description": "Duration of the scene in seconds (e.g., 3)."},
        },
        "required": ["scene", "visual", "duration"],
    },
}

STORYBOARD_VIDEO_PROMPT = (
    "Create a dynamic, professional short-form video ad based on this storyboard:\n{scenes}\n"
    "The style should be modern, clean, and eye-catching for social media. "
    "Use quick cuts and smooth transitions."
)

IMAGES_VIDEO_PROMPT = """Create a professional 15-second video advertisement for social media.
- Headline Text: "{headline}" should be overlaid stylishly on the video.
- Visuals: This is an image-to-video task. {image_description} The primary reference image is provided. The video should transition through the static images, bringing them to life.
- Animation Style: {style_description}
- Music Mood: The background music should be {music} and instrumental.
- Overall Feel: The ad must be clean, modern, and highly engaging."""

VIDEO_STYLE_DESCRIPTIONS = {
    VideoStyle.KEN_BURNS: "Apply a gentle, cinematic zoom and pan effect (Ken Burns style) to each image.",
    VideoStyle.FAST_SLIDE: "Use energetic, fast-paced slide transitions between images.",
    VideoStyle.FADE: "Use elegant, smooth cross-fade transitions between images.",
}

# Shown on the dashboard as one-click starting ideas.
QUICK_START_IDEAS = [
    "Secangkir kopi panas dari biji kopi pilihan",
    "Promo Buy 1 get 1 Burger Place Cikarang",
    "Poster Diskon 50% Iced Matcha Latte setiap hari senin",
    "Semangkuk ramen ayam panas dengan telur rebus",
]

_FENCE_RE = re.compile(r"```(?:json)?\n?|\n?```")


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def prompter_instruction(prompt: str, style: str) -> str:
    return PROMPTER_INSTRUCTION.format(count=PROMPT_VARIANTS, prompt=prompt, style=style)


def image_generation_prompt(enhanced_prompt: str) -> str:
    return IMAGE_GENERATION_PROMPT.format(prompt=enhanced_prompt)


def enhance_product_prompt(aspect_ratio: Optional[str] = None) -> str:
    text = ENHANCE_PRODUCT_PROMPT
    if aspect_ratio:
        text += f" Please change the final image's aspect ratio to {aspect_ratio}."
    return text


def outpaint_prompt(aspect_ratio: str, outpaint_type: OutpaintType) -> str:
    template = OUTPAINT_DESIGN_PROMPT if outpaint_type == OutpaintType.DESIGN else OUTPAINT_PHOTOGRAPHIC_PROMPT
    return template.format(aspect_ratio=aspect_ratio)


def parse_enhanced_prompts(text: Optional[str], fallback: str) -> List[str]:
    """Parse the prompter reply; any unusable reply yields the user prompt three times."""
    fallback_prompts = [fallback] * PROMPT_VARIANTS
    if not text:
        return fallback_prompts
    try:
        parsed: Any = json.loads(strip_code_fences(text))
    except json.JSONDecodeError:
        return fallback_prompts
    if not isinstance(parsed, list):
        return fallback_prompts
    prompts = [p.strip() for p in parsed if isinstance(p, str) and p.strip()]
    return prompts or fallback_prompts


def parse_storyboard(text: Optional[str]) -> List[Scene]:
    parsed = json.loads(strip_code_fences(text or ""))
    if not isinstance(parsed, list):
        raise ValueError("storyboard reply is not a JSON array")
    if not all(isinstance(scene, dict) for scene in parsed):
        raise ValueError("storyboard scenes must be JSON objects")
    return [Scene(**scene) for scene in parsed]


def build_storyboard_video_prompt(storyboard: Sequence[Scene]) -> str:
    lines = [
        f'Scene {s.scene} ({s.duration:g}s): {s.visual}. On-screen text: "{s.text}".'
        for s in storyboard
    ]
    return STORYBOARD_VIDEO_PROMPT.format(scenes="\n".join(lines))


def build_images_video_prompt(image_count: int, style: VideoStyle, headline: str, music: MusicMood) -> str:
    if image_count > 1:
        image_description = (
            "The video must feature a sequence of all the provided images, shown one after another in order."
        )
    else:
        image_description = "The video should focus on the single provided image."
    return IMAGES_VIDEO_PROMPT.format(
        headline=headline,
        image_description=image_description,
        style_description=VIDEO_STYLE_DESCRIPTIONS[VideoStyle(style)],
        music=MusicMood(music).value,
    )
