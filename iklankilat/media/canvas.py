import io
from typing import Tuple

from PIL import Image


def target_canvas_size(width: int, height: int, ratio: float) -> Tuple[int, int]:
    """Grow one side of ``width x height`` so the canvas matches ``ratio`` (w/h).

    The source always fits; fractional sizes truncate.
    """
    if ratio > width / height:
        return int(height * ratio), height
    return width, int(width / ratio)


def recompose_image_on_canvas(image_bytes: bytes, ratio: float) -> bytes:
    """Center the image on a transparent canvas of the target ratio.

    The transparent margin is what the background-fill / outpaint prompts
    ask the model to paint in. Returns PNG bytes.
    """
    with Image.open(io.BytesIO(image_bytes)) as src:
        image = src.convert("RGBA")
    width, height = image.size
    canvas_w, canvas_h = target_canvas_size(width, height, ratio)

    canvas = Image.new("RGBA", (canvas_w, canvas_h), (0, 0, 0, 0))
    offset = ((canvas_w - width) // 2, (canvas_h - height) // 2)
    canvas.paste(image, offset)

    buf = io.BytesIO()
    canvas.save(buf, format="PNG")
    return buf.getvalue()
