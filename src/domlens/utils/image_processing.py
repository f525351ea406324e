import base64
from io import BytesIO

from PIL import Image, ImageDraw, ImageFont


_PLACEHOLDER_SIZE = (640, 480)
_PLACEHOLDER_TEXT = "Screenshot not available\n(page capture timed out)"


def encode_png(img_bytes: bytes) -> str:
    return base64.b64encode(img_bytes).decode("utf-8")


def make_not_available_image(text: str = _PLACEHOLDER_TEXT) -> str:
    """Render a base64 PNG placeholder used when the page can't be captured in time."""
    width, height = _PLACEHOLDER_SIZE
    image = Image.new("RGB", _PLACEHOLDER_SIZE, (255, 255, 255))
    draw = ImageDraw.Draw(image)
    font = ImageFont.load_default(size=32)

    text_bbox = draw.multiline_textbbox((0, 0), text, font=font, align="center")
    text_width = text_bbox[2] - text_bbox[0]
    text_height = text_bbox[3] - text_bbox[1]
    position = ((width - text_width) // 2, (height - text_height) // 2)
    draw.multiline_text(position, text, font=font, fill=(0, 0, 0), align="center")

    with BytesIO() as img_buf:
        image.save(img_buf, format="PNG")
        return encode_png(img_buf.getvalue())
