from __future__ import annotations

from io import BytesIO

from PIL import Image

from .errors import InvalidQualityError
from .models import OutputFormat


def validate_quality(quality: object) -> int:
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise InvalidQualityError(f"JPG quality must be an integer, got {quality!r}")
    if not 0 <= quality <= 100:
        raise InvalidQualityError(f"JPG quality must be within 0..100, got {quality}")
    return quality


def encode_image(image: Image.Image, format: OutputFormat | str, quality: int = 90) -> bytes:
    """Serialize *image* to JPG or PNG bytes. *quality* only applies to JPG."""

    output_format = OutputFormat.parse(format)
    buffer = BytesIO()
    if output_format is OutputFormat.JPG:
        quality = validate_quality(quality)
        if image.mode != "RGB":
            image = image.convert("RGB")
        image.save(buffer, format=output_format.pil_format, quality=quality)
    else:
        image.save(buffer, format=output_format.pil_format)
    return buffer.getvalue()


__all__ = ["encode_image", "validate_quality"]
