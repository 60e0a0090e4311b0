"""Output encoders.

The compositor's image is always saved as PNG first. PNG requests get
those bytes unchanged; JPEG and WebP requests are re-encoded from the PNG
at the requested quality.
"""

from __future__ import annotations

from io import BytesIO

from PIL import Image

from imaging.models import DEFAULT_QUALITY

CONTENT_TYPES = {
    "png": "image/png",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
}


def content_type_for(fmt: str) -> str:
    return CONTENT_TYPES[fmt]


def to_png(img: Image.Image) -> bytes:
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def encode(img: Image.Image, fmt: str = "png", quality: int = DEFAULT_QUALITY) -> tuple[bytes, str]:
    """Encode a rendered image.

    Args:
        img: Rendered RGBA image.
        fmt: ``png``, ``jpeg`` or ``webp``.
        quality: 1-100, used by JPEG and WebP only.

    Returns:
        ``(bytes, content_type)``.
    """
    canonical = to_png(img)
    if fmt == "png":
        return canonical, content_type_for(fmt)

    decoded = Image.open(BytesIO(canonical))
    buffer = BytesIO()
    if fmt == "jpeg":
        decoded.convert("RGB").save(buffer, format="JPEG", quality=quality)
    elif fmt == "webp":
        decoded.save(buffer, format="WEBP", quality=quality)
    else:
        raise ValueError(f"Unsupported output format '{fmt}'")
    return buffer.getvalue(), content_type_for(fmt)
