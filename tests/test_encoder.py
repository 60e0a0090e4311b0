import io

import pytest
from PIL import Image

from imaging import encoder


@pytest.fixture
def rgba():
    image = Image.new("RGBA", (40, 30), (59, 130, 246, 255))
    image.putpixel((0, 0), (0, 0, 0, 0))
    return image


def test_png_keeps_alpha(rgba):
    data, content_type = encoder.encode(rgba, "png")
    assert content_type == "image/png"
    decoded = Image.open(io.BytesIO(data))
    assert decoded.format == "PNG"
    assert decoded.size == (40, 30)
    assert decoded.convert("RGBA").getpixel((0, 0))[3] == 0


def test_jpeg_drops_alpha(rgba):
    data, content_type = encoder.encode(rgba, "jpeg", quality=80)
    assert content_type == "image/jpeg"
    decoded = Image.open(io.BytesIO(data))
    assert decoded.format == "JPEG"
    assert decoded.mode == "RGB"


def test_webp(rgba):
    data, content_type = encoder.encode(rgba, "webp")
    assert content_type == "image/webp"
    assert Image.open(io.BytesIO(data)).format == "WEBP"


def test_quality_changes_lossy_size():
    image = Image.effect_noise((200, 200), 80).convert("RGBA")
    low, _ = encoder.encode(image, "jpeg", quality=10)
    high, _ = encoder.encode(image, "jpeg", quality=95)
    assert len(low) < len(high)


def test_unknown_format(rgba):
    with pytest.raises(ValueError):
        encoder.encode(rgba, "gif")
