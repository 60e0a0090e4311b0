"""Colour helpers: hex validation, normalisation and random colours."""

from __future__ import annotations

import math
import random
import re
from typing import Optional

from PIL import ImageColor

RANDOM_KEYWORD = "random"

_HEX_RE = re.compile(r"^#?(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})\Z")


def hsl_to_hex(hue: float, saturation: float, lightness: float) -> str:
    """Convert HSL (degrees, percent, percent) to six lowercase hex digits."""
    light = lightness / 100
    a = saturation * min(light, 1 - light) / 100

    def channel(n: int) -> str:
        k = (n + hue / 30) % 12
        value = light - a * max(min(k - 3, 9 - k, 1), -1)
        return f"{math.floor(255 * value + 0.5):02x}"

    return f"{channel(0)}{channel(8)}{channel(4)}"


def generate_random_color(rng: Optional[random.Random] = None) -> str:
    """Pick a pleasant random colour.

    Hue is uniform over the full circle while saturation stays in [60, 80)
    and lightness in [50, 70), so the result is never washed out or muddy.
    """
    rng = rng or random
    hue = rng.randrange(360)
    saturation = 60 + rng.randrange(20)
    lightness = 50 + rng.randrange(20)
    return hsl_to_hex(hue, saturation, lightness)


def is_valid_hex(value: str) -> bool:
    return bool(_HEX_RE.match(value or ""))


def normalize_color(value: str) -> str:
    """Strip a leading ``#``, expand 3-digit shorthand and lowercase."""
    color = value.lstrip("#").lower()
    if len(color) == 3:
        color = "".join(c * 2 for c in color)
    return color


def hex_to_rgb(value: str) -> tuple[int, int, int]:
    color = normalize_color(value)
    return int(color[0:2], 16), int(color[2:4], 16), int(color[4:6], 16)


def named_color_hint(value: str) -> Optional[str]:
    """Return the hex form of a CSS colour name, if ``value`` is one."""
    try:
        r, g, b = ImageColor.getrgb(value)[:3]
    except ValueError:
        return None
    return f"{r:02x}{g:02x}{b:02x}"
