"""Layered raster compositor.

This module draws a placeholder image with Pillow. The layers are always
applied in the same order:

1. drop shadow (only under the background fill)
2. background fill, solid or gradient, optionally with rounded corners
3. blur over everything drawn so far
4. pattern overlay
5. noise
6. border
7. text and pictographs

Every stage except the fill is skipped when its option is zero or unset.
Network work (fonts, pictographs) happens before :func:`render` is
called, so rendering itself is synchronous and CPU only.
"""

from __future__ import annotations

from typing import Iterator, Optional

import numpy as np
from PIL import Image, ImageDraw, ImageFilter

from imaging import fonts, text_layout
from imaging.colors import hex_to_rgb
from imaging.models import FontAsset, ImageSpec, RenderOptions


def _shape_mask(size: tuple[int, int], radius: int) -> Image.Image:
    """L-mode mask of the fill area: full rectangle or rounded rectangle."""
    if radius <= 0:
        return Image.new("L", size, 255)
    mask = Image.new("L", size, 0)
    width, height = size
    radius = min(radius, min(width, height) // 2)
    ImageDraw.Draw(mask).rounded_rectangle((0, 0, width - 1, height - 1), radius=radius, fill=255)
    return mask


def _gradient(size: tuple[int, int], start: str, end: str) -> Image.Image:
    """Linear gradient from the top-left corner to the bottom-right corner."""
    width, height = size
    xs = np.arange(width, dtype=np.float64) + 0.5
    ys = np.arange(height, dtype=np.float64) + 0.5
    t = (xs[None, :] * width + ys[:, None] * height) / float(width * width + height * height)
    t = np.clip(t, 0.0, 1.0)[..., None]
    c1 = np.array(hex_to_rgb(start), dtype=np.float64)
    c2 = np.array(hex_to_rgb(end), dtype=np.float64)
    rgb = np.rint(c1 + (c2 - c1) * t).astype(np.uint8)
    return Image.fromarray(rgb).convert("RGBA")


def _fill(canvas: Image.Image, spec: ImageSpec, options: RenderOptions, mask: Image.Image) -> Image.Image:
    size = canvas.size
    scale = spec.scale

    if options.shadow > 0:
        offset = int(round(options.shadow * scale / 4))
        shadow_mask = Image.new("L", size, 0)
        shadow_mask.paste(mask, (0, offset))
        shadow_mask = shadow_mask.filter(ImageFilter.GaussianBlur(radius=options.shadow * scale / 2))
        shadow = Image.new("RGBA", size, hex_to_rgb(options.shadow_color) + (255,))
        shadow.putalpha(shadow_mask)
        canvas = Image.alpha_composite(canvas, shadow)

    if spec.background2:
        layer = _gradient(size, spec.background, spec.background2)
    else:
        layer = Image.new("RGBA", size, hex_to_rgb(spec.background) + (255,))
    layer.putalpha(mask)
    # The shadow settings end here; later stages never cast one.
    return Image.alpha_composite(canvas, layer)


def pattern_spacing(width: int, height: int) -> float:
    return max(min(width, height) / 20, 1.0)


def dot_centers(width: int, height: int) -> Iterator[tuple[float, float]]:
    spacing = pattern_spacing(width, height)
    y = spacing / 2
    while y < height:
        x = spacing / 2
        while x < width:
            yield x, y
            x += spacing
        y += spacing


def _draw_pattern(size: tuple[int, int], kind: str, color: tuple[int, int, int]) -> Image.Image:
    width, height = size
    spacing = pattern_spacing(width, height)
    layer = Image.new("RGBA", size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    fill = color + (255,)

    if kind == "dots":
        r = spacing / 8
        for cx, cy in dot_centers(width, height):
            draw.ellipse((cx - r, cy - r, cx + r, cy + r), fill=fill)
    elif kind == "stripes":
        line_width = max(1, int(round(spacing / 4)))
        x = -float(height)
        while x < width:
            draw.line((x, 0, x + height, height), fill=fill, width=line_width)
            x += spacing
    elif kind == "checkerboard":
        rows = int(np.ceil(height / spacing))
        cols = int(np.ceil(width / spacing))
        for row in range(rows):
            for col in range(cols):
                if (col + row) % 2 == 0:
                    x0, y0 = col * spacing, row * spacing
                    draw.rectangle((x0, y0, x0 + spacing - 1, y0 + spacing - 1), fill=fill)
    elif kind == "grid":
        line_width = max(1, int(round(spacing / 20)))
        x = 0.0
        while x < width:
            draw.line((x, 0, x, height), fill=fill, width=line_width)
            x += spacing
        y = 0.0
        while y < height:
            draw.line((0, y, width, y), fill=fill, width=line_width)
            y += spacing
    return layer


def apply_noise(canvas: Image.Image, amount: int, rng: Optional[np.random.Generator] = None) -> Image.Image:
    """Add uniform noise in [-amount, amount] to R, G and B of every pixel."""
    if amount <= 0:
        return canvas
    rng = rng or np.random.default_rng()
    pixels = np.asarray(canvas, dtype=np.int16).copy()
    noise = rng.integers(-amount, amount + 1, size=pixels.shape[:2] + (3,), dtype=np.int16)
    pixels[..., :3] = np.clip(pixels[..., :3] + noise, 0, 255)
    return Image.fromarray(pixels.astype(np.uint8))


def _draw_border(canvas: Image.Image, width: int, radius: int, color: tuple[int, int, int]) -> None:
    # Pillow strokes inward from the box edge, which matches a stroke of
    # `width` centred on a rectangle inset by width / 2.
    w, h = canvas.size
    box = (0, 0, w - 1, h - 1)
    draw = ImageDraw.Draw(canvas)
    if radius > 0:
        draw.rounded_rectangle(box, radius=min(radius, min(w, h) // 2), outline=color + (255,), width=width)
    else:
        draw.rectangle(box, outline=color + (255,), width=width)


def font_size_for(spec: ImageSpec, options: RenderOptions) -> float:
    if options.size:
        return float(options.size * spec.scale)
    return min(spec.actual_width, spec.actual_height) / 10


def render(
    spec: ImageSpec,
    options: RenderOptions,
    font: Optional[FontAsset] = None,
    glyphs: Optional[dict[str, Image.Image]] = None,
    rng: Optional[np.random.Generator] = None,
) -> Image.Image:
    """Composite the full image for one request.

    Args:
        spec: Parsed size, colours and format.
        options: Parsed rendering options.
        font: Font resolved by :func:`imaging.fonts.load_font`; defaults to
            the system sans-serif.
        glyphs: Pictograph images from
            :func:`imaging.text_layout.fetch_pictographs`. Missing entries
            are drawn as text.
        rng: Random generator for the noise stage.

    Returns:
        RGBA image of ``spec.actual_width x spec.actual_height``.
    """
    scale = spec.scale
    size = (spec.actual_width, spec.actual_height)
    radius = options.radius * scale
    mask = _shape_mask(size, radius)

    canvas = Image.new("RGBA", size, (0, 0, 0, 0))
    canvas = _fill(canvas, spec, options, mask)

    if options.blur > 0:
        canvas = canvas.filter(ImageFilter.GaussianBlur(radius=options.blur * scale))

    if options.pattern:
        pattern = _draw_pattern(size, options.pattern, hex_to_rgb(options.pattern_color))
        # Keep the pattern inside the (possibly rounded) fill.
        alpha = np.minimum(np.asarray(pattern.getchannel("A")), np.asarray(mask))
        pattern.putalpha(Image.fromarray(alpha))
        canvas = Image.alpha_composite(canvas, pattern)

    canvas = apply_noise(canvas, options.noise, rng)

    if options.border > 0:
        _draw_border(canvas, options.border * scale, radius, hex_to_rgb(options.border_color))

    if options.text:
        font_size = font_size_for(spec, options)
        pil_font, faux_bold = fonts.get_font(font or fonts.system_font(), font_size, options.weight, options.style)
        custom_y = options.y * scale if options.y is not None else None
        text_layout.draw_text(
            canvas,
            options.text,
            pil_font,
            font_size,
            hex_to_rgb(spec.foreground),
            align=options.align,
            custom_y=custom_y,
            glyphs=glyphs,
            faux_bold=faux_bold,
        )
    return canvas
