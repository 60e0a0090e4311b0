"""Multi-line text layout with pictograph (emoji) support.

Text is split into lines on the ``\\n`` marker, each line is cut into
literal runs and pictographs, and every line is centred horizontally on
the canvas. Pictographs are drawn from Twemoji PNGs rather than from the
font. Glyph images are fetched before drawing starts; a glyph that could
not be fetched is drawn as plain text instead.

Environment variables:
    TWEMOJI_BASE_URL: Directory URL holding ``{codepoint}.png`` files.
    GLYPH_FETCH_TIMEOUT: Seconds to wait for one glyph (default 3).
"""

from __future__ import annotations

import asyncio
import io
import logging
import os
import re
import threading
from typing import Callable, Iterable, Optional

import httpx
from PIL import Image, ImageDraw

from imaging.models import SegmentKind, TextSegment

logger = logging.getLogger(__name__)

TWEMOJI_BASE_URL: str = os.getenv(
    "TWEMOJI_BASE_URL", "https://cdn.jsdelivr.net/gh/twitter/twemoji@latest/assets/72x72"
)
GLYPH_FETCH_TIMEOUT: float = float(os.getenv("GLYPH_FETCH_TIMEOUT", "3"))

LINE_BREAK = "\\n"
LINE_HEIGHT = 1.2
PICTOGRAPH_SCALE = 1.1

_BASE = (
    "\U0001F000-\U0001FAFF"
    "\u2600-\u27BF"
    "\u2300-\u23FF"
    "\u2B05-\u2B55"
    "\u3030\u303D\u3297\u3299"
)
_MODIFIERS = "\uFE0F\u20E3\U0001F3FB-\U0001F3FF"
_ZWJ = "\u200D"
_PICTOGRAPH_RE = re.compile(
    "(?:"
    "[\U0001F1E6-\U0001F1FF]{2}"
    f"|[{_BASE}][{_MODIFIERS}]*(?:{_ZWJ}[{_BASE}][{_MODIFIERS}]*)*"
    "|[0-9#*]\uFE0F?\u20E3"
    ")"
)

_glyph_cache: dict[str, bytes] = {}
_glyph_lock = threading.Lock()


def split_lines(text: str) -> list[str]:
    return text.replace("\r\n", "\n").replace(LINE_BREAK, "\n").split("\n")


def pictograph_id(sequence: str) -> str:
    """Twemoji file name for a pictograph: hex code points joined by '-'.

    U+FE0F is dropped unless the sequence contains a zero-width joiner.
    """
    points = [f"{ord(ch):x}" for ch in sequence]
    if "200d" not in points:
        points = [p for p in points if p != "fe0f"]
    return "-".join(points)


def pictograph_url(sequence: str) -> str:
    return f"{TWEMOJI_BASE_URL.rstrip('/')}/{pictograph_id(sequence)}.png"


def segment_line(line: str) -> list[TextSegment]:
    """Split one line into ordered literal and pictograph segments."""
    segments: list[TextSegment] = []
    last = 0
    for match in _PICTOGRAPH_RE.finditer(line):
        start, end = match.span()
        if start > last:
            segments.append(TextSegment(kind=SegmentKind.literal, content=line[last:start]))
        segments.append(
            TextSegment(kind=SegmentKind.pictograph, content=match.group(0), url=pictograph_url(match.group(0)))
        )
        last = end
    if last < len(line):
        segments.append(TextSegment(kind=SegmentKind.literal, content=line[last:]))
    return segments


def line_baselines(
    line_count: int,
    font_size: float,
    height: int,
    align: str = "center",
    custom_y: Optional[float] = None,
) -> list[float]:
    """Vertical middle of every line, top to bottom."""
    if align == "custom" and custom_y is not None:
        base = float(custom_y)
    elif align == "top":
        base = font_size * 1.5
    elif align == "bottom":
        base = height - font_size * (line_count + 0.5)
    else:
        base = height / 2 - (line_count - 1) * font_size * LINE_HEIGHT / 2
    return [base + i * font_size * LINE_HEIGHT for i in range(line_count)]


def layout_line(
    segments: list[TextSegment],
    measure: Callable[[str], float],
    font_size: float,
    canvas_width: int,
) -> tuple[float, float]:
    """Return ``(start_x, total_width)`` for a horizontally centred line."""
    pictograph_size = font_size * PICTOGRAPH_SCALE
    total = 0.0
    for segment in segments:
        if segment.kind == SegmentKind.literal:
            total += measure(segment.content)
        else:
            total += pictograph_size
    return canvas_width / 2 - total / 2, total


async def _fetch_glyph(client: httpx.AsyncClient, url: str) -> Optional[bytes]:
    try:
        resp = await asyncio.wait_for(client.get(url), GLYPH_FETCH_TIMEOUT)
        resp.raise_for_status()
    except (httpx.HTTPError, asyncio.TimeoutError) as exc:
        logger.warning("Failed to load pictograph %s: %s", url, exc)
        return None
    return resp.content


async def fetch_pictographs(lines: Iterable[str], client: httpx.AsyncClient) -> dict[str, Image.Image]:
    """Fetch the glyph image for every pictograph in ``lines``, one at a time.

    Returns:
        Mapping of glyph URL to RGBA image. URLs that failed are absent.
    """
    glyphs: dict[str, Image.Image] = {}
    for line in lines:
        for segment in segment_line(line):
            if segment.kind != SegmentKind.pictograph or segment.url in glyphs:
                continue
            with _glyph_lock:
                data = _glyph_cache.get(segment.url)
            if data is None:
                data = await _fetch_glyph(client, segment.url)
                if data is None:
                    continue
            try:
                image = Image.open(io.BytesIO(data)).convert("RGBA")
            except OSError as exc:
                logger.warning("Unreadable pictograph %s: %s", segment.url, exc)
                continue
            with _glyph_lock:
                _glyph_cache[segment.url] = data
            glyphs[segment.url] = image
    return glyphs


def draw_text(
    canvas: Image.Image,
    text: str,
    font,
    font_size: float,
    color: tuple[int, int, int],
    align: str = "center",
    custom_y: Optional[float] = None,
    glyphs: Optional[dict[str, Image.Image]] = None,
    faux_bold: bool = False,
) -> None:
    """Draw ``text`` onto ``canvas`` in place."""
    glyphs = glyphs or {}
    draw = ImageDraw.Draw(canvas)
    lines = split_lines(text)
    baselines = line_baselines(len(lines), font_size, canvas.height, align, custom_y)
    pictograph_size = font_size * PICTOGRAPH_SCALE
    glyph_px = max(1, int(round(pictograph_size)))
    stroke = max(1, int(font_size / 30)) if faux_bold else 0
    fill = color + (255,)

    def literal(content: str, x: float, y: float) -> float:
        draw.text((x, y), content, font=font, fill=fill, anchor="lm", stroke_width=stroke, stroke_fill=fill)
        return font.getlength(content)

    for line, y in zip(lines, baselines):
        segments = segment_line(line)
        if not segments:
            continue
        x, _ = layout_line(segments, font.getlength, font_size, canvas.width)
        for segment in segments:
            if segment.kind == SegmentKind.literal:
                x += literal(segment.content, x, y)
                continue
            glyph = glyphs.get(segment.url)
            if glyph is None:
                x += literal(segment.content, x, y)
                continue
            sized = glyph.resize((glyph_px, glyph_px), Image.LANCZOS)
            # paste() accepts offsets outside the canvas, alpha_composite() does not
            layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
            layer.paste(sized, (int(round(x)), int(round(y - pictograph_size / 2))))
            canvas.alpha_composite(layer)
            x += pictograph_size
