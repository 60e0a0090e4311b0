"""Pydantic models for the image pipeline.

``ImageSpec`` and ``RenderOptions`` are produced by :mod:`imaging.spec` for
every request and consumed by the compositor and encoder. ``TextSegment``
is the unit the text layout engine works in, and ``FontAsset`` describes a
font known to the process-wide font registry.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field

MIN_DIMENSION = 1
MAX_DIMENSION = 4000

DEFAULT_BACKGROUND = "cccccc"
DEFAULT_FOREGROUND = "333333"
DEFAULT_SHADOW_COLOR = "000000"
DEFAULT_QUALITY = 90

ImageFormat = Literal["png", "jpeg", "webp"]
Alignment = Literal["top", "center", "bottom", "custom"]
PatternKind = Literal["dots", "stripes", "checkerboard", "grid"]


class ImageSpec(BaseModel):
    """Size, colours and codec of one requested image.

    Attributes:
        width: Requested width in pixels, before scaling.
        height: Requested height in pixels, before scaling.
        scale: Output density multiplier from an ``@2x``/``@3x`` suffix.
        background: Primary background colour, six lowercase hex digits.
        background2: Second gradient stop, same form, or ``None``.
        foreground: Text colour, six lowercase hex digits.
        format: Output codec.
    """

    width: int = Field(ge=MIN_DIMENSION, le=MAX_DIMENSION)
    height: int = Field(ge=MIN_DIMENSION, le=MAX_DIMENSION)
    scale: int = Field(default=1, ge=1, le=3)
    background: str = DEFAULT_BACKGROUND
    background2: Optional[str] = None
    foreground: str = DEFAULT_FOREGROUND
    format: ImageFormat = "png"

    @property
    def actual_width(self) -> int:
        return self.width * self.scale

    @property
    def actual_height(self) -> int:
        return self.height * self.scale

    @property
    def is_gradient(self) -> bool:
        return self.background2 is not None


class RenderOptions(BaseModel):
    """Every optional rendering knob, with its default.

    Colours that default to the foreground colour are filled in by the
    parser, so an instance handed to the compositor is always complete.
    """

    text: str = ""
    font: str = "sans-serif"
    weight: Literal["normal", "bold"] = "normal"
    style: Literal["normal", "italic"] = "normal"
    align: Alignment = "center"
    y: Optional[int] = None
    border: int = Field(default=0, ge=0, le=100)
    border_color: str = DEFAULT_FOREGROUND
    blur: int = Field(default=0, ge=0, le=50)
    radius: int = Field(default=0, ge=0, le=500)
    shadow: int = Field(default=0, ge=0, le=100)
    shadow_color: str = DEFAULT_SHADOW_COLOR
    noise: int = Field(default=0, ge=0, le=100)
    pattern: Optional[PatternKind] = None
    pattern_color: str = DEFAULT_FOREGROUND
    quality: int = Field(default=DEFAULT_QUALITY, ge=1, le=100)
    size: Optional[int] = Field(default=None, ge=1, le=500)


class SegmentKind(str, Enum):
    literal = "literal"
    pictograph = "pictograph"


class TextSegment(BaseModel):
    """A run of one line of text: plain characters or a single pictograph."""

    kind: SegmentKind
    content: str
    url: Optional[str] = None


class FontState(str, Enum):
    unregistered = "unregistered"
    fetched = "fetched"
    registered = "registered"


class FontAsset(BaseModel):
    """A font the renderer can use.

    Attributes:
        key: Cache key (catalog key plus variant, or a system family name).
        family: Human readable family name.
        path: On-disk location of the TrueType file; ``None`` for system
            families resolved by Pillow.
        state: Registration lifecycle state.
    """

    key: str
    family: str
    path: Optional[str] = None
    state: FontState = FontState.unregistered

    @property
    def is_system(self) -> bool:
        return self.path is None
