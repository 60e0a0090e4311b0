"""Parse and validate an image request.

The URL grammar is ``/{dims}[@{N}x][.{ext}]/{bg}[/{fg}]`` followed by
optional query parameters. :func:`parse_request` checks the pieces in a
fixed order and stops at the first problem, returning ``Err`` with a
``ValidationError`` that explains what was expected and, where possible,
what the caller probably meant. Nothing is rendered until parsing
succeeds.
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Sequence

from imaging import colors
from imaging.errors import Err, ErrorKind, Ok, Result, ValidationError
from imaging.models import (
    DEFAULT_BACKGROUND,
    DEFAULT_FOREGROUND,
    DEFAULT_QUALITY,
    DEFAULT_SHADOW_COLOR,
    MAX_DIMENSION,
    MIN_DIMENSION,
    ImageSpec,
    RenderOptions,
)

_DIMS_RE = re.compile(
    r"^(?P<width>\d+)(?:[xX](?P<height>\d+))?(?:@(?P<scale>\d+)[xX])?(?:\.(?P<ext>[A-Za-z0-9]+))?\Z"
)
_INT_RE = re.compile(r"^-?\d+\Z")

EXTENSIONS = {"png": "png", "jpg": "jpeg", "jpeg": "jpeg", "webp": "webp"}
VALID_SCALES = (1, 2, 3)
# Longer digit runs are out of range anyway and would hit the int() digit limit.
MAX_DIGITS = 9

DIMENSIONS_EXPECTED = (
    "WIDTHxHEIGHT or SIZE between 1 and 4000, optionally followed by @2x/@3x "
    "and .png/.jpg/.webp (e.g. 800x600, 300, 800x600@2x.png)"
)
HEX_EXPECTED = "3 or 6 hex digits (e.g. 3b82f6, fff) or 'random'"


class _Invalid(Exception):
    """Carries a ValidationError out of a nested validator."""

    def __init__(self, error: ValidationError):
        super().__init__(error.message)
        self.error = error


@dataclass(frozen=True)
class ParsedRequest:
    spec: ImageSpec
    options: RenderOptions


@dataclass(frozen=True)
class _Dimensions:
    width: int
    height: int
    scale: int
    format: Optional[str]


def _fail(kind: ErrorKind, field: str, message: str, received: str, expected: str, suggestion: Optional[str] = None):
    raise _Invalid(
        ValidationError(
            kind=kind,
            field=field,
            message=message,
            received=received,
            expected=expected,
            suggestion=suggestion,
        )
    )


def _to_int(digits: str) -> int:
    """int() for a validated digit string, saturating very long values."""
    digits = digits.strip()
    sign = -1 if digits.startswith("-") else 1
    significant = digits.lstrip("-").lstrip("0") or "0"
    if len(significant) > MAX_DIGITS:
        return sign * 10**MAX_DIGITS
    return sign * int(significant)


# --- Path -------------------------------------------------------------------


def parse_dimensions(token: str) -> _Dimensions:
    """Parse the leading path segment. Raises ``_Invalid``."""
    match = _DIMS_RE.match(token or "")
    if not match:
        _fail(
            ErrorKind.malformed_input,
            "dimensions",
            f"Could not read image dimensions from '{token}'.",
            token or "",
            DIMENSIONS_EXPECTED,
            "Try /800x600 or /300 for a square image.",
        )

    width = _to_int(match.group("width"))
    height = _to_int(match.group("height")) if match.group("height") else width

    scale = _to_int(match.group("scale")) if match.group("scale") else 1
    if scale not in VALID_SCALES:
        scale = 1

    fmt = None
    ext = match.group("ext")
    if ext is not None:
        fmt = EXTENSIONS.get(ext.lower())
        if fmt is None:
            _fail(
                ErrorKind.unsupported_value,
                "format",
                f"Image format '{ext.lower()}' is not supported.",
                ext.lower(),
                "png, jpg, jpeg or webp",
                f"Try /{width}x{height}.png",
            )

    out_of_range = [v for v in (width, height) if not MIN_DIMENSION <= v <= MAX_DIMENSION]
    if out_of_range:
        clamped_w = min(max(width, MIN_DIMENSION), MAX_DIMENSION)
        clamped_h = min(max(height, MIN_DIMENSION), MAX_DIMENSION)
        _fail(
            ErrorKind.out_of_range,
            "dimensions",
            f"Width and height must be between {MIN_DIMENSION} and {MAX_DIMENSION} pixels.",
            token,
            f"{MIN_DIMENSION}-{MAX_DIMENSION} for each axis",
            f"Try /{clamped_w}x{clamped_h}",
        )

    return _Dimensions(width=width, height=height, scale=scale, format=fmt)


def _color(value: str, field: str, rng: Optional[random.Random] = None, allow_random: bool = True) -> str:
    if allow_random and value == colors.RANDOM_KEYWORD:
        return colors.generate_random_color(rng)
    if colors.is_valid_hex(value):
        return colors.normalize_color(value)

    hint = colors.named_color_hint(value)
    suggestion = f"Use {hint} instead of '{value}'." if hint else "Use a hex colour such as 3b82f6."
    _fail(
        ErrorKind.malformed_input,
        field,
        f"'{value}' is not a valid colour.",
        value,
        HEX_EXPECTED if allow_random else "3 or 6 hex digits (e.g. 3b82f6, fff)",
        suggestion,
    )


def parse_colors(
    background: Optional[str], foreground: Optional[str], rng: random.Random
) -> tuple[str, Optional[str], str]:
    """Resolve the background (possibly a gradient) and foreground segments."""
    bg2 = None
    if not background:
        bg = DEFAULT_BACKGROUND
    elif background == colors.RANDOM_KEYWORD:
        bg = colors.generate_random_color(rng)
    elif "-" in background:
        first, second = background.split("-", 1)
        bg = _color(first, "background-color", rng)
        bg2 = _color(second, "gradient-color-2", rng)
    else:
        bg = _color(background, "background-color", rng)

    fg = _color(foreground, "foreground-color", rng) if foreground else DEFAULT_FOREGROUND
    return bg, bg2, fg


# --- Query parameters ---------------------------------------------------------


def _int_param(name: str, low: int, high: int) -> Callable[[str], int]:
    expected = f"integer between {low} and {high}"

    def check(raw: str) -> int:
        if not _INT_RE.match(raw.strip()):
            _fail(
                ErrorKind.malformed_input,
                name,
                f"'{name}' must be a whole number.",
                raw,
                expected,
                f"Use {name}={low}",
            )
        value = _to_int(raw)
        if not low <= value <= high:
            _fail(
                ErrorKind.out_of_range,
                name,
                f"'{name}' must be between {low} and {high}.",
                raw,
                expected,
                f"Use {name}={min(max(value, low), high)}",
            )
        return value

    return check


def _enum_param(name: str, allowed: Sequence[str]) -> Callable[[str], str]:
    expected = ", ".join(allowed)

    def check(raw: str) -> str:
        value = raw.strip().lower()
        if value not in allowed:
            _fail(
                ErrorKind.unsupported_value,
                name,
                f"'{raw}' is not a supported value for '{name}'.",
                raw,
                expected,
                f"Use {name}={allowed[0]}",
            )
        return value

    return check


def _hex_param(name: str) -> Callable[[str], str]:
    def check(raw: str) -> str:
        return _color(raw.strip(), name, allow_random=False)

    return check


# Query parameter -> (RenderOptions field, validator), in processing order.
QUERY_PARAMETERS: list[tuple[str, str, Callable[[str], object]]] = [
    ("text", "text", str),
    ("font", "font", str),
    ("weight", "weight", _enum_param("weight", ("normal", "bold"))),
    ("style", "style", _enum_param("style", ("normal", "italic"))),
    ("align", "align", _enum_param("align", ("center", "top", "bottom", "custom"))),
    ("y", "y", _int_param("y", 0, MAX_DIMENSION)),
    ("border", "border", _int_param("border", 0, 100)),
    ("borderColor", "border_color", _hex_param("borderColor")),
    ("blur", "blur", _int_param("blur", 0, 50)),
    ("radius", "radius", _int_param("radius", 0, 500)),
    ("shadow", "shadow", _int_param("shadow", 0, 100)),
    ("shadowColor", "shadow_color", _hex_param("shadowColor")),
    ("noise", "noise", _int_param("noise", 0, 100)),
    ("pattern", "pattern", _enum_param("pattern", ("dots", "stripes", "checkerboard", "grid"))),
    ("patternColor", "pattern_color", _hex_param("patternColor")),
    ("quality", "quality", _int_param("quality", 1, 100)),
    ("format", "format", _enum_param("format", ("png", "jpeg", "jpg", "webp"))),
    ("size", "size", _int_param("size", 1, 500)),
]


def parse_options(query: Mapping[str, str]) -> dict[str, object]:
    """Validate the query parameters that are present. Raises ``_Invalid``."""
    values: dict[str, object] = {}
    for name, field, check in QUERY_PARAMETERS:
        raw = query.get(name)
        if raw is None or raw == "":
            continue
        values[field] = check(raw)
    return values


# --- Entry point ----------------------------------------------------------------


def parse_request(
    segments: Sequence[str],
    query: Mapping[str, str],
    rng: Optional[random.Random] = None,
) -> Result[ParsedRequest]:
    """Turn path segments and query parameters into a validated request.

    Args:
        segments: Non-empty path segments, e.g. ``["800x600", "3b82f6"]``.
        query: Query parameters (first value per name).
        rng: Random source for ``random`` colours; defaults to the module
            level generator.

    Returns:
        ``Ok(ParsedRequest)`` or ``Err(ValidationError)`` for the first
        problem found.
    """
    rng = rng or random.Random()
    try:
        dims = parse_dimensions(segments[0] if segments else "")
        bg, bg2, fg = parse_colors(
            segments[1] if len(segments) > 1 else None,
            segments[2] if len(segments) > 2 else None,
            rng,
        )
        values = parse_options(query)
    except _Invalid as exc:
        return Err(exc.error)

    # A format given in the path extension wins over ?format=.
    query_format = values.pop("format", None)
    fmt = dims.format or EXTENSIONS.get(query_format or "png", "png")

    spec = ImageSpec(
        width=dims.width,
        height=dims.height,
        scale=dims.scale,
        background=bg,
        background2=bg2,
        foreground=fg,
        format=fmt,
    )
    values.setdefault("text", f"{dims.width} × {dims.height}")
    values.setdefault("border_color", fg)
    values.setdefault("pattern_color", fg)
    values.setdefault("shadow_color", DEFAULT_SHADOW_COLOR)
    values.setdefault("quality", DEFAULT_QUALITY)
    values["font"] = str(values.get("font") or "sans-serif")
    return Ok(ParsedRequest(spec=spec, options=RenderOptions(**values)))
