"""Font resolution and the process-wide font cache.

Requests name fonts by a short catalog key (``?font=roboto``). The first
request for a key downloads the TrueType file from Google Fonts, stores it
under ``FONT_CACHE_DIR`` and records it in an in-memory registry, so later
requests load it straight from disk. Any failure along the way (network,
disk, a file Pillow cannot read) is logged and the request falls back to
the default sans-serif system font; a font problem never fails a render.

Environment variables:
    FONT_CACHE_DIR: Where downloaded fonts are kept (default
        './.cache/fonts').
    FONT_FETCH_TIMEOUT: Upper bound in seconds for one font download,
        CSS lookup included (default 5).
    GOOGLE_FONTS_CSS_URL: CSS endpoint used to find the TTF URL.
"""

from __future__ import annotations

import asyncio
import io
import logging
import os
import re
import threading
from typing import Optional, Union

import httpx
from PIL import ImageFont

from imaging.models import FontAsset, FontState
from imaging.storage import atomic_write_bytes

logger = logging.getLogger(__name__)

FONT_CACHE_DIR: str = os.getenv("FONT_CACHE_DIR", "./.cache/fonts")
FONT_FETCH_TIMEOUT: float = float(os.getenv("FONT_FETCH_TIMEOUT", "5"))
GOOGLE_FONTS_CSS_URL: str = os.getenv("GOOGLE_FONTS_CSS_URL", "https://fonts.googleapis.com/css")

# Old Android browsers are served TrueType instead of WOFF2.
LEGACY_USER_AGENT = "Mozilla/5.0 (Linux; Android 4.4.2; Nexus 4 Build/KOT49H) AppleWebKit/537.36"

DEFAULT_FAMILY = "sans-serif"
SYSTEM_FAMILIES = ("sans-serif", "serif", "monospace")

SUPPORTED_FONTS: dict[str, tuple[str, str]] = {
    "inter": ("Inter", "Sans-Serif"),
    "roboto": ("Roboto", "Sans-Serif"),
    "open-sans": ("Open Sans", "Sans-Serif"),
    "lato": ("Lato", "Sans-Serif"),
    "montserrat": ("Montserrat", "Sans-Serif"),
    "poppins": ("Poppins", "Sans-Serif"),
    "raleway": ("Raleway", "Sans-Serif"),
    "nunito": ("Nunito", "Sans-Serif"),
    "playfair-display": ("Playfair Display", "Serif"),
    "merriweather": ("Merriweather", "Serif"),
    "lora": ("Lora", "Serif"),
    "roboto-slab": ("Roboto Slab", "Serif"),
    "roboto-mono": ("Roboto Mono", "Monospace"),
    "source-code-pro": ("Source Code Pro", "Monospace"),
    "fira-code": ("Fira Code", "Monospace"),
    "jetbrains-mono": ("JetBrains Mono", "Monospace"),
    "bebas-neue": ("Bebas Neue", "Display"),
    "lobster": ("Lobster", "Display"),
    "pacifico": ("Pacifico", "Display"),
    "dancing-script": ("Dancing Script", "Display"),
}

# DejaVu ships with most Linux images; Pillow's bundled font covers the rest.
_SYSTEM_FILES = {
    "sans-serif": {
        ("normal", "normal"): "DejaVuSans.ttf",
        ("bold", "normal"): "DejaVuSans-Bold.ttf",
        ("normal", "italic"): "DejaVuSans-Oblique.ttf",
        ("bold", "italic"): "DejaVuSans-BoldOblique.ttf",
    },
    "serif": {
        ("normal", "normal"): "DejaVuSerif.ttf",
        ("bold", "normal"): "DejaVuSerif-Bold.ttf",
        ("normal", "italic"): "DejaVuSerif-Italic.ttf",
        ("bold", "italic"): "DejaVuSerif-BoldItalic.ttf",
    },
    "monospace": {
        ("normal", "normal"): "DejaVuSansMono.ttf",
        ("bold", "normal"): "DejaVuSansMono-Bold.ttf",
        ("normal", "italic"): "DejaVuSansMono-Oblique.ttf",
        ("bold", "italic"): "DejaVuSansMono-BoldOblique.ttf",
    },
}

_CSS_URL_RE = re.compile(r"url\(([^)]+)\)")

_registered: dict[str, FontAsset] = {}
_registry_lock = threading.Lock()

PillowFont = Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]


class FontFetchError(Exception):
    """The font service did not return a usable font file."""


def validate_font(value: Optional[str]) -> tuple[Optional[str], str]:
    """Normalise a ``font`` parameter.

    Returns:
        ``(catalog_key, family)``. ``catalog_key`` is ``None`` for system
        families and for unknown input, which resolves to sans-serif.
    """
    if not value:
        return None, DEFAULT_FAMILY
    normalized = value.strip().lower()
    if normalized in SUPPORTED_FONTS:
        return normalized, SUPPORTED_FONTS[normalized][0]
    if normalized in SYSTEM_FAMILIES:
        return None, normalized
    return None, DEFAULT_FAMILY


def supported_fonts() -> list[dict[str, str]]:
    """Catalog listing for the docs endpoint."""
    return [
        {"key": key, "name": name, "category": category}
        for key, (name, category) in SUPPORTED_FONTS.items()
    ]


def system_font(family: str = DEFAULT_FAMILY) -> FontAsset:
    return FontAsset(key=family, family=family, state=FontState.registered)


def variant_key(key: str, weight: str = "normal", style: str = "normal") -> str:
    if weight == "normal" and style == "normal":
        return key
    suffix = ("700" if weight == "bold" else "400") + ("italic" if style == "italic" else "")
    return f"{key}-{suffix}"


def registered_fonts() -> dict[str, FontAsset]:
    with _registry_lock:
        return dict(_registered)


def _register(asset: FontAsset) -> FontAsset:
    # First writer wins; a racing duplicate download resolves to the same entry.
    with _registry_lock:
        existing = _registered.get(asset.key)
        if existing is not None:
            return existing
        asset = asset.model_copy(update={"state": FontState.registered})
        _registered[asset.key] = asset
        return asset


def _verify_font_file(source: Union[str, io.BytesIO]) -> None:
    """Raise OSError if Pillow cannot load the font (a path or an in-memory file)."""
    ImageFont.truetype(source, size=12)


async def _download_font(client: httpx.AsyncClient, family: str, weight: str, style: str) -> bytes:
    variant = ("700" if weight == "bold" else "400") + ("italic" if style == "italic" else "")
    css_resp = await client.get(
        GOOGLE_FONTS_CSS_URL,
        params={"family": f"{family}:{variant}"},
        headers={"User-Agent": LEGACY_USER_AGENT},
    )
    css_resp.raise_for_status()
    match = _CSS_URL_RE.search(css_resp.text)
    if not match:
        raise FontFetchError(f"No font URL in stylesheet for {family}")
    font_url = match.group(1).strip("'\"")

    font_resp = await client.get(font_url)
    font_resp.raise_for_status()
    if not font_resp.content:
        raise FontFetchError(f"Empty font file for {family}")
    return font_resp.content


async def load_font(
    key: Optional[str],
    client: httpx.AsyncClient,
    weight: str = "normal",
    style: str = "normal",
    family: str = DEFAULT_FAMILY,
) -> FontAsset:
    """Return a usable font for a catalog key, fetching it on first use.

    Args:
        key: Catalog key from :func:`validate_font`, or ``None`` for a
            system family.
        client: HTTP client used for the Google Fonts requests.
        weight: ``normal`` or ``bold``.
        style: ``normal`` or ``italic``.
        family: System family to use when ``key`` is ``None``.

    Returns:
        A registered ``FontAsset``. On any failure the default system
        font is returned instead.
    """
    if key is None:
        return system_font(family)

    cache_key = variant_key(key, weight, style)
    with _registry_lock:
        hit = _registered.get(cache_key)
    if hit is not None:
        return hit

    name = SUPPORTED_FONTS[key][0]
    path = os.path.join(FONT_CACHE_DIR, f"{cache_key}.ttf")
    try:
        if os.path.exists(path):
            try:
                _verify_font_file(path)
            except OSError as exc:
                logger.warning("Removing unreadable cached font %s: %s", path, exc)
                os.remove(path)
        if not os.path.exists(path):
            data = await asyncio.wait_for(_download_font(client, name, weight, style), FONT_FETCH_TIMEOUT)
            # Only a file Pillow can open is ever written to the cache.
            _verify_font_file(io.BytesIO(data))
            atomic_write_bytes(path, data)
            logger.info("Downloaded font %s to %s", cache_key, path)
    except (httpx.HTTPError, FontFetchError, OSError, asyncio.TimeoutError) as exc:
        logger.warning("Font %s unavailable, using %s: %s", cache_key, DEFAULT_FAMILY, exc)
        return system_font(DEFAULT_FAMILY)

    return _register(FontAsset(key=cache_key, family=name, path=path, state=FontState.fetched))


def _system_truetype(family: str, size: int, weight: str, style: str) -> tuple[PillowFont, bool]:
    files = _SYSTEM_FILES.get(family, _SYSTEM_FILES[DEFAULT_FAMILY])
    try:
        return ImageFont.truetype(files[(weight, style)], size), False
    except OSError:
        pass
    try:
        return ImageFont.truetype(files[("normal", "normal")], size), weight == "bold"
    except OSError:
        return ImageFont.load_default(size=size), weight == "bold"


def get_font(asset: FontAsset, size: float, weight: str = "normal", style: str = "normal") -> tuple[PillowFont, bool]:
    """Instantiate a Pillow font for drawing.

    Returns:
        ``(font, faux_bold)``. ``faux_bold`` is true when bold was asked
        for but the loaded face is a regular weight, in which case the
        caller thickens the glyphs with a stroke.
    """
    px = max(1, int(round(size)))
    if asset.is_system:
        return _system_truetype(asset.family, px, weight, style)
    try:
        # Downloaded variants are already the right weight and style.
        return ImageFont.truetype(asset.path, px), False
    except OSError as exc:
        logger.warning("Could not open cached font %s: %s", asset.path, exc)
        return _system_truetype(DEFAULT_FAMILY, px, weight, style)
