"""Short URL store.

Maps memorable codes such as ``blue-cat`` to full image paths. The table
is a single JSON file under ``DATA_DIR``; every change rewrites it
atomically through :mod:`imaging.storage`.
"""

from __future__ import annotations

import json
import logging
import os
import random
import re
import threading
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel

from imaging import storage

logger = logging.getLogger(__name__)

SHORT_URLS_FILENAME = "short-urls.json"
MAX_ATTEMPTS = 100

ADJECTIVES = [
    "blue", "red", "green", "pink", "purple", "orange", "yellow", "cyan",
    "bright", "dark", "light", "soft", "bold", "vivid", "pale", "neon",
    "warm", "cool", "fresh", "clean", "sharp", "smooth", "rough", "sleek",
    "modern", "classic", "vintage", "retro", "minimal", "simple", "fancy", "elegant",
    "quick", "fast", "slow", "calm", "wild", "quiet", "loud", "subtle",
    "happy", "sunny", "cloudy", "misty", "clear", "hazy", "crisp", "fuzzy",
]

NOUNS = [
    "cat", "dog", "fox", "bear", "wolf", "lion", "tiger", "panda",
    "star", "moon", "sun", "cloud", "wave", "ocean", "river", "lake",
    "mountain", "valley", "forest", "desert", "island", "garden", "meadow", "field",
    "fire", "water", "earth", "wind", "thunder", "storm", "rain", "snow",
    "hero", "card", "badge", "banner", "button", "icon", "logo", "mark",
    "grid", "dots", "lines", "waves", "circles", "squares", "stripes", "pattern",
    "photo", "image", "picture", "canvas", "frame", "poster", "print", "sketch",
]

CODE_RE = re.compile(r"^[a-z0-9-]+$")
IMAGE_PATH_RE = re.compile(r"^/\d+")

_lock = threading.Lock()


class ShortUrl(BaseModel):
    code: str
    url: str
    createdAt: str
    hits: int = 0


class ShortCodeError(Exception):
    """Base class for short code problems."""


class InvalidCodeError(ShortCodeError):
    pass


class CodeTakenError(ShortCodeError):
    pass


def _store_path() -> str:
    return storage.data_path(SHORT_URLS_FILENAME)


def _load() -> dict[str, ShortUrl]:
    path = _store_path()
    if not os.path.exists(path):
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, ValueError) as exc:
        logger.error("Error loading short URLs from %s: %s", path, exc)
        return {}
    return {code: ShortUrl.model_validate(item) for code, item in raw.items()}


def _save(urls: dict[str, ShortUrl]) -> None:
    payload = {code: item.model_dump() for code, item in urls.items()}
    storage.atomic_write_text(_store_path(), json.dumps(payload, indent=2))


def validate_code(code: str) -> None:
    if not CODE_RE.match(code):
        raise InvalidCodeError("Custom code must contain only lowercase letters, numbers, and hyphens")
    if not 3 <= len(code) <= 50:
        raise InvalidCodeError("Custom code must be between 3 and 50 characters")


def generate_code(existing: set[str], rng: Optional[random.Random] = None) -> str:
    """Pick an unused ``adjective-noun`` code, adding a number if needed."""
    rng = rng or random
    for _ in range(MAX_ATTEMPTS):
        code = f"{rng.choice(ADJECTIVES)}-{rng.choice(NOUNS)}"
        if code not in existing:
            return code
    return f"{rng.choice(ADJECTIVES)}-{rng.choice(NOUNS)}-{rng.randrange(100)}"


def create_short_url(url: str, custom_code: Optional[str] = None) -> ShortUrl:
    """Store ``url`` under a new code, or return the code it already has.

    Raises:
        InvalidCodeError: ``custom_code`` has the wrong shape.
        CodeTakenError: ``custom_code`` is already used for another URL.
    """
    if custom_code is not None:
        validate_code(custom_code)
    with _lock:
        urls = _load()
        for item in urls.values():
            if item.url == url:
                return item
        if custom_code is not None:
            if custom_code in urls:
                raise CodeTakenError("This custom code is already taken")
            code = custom_code
        else:
            code = generate_code(set(urls))
        item = ShortUrl(code=code, url=url, createdAt=datetime.now(timezone.utc).isoformat(), hits=0)
        urls[code] = item
        _save(urls)
    return item


def get_short_url(code: str) -> Optional[str]:
    """Resolve a code and count the hit."""
    with _lock:
        urls = _load()
        item = urls.get(code)
        if item is None:
            return None
        item.hits += 1
        _save(urls)
    return item.url


def list_short_urls() -> list[ShortUrl]:
    with _lock:
        urls = _load()
    return sorted(urls.values(), key=lambda item: item.createdAt, reverse=True)
