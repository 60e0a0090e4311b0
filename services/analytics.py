"""Usage analytics for rendered images.

One JSON object per generated image is appended to ``ANALYTICS_FILE``.
Recording runs as a background task after the response is sent, and any
failure is logged rather than raised so that analytics can never break
image generation.

Environment variables:
    ANALYTICS_ENABLED: 'true' to record (default 'false').
    ANALYTICS_FILE: JSON-lines file path (default '<DATA_DIR>/analytics.jsonl').
    OWN_HOSTNAMES: Comma separated hostnames whose referrers are not
        recorded (default 'localhost,127.0.0.1').
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timezone
from typing import Any, Mapping, Optional
from urllib.parse import urlparse

from imaging import storage
from imaging.models import ImageSpec, RenderOptions

logger = logging.getLogger(__name__)

ANALYTICS_ENABLED: bool = os.getenv("ANALYTICS_ENABLED", "false").lower() == "true"
ANALYTICS_FILE: Optional[str] = os.getenv("ANALYTICS_FILE")
OWN_HOSTNAMES: list[str] = [
    h.strip().lower() for h in os.getenv("OWN_HOSTNAMES", "localhost,127.0.0.1").split(",") if h.strip()
]
MAX_HEADER_LENGTH = 500

_write_lock = threading.Lock()


def analytics_path() -> str:
    return ANALYTICS_FILE or storage.data_path("analytics.jsonl")


def is_own_referrer(referrer: Optional[str]) -> bool:
    if not referrer:
        return False
    host = (urlparse(referrer).hostname or "").lower()
    return any(host == own or host.endswith("." + own) for own in OWN_HOSTNAMES)


def _truncate(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value[:MAX_HEADER_LENGTH]


def build_event(
    spec: ImageSpec,
    options: RenderOptions,
    query: Mapping[str, str],
    user_agent: Optional[str] = None,
    referrer: Optional[str] = None,
) -> dict[str, Any]:
    """Describe one rendered image."""
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "width": spec.width,
        "height": spec.height,
        "scale": spec.scale,
        "format": spec.format,
        "background": spec.background,
        "background2": spec.background2,
        "foreground": spec.foreground,
        "hasText": bool(query.get("text")),
        "font": options.font,
        "hasGradient": spec.is_gradient,
        "hasPattern": options.pattern is not None,
        "hasBorder": options.border > 0,
        "hasShadow": options.shadow > 0,
        "hasRadius": options.radius > 0,
        "hasBlur": options.blur > 0,
        "hasNoise": options.noise > 0,
        "queryParams": dict(query),
        "userAgent": _truncate(user_agent),
        "referrer": _truncate(referrer),
    }


def record_image(
    spec: ImageSpec,
    options: RenderOptions,
    query: Mapping[str, str],
    user_agent: Optional[str] = None,
    referrer: Optional[str] = None,
) -> None:
    """Append one event line. Never raises."""
    if not ANALYTICS_ENABLED or is_own_referrer(referrer):
        return
    try:
        event = build_event(spec, options, query, user_agent, referrer)
        path = analytics_path()
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with _write_lock, open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(event, ensure_ascii=False) + "\n")
    except Exception:
        logger.exception("Analytics tracking failed")
