"""In-memory fixed-window rate limiter.

Counters live in this process only, so each server instance limits on its
own. That is enough for a single-instance deployment; several instances
behind a load balancer would need a shared store instead.

Environment variables:
    RATE_LIMIT_ENABLED: 'true' (default) or 'false'.
    RATE_LIMIT_MAX_REQUESTS: Requests allowed per window (default 100).
    RATE_LIMIT_WINDOW_SECONDS: Window length (default 60).
"""

from __future__ import annotations

import math
import os
import random
import re
import threading
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

RATE_LIMIT_ENABLED: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
RATE_LIMIT_MAX_REQUESTS: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100"))
RATE_LIMIT_WINDOW_SECONDS: float = float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
CLEANUP_PROBABILITY = 0.01

_IMAGE_PATH_RE = re.compile(r"^/\d+")


@dataclass
class _Window:
    count: int
    reset_at: float


@dataclass(frozen=True)
class Decision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: Optional[int] = None


class RateLimiter:
    """Count requests per client id in fixed windows."""

    def __init__(
        self,
        max_requests: int = RATE_LIMIT_MAX_REQUESTS,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def check(self, client_id: str) -> Decision:
        now = self._clock()
        with self._lock:
            window = self._windows.get(client_id)
            if window is None or now >= window.reset_at:
                window = _Window(count=0, reset_at=now + self.window_seconds)
                self._windows[client_id] = window
            if window.count >= self.max_requests:
                return Decision(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=0,
                    reset_at=window.reset_at,
                    retry_after=max(1, math.ceil(window.reset_at - now)),
                )
            window.count += 1
            decision = Decision(
                allowed=True,
                limit=self.max_requests,
                remaining=self.max_requests - window.count,
                reset_at=window.reset_at,
            )
        if random.random() < CLEANUP_PROBABILITY:
            self.cleanup()
        return decision

    def cleanup(self) -> None:
        """Drop windows that have already expired."""
        now = self._clock()
        with self._lock:
            for client_id in [k for k, w in self._windows.items() if now >= w.reset_at]:
                del self._windows[client_id]

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


def client_id(headers: Mapping[str, str], peer: Optional[str] = None) -> str:
    """Identify the caller: X-Real-IP, then the first X-Forwarded-For hop."""
    real_ip = (headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    forwarded = (headers.get("x-forwarded-for") or "").split(",")[0].strip()
    if forwarded:
        return forwarded
    return peer or "unknown"


def is_image_request(path: str) -> bool:
    return bool(_IMAGE_PATH_RE.match(path))
