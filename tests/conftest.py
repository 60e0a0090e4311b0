"""Shared fixtures.

Every test runs with data and font cache directories under ``tmp_path``
and with outbound HTTP replaced by an ``httpx.MockTransport`` so nothing
leaves the machine. By default the mock answers 404 to everything, which
exercises the font and pictograph fallbacks; tests that need real
responses install their own handler with ``set_handler``.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from imaging import fonts, storage, text_layout
from services import analytics


def _not_found(request: httpx.Request) -> httpx.Response:
    return httpx.Response(404)


class MockNetwork:
    """Routes outbound requests to a swappable handler and records them."""

    def __init__(self):
        self.handler = _not_found
        self.requests = []

    def set_handler(self, handler):
        self.handler = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def temp_dirs(tmp_path, monkeypatch):
    """Point every writable location at a sandbox directory."""
    data_dir = tmp_path / "data"
    font_dir = tmp_path / "fonts"
    data_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setattr(storage, "DATA_DIR", str(data_dir))
    monkeypatch.setattr(fonts, "FONT_CACHE_DIR", str(font_dir))
    monkeypatch.setattr(analytics, "ANALYTICS_FILE", str(data_dir / "analytics.jsonl"))
    # Process-wide caches start empty for each test.
    monkeypatch.setattr(fonts, "_registered", {})
    monkeypatch.setattr(text_layout, "_glyph_cache", {})
    return data_dir, font_dir


@pytest.fixture
def network():
    return MockNetwork()


@pytest.fixture
def client(temp_dirs, network):
    """TestClient for the app with outbound HTTP mocked and limits reset."""
    import main

    async def override_http_client():
        async with network.client() as http_client:
            yield http_client

    main.app.dependency_overrides[main.get_http_client] = override_http_client
    main.rate_limiter.reset()
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()
    main.rate_limiter.reset()
