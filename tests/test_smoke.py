"""End-to-end tests for the HTTP service.

These drive the FastAPI app in ``main.py`` through TestClient. Outbound
font and pictograph requests go to the mock network from conftest, and
all files are written under a temporary directory.
"""

import io
import json

import httpx
from PIL import Image


def open_image(resp):
    return Image.open(io.BytesIO(resp.content))


def test_basic_png(client):
    resp = client.get("/800x600/3b82f6/ffffff?text=Hello")
    assert resp.status_code == 200, resp.text
    assert resp.headers["content-type"] == "image/png"
    assert resp.headers["cache-control"] == "public, max-age=31536000, immutable"
    assert resp.headers["x-image-width"] == "800"
    assert resp.headers["x-image-height"] == "600"
    assert resp.headers["x-image-format"] == "png"
    image = open_image(resp)
    assert image.format == "PNG"
    assert image.size == (800, 600)


def test_square_shorthand(client):
    assert open_image(client.get("/300")).size == (300, 300)


def test_retina_scale(client):
    resp = client.get("/200x100@2x")
    assert resp.headers["x-image-scale"] == "2"
    assert open_image(resp).size == (400, 200)


def test_formats(client):
    jpeg = client.get("/100x100.jpg?quality=50")
    assert jpeg.headers["content-type"] == "image/jpeg"
    assert open_image(jpeg).format == "JPEG"

    webp = client.get("/100x100?format=webp")
    assert webp.headers["content-type"] == "image/webp"

    # The extension takes precedence over the query parameter.
    both = client.get("/100x100.png?format=jpeg")
    assert both.headers["content-type"] == "image/png"


def test_same_request_same_bytes(client):
    path = "/320x200/aaa-bbb/fff?text=Same&pattern=grid&radius=12&border=2"
    assert client.get(path).content == client.get(path).content


def test_all_options_together(client):
    resp = client.get(
        "/640x360/random-random/random"
        "?text=Line%20one\\nLine%20two&weight=bold&style=italic&align=custom&y=40"
        "&border=4&blur=2&radius=24&shadow=10&noise=12&pattern=stripes&size=32"
    )
    assert resp.status_code == 200, resp.text
    assert open_image(resp).size == (640, 360)


def test_malformed_dimensions(client):
    resp = client.get("/abc")
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "MalformedInput"
    assert body["field"] == "dimensions"
    assert body["docs"]
    assert body["examples"]


def test_oversized_dimensions(client):
    body = client.get("/5000x5000").json()
    assert body["field"] == "dimensions"
    assert body["error"] == "OutOfRange"
    assert "4000" in body["suggestion"]


def test_unsupported_extension(client):
    resp = client.get("/800x600.gif")
    assert resp.status_code == 400
    body = resp.json()
    assert body["field"] == "format"
    assert body["received"] == "gif"


def test_invalid_query_value(client):
    resp = client.get("/100?blur=500")
    assert resp.status_code == 400
    assert resp.json()["field"] == "blur"


def test_unknown_font_still_renders(client):
    resp = client.get("/400x200?font=not-a-font&text=Hi")
    assert resp.status_code == 200
    assert open_image(resp).size == (400, 200)


def test_font_download_failure_still_renders(client, network):
    resp = client.get("/400x200?font=roboto&text=Hi")
    assert resp.status_code == 200
    assert any(r.url.host == "fonts.googleapis.com" for r in network.requests)


def test_pictograph_failure_still_renders(client, network):
    resp = client.get("/400x200?text=Hi%20%F0%9F%98%80")
    assert resp.status_code == 200
    assert any("1f600" in str(r.url) for r in network.requests)


def test_pictograph_is_fetched_and_drawn(client, network):
    glyph = io.BytesIO()
    Image.new("RGBA", (72, 72), (255, 0, 0, 255)).save(glyph, format="PNG")
    network.set_handler(lambda request: httpx.Response(200, content=glyph.getvalue()))

    resp = client.get("/200x100/ffffff?text=%F0%9F%98%80")
    assert resp.status_code == 200
    assert open_image(resp).convert("RGB").getpixel((100, 50)) == (255, 0, 0)


def test_render_failure_returns_opaque_500(client, monkeypatch):
    import main

    def explode(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(main.compositor, "render", explode)
    resp = client.get("/100")
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "InternalRenderingFailure"
    assert "boom" not in resp.text


def test_service_routes(client):
    assert client.get("/health").json() == {"status": "ok"}
    fonts = client.get("/api/fonts").json()["fonts"]
    assert any(f["key"] == "roboto" for f in fonts)
    assert "examples" in client.get("/").json()


def test_og_image(client):
    resp = client.get("/og-image")
    assert resp.status_code == 200
    assert open_image(resp).size == (1200, 630)


def test_shorten_and_redirect(client):
    resp = client.post("/api/shorten", json={"url": "/800x600/3b82f6?text=Hi"})
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["shortUrl"] == f"/s/{body['code']}"
    assert body["absoluteUrl"].endswith(body["shortUrl"])

    redirect = client.get(body["shortUrl"], follow_redirects=False)
    assert redirect.status_code == 302
    assert redirect.headers["location"] == "/800x600/3b82f6?text=Hi"


def test_shorten_rejects_bad_input(client):
    assert client.post("/api/shorten", json={"url": "https://example.com"}).status_code == 400
    assert client.post("/api/shorten", json={"url": "/300", "customCode": "No Spaces"}).status_code == 400
    assert client.post("/api/shorten", json={"url": "/300", "customCode": "ab"}).status_code == 400
    client.post("/api/shorten", json={"url": "/300", "customCode": "taken-code"})
    assert client.post("/api/shorten", json={"url": "/400", "customCode": "taken-code"}).status_code == 409


def test_unknown_short_code(client):
    assert client.get("/s/does-not-exist").status_code == 404


def test_rate_limit(client, monkeypatch):
    import main

    monkeypatch.setattr(main.rate_limit, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(main.rate_limiter, "max_requests", 2)
    headers = {"x-real-ip": "10.0.0.1"}

    first = client.get("/10", headers=headers)
    assert first.headers["x-ratelimit-remaining"] == "1"
    assert client.get("/10", headers=headers).status_code == 200

    blocked = client.get("/10", headers=headers)
    assert blocked.status_code == 429
    assert int(blocked.headers["retry-after"]) >= 1
    assert blocked.json()["error"] == "TooManyRequests"

    # Other clients and non-image routes are unaffected.
    assert client.get("/10", headers={"x-real-ip": "10.0.0.2"}).status_code == 200
    assert client.get("/health", headers=headers).status_code == 200


def test_analytics_recorded_after_response(client, monkeypatch, temp_dirs):
    import main

    data_dir, _ = temp_dirs
    monkeypatch.setattr(main.analytics, "ANALYTICS_ENABLED", True)
    client.get("/120x80/000/fff?pattern=dots", headers={"user-agent": "pytest"})
    event = json.loads((data_dir / "analytics.jsonl").read_text().splitlines()[0])
    assert event["width"] == 120
    assert event["hasPattern"]
    assert event["userAgent"] == "pytest"


def test_trailing_newline_in_colour_is_rejected(client):
    resp = client.get("/800x600/fff%0A")
    assert resp.status_code == 400
    assert resp.json()["field"] == "background-color"


def test_huge_numbers_are_out_of_range(client):
    resp = client.get("/" + "9" * 5000)
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "OutOfRange"
    assert body["field"] == "dimensions"
    assert body["suggestion"] == "Try /4000x4000"

    resp = client.get("/100", params={"border": "9" * 5000})
    assert resp.status_code == 400
    assert resp.json()["error"] == "OutOfRange"
    assert resp.json()["suggestion"] == "Use border=100"
