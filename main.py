import os
import asyncio
import logging
from typing import Optional

import httpx
from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse, Response
from pydantic import BaseModel

from imaging import compositor, encoder, fonts, storage, text_layout
from imaging.errors import DOCS_URL, Err, error_document, internal_error_document
from imaging.spec import ParsedRequest, parse_request
from services import analytics, rate_limit, shortener

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("imges")

# --- Environment & Config ---
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
CACHE_CONTROL = "public, max-age=31536000, immutable"
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "10"))

OG_IMAGE_SEGMENTS = ["1200x630", "3b82f6-8b5cf6", "ffffff"]
OG_IMAGE_QUERY = {"text": "imges\\nPlaceholder images by URL", "size": "64", "weight": "bold"}

logger.info("[startup] data dir %s, font cache %s", storage.DATA_DIR, fonts.FONT_CACHE_DIR)
if rate_limit.RATE_LIMIT_ENABLED:
    logger.info(
        "[startup] rate limit %d requests / %ss per client",
        rate_limit.RATE_LIMIT_MAX_REQUESTS,
        rate_limit.RATE_LIMIT_WINDOW_SECONDS,
    )
else:
    logger.info("[startup] rate limiting disabled.")
if not analytics.ANALYTICS_ENABLED:
    logger.info("[startup] ANALYTICS_ENABLED not set; analytics disabled.")

rate_limiter = rate_limit.RateLimiter()

# --- App Init ---
app = FastAPI(title="imges")
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


async def get_http_client():
    """One outbound client per request for font and pictograph downloads."""
    async with httpx.AsyncClient(follow_redirects=True, timeout=HTTP_TIMEOUT) as client:
        yield client


# --- Middleware ---
@app.middleware("http")
async def rate_limit_images(request: Request, call_next):
    if not rate_limit.RATE_LIMIT_ENABLED or not rate_limit.is_image_request(request.url.path):
        return await call_next(request)

    peer = request.client.host if request.client else None
    decision = rate_limiter.check(rate_limit.client_id(request.headers, peer))
    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(int(decision.reset_at)),
    }
    if not decision.allowed:
        headers["Retry-After"] = str(decision.retry_after)
        return JSONResponse(
            status_code=429,
            content={
                "error": "TooManyRequests",
                "message": f"Rate limit exceeded. Try again in {decision.retry_after} seconds.",
                "retryAfter": decision.retry_after,
                "docs": DOCS_URL,
            },
            headers=headers,
        )
    response = await call_next(request)
    response.headers.update(headers)
    return response


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    return response


# --- Pipeline ---
def _first_values(request: Request) -> dict:
    query = {}
    for name, value in request.query_params.multi_items():
        query.setdefault(name, value)
    return query


async def _generate(parsed: ParsedRequest, client: httpx.AsyncClient) -> Response:
    spec, options = parsed.spec, parsed.options

    key, family = fonts.validate_font(options.font)
    font = await fonts.load_font(key, client, options.weight, options.style, family=family)
    glyphs = await text_layout.fetch_pictographs(text_layout.split_lines(options.text), client)

    try:
        image = await asyncio.to_thread(compositor.render, spec, options, font, glyphs)
        body, content_type = await asyncio.to_thread(encoder.encode, image, spec.format, options.quality)
    except Exception:
        logger.exception("Rendering failed for %sx%s@%sx", spec.width, spec.height, spec.scale)
        return JSONResponse(status_code=500, content=internal_error_document())

    return Response(
        content=body,
        media_type=content_type,
        headers={
            "Cache-Control": CACHE_CONTROL,
            "X-Image-Width": str(spec.actual_width),
            "X-Image-Height": str(spec.actual_height),
            "X-Image-Scale": str(spec.scale),
            "X-Image-Format": spec.format,
        },
    )


# --- Service Endpoints ---
@app.get("/")
async def index():
    return {
        "name": "imges",
        "description": "Placeholder images generated from the URL.",
        "usage": "/{width}x{height}[@2x][.png|.jpg|.webp]/{background}[/{foreground}]",
        "examples": [
            "/800x600",
            "/800x600/3b82f6/ffffff?text=Hello",
            "/1200x630/3b82f6-8b5cf6?pattern=dots",
        ],
        "docs": DOCS_URL,
    }


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/fonts")
async def list_fonts():
    return {"fonts": fonts.supported_fonts(), "default": fonts.DEFAULT_FAMILY}


@app.get("/og-image")
async def og_image(client: httpx.AsyncClient = Depends(get_http_client)):
    result = parse_request(OG_IMAGE_SEGMENTS, OG_IMAGE_QUERY)
    if isinstance(result, Err):
        raise HTTPException(status_code=500, detail=result.error.message)
    return await _generate(result.value, client)


# --- Short URLs ---
class ShortenRequest(BaseModel):
    url: str
    customCode: Optional[str] = None


@app.post("/api/shorten", status_code=201)
async def shorten_endpoint(body: ShortenRequest, request: Request):
    if not shortener.IMAGE_PATH_RE.match(body.url):
        raise HTTPException(status_code=400, detail="URL must be an image path such as /800x600")
    try:
        item = shortener.create_short_url(body.url, body.customCode)
    except shortener.InvalidCodeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except shortener.CodeTakenError as e:
        raise HTTPException(status_code=409, detail=str(e))
    base = str(request.base_url).rstrip("/")
    return {
        "code": item.code,
        "shortUrl": f"/s/{item.code}",
        "fullUrl": item.url,
        "absoluteUrl": f"{base}/s/{item.code}",
    }


@app.get("/s/{code}")
async def resolve_short_url(code: str):
    url = shortener.get_short_url(code)
    if url is None:
        raise HTTPException(status_code=404, detail="Short URL not found")
    return RedirectResponse(url=url, status_code=302)


# --- Image Endpoint (must stay last: it matches every path) ---
@app.get("/{params:path}")
async def image_endpoint(
    params: str,
    request: Request,
    background_tasks: BackgroundTasks,
    client: httpx.AsyncClient = Depends(get_http_client),
):
    segments = [s for s in params.split("/") if s]
    query = _first_values(request)

    result = parse_request(segments, query)
    if isinstance(result, Err):
        return JSONResponse(status_code=400, content=error_document(result.error))

    response = await _generate(result.value, client)
    if response.status_code == 200:
        background_tasks.add_task(
            analytics.record_image,
            result.value.spec,
            result.value.options,
            query,
            request.headers.get("user-agent"),
            request.headers.get("referer"),
        )
    return response
