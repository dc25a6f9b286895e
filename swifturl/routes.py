"""FastAPI route definitions for the SwiftURL REST API.

This module provides all HTTP endpoints with dependency injection, error
handling and response serialization for the URL shortening service.

API Endpoint Overview
=====================
::
    GET  /health
        └─ HealthResponse (200)

    POST /api/shorten                     (rate limited)
        ├─ URLCreate (request body)
        └─ ShortenResponse (201) or 400/409/429

    GET  /api/stats/:short_code           (rate limited)
        └─ StatsResponse (200) or 404

    GET  /api/urls?limit&offset           (rate limited)
        └─ URLListResponse (200)

    GET  /:short_code
        └─ 302 Redirect, or HTML 404/410/500

Redirect Flow Diagram
=====================
::
    ┌─────────────┐
    │ GET /:code   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ well-formed? │── NO ──► HTML 404
    └──────┬──────┘
           ▼ YES
    ┌─────────────┐
    │ resolve()    │── not found ─► HTML 404
    │              │── expired ───► HTML 410
    │              │── failure ───► HTML 500
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ 302 Location │── background: record_click()
    └─────────────┘

How to Use
===========
**Step 1 — Import and include router**::
    from swifturl.routes import router
    app.include_router(router)

**Step 2 — Access endpoints**::
    # Shorten URL
    POST http://localhost:8000/api/shorten
    {"longUrl": "https://example.com", "customCode": "mylink"}

    # Redirect
    GET http://localhost:8000/mylink

    # Stats
    GET http://localhost:8000/api/stats/mylink

Key Behaviours
===============
- Click accounting runs as a background task after the redirect is sent.
- /api routes are guarded by the fixed-window rate limiter; /health and
  redirects are not.
- The health check reports the cache as ``disabled`` when Redis is turned
  off, and ``unhealthy`` while it is unreachable.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from fastapi.responses import RedirectResponse, Response
from sqlalchemy import text

from swifturl.codes import is_valid_short_code
from swifturl.dependencies import (
    RequestContext,
    enforce_rate_limit,
    get_request_context,
    get_url_service,
)
from swifturl.enums import HealthStatus
from swifturl.errors import error_page
from swifturl.exceptions import URLExpiredError, URLNotFoundError
from swifturl.schemas import (
    HealthResponse,
    Pagination,
    ShortenResponse,
    StatsResponse,
    URLCreate,
    URLData,
    URLListItem,
    URLListResponse,
)
from swifturl.url_service import URLShorteningService

__all__ = ["api_router", "router"]

router = APIRouter()
api_router = APIRouter(prefix="/api", dependencies=[Depends(enforce_rate_limit)])


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(ctx: RequestContext = Depends(get_request_context)) -> HealthResponse:
    db_status = HealthStatus.HEALTHY
    try:
        await ctx.database.execute(text("SELECT 1"))
    except Exception as e:
        ctx.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    if not ctx.cache.enabled:
        cache_status = HealthStatus.DISABLED
    elif await ctx.cache.ping():
        cache_status = HealthStatus.HEALTHY
    else:
        ctx.logger.warning("Cache health check failed")
        cache_status = HealthStatus.UNHEALTHY

    status = HealthStatus.HEALTHY if db_status is HealthStatus.HEALTHY else HealthStatus.UNHEALTHY
    ctx.logger.debug(f"Health check completed: {status.value}")
    return HealthResponse(status=status, database=db_status, cache=cache_status)


@api_router.post("/shorten", response_model=ShortenResponse, status_code=201, tags=["urls"])
async def shorten_url(
    payload: URLCreate,
    ctx: RequestContext = Depends(get_request_context),
    service: URLShorteningService = Depends(get_url_service),
) -> ShortenResponse:
    ctx.logger.info(f"URL shortening requested: {payload.long_url}")
    record = await service.create_short_url(payload)
    ctx.logger.info(f"URL shortened successfully: {record.short_code} ({ctx.get_duration():.1f}ms)")
    return ShortenResponse(data=URLData.from_record(record, ctx.settings.BASE_URL))


@api_router.get("/stats/{short_code}", response_model=StatsResponse, tags=["urls"])
async def get_stats(
    short_code: str,
    service: URLShorteningService = Depends(get_url_service),
) -> StatsResponse:
    if not is_valid_short_code(short_code):
        raise URLNotFoundError(short_code)
    return StatsResponse(data=await service.get_url_statistics(short_code))


@api_router.get("/urls", response_model=URLListResponse, tags=["urls"])
async def list_urls(
    limit: int | None = Query(default=None),
    offset: int = Query(default=0),
    ctx: RequestContext = Depends(get_request_context),
    service: URLShorteningService = Depends(get_url_service),
) -> URLListResponse:
    records, limit, offset = await service.list_urls(limit, offset)
    base_url = ctx.settings.BASE_URL
    items = [
        URLListItem(**URLData.from_record(record, base_url).model_dump(), is_expired=service.is_expired(record))
        for record in records
    ]
    return URLListResponse(data=items, pagination=Pagination(limit=limit, offset=offset, count=len(items)))


@router.get("/{short_code}", tags=["redirect"])
async def redirect_to_url(
    short_code: str,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_request_context),
    service: URLShorteningService = Depends(get_url_service),
) -> Response:
    base_url = ctx.settings.BASE_URL
    not_found = error_page(
        404,
        "URL Not Found",
        "The short URL you're looking for doesn't exist.",
        "It may have been deleted or never existed.",
        base_url,
    )
    if not is_valid_short_code(short_code):
        return not_found

    try:
        record = await service.resolve(short_code)
    except URLNotFoundError:
        ctx.logger.warning(f"Redirect failed - short code not found: {short_code}")
        return not_found
    except URLExpiredError:
        ctx.logger.warning(f"Redirect failed - short code expired: {short_code}")
        return error_page(
            410,
            "URL Expired",
            "This short URL has expired and is no longer available.",
            "The link owner set an expiration date for this URL.",
            base_url,
        )
    except Exception as e:
        ctx.logger.error(f"Redirect failed for {short_code}: {e}")
        return error_page(
            500,
            "Service Error",
            "Something went wrong while processing your request.",
            "Please try again later.",
            base_url,
        )

    background_tasks.add_task(service.record_click, short_code)
    ctx.logger.info(f"Redirect: {short_code} -> {record.long_url}")
    return RedirectResponse(url=record.long_url, status_code=302)
