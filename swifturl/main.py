"""FastAPI application entry point for SwiftURL.

This module configures the FastAPI application with middleware, exception
handlers, lifecycle management and route registration.

Application Lifecycle Diagram
=============================
::
    ┌──────────────┐
    │  uvicorn      │
    │  startup      │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ lifespan()    │
    │ init_db()     │  create tables
    │ initialize()  │  logger, Redis (optional), click recorder, sweeper
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ Serve HTTP    │
    │ requests      │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ lifespan()    │
    │ cleanup()     │  stop sweeper, drain clicks, close Redis
    │ close_db()    │  dispose engine
    └──────────────┘

How to Use
===========
**Step 1 — Run with uvicorn**::
    uvicorn swifturl.main:app --host 0.0.0.0 --port 8000

**Step 2 — Make API calls**::
    curl http://localhost:8000/health

    curl -X POST http://localhost:8000/api/shorten \\
         -H "Content-Type: application/json" \\
         -d '{"longUrl": "https://example.com"}'

Key Behaviours
===============
- Startup fails if the database is unreachable; an unreachable Redis only
  degrades the cache until it comes back.
- Prometheus metrics are exposed at /metrics.
- Auto-generated OpenAPI documentation is available at /docs and /redoc.
"""

__all__ = ["app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from swifturl.config import get_settings
from swifturl.database import close_db, init_db
from swifturl.dependencies import _service_manager
from swifturl.errors import register_exception_handlers
from swifturl.routes import api_router, router

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    await init_db()
    await _service_manager.initialize()
    yield
    # Shutdown
    await _service_manager.cleanup()
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="SwiftURL: a URL shortener with expiring links and click counts",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_respect_env_var=False,
).instrument(app).expose(app)

register_exception_handlers(app)
app.include_router(api_router)
app.include_router(router)
