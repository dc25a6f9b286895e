"""Exception handlers and error pages for SwiftURL.

Flow Diagram — exception → response
===================================
::
    ShortenerError            ─► exc.status_code + JSON envelope (+ exc.headers)
    RequestValidationError    ─► RequestValidationFailed (400), one detail per field
    DBAPIError / OSError      ─► 503 JSON envelope
    anything else             ─► logged, 500 JSON envelope

    GET /{code} failures      ─► small HTML page (see ``error_page``)

Envelope::

    {"error": true, "message": "...", "details": ["..."], "timestamp": "..."}
"""

import html
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse
from sqlalchemy.exc import DBAPIError

from swifturl.exceptions import RequestValidationFailed, ServiceUnavailableError, ShortenerError
from swifturl.schemas import ErrorResponse

__all__ = ["error_page", "error_response", "register_exception_handlers"]

logger = logging.getLogger("urlshortener.errors")


def error_response(
    status_code: int,
    message: str,
    details: list[str] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(message=message, details=details or [])
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body), headers=headers or None)


def _field_errors(exc: RequestValidationError) -> list[str]:
    details = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = str(error.get("msg", "Invalid value")).removeprefix("Value error, ")
        details.append(f"{location}: {message}" if location else message)
    return details


async def shortener_error_handler(request: Request, exc: ShortenerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.message}")
    return error_response(exc.status_code, exc.message, exc.details, exc.headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return await shortener_error_handler(request, RequestValidationFailed(details=_field_errors(exc)))


async def store_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Store unavailable during {request.method} {request.url.path}: {exc}")
    unavailable = ServiceUnavailableError(details=["Database connection failed"])
    return error_response(unavailable.status_code, unavailable.message, unavailable.details)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error during {request.method} {request.url.path}: {exc}")
    return error_response(500, "Internal Server Error", ["An unexpected error occurred"])


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ShortenerError, shortener_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(DBAPIError, store_unavailable_handler)
    app.add_exception_handler(OSError, store_unavailable_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)


# ============================================================================
# HTML ERROR PAGES (redirect endpoint)
# ============================================================================

_PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>{title}</title>
  <style>
    body {{ font-family: sans-serif; text-align: center; padding: 50px; color: #333; }}
    h1 {{ color: #c0392b; }}
    a {{ color: #2980b9; }}
  </style>
</head>
<body>
  <h1>{title}</h1>
  <p>{message}</p>
  <p>{description}</p>
  <a href="{base_url}">Go to homepage</a>
</body>
</html>
"""


def error_page(status_code: int, title: str, message: str, description: str, base_url: str) -> HTMLResponse:
    content = _PAGE_TEMPLATE.format(
        title=html.escape(title),
        message=html.escape(message),
        description=html.escape(description),
        base_url=html.escape(base_url, quote=True),
    )
    return HTMLResponse(content=content, status_code=status_code)
