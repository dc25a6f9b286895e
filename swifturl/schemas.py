"""Pydantic schemas for request/response validation in SwiftURL.

This module defines Pydantic models for API input validation and output serialization,
plus ``URLRecord``, the snapshot the core passes around and stores in Redis.

Schema Hierarchy
=================
::
    URLCreate (Input, camelCase or snake_case accepted)
    ├─ longUrl: str (http/https, <= 2048 chars)
    ├─ customCode: str | None (3-10 alphanumeric, not reserved)
    └─ expiresAt: datetime | None (must be in the future)

    URLRecord (Core value / cache snapshot)
    ├─ id, long_url, short_code, clicks
    └─ created_at, expires_at

    ShortenResponse  {success, message, data: URLData}
    StatsResponse    {success, message, data: URLStats}
    URLListResponse  {success, message, data: [URLListItem], pagination}
    HealthResponse   {status, database, cache}
    ErrorResponse    {error, message, details, timestamp}

Key Behaviours
===============
- URL validation uses the validators library for RFC compliance.
- Naive datetimes are read as UTC; everything leaves the API timezone-aware.
- Output models serialize with camelCase aliases.

Classes:
    URLCreate:  Input schema for URL shortening requests.
    URLRecord:  Snapshot of a stored URL, shared by the core and the cache.
    URLData / URLStats / URLListItem:  Output payloads.
    HealthResponse / ErrorResponse:  Output envelopes.
"""

import datetime
from urllib.parse import urlsplit

import validators
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from swifturl.codes import MAX_CODE_LENGTH, MIN_CODE_LENGTH, is_reserved_code, is_valid_short_code
from swifturl.enums import HealthStatus
from swifturl.exceptions import InvalidURLError

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "MAX_URL_LENGTH",
    "Pagination",
    "ShortenResponse",
    "StatsResponse",
    "URLCreate",
    "URLData",
    "URLListItem",
    "URLListResponse",
    "URLRecord",
    "URLStats",
    "as_utc",
    "utc_now",
    "validate_long_url",
]

MAX_URL_LENGTH = 2048


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def as_utc(value: datetime.datetime) -> datetime.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


def validate_long_url(value: str) -> str:
    """Return ``value`` stripped, or raise InvalidURLError."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidURLError(details=["Long URL is required"])
    value = value.strip()
    if len(value) > MAX_URL_LENGTH:
        raise InvalidURLError(details=[f"URL cannot be longer than {MAX_URL_LENGTH} characters"])
    if urlsplit(value).scheme.lower() not in ("http", "https") or not validators.url(value):
        raise InvalidURLError(details=["Please provide a valid URL starting with http:// or https://"])
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class URLCreate(CamelModel):
    long_url: str
    custom_code: str | None = None
    expires_at: datetime.datetime | None = None

    @field_validator("long_url")
    @classmethod
    def check_long_url(cls, v: str) -> str:
        try:
            return validate_long_url(v)
        except InvalidURLError as exc:
            raise ValueError(exc.details[0]) from exc

    @field_validator("custom_code")
    @classmethod
    def check_custom_code(cls, v: str | None) -> str | None:
        if v is None:
            return v
        if not is_valid_short_code(v):
            raise ValueError(
                f"Custom code must be {MIN_CODE_LENGTH}-{MAX_CODE_LENGTH} characters of letters and numbers"
            )
        if is_reserved_code(v):
            raise ValueError(f"'{v}' is a reserved keyword and cannot be used")
        return v

    @field_validator("expires_at")
    @classmethod
    def check_expires_at(cls, v: datetime.datetime | None) -> datetime.datetime | None:
        if v is None:
            return v
        v = as_utc(v)
        if v <= utc_now():
            raise ValueError("Expiration date must be in the future")
        return v


class URLRecord(BaseModel):
    """What the core knows about one short URL; also the ``url:<code>`` cache value."""

    id: int
    long_url: str
    short_code: str
    clicks: int = 0
    created_at: datetime.datetime | None = None
    expires_at: datetime.datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    def is_expired(self, now: datetime.datetime) -> bool:
        return self.expires_at is not None and as_utc(self.expires_at) < as_utc(now)


class URLData(CamelModel):
    id: int
    long_url: str
    short_code: str
    short_url: str
    clicks: int
    created_at: datetime.datetime | None = None
    expires_at: datetime.datetime | None = None

    @classmethod
    def from_record(cls, record: URLRecord, base_url: str) -> "URLData":
        return cls(
            id=record.id,
            long_url=record.long_url,
            short_code=record.short_code,
            short_url=f"{base_url.rstrip('/')}/{record.short_code}",
            clicks=record.clicks,
            created_at=record.created_at,
            expires_at=record.expires_at,
        )


class URLListItem(URLData):
    is_expired: bool = False


class URLStats(CamelModel):
    short_code: str
    long_url: str
    clicks: int
    created_at: datetime.datetime | None = None
    expires_at: datetime.datetime | None = None
    is_expired: bool = False


class ShortenResponse(CamelModel):
    success: bool = True
    message: str = "URL shortened successfully"
    data: URLData


class StatsResponse(CamelModel):
    success: bool = True
    message: str = "Statistics retrieved successfully"
    data: URLStats


class Pagination(CamelModel):
    limit: int
    offset: int
    count: int


class URLListResponse(CamelModel):
    success: bool = True
    message: str = "URLs retrieved successfully"
    data: list[URLListItem]
    pagination: Pagination


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus


class ErrorResponse(BaseModel):
    error: bool = True
    message: str
    details: list[str] = Field(default_factory=list)
    timestamp: datetime.datetime = Field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )
