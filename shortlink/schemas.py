"""Pydantic schemas for request/response validation in the shortlink service.

This module defines Pydantic models for API input validation and output serialization,
ensuring type safety and automatic OpenAPI documentation generation. JSON keys
are camelCase on the wire; Python attributes stay snake_case.

Schema Hierarchy
=================
::
    GuestShortenRequest (Input)
    └─ longUrl: str (http/https, trimmed)

    ShortenRequest (Input)
    ├─ longUrl: str
    ├─ customCode: str | None (4-20 of [a-zA-Z0-9_-])
    └─ expiresAt: datetime | None

    RegisterRequest / LoginRequest (Input)

    ApiResponse[T] (Output envelope)
    ├─ success: true
    ├─ message: str | None
    └─ data: T
        ├─ GuestLinkData
        ├─ LinkData (+ totalClicks, isExpired)
        ├─ LinkPageData (urls + PaginationData)
        └─ AccountData / TokenData

    ErrorResponse (Output)
    ├─ success: false
    ├─ message: str
    ├─ error: ErrorCode
    └─ detail / errors / retryAfter (optional)

How to Use
===========
**Step 1 — Input validation**::
    @router.post("/api/url/shorten")
    async def shorten(payload: ShortenRequest):
        # payload.long_url is already trimmed and scheme-checked
        ...

**Step 2 — Response serialization**::
    data = LinkData.from_link(link, settings.BASE_URL, total_clicks=7, now=utcnow())
    return ApiResponse[LinkData](message="URL shortened successfully", data=data)

Key Behaviours
===============
- URL and custom code validation reuse ``shortlink.validation`` so the HTTP
  layer and the services apply identical rules.
- Passwords must be 6-72 characters with a lower-case letter, an upper-case
  letter and a digit (72 bytes is the bcrypt input limit).
- All datetime fields are timezone-aware on output.
"""

import datetime
import re
import uuid
from typing import Generic, TypeVar

import validators
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from shortlink.enums import ErrorCode, HealthStatus
from shortlink.errors import InvalidInput
from shortlink.models import Account, ShortLink
from shortlink.validation import normalize_custom_code, normalize_long_url

__all__ = [
    "GuestShortenRequest",
    "ShortenRequest",
    "RegisterRequest",
    "LoginRequest",
    "ApiResponse",
    "ErrorResponse",
    "GuestLinkData",
    "LinkData",
    "PaginationData",
    "LinkPageData",
    "AccountData",
    "TokenData",
    "HealthResponse",
]

T = TypeVar("T")

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ============================================================================
# REQUESTS
# ============================================================================


class GuestShortenRequest(CamelModel):
    long_url: str

    @field_validator("long_url")
    @classmethod
    def validate_long_url(cls, v: str) -> str:
        try:
            return normalize_long_url(v)
        except InvalidInput as exc:
            raise ValueError(exc.message) from exc


class ShortenRequest(GuestShortenRequest):
    custom_code: str | None = None
    expires_at: datetime.datetime | None = None

    @field_validator("custom_code")
    @classmethod
    def validate_custom_code(cls, v: str | None) -> str | None:
        try:
            return normalize_custom_code(v)
        except InvalidInput as exc:
            raise ValueError(exc.message) from exc


class RegisterRequest(CamelModel):
    username: str = Field(min_length=3, max_length=30)
    email: str
    password: str = Field(min_length=6, max_length=72)

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        v = v.strip()
        if not USERNAME_PATTERN.match(v):
            raise ValueError("Username can only contain letters, numbers, and underscores")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not validators.email(v):
            raise ValueError("Please provide a valid email")
        return v

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if not PASSWORD_PATTERN.match(v):
            raise ValueError(
                "Password must contain at least one lowercase letter, one uppercase letter, and one number"
            )
        return v


class LoginRequest(CamelModel):
    email: str
    password: str = Field(min_length=1, max_length=72)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


# ============================================================================
# RESPONSES
# ============================================================================


class ApiResponse(CamelModel, Generic[T]):
    success: bool = True
    message: str | None = None
    data: T | None = None


class ErrorResponse(CamelModel):
    success: bool = False
    message: str
    error: ErrorCode
    detail: str | None = None
    errors: list[dict] | None = None
    retry_after: int | None = None


class GuestLinkData(CamelModel):
    long_url: str
    short_code: str
    short_url: str
    expires_in: str
    note: str = "This is a temporary link. Sign up to save and manage your URLs!"


class LinkData(CamelModel):
    id: uuid.UUID
    long_url: str
    short_code: str
    short_url: str
    custom_code: str | None = None
    clicks: int
    total_clicks: int
    is_expired: bool
    created_at: datetime.datetime
    updated_at: datetime.datetime
    expires_at: datetime.datetime | None = None

    @classmethod
    def from_link(
        cls,
        link: ShortLink,
        base_url: str,
        now: datetime.datetime,
        total_clicks: int | None = None,
    ) -> "LinkData":
        clicks = link.clicks or 0
        total = clicks if total_clicks is None else total_clicks
        return cls(
            id=link.id,
            long_url=link.long_url,
            short_code=link.short_code,
            short_url=f"{base_url}/{link.short_code}",
            custom_code=link.custom_code,
            # clicks mirrors the observed total so every reader applies the max rule.
            clicks=total,
            total_clicks=total,
            is_expired=link.is_expired(now),
            created_at=link.created_at,
            updated_at=link.updated_at,
            expires_at=link.expires_at,
        )


class PaginationData(CamelModel):
    current: int
    pages: int
    total: int
    limit: int
    has_next: bool
    has_prev: bool


class LinkPageData(CamelModel):
    urls: list[LinkData]
    pagination: PaginationData


class AccountData(CamelModel):
    id: uuid.UUID
    username: str
    email: str
    is_active: bool
    created_at: datetime.datetime

    @classmethod
    def from_account(cls, account: Account) -> "AccountData":
        return cls.model_validate(account)


class TokenData(CamelModel):
    token: str
    token_type: str = "bearer"
    expires_in: int
    account: AccountData


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus
