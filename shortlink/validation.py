"""Input normalization shared by the request schemas and the services."""

import datetime
from urllib.parse import urlsplit

import validators

from shortlink.codegen import is_valid_short_code
from shortlink.errors import InvalidInput

__all__ = ["normalize_long_url", "normalize_custom_code", "normalize_expiry", "utcnow"]

ALLOWED_SCHEMES = frozenset({"http", "https"})
DEFAULT_MAX_URL_LENGTH = 2048


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def normalize_long_url(value: object, max_length: int = DEFAULT_MAX_URL_LENGTH) -> str:
    if not isinstance(value, str):
        raise InvalidInput("Please provide a valid URL")
    url = value.strip()
    if not url:
        raise InvalidInput("Please provide a valid URL")
    if len(url) > max_length:
        raise InvalidInput("URL is too long")
    if urlsplit(url).scheme.lower() not in ALLOWED_SCHEMES:
        raise InvalidInput("Please provide a valid URL with http or https protocol")
    if not validators.url(url):
        raise InvalidInput("Please provide a valid URL")
    return url


def normalize_custom_code(value: str | None) -> str | None:
    if value is None:
        return None
    code = value.strip()
    if not is_valid_short_code(code):
        raise InvalidInput(
            "Custom code must be 4-20 characters of letters, numbers, hyphens, and underscores"
        )
    return code


def normalize_expiry(
    value: datetime.datetime | None, now: datetime.datetime | None = None
) -> datetime.datetime | None:
    if value is None:
        return None
    # Naive timestamps are taken as UTC.
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    if value <= (now or utcnow()):
        raise InvalidInput("Expiration date must be in the future")
    return value
