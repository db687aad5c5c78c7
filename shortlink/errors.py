"""Exception hierarchy for the shortlink service.

Every exception raised by the service layer derives from ``ShortLinkError`` and
carries exactly one ``ErrorCode`` tag. The HTTP boundary (``shortlink.main``)
maps the tag to a status code and a ``{"success": false, ...}`` body, so no
call site has to inspect exception names or messages.

Error Taxonomy
==============
::
    ShortLinkError
    ├─ InvalidInput          (invalid_input, 400)
    ├─ Unauthorized          (unauthorized, 401)
    ├─ NotFound              (not_found, 404)
    ├─ CodeTaken             (code_taken, 409)
    │   └─ DuplicateKey      raised by the store on a unique-index violation
    ├─ AccountExists         (account_exists, 409)
    ├─ RateLimited           (rate_limited, 429)
    ├─ GenerationExhausted   (generation_exhausted, 503)
    ├─ ServiceUnavailable    (service_unavailable, 503)
    └─ CacheDegraded         (cache_degraded, 503 if it ever escapes)

Key Behaviours
===============
- ``CacheDegraded`` is a mode rather than a caller-facing error; services
  catch it and continue without the cache, except where the cache is the
  only source of truth (guest links, sessions).
- ``detail`` holds internal information that is only exposed outside
  production deployments.
"""

from shortlink.enums import ErrorCode

__all__ = [
    "ShortLinkError",
    "InvalidInput",
    "Unauthorized",
    "NotFound",
    "CodeTaken",
    "DuplicateKey",
    "AccountExists",
    "RateLimited",
    "GenerationExhausted",
    "ServiceUnavailable",
    "CacheDegraded",
]


class ShortLinkError(Exception):
    code: ErrorCode = ErrorCode.SERVICE_UNAVAILABLE
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, *, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return self.code.status_code


class InvalidInput(ShortLinkError):
    code = ErrorCode.INVALID_INPUT
    default_message = "Invalid input"


class Unauthorized(ShortLinkError):
    code = ErrorCode.UNAUTHORIZED
    default_message = "Access denied"


class NotFound(ShortLinkError):
    code = ErrorCode.NOT_FOUND
    default_message = "URL not found"


class CodeTaken(ShortLinkError):
    code = ErrorCode.CODE_TAKEN
    default_message = "Custom code is already taken"


class DuplicateKey(CodeTaken):
    default_message = "Duplicate key"


class AccountExists(ShortLinkError):
    code = ErrorCode.ACCOUNT_EXISTS
    default_message = "An account with this username or email already exists"


class RateLimited(ShortLinkError):
    code = ErrorCode.RATE_LIMITED
    default_message = "Too many requests. Please try again later."

    def __init__(self, retry_after: int, message: str | None = None) -> None:
        self.retry_after = retry_after
        super().__init__(message)


class GenerationExhausted(ShortLinkError):
    code = ErrorCode.GENERATION_EXHAUSTED
    default_message = "Unable to generate a unique short code, please retry"


class ServiceUnavailable(ShortLinkError):
    code = ErrorCode.SERVICE_UNAVAILABLE
    default_message = "Service temporarily unavailable"


class CacheDegraded(ShortLinkError):
    code = ErrorCode.CACHE_DEGRADED
    default_message = "Cache unavailable"
