"""Shared enums for the shortlink service.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "RequestStatus", "CacheStatus", "ErrorCode"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"

    @classmethod
    def from_str(cls, value: str) -> "HealthStatus":
        """Safely parse from string, falling back to UNHEALTHY for unknown values."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNHEALTHY


class RequestStatus(StrEnum):
    """Request status values for metrics and logging."""

    SUCCESS = "success"
    EXISTING = "existing"
    VALIDATION_ERROR = "validation_error"
    CONFLICT = "conflict"
    ERROR = "error"
    NOT_FOUND = "not_found"

    @classmethod
    def from_str(cls, value: str) -> "RequestStatus":
        """Safely parse from string, falling back to ERROR for unknown values."""
        try:
            return cls(value)
        except ValueError:
            return cls.ERROR


class CacheStatus(StrEnum):
    """Cache status values for metrics."""

    HIT = "true"
    MISS = "false"
    DEGRADED = "degraded"

    @classmethod
    def from_str(cls, value: str) -> "CacheStatus":
        """Safely parse from string, falling back to MISS for unknown values."""
        try:
            return cls(value)
        except ValueError:
            return cls.MISS


class ErrorCode(StrEnum):
    """Closed set of error tags surfaced at the HTTP boundary."""

    INVALID_INPUT = "invalid_input"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    CODE_TAKEN = "code_taken"
    ACCOUNT_EXISTS = "account_exists"
    RATE_LIMITED = "rate_limited"
    GENERATION_EXHAUSTED = "generation_exhausted"
    SERVICE_UNAVAILABLE = "service_unavailable"
    CACHE_DEGRADED = "cache_degraded"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES: dict[ErrorCode, int] = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CODE_TAKEN: 409,
    ErrorCode.ACCOUNT_EXISTS: 409,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.GENERATION_EXHAUSTED: 503,
    ErrorCode.SERVICE_UNAVAILABLE: 503,
    ErrorCode.CACHE_DEGRADED: 503,
}
