"""Fixed-window rate limiting per client IP, backed by Redis.

Limits fail open: if Redis is unreachable the request is allowed through.
"""

from fastapi import Depends, Request

from shortlink.dependencies import AppResources, get_resources
from shortlink.errors import CacheDegraded, RateLimited

__all__ = ["RateLimiter", "auth_rate_limit", "url_rate_limit", "general_rate_limit"]


class RateLimiter:
    """FastAPI dependency counting requests per ``scope`` and client IP."""

    def __init__(self, scope: str, max_setting: str, window_setting: str):
        self.scope = scope
        self._max_setting = max_setting
        self._window_setting = window_setting

    async def __call__(self, request: Request, resources: AppResources = Depends(get_resources)) -> None:
        max_requests = getattr(resources.settings, self._max_setting)
        window = getattr(resources.settings, self._window_setting)
        identifier = request.client.host if request.client else "unknown"

        try:
            allowed = await resources.cache.hit_rate_limit(f"{self.scope}:{identifier}", max_requests, window)
        except CacheDegraded as exc:
            resources.logger.warning(f"Rate limiter unavailable, allowing request: {exc.detail}")
            return
        if not allowed:
            resources.logger.warning(f"Rate limit exceeded for {identifier} on {self.scope}")
            raise RateLimited(retry_after=window)


auth_rate_limit = RateLimiter("auth", "RATE_LIMIT_AUTH_MAX", "RATE_LIMIT_AUTH_WINDOW_SECONDS")
url_rate_limit = RateLimiter("url", "RATE_LIMIT_URL_MAX", "RATE_LIMIT_URL_WINDOW_SECONDS")
general_rate_limit = RateLimiter("general", "RATE_LIMIT_GENERAL_MAX", "RATE_LIMIT_GENERAL_WINDOW_SECONDS")
