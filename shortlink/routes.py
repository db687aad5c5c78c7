"""FastAPI route definitions for the shortlink REST API.

This module provides all HTTP endpoints with proper dependency injection,
error handling, and response serialization. Services raise ``ShortLinkError``
subclasses; the handlers in ``shortlink.main`` turn them into error bodies.

API Endpoint Overview
=====================
::
    GET    /health                      HealthResponse (200)
    POST   /api/auth/register           AccountData (201) or 400/409
    POST   /api/auth/login              TokenData (200) + authToken cookie, or 401
    POST   /api/auth/logout             (200)
    GET    /api/auth/profile            AccountData (200) or 401
    POST   /api/url/guest-shorten       GuestLinkData (201) or 400/503
    POST   /api/url/shorten             LinkData (201 new, 200 existing) or 400/409/503
    GET    /api/url/my-urls             LinkPageData (200)
    GET    /api/url/stats/:code         LinkData (200) or 404
    DELETE /api/url/:code               (200) or 404
    GET    /:code                       307 Redirect or 404

Request Flow Diagram
====================
::
    ┌─────────────┐
    │  HTTP       │
    │  Request    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Rate limit  │ (fail open)
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Validate &  │
    │ Parse       │
    │ (Pydantic)  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Authenticate│ (owned-link routes)
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Call Service│
    │ Layer       │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ ApiResponse │
    │ envelope    │
    └─────────────┘

Key Behaviours
===============
- The redirect route is registered last so it never shadows API paths.
- 307 redirects keep browsers from caching the mapping, so every visit is counted.
"""

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import RedirectResponse

from shortlink.auth import AuthService
from shortlink.dependencies import (
    AppResources,
    RequestContext,
    get_auth_service,
    get_bearer_token,
    get_current_account,
    get_management_service,
    get_request_context,
    get_resolution_service,
    get_resources,
    get_shortening_service,
)
from shortlink.enums import HealthStatus
from shortlink.management import LinkManagementService
from shortlink.models import Account
from shortlink.rate_limit import auth_rate_limit, general_rate_limit, url_rate_limit
from shortlink.resolution import ResolutionService
from shortlink.schemas import (
    AccountData,
    ApiResponse,
    GuestLinkData,
    GuestShortenRequest,
    HealthResponse,
    LinkData,
    LinkPageData,
    LoginRequest,
    PaginationData,
    RegisterRequest,
    ShortenRequest,
    TokenData,
)
from shortlink.shortening import ShorteningService
from shortlink.validation import utcnow

__all__ = ["health_router", "auth_router", "url_router", "redirect_router"]

health_router = APIRouter(tags=["health"])
auth_router = APIRouter(prefix="/api/auth", tags=["auth"], dependencies=[Depends(auth_rate_limit)])
url_router = APIRouter(prefix="/api/url", tags=["urls"])
redirect_router = APIRouter(tags=["redirect"])


# ============================================================================
# HEALTH
# ============================================================================


@health_router.get("/health", response_model=HealthResponse)
async def health_check(response: Response, resources: AppResources = Depends(get_resources)) -> HealthResponse:
    database, cache = await resources.health()
    overall = (
        HealthStatus.HEALTHY
        if database is HealthStatus.HEALTHY and cache is HealthStatus.HEALTHY
        else HealthStatus.UNHEALTHY
    )
    # Cache loss degrades the service but does not take it down.
    if database is HealthStatus.UNHEALTHY:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    resources.logger.info(f"Health check completed: {overall.value}")
    return HealthResponse(status=overall, database=database, cache=cache)


# ============================================================================
# AUTH
# ============================================================================


@auth_router.post("/register", response_model=ApiResponse[AccountData], status_code=201)
async def register(payload: RegisterRequest, auth: AuthService = Depends(get_auth_service)):
    account = await auth.register(payload.username, payload.email, payload.password)
    return ApiResponse[AccountData](message="Account created successfully", data=AccountData.from_account(account))


@auth_router.post("/login", response_model=ApiResponse[TokenData])
async def login(
    payload: LoginRequest,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    auth: AuthService = Depends(get_auth_service),
):
    token, account = await auth.login(payload.email, payload.password)
    response.set_cookie(
        ctx.settings.AUTH_COOKIE_NAME,
        token,
        max_age=ctx.settings.SESSION_TTL_SECONDS,
        httponly=True,
        secure=ctx.settings.is_production,
        samesite="lax",
    )
    data = TokenData(
        token=token,
        expires_in=ctx.settings.SESSION_TTL_SECONDS,
        account=AccountData.from_account(account),
    )
    return ApiResponse[TokenData](message="Login successful", data=data)


@auth_router.post("/logout", response_model=ApiResponse[None])
async def logout(
    response: Response,
    token: str | None = Depends(get_bearer_token),
    account: Account = Depends(get_current_account),
    ctx: RequestContext = Depends(get_request_context),
    auth: AuthService = Depends(get_auth_service),
):
    await auth.logout(token)
    response.delete_cookie(ctx.settings.AUTH_COOKIE_NAME)
    ctx.logger.info(f"Account logged out: {account.id}")
    return ApiResponse[None](message="Logout successful")


@auth_router.get("/profile", response_model=ApiResponse[AccountData])
async def profile(account: Account = Depends(get_current_account)):
    return ApiResponse[AccountData](data=AccountData.from_account(account))


# ============================================================================
# URLS
# ============================================================================


@url_router.post(
    "/guest-shorten",
    response_model=ApiResponse[GuestLinkData],
    status_code=201,
    dependencies=[Depends(general_rate_limit)],
)
async def guest_shorten(
    payload: GuestShortenRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: ShorteningService = Depends(get_shortening_service),
):
    ctx.add_tag("guest_creation")
    guest = await service.create_guest_link(payload.long_url)
    hours = guest.expires_in // 3600
    data = GuestLinkData(
        long_url=guest.long_url,
        short_code=guest.short_code,
        short_url=guest.short_url,
        expires_in=f"{hours} hours" if hours != 1 else "1 hour",
    )
    return ApiResponse[GuestLinkData](message="URL shortened successfully (temporary)", data=data)


@url_router.post(
    "/shorten",
    response_model=ApiResponse[LinkData],
    status_code=201,
    dependencies=[Depends(url_rate_limit)],
)
async def shorten(
    payload: ShortenRequest,
    response: Response,
    account: Account = Depends(get_current_account),
    ctx: RequestContext = Depends(get_request_context),
    service: ShorteningService = Depends(get_shortening_service),
):
    ctx.add_tag("url_creation")
    ctx.logger.info(f"URL shortening requested by {account.id}: {payload.long_url}")
    link, created = await service.create_link(account.id, payload.long_url, payload.custom_code, payload.expires_at)
    data = LinkData.from_link(link, ctx.settings.BASE_URL, utcnow())
    if not created:
        response.status_code = status.HTTP_200_OK
        return ApiResponse[LinkData](message="URL already exists", data=data)
    ctx.logger.info(f"URL shortened successfully: {link.short_code} in {ctx.get_duration():.1f}ms")
    return ApiResponse[LinkData](message="URL shortened successfully", data=data)


@url_router.get("/my-urls", response_model=ApiResponse[LinkPageData])
async def my_urls(
    page: int | None = Query(None),
    limit: int | None = Query(None),
    account: Account = Depends(get_current_account),
    ctx: RequestContext = Depends(get_request_context),
    service: LinkManagementService = Depends(get_management_service),
):
    result = await service.list_links(account.id, page, limit)
    now = utcnow()
    data = LinkPageData(
        urls=[
            LinkData.from_link(item.link, ctx.settings.BASE_URL, now, total_clicks=item.total_clicks)
            for item in result.items
        ],
        pagination=PaginationData(
            current=result.page,
            pages=result.pages,
            total=result.total,
            limit=result.limit,
            has_next=result.has_next,
            has_prev=result.has_prev,
        ),
    )
    return ApiResponse[LinkPageData](data=data)


@url_router.get("/stats/{short_code}", response_model=ApiResponse[LinkData])
async def link_stats(
    short_code: str,
    account: Account = Depends(get_current_account),
    ctx: RequestContext = Depends(get_request_context),
    service: LinkManagementService = Depends(get_management_service),
):
    snapshot = await service.get_link_stats(account.id, short_code)
    data = LinkData.from_link(snapshot.link, ctx.settings.BASE_URL, utcnow(), total_clicks=snapshot.total_clicks)
    return ApiResponse[LinkData](data=data)


@url_router.delete("/{short_code}", response_model=ApiResponse[None])
async def delete_link(
    short_code: str,
    account: Account = Depends(get_current_account),
    service: LinkManagementService = Depends(get_management_service),
):
    await service.delete_link(account.id, short_code)
    return ApiResponse[None](message="URL deleted successfully")


# ============================================================================
# REDIRECT
# ============================================================================


@redirect_router.get("/{short_code}", dependencies=[Depends(general_rate_limit)])
async def redirect_to_url(
    short_code: str,
    ctx: RequestContext = Depends(get_request_context),
    service: ResolutionService = Depends(get_resolution_service),
) -> RedirectResponse:
    ctx.add_tag("redirect")
    long_url = await service.resolve(short_code)
    ctx.logger.debug(f"Redirect {short_code} -> {long_url} in {ctx.get_duration():.1f}ms")
    return RedirectResponse(url=long_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
