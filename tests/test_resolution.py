"""Unit tests for cache-first short code resolution."""

import datetime

import pytest

from shortlink.errors import CacheDegraded, NotFound, ServiceUnavailable
from shortlink.resolution import ResolutionService


@pytest.fixture
def service(mock_links, mock_cache, mock_clicks, settings, mock_logger) -> ResolutionService:
    return ResolutionService(mock_links, mock_cache, mock_clicks, settings, mock_logger)


@pytest.mark.asyncio
async def test_cache_hit_skips_store(service, mock_links, mock_cache, mock_clicks):
    mock_cache.get_url.return_value = "https://example.com"

    assert await service.resolve("abc12345") == "https://example.com"

    mock_links.find_resolvable.assert_not_awaited()
    mock_clicks.record.assert_called_once_with("abc12345")


@pytest.mark.asyncio
async def test_cache_miss_reads_store_and_populates_cache(service, mock_links, mock_cache, mock_clicks, make_link, settings):
    mock_links.find_resolvable.return_value = make_link("abc12345", "https://example.com/x")

    assert await service.resolve("abc12345") == "https://example.com/x"

    mock_cache.set_url.assert_awaited_once_with("abc12345", "https://example.com/x", settings.LINK_CACHE_TTL_SECONDS)
    mock_clicks.record.assert_called_once_with("abc12345")


@pytest.mark.asyncio
async def test_populated_ttl_never_outlives_expiry(service, mock_links, mock_cache, make_link):
    expires_at = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(minutes=5)
    mock_links.find_resolvable.return_value = make_link("abc12345", expires_at=expires_at)

    await service.resolve("abc12345")

    ttl = mock_cache.set_url.await_args.args[2]
    assert 0 < ttl <= 300


@pytest.mark.asyncio
async def test_unknown_code_is_not_found(service, mock_clicks):
    with pytest.raises(NotFound):
        await service.resolve("missing1")
    mock_clicks.record.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("code", ["abc", "bad code", "x" * 21, "dot.txt"])
async def test_malformed_code_is_not_found_without_lookups(service, mock_links, mock_cache, code):
    with pytest.raises(NotFound):
        await service.resolve(code)
    mock_cache.get_url.assert_not_awaited()
    mock_links.find_resolvable.assert_not_awaited()


@pytest.mark.asyncio
async def test_degraded_cache_falls_back_to_store(service, mock_links, mock_cache, mock_clicks, make_link, mock_logger):
    mock_cache.get_url.side_effect = CacheDegraded(detail="get_url: down")
    mock_links.find_resolvable.return_value = make_link("abc12345", "https://example.com/y")

    assert await service.resolve("abc12345") == "https://example.com/y"

    mock_cache.set_url.assert_not_awaited()
    mock_logger.warning.assert_called()
    mock_clicks.record.assert_called_once_with("abc12345")


@pytest.mark.asyncio
async def test_cache_populate_failure_still_resolves(service, mock_links, mock_cache, make_link):
    mock_cache.set_url.side_effect = CacheDegraded(detail="set_url: down")
    mock_links.find_resolvable.return_value = make_link("abc12345", "https://example.com/z")

    assert await service.resolve("abc12345") == "https://example.com/z"


@pytest.mark.asyncio
async def test_store_failure_propagates(service, mock_links, mock_clicks):
    mock_links.find_resolvable.side_effect = ServiceUnavailable(detail="db down")
    with pytest.raises(ServiceUnavailable):
        await service.resolve("abc12345")
    mock_clicks.record.assert_not_called()
