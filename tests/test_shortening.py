"""Unit tests for guest and owned link creation."""

import datetime
from unittest.mock import MagicMock, patch

import pytest

from shortlink.errors import (
    CacheDegraded,
    CodeTaken,
    DuplicateKey,
    GenerationExhausted,
    InvalidInput,
    ServiceUnavailable,
)
from shortlink.shortening import ShorteningService, cache_ttl_for

NOW = datetime.datetime(2024, 1, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)


@pytest.fixture
def service(mock_links, mock_cache, settings, mock_logger) -> ShorteningService:
    return ShorteningService(mock_links, mock_cache, settings, mock_logger)


def test_from_context(mock_cache, settings, mock_logger):
    ctx = MagicMock()
    ctx.cache = mock_cache
    ctx.settings = settings
    ctx.logger = mock_logger
    service = ShorteningService.from_context(ctx)
    assert isinstance(service, ShorteningService)


# ============================================================================
# CACHE TTL
# ============================================================================


def test_cache_ttl_without_expiry(make_link):
    assert cache_ttl_for(make_link(), 3600, NOW) == 3600


def test_cache_ttl_capped_by_expiry(make_link):
    link = make_link(expires_at=NOW + datetime.timedelta(minutes=10))
    assert cache_ttl_for(link, 3600, NOW) == 600


def test_cache_ttl_for_expired_link_is_zero(make_link):
    link = make_link(expires_at=NOW - datetime.timedelta(seconds=1))
    assert cache_ttl_for(link, 3600, NOW) == 0


# ============================================================================
# GUEST LINKS
# ============================================================================


class TestGuestLinks:
    @pytest.mark.asyncio
    async def test_guest_link_lives_only_in_cache(self, service, mock_links, mock_cache, settings):
        guest = await service.create_guest_link("https://example.com/docs")

        assert len(guest.short_code) == 8
        assert guest.long_url == "https://example.com/docs"
        assert guest.short_url == f"http://sho.rt/{guest.short_code}"
        assert guest.expires_in == settings.GUEST_LINK_TTL_SECONDS
        mock_cache.reserve_url.assert_awaited_once_with(
            guest.short_code, "https://example.com/docs", settings.GUEST_LINK_TTL_SECONDS
        )
        assert mock_links.method_calls == []

    @pytest.mark.asyncio
    async def test_guest_link_retries_taken_codes(self, service, mock_cache):
        mock_cache.reserve_url.side_effect = [False, False, True]
        with patch("shortlink.shortening.generate_short_code", side_effect=["aaaa1111", "bbbb2222", "cccc3333"]):
            guest = await service.create_guest_link("https://example.com")
        assert guest.short_code == "cccc3333"
        assert mock_cache.reserve_url.await_count == 3

    @pytest.mark.asyncio
    async def test_guest_link_gives_up_after_attempt_limit(self, service, mock_cache, settings):
        mock_cache.reserve_url.return_value = False
        with pytest.raises(GenerationExhausted):
            await service.create_guest_link("https://example.com")
        assert mock_cache.reserve_url.await_count == settings.CODE_GENERATION_ATTEMPTS

    @pytest.mark.asyncio
    async def test_guest_link_requires_cache(self, service, mock_cache):
        mock_cache.reserve_url.side_effect = CacheDegraded(detail="reserve_url: down")
        with pytest.raises(ServiceUnavailable):
            await service.create_guest_link("https://example.com")

    @pytest.mark.asyncio
    async def test_guest_link_rejects_bad_url(self, service, mock_cache):
        with pytest.raises(InvalidInput):
            await service.create_guest_link("ftp://bad.com")
        mock_cache.reserve_url.assert_not_awaited()


# ============================================================================
# OWNED LINKS
# ============================================================================


class TestOwnedLinks:
    @pytest.mark.asyncio
    async def test_create_generated_link(self, service, mock_links, mock_cache, owner_id, settings):
        link, created = await service.create_link(owner_id, "  https://example.com/a  ")

        assert created is True
        assert link.long_url == "https://example.com/a"
        assert link.owner_id == owner_id
        assert link.custom_code is None
        assert len(link.short_code) == settings.SHORT_CODE_LENGTH
        mock_links.insert.assert_awaited_once()
        mock_cache.set_url.assert_awaited_once_with(
            link.short_code, "https://example.com/a", settings.LINK_CACHE_TTL_SECONDS
        )

    @pytest.mark.asyncio
    async def test_create_is_idempotent_per_owner_and_url(self, service, mock_links, owner_id, make_link):
        existing = make_link("exist123", "https://example.com/a")
        mock_links.find_active_for_owner.return_value = existing

        link, created = await service.create_link(owner_id, "https://example.com/a", custom_code="other")

        assert created is False
        assert link is existing
        mock_links.insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_create_custom_code(self, service, mock_links, owner_id):
        link, created = await service.create_link(owner_id, "https://example.com/b", custom_code="promo")

        assert created is True
        assert link.short_code == "promo"
        assert link.custom_code == "promo"
        mock_links.code_in_use.assert_awaited_once_with("promo")

    @pytest.mark.asyncio
    async def test_custom_code_taken(self, service, mock_links, owner_id):
        mock_links.code_in_use.return_value = True
        with pytest.raises(CodeTaken):
            await service.create_link(owner_id, "https://example.com/b", custom_code="promo")
        mock_links.insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_custom_code_lost_race(self, service, mock_links, owner_id):
        mock_links.insert.side_effect = DuplicateKey()
        with pytest.raises(CodeTaken):
            await service.create_link(owner_id, "https://example.com/b", custom_code="promo")

    @pytest.mark.asyncio
    async def test_same_owner_race_returns_winner(self, service, mock_links, owner_id, make_link):
        winner = make_link("winner12", "https://example.com/b")
        mock_links.find_active_for_owner.side_effect = [None, winner]
        mock_links.insert.side_effect = DuplicateKey()

        link, created = await service.create_link(owner_id, "https://example.com/b")

        assert created is False
        assert link is winner

    @pytest.mark.asyncio
    async def test_generated_code_collisions_retry(self, service, mock_links, owner_id):
        mock_links.code_in_use.side_effect = [True, True, False]
        with patch("shortlink.shortening.generate_short_code", side_effect=["aaaa1111", "bbbb2222", "cccc3333"]):
            link, created = await service.create_link(owner_id, "https://example.com/c")
        assert created is True
        assert link.short_code == "cccc3333"

    @pytest.mark.asyncio
    async def test_generation_exhausted_after_attempt_limit(self, service, mock_links, owner_id, settings):
        mock_links.code_in_use.return_value = True
        with pytest.raises(GenerationExhausted):
            await service.create_link(owner_id, "https://example.com/c")
        assert mock_links.code_in_use.await_count == settings.CODE_GENERATION_ATTEMPTS
        mock_links.insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_url_never_touches_store(self, service, mock_links, owner_id):
        with pytest.raises(InvalidInput):
            await service.create_link(owner_id, "ftp://bad.com")
        mock_links.find_active_for_owner.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_past_expiry_rejected(self, service, owner_id):
        with pytest.raises(InvalidInput):
            await service.create_link(
                owner_id, "https://example.com", expires_at=datetime.datetime(2000, 1, 1, tzinfo=datetime.timezone.utc)
            )

    @pytest.mark.asyncio
    async def test_cache_write_failure_does_not_fail_creation(self, service, mock_cache, owner_id, mock_logger):
        mock_cache.set_url.side_effect = CacheDegraded(detail="set_url: down")
        link, created = await service.create_link(owner_id, "https://example.com/d")
        assert created is True
        mock_logger.warning.assert_called()

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, service, mock_links, owner_id):
        mock_links.find_active_for_owner.side_effect = ServiceUnavailable(detail="db down")
        with pytest.raises(ServiceUnavailable):
            await service.create_link(owner_id, "https://example.com/e")
