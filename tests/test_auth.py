"""Unit tests for account registration and token authentication."""

import datetime
import uuid

import pytest
from jose import jwt

from shortlink.auth import AuthService, hash_password, verify_password
from shortlink.errors import AccountExists, CacheDegraded, DuplicateKey, ServiceUnavailable, Unauthorized


@pytest.fixture
def service(mock_accounts, mock_cache, settings, mock_logger) -> AuthService:
    return AuthService(mock_accounts, mock_cache, settings, mock_logger)


def test_password_hashing():
    password_hash = hash_password("Secret1", rounds=4)
    assert password_hash != "Secret1"
    assert verify_password("Secret1", password_hash)
    assert not verify_password("secret1", password_hash)


def test_verify_password_with_garbage_hash():
    assert verify_password("Secret1", "not-a-bcrypt-hash") is False


# ============================================================================
# REGISTRATION
# ============================================================================


@pytest.mark.asyncio
async def test_register_hashes_password(service, mock_accounts):
    account = await service.register("alice", "alice@example.com", "Secret1")

    assert account.username == "alice"
    assert account.password_hash != "Secret1"
    assert verify_password("Secret1", account.password_hash)
    mock_accounts.insert.assert_awaited_once()


@pytest.mark.asyncio
async def test_register_existing_account(service, mock_accounts):
    mock_accounts.exists.return_value = True
    with pytest.raises(AccountExists):
        await service.register("alice", "alice@example.com", "Secret1")
    mock_accounts.insert.assert_not_awaited()


@pytest.mark.asyncio
async def test_register_race_reports_existing_account(service, mock_accounts):
    mock_accounts.insert.side_effect = DuplicateKey()
    with pytest.raises(AccountExists):
        await service.register("alice", "alice@example.com", "Secret1")


# ============================================================================
# LOGIN / AUTHENTICATE
# ============================================================================


@pytest.fixture
def registered(account):
    account.password_hash = hash_password("Secret1", rounds=4)
    return account


@pytest.mark.asyncio
async def test_login_issues_token_and_session(service, mock_accounts, mock_cache, registered, settings):
    mock_accounts.find_by_email.return_value = registered

    token, account = await service.login("alice@example.com", "Secret1")

    assert account is registered
    claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    assert claims["sub"] == str(registered.id)
    mock_cache.set_session.assert_awaited_once()
    session_token, payload, ttl = mock_cache.set_session.await_args.args
    assert session_token == token
    assert payload["accountId"] == str(registered.id)
    assert ttl == settings.SESSION_TTL_SECONDS


@pytest.mark.asyncio
async def test_login_wrong_password(service, mock_accounts, registered):
    mock_accounts.find_by_email.return_value = registered
    with pytest.raises(Unauthorized, match="Invalid email or password"):
        await service.login("alice@example.com", "Wrong1")


@pytest.mark.asyncio
async def test_login_unknown_email(service):
    with pytest.raises(Unauthorized, match="Invalid email or password"):
        await service.login("nobody@example.com", "Secret1")


@pytest.mark.asyncio
async def test_login_inactive_account(service, mock_accounts, registered):
    registered.is_active = False
    mock_accounts.find_by_email.return_value = registered
    with pytest.raises(Unauthorized, match="inactive"):
        await service.login("alice@example.com", "Secret1")


@pytest.mark.asyncio
async def test_login_without_session_store(service, mock_accounts, mock_cache, registered):
    mock_accounts.find_by_email.return_value = registered
    mock_cache.set_session.side_effect = CacheDegraded(detail="set_session: down")
    with pytest.raises(ServiceUnavailable):
        await service.login("alice@example.com", "Secret1")


@pytest.mark.asyncio
async def test_authenticate_round_trip(service, mock_accounts, mock_cache, registered):
    mock_accounts.find_by_email.return_value = registered
    mock_accounts.get.return_value = registered
    token, _ = await service.login("alice@example.com", "Secret1")
    mock_cache.get_session.return_value = {"accountId": str(registered.id)}

    assert await service.authenticate(token) is registered
    mock_accounts.get.assert_awaited_once_with(registered.id)


@pytest.mark.asyncio
async def test_authenticate_without_token(service):
    with pytest.raises(Unauthorized, match="No token provided"):
        await service.authenticate(None)


@pytest.mark.asyncio
async def test_authenticate_rejects_forged_token(service):
    forged = jwt.encode({"sub": str(uuid.uuid4())}, "wrong-secret", algorithm="HS256")
    with pytest.raises(Unauthorized, match="Invalid token"):
        await service.authenticate(forged)


@pytest.mark.asyncio
async def test_authenticate_rejects_expired_token(service, settings):
    past = datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(hours=1)
    expired = jwt.encode({"sub": str(uuid.uuid4()), "exp": past}, settings.JWT_SECRET, algorithm="HS256")
    with pytest.raises(Unauthorized, match="Invalid token"):
        await service.authenticate(expired)


@pytest.mark.asyncio
async def test_authenticate_after_logout(service, mock_cache, settings):
    token = jwt.encode({"sub": str(uuid.uuid4())}, settings.JWT_SECRET, algorithm="HS256")
    mock_cache.get_session.return_value = None
    with pytest.raises(Unauthorized, match="Session expired"):
        await service.authenticate(token)


@pytest.mark.asyncio
async def test_authenticate_session_store_down(service, mock_cache, settings):
    token = jwt.encode({"sub": str(uuid.uuid4())}, settings.JWT_SECRET, algorithm="HS256")
    mock_cache.get_session.side_effect = CacheDegraded(detail="get_session: down")
    with pytest.raises(ServiceUnavailable):
        await service.authenticate(token)


@pytest.mark.asyncio
async def test_authenticate_inactive_account_drops_session(service, mock_accounts, mock_cache, registered, settings):
    registered.is_active = False
    mock_accounts.get.return_value = registered
    mock_cache.get_session.return_value = {"accountId": str(registered.id)}
    token = jwt.encode({"sub": str(registered.id)}, settings.JWT_SECRET, algorithm="HS256")

    with pytest.raises(Unauthorized, match="not found or inactive"):
        await service.authenticate(token)
    mock_cache.delete_session.assert_awaited_once_with(token)


@pytest.mark.asyncio
async def test_logout_tolerates_cache_outage(service, mock_cache):
    mock_cache.delete_session.side_effect = CacheDegraded(detail="delete_session: down")
    await service.logout("token")
