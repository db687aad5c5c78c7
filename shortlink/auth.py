"""Account registration and token authentication.

Authentication hands the rest of the service a trusted ``owner_id``; the
link services never re-check credentials.

Flow Diagram — Authenticate
===========================
::
    ┌─────────────┐
    │ token from  │── missing ──► Unauthorized
    │ cookie or   │
    │ Bearer      │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ JWT decode  │── invalid/expired ──► Unauthorized
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ session:tok │── absent ──► Unauthorized
    │ in Redis    │── cache down ──► ServiceUnavailable
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ account     │── missing/inactive ──► drop session, Unauthorized
    │ active?     │
    └──────┬──────┘
           ▼
        Account

Key Behaviours
===============
- Tokens are HS256 JWTs whose lifetime equals the Redis session TTL; logout
  deletes the session, which revokes the token before it expires.
- Password hashing runs in the threadpool so bcrypt never blocks the loop.
"""

import datetime
import logging
import uuid

import bcrypt
from fastapi.concurrency import run_in_threadpool
from jose import JWTError, jwt

from shortlink.cache import LinkCache
from shortlink.config import Settings
from shortlink.errors import AccountExists, CacheDegraded, DuplicateKey, ServiceUnavailable, Unauthorized
from shortlink.models import Account
from shortlink.repository import AccountRepository
from shortlink.validation import utcnow

__all__ = ["AuthService", "hash_password", "verify_password"]


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


class AuthService:
    """Registers accounts and issues/validates session-backed JWTs."""

    def __init__(
        self,
        accounts: AccountRepository,
        cache: LinkCache,
        settings: Settings,
        logger: logging.Logger | logging.LoggerAdapter,
    ):
        self._accounts = accounts
        self._cache = cache
        self._settings = settings
        self._logger = logger

    @classmethod
    def from_context(cls, ctx) -> "AuthService":
        return cls(AccountRepository(ctx.database), ctx.cache, ctx.settings, ctx.logger)

    async def register(self, username: str, email: str, password: str) -> Account:
        if await self._accounts.exists(username, email):
            raise AccountExists()
        password_hash = await run_in_threadpool(hash_password, password, self._settings.BCRYPT_ROUNDS)
        try:
            account = await self._accounts.insert(
                Account(username=username, email=email, password_hash=password_hash)
            )
        except DuplicateKey:
            raise AccountExists() from None
        self._logger.info(f"Account registered: {account.id}")
        return account

    async def login(self, email: str, password: str) -> tuple[str, Account]:
        account = await self._accounts.find_by_email(email)
        if account is None or not await run_in_threadpool(verify_password, password, account.password_hash):
            raise Unauthorized("Invalid email or password")
        if not account.is_active:
            raise Unauthorized("Account is inactive")

        token = self._issue_token(account)
        try:
            await self._cache.set_session(
                token,
                {"accountId": str(account.id), "username": account.username},
                self._settings.SESSION_TTL_SECONDS,
            )
        except CacheDegraded as exc:
            self._logger.error(f"Session store unavailable during login: {exc.detail}")
            raise ServiceUnavailable(detail=exc.detail) from exc
        self._logger.info(f"Account logged in: {account.id}")
        return token, account

    async def logout(self, token: str) -> None:
        try:
            await self._cache.delete_session(token)
        except CacheDegraded as exc:
            self._logger.warning(f"Session delete failed during logout: {exc.detail}")

    async def authenticate(self, token: str | None) -> Account:
        if not token:
            raise Unauthorized("Access denied. No token provided.")
        try:
            claims = jwt.decode(token, self._settings.JWT_SECRET, algorithms=[self._settings.JWT_ALGORITHM])
            account_id = uuid.UUID(claims["sub"])
        except (JWTError, KeyError, ValueError):
            raise Unauthorized("Invalid token.") from None

        try:
            session = await self._cache.get_session(token)
        except CacheDegraded as exc:
            self._logger.error(f"Session store unavailable during authentication: {exc.detail}")
            raise ServiceUnavailable(detail=exc.detail) from exc
        if session is None:
            raise Unauthorized("Session expired. Please login again.")

        account = await self._accounts.get(account_id)
        if account is None or not account.is_active:
            await self.logout(token)
            raise Unauthorized("User not found or inactive.")
        return account

    def _issue_token(self, account: Account) -> str:
        now = utcnow()
        claims = {
            "sub": str(account.id),
            "iat": now,
            "exp": now + datetime.timedelta(seconds=self._settings.SESSION_TTL_SECONDS),
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(claims, self._settings.JWT_SECRET, algorithm=self._settings.JWT_ALGORITHM)
