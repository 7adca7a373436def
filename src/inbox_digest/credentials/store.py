"""OAuth2 credential lifecycle for mailbox users.

Every mailbox call goes through ``CredentialStore.ensure_valid`` first. Tokens
are cached per user in a lock-guarded cell: concurrent callers for the same
user wait for a single in-flight refresh instead of issuing their own, and a
refreshed token is persisted before it is handed out.

The cache lives as long as the store. A cached token is trusted until it
expires; it is then re-read from storage before any refresh, so a token that
another process refreshed or replaced is picked up instead of refreshed again.
``invalidate`` drops a cached token early and ``forget`` drops the whole cell.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol

import structlog

from inbox_digest.exceptions import AuthError, ValidationError
from inbox_digest.gmail.protocol import MailboxProvider
from inbox_digest.models import RefreshedToken, UserToken

logger = structlog.get_logger()


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class TokenStorage(Protocol):
    """Token persistence keyed by user_id."""

    def get_token(self, user_id: str) -> UserToken | None: ...

    def save_token(self, token: UserToken) -> UserToken: ...

    def delete_token(self, user_id: str) -> None: ...


@dataclass
class _TokenCell:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    token: UserToken | None = None


class CredentialStore:
    """Owns storage, expiry checks and refresh of user tokens."""

    def __init__(
        self,
        provider: MailboxProvider,
        storage: TokenStorage,
        clock: Callable[[], int] | None = None,
    ) -> None:
        """Create a credential store.

        Args:
            provider: Mailbox provider performing the OAuth calls.
            storage: Token persistence.
            clock: Returns the current time in epoch milliseconds.
        """

        self._provider = provider
        self._storage = storage
        self._clock = clock or _epoch_ms
        self._cells: dict[str, _TokenCell] = {}

    async def ensure_valid(self, user_id: str) -> UserToken:
        """Return unexpired credentials for ``user_id``, refreshing if needed.

        Raises:
            ValidationError: If ``user_id`` is empty.
            AuthError: If no token is stored or the refresh fails.
        """

        if not user_id:
            raise ValidationError("user_id is required")

        cell = self._cells.setdefault(user_id, _TokenCell())
        async with cell.lock:
            now = self._clock()
            token = cell.token
            if token is None or token.is_expired(now):
                token = self._storage.get_token(user_id)
                cell.token = token
                if token is None:
                    logger.warning("credentials_missing", user_id=user_id)
                    raise AuthError("no credentials")

            if not token.is_expired(now):
                return token

            cell.token = await self._refresh(token, now)
            return cell.token

    def authorization_url(self) -> str:
        return self._provider.authorization_url()

    async def exchange_code(self, code: str) -> UserToken:
        """Exchange an OAuth authorization code and store the resulting token.

        The mailbox address doubles as the user id.

        Raises:
            ValidationError: If ``code`` is empty.
            AuthError: If the exchange fails.
        """

        if not code:
            raise ValidationError("authorization code is required")

        material = await self._provider.exchange_code(code)
        if not material.refresh_token:
            raise AuthError("authorization did not grant a refresh token")
        email = await self._provider.get_profile_email(material.access_token)

        token = UserToken(
            user_id=email,
            email=email,
            access_token=material.access_token,
            refresh_token=material.refresh_token,
            scope=material.scope or "",
            token_type=material.token_type or "Bearer",
            expiry_date=material.expiry_date,
        )

        cell = self._cells.setdefault(email, _TokenCell())
        async with cell.lock:
            cell.token = self._storage.save_token(token)

        logger.info("credentials_stored", user_id=email)
        return cell.token

    async def forget(self, user_id: str) -> None:
        """Delete the stored token of ``user_id`` (logout)."""

        if not user_id:
            raise ValidationError("user_id is required")

        cell = self._cells.setdefault(user_id, _TokenCell())
        async with cell.lock:
            self._storage.delete_token(user_id)
            cell.token = None
            self._cells.pop(user_id, None)
        logger.info("credentials_forgotten", user_id=user_id)

    async def invalidate(self, user_id: str) -> None:
        """Drop the cached token of ``user_id``; the next call re-reads storage."""

        cell = self._cells.get(user_id)
        if cell is None:
            return
        async with cell.lock:
            cell.token = None
        logger.debug("credentials_invalidated", user_id=user_id)

    async def _refresh(self, token: UserToken, now: int) -> UserToken:
        logger.info("credentials_refreshing", user_id=token.user_id, expiry_date=token.expiry_date)

        refreshed: RefreshedToken = await self._provider.refresh_token(token)
        if refreshed.expiry_date <= now:
            logger.error(
                "credentials_refresh_stale",
                user_id=token.user_id,
                expiry_date=refreshed.expiry_date,
            )
            raise AuthError(f"refresh for {token.user_id} returned an already expired token")

        updated = token.model_copy(
            update={
                "access_token": refreshed.access_token,
                "expiry_date": refreshed.expiry_date,
                "refresh_token": refreshed.refresh_token or token.refresh_token,
                "scope": refreshed.scope or token.scope,
                "token_type": refreshed.token_type or token.token_type,
            }
        )
        stored = self._storage.save_token(updated)
        logger.info("credentials_refreshed", user_id=token.user_id, expiry_date=stored.expiry_date)
        return stored
