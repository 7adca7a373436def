"""Mailbox provider protocol.

The core talks to the mailbox only through this interface; ``GmailClient`` is
the production implementation and tests substitute in-memory fakes.
"""

from __future__ import annotations

from typing import Any, Protocol

from inbox_digest.models import RefreshedToken, UserToken


class MailboxProvider(Protocol):
    """Abstract interface for reading threads, sending mail and OAuth calls."""

    async def list_thread_ids(self, token: UserToken, limit: int, query: str | None) -> list[str]:
        """Return up to ``limit`` thread IDs matching ``query``."""
        ...

    async def get_thread(self, token: UserToken, thread_id: str) -> dict[str, Any]:
        """Return the raw thread with full message payloads."""
        ...

    async def list_message_ids(self, token: UserToken, limit: int, query: str | None) -> list[str]:
        """Return up to ``limit`` message IDs matching ``query``."""
        ...

    async def get_message(self, token: UserToken, message_id: str) -> dict[str, Any]:
        """Return one raw message with its full payload."""
        ...

    async def send_raw(self, token: UserToken, raw: str, thread_id: str) -> dict[str, Any]:
        """Send a base64url encoded RFC 822 message into ``thread_id``."""
        ...

    def authorization_url(self) -> str:
        """Return the consent URL a user visits to connect a mailbox."""
        ...

    async def exchange_code(self, code: str) -> RefreshedToken:
        """Exchange an authorization code for token material."""
        ...

    async def refresh_token(self, token: UserToken) -> RefreshedToken:
        """Obtain a new access token using the stored refresh token."""
        ...

    async def get_profile_email(self, access_token: str) -> str:
        """Return the mailbox address the access token belongs to."""
        ...
