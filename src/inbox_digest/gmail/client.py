"""Gmail API client implementation.

This module provides a client for interacting with the Gmail API on behalf of
many users, plus the Google OAuth2 calls used by the credential store.

Notes:
    The Google API client is synchronous. This project wraps those calls using
    `asyncio.to_thread` so the rest of the codebase can remain async-friendly,
    and bounds every call with the configured request deadline.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

import structlog

from inbox_digest.config import Settings
from inbox_digest.exceptions import (
    AuthError,
    ConfigurationError,
    GmailAPIError,
    InboxDigestError,
    NotFoundError,
)
from inbox_digest.models import RefreshedToken, UserToken

logger = structlog.get_logger()

T = TypeVar("T")

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

_PAGE_SIZE = 500


def _expiry_ms(expiry: datetime | None) -> int:
    if expiry is None:
        # google-auth leaves expiry unset when the response has no expires_in.
        return int(datetime.now(timezone.utc).timestamp() * 1000) + 3600 * 1000
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    return int(expiry.timestamp() * 1000)


class GmailClient:
    """Gmail API client for thread and send operations.

    Each call is made with the access token of the user it is issued for; the
    client never refreshes tokens on its own.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize Gmail client.

        Args:
            settings: Application settings. If None, uses default settings.
        """
        from inbox_digest.config import get_settings

        self.settings = settings or get_settings()
        logger.info("gmail_client_initialized")

    # OAuth

    def authorization_url(self) -> str:
        """Return the Google consent URL requesting offline access."""

        flow = self._build_flow()
        url, _state = flow.authorization_url(access_type="offline", prompt="consent")
        return url

    async def exchange_code(self, code: str) -> RefreshedToken:
        """Exchange an authorization code for tokens.

        Raises:
            AuthError: If Google rejects the code.
        """

        logger.info("gmail_code_exchange_started")
        try:
            return await self._with_deadline(self._exchange_code_sync, code)
        except asyncio.TimeoutError as exc:
            raise AuthError("authorization code exchange timed out") from exc
        except InboxDigestError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("gmail_code_exchange_failed", error=str(exc))
            raise AuthError(str(exc)) from exc

    async def refresh_token(self, token: UserToken) -> RefreshedToken:
        """Refresh the access token of ``token``.

        Raises:
            AuthError: If the grant was revoked or the refresh call failed.
        """

        logger.info("gmail_token_refresh_started", user_id=token.user_id)
        try:
            return await self._with_deadline(self._refresh_sync, token)
        except asyncio.TimeoutError as exc:
            raise AuthError(f"token refresh timed out for {token.user_id}") from exc
        except InboxDigestError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("gmail_token_refresh_failed", user_id=token.user_id, error=str(exc))
            raise AuthError(str(exc)) from exc

    async def get_profile_email(self, access_token: str) -> str:
        """Return the address of the mailbox ``access_token`` grants access to."""

        response = await self._call(
            "get_profile",
            lambda: self._service(access_token).users().getProfile(userId="me").execute(),
        )
        email = response.get("emailAddress")
        if not isinstance(email, str) or not email:
            raise GmailAPIError("Gmail profile response has no emailAddress")
        return email

    # Mailbox

    async def list_thread_ids(self, token: UserToken, limit: int, query: str | None) -> list[str]:
        """List thread IDs, newest first as ordered by Gmail.

        Args:
            token: Valid credentials of the mailbox owner.
            limit: Maximum number of thread IDs to return.
            query: Gmail search query string.

        Returns:
            Thread IDs, at most ``limit`` of them.

        Raises:
            GmailAPIError: If the API request fails.
        """

        logger.info("listing_threads", user_id=token.user_id, limit=limit, query=query)
        threads = await self._call(
            "list_threads",
            self._list_ids_sync,
            "threads",
            token.access_token,
            limit,
            query,
            user_id=token.user_id,
        )
        return [t["id"] for t in threads if isinstance(t.get("id"), str) and t["id"]]

    async def get_thread(self, token: UserToken, thread_id: str) -> dict[str, Any]:
        """Get a thread with full message payloads.

        Raises:
            NotFoundError: If Gmail does not know the thread.
            GmailAPIError: If the API request fails.
        """

        logger.info("getting_thread", user_id=token.user_id, thread_id=thread_id)
        return await self._call(
            "get_thread",
            lambda: self._service(token.access_token)
            .users()
            .threads()
            .get(userId="me", id=thread_id, format="full")
            .execute(),
            user_id=token.user_id,
            thread_id=thread_id,
        )

    async def list_message_ids(self, token: UserToken, limit: int, query: str | None) -> list[str]:
        """List message IDs, newest first as ordered by Gmail.

        Raises:
            GmailAPIError: If the API request fails.
        """

        logger.info("listing_messages", user_id=token.user_id, limit=limit, query=query)
        messages = await self._call(
            "list_messages",
            self._list_ids_sync,
            "messages",
            token.access_token,
            limit,
            query,
            user_id=token.user_id,
        )
        return [m["id"] for m in messages if isinstance(m.get("id"), str) and m["id"]]

    async def get_message(self, token: UserToken, message_id: str) -> dict[str, Any]:
        """Get a single message with its full payload.

        Raises:
            NotFoundError: If Gmail does not know the message.
            GmailAPIError: If the API request fails.
        """

        logger.info("getting_message", user_id=token.user_id, message_id=message_id)
        return await self._call(
            "get_message",
            lambda: self._service(token.access_token)
            .users()
            .messages()
            .get(userId="me", id=message_id, format="full")
            .execute(),
            user_id=token.user_id,
            message_id=message_id,
        )

    async def send_raw(self, token: UserToken, raw: str, thread_id: str) -> dict[str, Any]:
        """Send an already encoded message into an existing thread."""

        logger.info("sending_message", user_id=token.user_id, thread_id=thread_id)
        return await self._call(
            "send_message",
            lambda: self._service(token.access_token)
            .users()
            .messages()
            .send(userId="me", body={"raw": raw, "threadId": thread_id})
            .execute(),
            user_id=token.user_id,
            thread_id=thread_id,
        )

    # Internals

    async def _with_deadline(self, func: Callable[..., T], *args: Any) -> T:
        return await asyncio.wait_for(
            asyncio.to_thread(func, *args),
            timeout=self.settings.request_timeout_seconds,
        )

    async def _call(self, operation: str, func: Callable[..., T], *args: Any, **context: Any) -> T:
        from googleapiclient.errors import HttpError

        try:
            return await self._with_deadline(func, *args)
        except asyncio.TimeoutError as exc:
            logger.error("gmail_request_timed_out", operation=operation, **context)
            raise GmailAPIError(f"{operation} timed out") from exc
        except HttpError as exc:
            status = exc.resp.status if exc.resp is not None else None
            logger.exception("gmail_request_failed", operation=operation, status=status, **context)
            if status == 404:
                raise NotFoundError(f"{operation}: resource not found") from exc
            if status in (401, 403):
                raise AuthError(f"{operation}: access denied ({status})") from exc
            raise GmailAPIError(str(exc)) from exc
        except Exception as exc:  # noqa: BLE001
            logger.exception("gmail_request_failed", operation=operation, error=str(exc), **context)
            raise GmailAPIError(str(exc)) from exc

    def _client_config(self) -> dict[str, Any]:
        if not self.settings.google_client_id or not self.settings.google_client_secret:
            raise ConfigurationError(
                "Google OAuth client is not configured. Set INBOX_DIGEST_GOOGLE_CLIENT_ID "
                "and INBOX_DIGEST_GOOGLE_CLIENT_SECRET."
            )
        return {
            "web": {
                "client_id": self.settings.google_client_id,
                "client_secret": self.settings.google_client_secret,
                "auth_uri": GOOGLE_AUTH_URI,
                "token_uri": GOOGLE_TOKEN_URI,
                "redirect_uris": [self.settings.google_redirect_uri],
            }
        }

    def _build_flow(self) -> Any:
        # Imported lazily to keep import-time cost low and tests fast.
        from google_auth_oauthlib.flow import Flow

        return Flow.from_client_config(
            self._client_config(),
            scopes=self.settings.gmail_scopes,
            redirect_uri=self.settings.google_redirect_uri,
            # The consent URL and the code exchange run in different processes.
            autogenerate_code_verifier=False,
        )

    def _exchange_code_sync(self, code: str) -> RefreshedToken:
        # Google adds openid to the granted scopes, which oauthlib rejects unless
        # OAUTHLIB_RELAX_TOKEN_SCOPE is set. The CLI sets it at startup.
        flow = self._build_flow()
        flow.fetch_token(code=code)
        creds = flow.credentials
        if not creds.refresh_token:
            raise AuthError("Google did not return a refresh token; re-consent is required")
        return RefreshedToken(
            access_token=creds.token,
            expiry_date=_expiry_ms(creds.expiry),
            refresh_token=creds.refresh_token,
            scope=" ".join(getattr(creds, "granted_scopes", None) or creds.scopes or []),
            token_type="Bearer",
        )

    def _refresh_sync(self, token: UserToken) -> RefreshedToken:
        from google.auth.transport.requests import Request
        from google.oauth2.credentials import Credentials

        config = self._client_config()["web"]
        creds = Credentials(
            token=None,
            refresh_token=token.refresh_token,
            token_uri=config["token_uri"],
            client_id=config["client_id"],
            client_secret=config["client_secret"],
        )
        creds.refresh(Request())

        rotated = creds.refresh_token if creds.refresh_token != token.refresh_token else None
        return RefreshedToken(
            access_token=creds.token,
            expiry_date=_expiry_ms(creds.expiry),
            refresh_token=rotated,
        )

    def _service(self, access_token: str) -> Any:
        from google.oauth2.credentials import Credentials
        from googleapiclient.discovery import build

        # Access token only; CredentialStore owns refresh.
        creds = Credentials(token=access_token)
        # cache_discovery=False prevents writing discovery docs to disk.
        return build("gmail", "v1", credentials=creds, cache_discovery=False)

    def _list_ids_sync(
        self, collection: str, access_token: str, limit: int, query: str | None
    ) -> list[dict[str, Any]]:
        """Page through ``users.threads.list`` or ``users.messages.list``."""
        service = self._service(access_token)
        items: list[dict[str, Any]] = []

        page_token: str | None = None
        while len(items) < limit:
            per_page = min(_PAGE_SIZE, limit - len(items))
            request = (
                getattr(service.users(), collection)()
                .list(userId="me", maxResults=per_page, q=query, pageToken=page_token)
            )
            response = request.execute()
            items.extend(response.get(collection, []) or [])
            page_token = response.get("nextPageToken")
            if page_token is None:
                break

        return items[:limit]
