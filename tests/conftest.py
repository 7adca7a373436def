"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
import base64
from typing import Any

import pytest

from inbox_digest.exceptions import NotFoundError
from inbox_digest.models import RefreshedToken, UserToken

NOW_MS = 1_700_000_000_000
HOUR_MS = 3_600_000


def b64url(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def make_raw_message(
    message_id: str,
    *,
    sender: str = "a@x.com",
    to: str = "me@example.com",
    subject: str = "Hello",
    date: str | None = "Mon, 01 Jan 2024 10:00:00 +0000",
    body: str | None = "hi",
    headers: dict[str, str] | None = None,
    payload: dict[str, Any] | None = None,
    internal_date: str | None = None,
) -> dict[str, Any]:
    """Build a Gmail API message (format=full) dict."""

    header_values = {"From": sender, "To": to, "Subject": subject}
    if date is not None:
        header_values["Date"] = date
    header_values.update(headers or {})

    if payload is None:
        payload = {"mimeType": "text/plain", "body": {"data": b64url(body)} if body else {}}
    payload = {**payload, "headers": [{"name": k, "value": v} for k, v in header_values.items()]}

    message: dict[str, Any] = {"id": message_id, "threadId": "t", "payload": payload}
    if internal_date is not None:
        message["internalDate"] = internal_date
    return message


def make_raw_thread(thread_id: str, messages: list[dict[str, Any]]) -> dict[str, Any]:
    return {"id": thread_id, "messages": messages}


class FakeMailboxProvider:
    """In-memory MailboxProvider recording every call."""

    def __init__(
        self,
        threads: dict[str, dict[str, Any]] | None = None,
        messages: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        self.threads: dict[str, dict[str, Any]] = threads or {}
        self.messages: dict[str, dict[str, Any]] = messages or {}
        self.message_list_calls: list[tuple[str, int, str | None]] = []
        self.message_get_calls: list[str] = []
        self.list_calls: list[tuple[str, int, str | None]] = []
        self.get_calls: list[str] = []
        self.sent: list[dict[str, str]] = []
        self.refresh_calls: list[str] = []
        self.list_error: Exception | None = None
        self.get_errors: dict[str, Exception] = {}
        self.send_error: Exception | None = None
        self.refresh_error: Exception | None = None
        self.refresh_result: RefreshedToken | None = None
        self.refresh_delay = 0.0
        self.profile_email = "new.user@example.com"

    async def list_thread_ids(self, token: UserToken, limit: int, query: str | None) -> list[str]:
        self.list_calls.append((token.user_id, limit, query))
        if self.list_error is not None:
            raise self.list_error
        return list(self.threads)[:limit]

    async def get_thread(self, token: UserToken, thread_id: str) -> dict[str, Any]:
        self.get_calls.append(thread_id)
        if thread_id in self.get_errors:
            raise self.get_errors[thread_id]
        if thread_id not in self.threads:
            raise NotFoundError(f"get_thread: {thread_id} not found")
        return self.threads[thread_id]

    async def list_message_ids(self, token: UserToken, limit: int, query: str | None) -> list[str]:
        self.message_list_calls.append((token.user_id, limit, query))
        if self.list_error is not None:
            raise self.list_error
        return list(self.messages)[:limit]

    async def get_message(self, token: UserToken, message_id: str) -> dict[str, Any]:
        self.message_get_calls.append(message_id)
        if message_id in self.get_errors:
            raise self.get_errors[message_id]
        if message_id not in self.messages:
            raise NotFoundError(f"get_message: {message_id} not found")
        return self.messages[message_id]

    async def send_raw(self, token: UserToken, raw: str, thread_id: str) -> dict[str, Any]:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append({"user_id": token.user_id, "raw": raw, "thread_id": thread_id})
        return {"id": f"sent-{len(self.sent)}", "threadId": thread_id}

    def authorization_url(self) -> str:
        return "https://accounts.example.com/o/oauth2/auth?access_type=offline"

    async def exchange_code(self, code: str) -> RefreshedToken:
        return RefreshedToken(
            access_token=f"access-for-{code}",
            expiry_date=NOW_MS + HOUR_MS,
            refresh_token="refresh-from-code",
            scope="https://www.googleapis.com/auth/gmail.modify",
            token_type="Bearer",
        )

    async def refresh_token(self, token: UserToken) -> RefreshedToken:
        self.refresh_calls.append(token.user_id)
        if self.refresh_delay:
            await asyncio.sleep(self.refresh_delay)
        if self.refresh_error is not None:
            raise self.refresh_error
        if self.refresh_result is not None:
            return self.refresh_result
        return RefreshedToken(
            access_token=f"refreshed-{len(self.refresh_calls)}",
            expiry_date=NOW_MS + HOUR_MS,
        )

    async def get_profile_email(self, access_token: str) -> str:
        return self.profile_email


class MemoryTokenStorage:
    """Dict-backed TokenStorage counting writes."""

    def __init__(self, tokens: list[UserToken] | None = None) -> None:
        self.tokens: dict[str, UserToken] = {t.user_id: t for t in tokens or []}
        self.saves: list[UserToken] = []
        self.loads = 0

    def get_token(self, user_id: str) -> UserToken | None:
        self.loads += 1
        return self.tokens.get(user_id)

    def save_token(self, token: UserToken) -> UserToken:
        self.saves.append(token)
        self.tokens[token.user_id] = token
        return token

    def delete_token(self, user_id: str) -> None:
        self.tokens.pop(user_id, None)


@pytest.fixture
def mock_settings():
    """Provide mock settings for testing."""
    from inbox_digest.config import Settings

    return Settings(
        google_client_id="client-id.apps.googleusercontent.com",
        google_client_secret="client-secret",
        ollama_host="http://test:11434",
        ollama_model="test-model",
        log_level="DEBUG",
        debug=True,
        smtp_user="digest@example.com",
        smtp_password="secret",
        summarize_concurrency=2,
        _env_file=None,
    )


@pytest.fixture
def now_ms() -> int:
    return NOW_MS


@pytest.fixture
def make_token():
    """Factory for UserToken instances expiring ``expires_in_ms`` after NOW_MS."""

    def _make(user_id: str = "a@example.com", expires_in_ms: int = HOUR_MS, **kwargs: Any) -> UserToken:
        return UserToken(
            user_id=user_id,
            email=kwargs.pop("email", user_id),
            access_token=kwargs.pop("access_token", f"access-{user_id}"),
            refresh_token=kwargs.pop("refresh_token", f"refresh-{user_id}"),
            scope=kwargs.pop("scope", "https://www.googleapis.com/auth/gmail.modify"),
            token_type="Bearer",
            expiry_date=NOW_MS + expires_in_ms,
            **kwargs,
        )

    return _make


@pytest.fixture
def provider() -> FakeMailboxProvider:
    return FakeMailboxProvider()


@pytest.fixture
def token_storage(make_token) -> MemoryTokenStorage:
    return MemoryTokenStorage([make_token("a@example.com")])


@pytest.fixture
def credential_store(provider, token_storage):
    from inbox_digest.credentials import CredentialStore

    return CredentialStore(provider, token_storage, clock=lambda: NOW_MS)


@pytest.fixture
def repository(tmp_path):
    from inbox_digest.storage import InboxRepository

    repo = InboxRepository(tmp_path / "inbox.sqlite3")
    repo.initialize()
    return repo


@pytest.fixture
def sample_email_data() -> dict:
    """Provide a sample Gmail message with a multipart body."""
    return make_raw_message(
        "msg123456",
        sender="Python Weekly <newsletter@python.org>",
        to="user@example.com",
        subject="Weekly Newsletter - Python Tips",
        date="Tue, 02 Jan 2024 09:30:00 +0100",
        payload={
            "mimeType": "multipart/alternative",
            "body": {"size": 0},
            "parts": [
                {"mimeType": "text/plain", "body": {"data": b64url("Welcome to this week's tips!")}},
                {"mimeType": "text/html", "body": {"data": b64url("<p>Welcome</p>")}},
            ],
        },
    )


@pytest.fixture
def raw_message():
    """Factory for Gmail API message dicts, see ``make_raw_message``."""
    return make_raw_message


@pytest.fixture
def raw_thread():
    """Factory for Gmail API thread dicts."""
    return make_raw_thread


@pytest.fixture
def encode_b64url():
    return b64url
