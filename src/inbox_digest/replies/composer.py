"""Threaded reply composition and transmission."""

from __future__ import annotations

import base64
from typing import Any

import structlog

from inbox_digest.credentials import CredentialStore
from inbox_digest.exceptions import GmailAPIError, NotFoundError, ValidationError
from inbox_digest.gmail.parsing import MalformedMessageError, get_header, message_headers
from inbox_digest.gmail.protocol import MailboxProvider

logger = structlog.get_logger()


def build_reply_message(
    *,
    to: str,
    subject: str,
    message_id: str,
    references: str,
    body: str,
) -> str:
    """Build the RFC 822 text of a plain-text reply.

    ``References`` falls back to the replied-to ``Message-ID`` when the
    original carried none.
    """

    lines = [
        f"To: {to}",
        f"Subject: Re: {subject}",
        "Content-Type: text/plain; charset=UTF-8",
        "MIME-Version: 1.0",
        f"In-Reply-To: {message_id}",
        f"References: {references or message_id}",
        "",
        body,
    ]
    return "\r\n".join(lines).rstrip()


def encode_raw(message: str) -> str:
    """Encode a message as unpadded base64url, as Gmail's raw field expects."""

    return base64.urlsafe_b64encode(message.encode("utf-8")).decode("ascii").rstrip("=")


class ReplyComposer:
    """Builds and sends replies attached to existing threads."""

    def __init__(self, provider: MailboxProvider, credentials: CredentialStore) -> None:
        self._provider = provider
        self._credentials = credentials

    async def send_reply(self, user_id: str, thread_id: str, message: str) -> None:
        """Reply to the last message of ``thread_id`` with ``message``.

        Raises:
            ValidationError: If any argument is empty.
            AuthError: If the user has no usable credentials.
            NotFoundError: If the thread has no messages.
            ProviderError: If fetching the thread or sending fails, or the
                newest message has misshapen headers.
        """

        if not user_id or not thread_id or not message:
            raise ValidationError("user_id, thread_id and message are required")

        token = await self._credentials.ensure_valid(user_id)
        raw_thread = await self._provider.get_thread(token, thread_id)
        messages: list[dict[str, Any]] = raw_thread.get("messages") or []
        if not messages:
            raise NotFoundError(f"thread {thread_id} not found")

        # Gmail lists thread messages oldest first; the last one is the newest.
        try:
            headers = message_headers(messages[-1])
            email = build_reply_message(
                to=get_header(headers, "From"),
                subject=get_header(headers, "Subject"),
                message_id=get_header(headers, "Message-ID"),
                references=get_header(headers, "References"),
                body=message,
            )
        except MalformedMessageError as exc:
            raise GmailAPIError(f"thread {thread_id} cannot be replied to: {exc}") from exc

        token = await self._credentials.ensure_valid(user_id)
        await self._provider.send_raw(token, encode_raw(email), thread_id)
        logger.info("reply_sent", user_id=user_id, thread_id=thread_id)
