"""Thread listing and decoding.

Threads are fetched one round trip at a time; there is no fan-out inside a
single user's listing. Any provider failure aborts the listing, while a single
malformed message only drops that message. Single messages can be listed the
same way for per-message summaries.
"""

from __future__ import annotations

import structlog

from inbox_digest.config import Settings
from inbox_digest.credentials import CredentialStore
from inbox_digest.exceptions import NotFoundError, ValidationError
from inbox_digest.gmail.parsing import MalformedMessageError, message_to_email_message, thread_messages
from inbox_digest.gmail.protocol import MailboxProvider
from inbox_digest.models import EmailMessage, EmailThread

logger = structlog.get_logger()


class ThreadFetcher:
    """Lists inbox threads and decodes their messages."""

    def __init__(
        self,
        provider: MailboxProvider,
        credentials: CredentialStore,
        settings: Settings | None = None,
    ) -> None:
        from inbox_digest.config import get_settings

        self.settings = settings or get_settings()
        self._provider = provider
        self._credentials = credentials

    async def list_threads(self, user_id: str, limit: int | None = None) -> list[EmailThread]:
        """List the user's most recent inbox threads.

        Args:
            user_id: Mailbox owner.
            limit: Maximum number of threads to fetch. Defaults to
                ``settings.gmail_max_threads``.

        Returns:
            Threads ordered by last message date, newest first. Threads
            without a single parsable message are left out.

        Raises:
            AuthError: If the user has no usable credentials.
            ProviderError: If listing or fetching any thread fails.
        """

        resolved_limit = self.settings.gmail_max_threads if limit is None else limit
        if resolved_limit < 1:
            raise ValidationError("limit must be a positive integer")

        token = await self._credentials.ensure_valid(user_id)
        thread_ids = await self._provider.list_thread_ids(
            token, resolved_limit, self.settings.gmail_inbox_query
        )
        logger.info("thread_list_complete", user_id=user_id, thread_count=len(thread_ids))

        threads: list[EmailThread] = []
        for thread_id in thread_ids:
            token = await self._credentials.ensure_valid(user_id)
            raw = await self._provider.get_thread(token, thread_id)
            messages = thread_messages(raw)
            if not messages:
                logger.warning("thread_skipped_no_messages", user_id=user_id, thread_id=thread_id)
                continue
            threads.append(EmailThread.from_messages(thread_id, messages))

        threads.sort(key=lambda t: t.last_message_date, reverse=True)
        return threads

    async def list_messages(self, user_id: str, limit: int | None = None) -> list[EmailMessage]:
        """List the user's most recent inbox messages one by one.

        Messages that cannot be decoded are logged and left out, the same way
        they are dropped from threads. Provider failures abort the listing.

        Returns:
            Messages ordered by date, newest first.
        """

        resolved_limit = self.settings.gmail_max_threads if limit is None else limit
        if resolved_limit < 1:
            raise ValidationError("limit must be a positive integer")

        token = await self._credentials.ensure_valid(user_id)
        message_ids = await self._provider.list_message_ids(
            token, resolved_limit, self.settings.gmail_inbox_query
        )
        logger.info("message_list_complete", user_id=user_id, message_count=len(message_ids))

        messages: list[EmailMessage] = []
        for message_id in message_ids:
            token = await self._credentials.ensure_valid(user_id)
            raw = await self._provider.get_message(token, message_id)
            try:
                messages.append(message_to_email_message(raw))
            except MalformedMessageError as exc:
                logger.warning(
                    "gmail_message_skipped", user_id=user_id, message_id=message_id, error=str(exc)
                )

        messages.sort(key=lambda m: m.date, reverse=True)
        return messages

    async def get_thread(self, user_id: str, thread_id: str) -> EmailThread:
        """Fetch and decode a single thread.

        Raises:
            NotFoundError: If the thread has no parsable messages.
        """

        if not thread_id:
            raise ValidationError("thread_id is required")

        token = await self._credentials.ensure_valid(user_id)
        raw = await self._provider.get_thread(token, thread_id)
        messages = thread_messages(raw)
        if not messages:
            raise NotFoundError(f"thread {thread_id} has no messages")
        return EmailThread.from_messages(thread_id, messages)
