"""Inbox agent implementation.

This module provides the agent that the outer application layer calls. It
wires the mailbox core to the summarizers and the repository, and performs the
bookkeeping that follows a successful reply.
"""

from __future__ import annotations

import structlog

from inbox_digest.config import Settings
from inbox_digest.credentials import CredentialStore
from inbox_digest.exceptions import NotFoundError, ValidationError
from inbox_digest.gmail.client import GmailClient
from inbox_digest.gmail.protocol import MailboxProvider
from inbox_digest.models import EmailMessage, EmailReply, EmailSummary, EmailThread, ThreadSummary
from inbox_digest.replies import ReplyComposer
from inbox_digest.storage import InboxRepository
from inbox_digest.summarizer import EmailSummarizer, ThreadSummarizer
from inbox_digest.threads import ThreadFetcher

logger = structlog.get_logger()


class InboxAgent:
    """Main inbox agent.

    This agent coordinates thread fetching, summarization, replies
    and the records kept about them.
    """

    def __init__(
        self,
        repository: InboxRepository,
        provider: MailboxProvider | None = None,
        summarizer: ThreadSummarizer | None = None,
        settings: Settings | None = None,
        email_summarizer: EmailSummarizer | None = None,
    ) -> None:
        """Initialize the inbox agent.

        Args:
            repository: Persistence for tokens, summaries and replies.
            provider: Mailbox provider. If None, creates a GmailClient.
            summarizer: Thread summarizer. If None, creates a new one.
            settings: Application settings. If None, uses default settings.
            email_summarizer: Single-message summarizer. If None, creates a
                new one.
        """
        from inbox_digest.config import get_settings

        self.settings = settings or get_settings()
        self.repository = repository
        self.provider = provider or GmailClient(self.settings)
        self.summarizer = summarizer or ThreadSummarizer(settings=self.settings)
        self.email_summarizer = email_summarizer or EmailSummarizer(settings=self.settings)
        self.credentials = CredentialStore(self.provider, self.repository)
        self.fetcher = ThreadFetcher(self.provider, self.credentials, self.settings)
        self.composer = ReplyComposer(self.provider, self.credentials)
        logger.info("inbox_agent_initialized")

    async def list_threads(self, user_id: str, limit: int | None = None) -> list[EmailThread]:
        _require(user_id=user_id)
        return await self.fetcher.list_threads(user_id, limit)

    async def summarize_threads(
        self, user_id: str, limit: int | None = None
    ) -> list[tuple[EmailThread, ThreadSummary]]:
        """Fetch recent threads, summarize them and store the summaries.

        Args:
            user_id: Mailbox owner.
            limit: Maximum number of threads to summarize.

        Returns:
            Each thread paired with its stored summary.
        """
        _require(user_id=user_id)
        logger.info("summarize_threads_started", user_id=user_id, limit=limit)

        threads = await self.fetcher.list_threads(user_id, limit)
        summaries = await self.summarizer.summarize_threads(threads, user_id)
        stored = [self.repository.save_thread_summary(s) for s in summaries]
        return list(zip(threads, stored))

    def thread_summaries(self, user_id: str) -> list[ThreadSummary]:
        _require(user_id=user_id)
        return self.repository.list_thread_summaries(user_id)

    async def process_emails(
        self, user_id: str, limit: int | None = None
    ) -> list[tuple[EmailMessage, EmailSummary]]:
        """Fetch recent messages, summarize each one and store the summaries.

        Returns:
            Each message paired with its stored summary, newest first.
        """
        _require(user_id=user_id)
        logger.info("process_emails_started", user_id=user_id, limit=limit)

        messages = await self.fetcher.list_messages(user_id, limit)
        summaries = await self.email_summarizer.summarize_emails(messages, user_id)
        stored = [self.repository.save_email_summary(s) for s in summaries]
        return list(zip(messages, stored))

    def email_summaries(self, user_id: str) -> list[EmailSummary]:
        _require(user_id=user_id)
        return self.repository.list_email_summaries(user_id)

    def email_summary(self, summary_id: str) -> EmailSummary:
        _require(summary_id=summary_id)
        summary = self.repository.get_email_summary(summary_id)
        if summary is None:
            raise NotFoundError(f"email summary {summary_id} not found")
        return summary

    def all_summaries(self, user_id: str) -> tuple[list[EmailSummary], list[ThreadSummary]]:
        """Return the user's message summaries and thread summaries."""
        _require(user_id=user_id)
        return (
            self.repository.list_email_summaries(user_id),
            self.repository.list_thread_summaries(user_id),
        )

    async def send_reply(self, user_id: str, thread_id: str, message: str) -> EmailReply:
        """Send a reply and record it.

        The reply is logged and the thread's summary flipped to Replied only
        after the provider confirmed the send.

        Raises:
            ValidationError: If any argument is empty.
            NotFoundError: If the thread has no messages.
        """
        _require(user_id=user_id, thread_id=thread_id, message=message)

        await self.composer.send_reply(user_id, thread_id, message)

        reply = self.repository.save_email_reply(
            EmailReply(thread_id=thread_id, user_id=user_id, message=message)
        )
        if self.repository.mark_thread_replied(thread_id, user_id) is not None:
            logger.info("thread_summary_marked_replied", user_id=user_id, thread_id=thread_id)
        return reply

    def thread_replies(self, thread_id: str) -> list[EmailReply]:
        _require(thread_id=thread_id)
        return self.repository.list_thread_replies(thread_id)

    def user_replies(self, user_id: str) -> list[EmailReply]:
        _require(user_id=user_id)
        return self.repository.list_user_replies(user_id)


def _require(**values: str | None) -> None:
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise ValidationError(f"missing required input: {', '.join(missing)}")
