"""Thread and message summarization on top of the Ollama client.

Batch summarization fans out over threads or messages, bounded by
``settings.summarize_concurrency`` so rate-limited backends never see more
than that many requests at once.
"""

from __future__ import annotations

import asyncio

import structlog

from inbox_digest.config import Settings
from inbox_digest.models import EmailMessage, EmailSummary, EmailThread, ThreadSummary
from inbox_digest.ollama import OllamaClient
from inbox_digest.summarizer.parsing import parse_email_summary, parse_summary_response
from inbox_digest.summarizer.prompt import (
    EMAIL_SYSTEM_PROMPT,
    SYSTEM_PROMPT,
    build_email_prompt,
    build_thread_prompt,
)

logger = structlog.get_logger()


class ThreadSummarizer:
    """Produces ThreadSummary records for mailbox threads."""

    def __init__(
        self,
        ollama_client: OllamaClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        from inbox_digest.config import get_settings

        self.settings = settings or get_settings()
        self.ollama_client = ollama_client or OllamaClient(self.settings)

    async def summarize_thread(self, thread: EmailThread, user_id: str) -> ThreadSummary:
        """Summarize one thread.

        Raises:
            OllamaConnectionError: If the model backend is unreachable.
            OllamaInferenceError: If inference fails.
        """

        response = await self.ollama_client.generate(
            build_thread_prompt(thread),
            system=SYSTEM_PROMPT,
        )
        parsed = parse_summary_response(
            response,
            default_urgency=self.settings.default_urgency,
            default_action=self.settings.default_action,
        )
        logger.info(
            "thread_summarized",
            user_id=user_id,
            thread_id=thread.id,
            urgency=parsed.urgency.value,
            suggested_action=parsed.suggested_action.value,
        )
        return ThreadSummary(
            thread_id=thread.id,
            user_id=user_id,
            subject=thread.subject,
            summary=parsed.summary,
            urgency=parsed.urgency,
            suggested_action=parsed.suggested_action,
        )

    async def summarize_threads(self, threads: list[EmailThread], user_id: str) -> list[ThreadSummary]:
        """Summarize threads concurrently, at most ``summarize_concurrency`` at a time.

        Results are returned in the order of ``threads``. The first failure
        propagates.
        """

        semaphore = asyncio.Semaphore(self.settings.summarize_concurrency)

        async def _bounded(thread: EmailThread) -> ThreadSummary:
            async with semaphore:
                return await self.summarize_thread(thread, user_id)

        return list(await asyncio.gather(*(_bounded(t) for t in threads)))


class EmailSummarizer:
    """Produces EmailSummary records for single messages."""

    def __init__(
        self,
        ollama_client: OllamaClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        from inbox_digest.config import get_settings

        self.settings = settings or get_settings()
        self.ollama_client = ollama_client or OllamaClient(self.settings)

    async def summarize_email(self, message: EmailMessage, user_id: str) -> EmailSummary:
        response = await self.ollama_client.generate(
            build_email_prompt(message),
            system=EMAIL_SYSTEM_PROMPT,
        )
        parsed = parse_email_summary(response)
        logger.info(
            "email_summarized",
            user_id=user_id,
            email_id=message.id,
            sentiment=parsed.sentiment.value,
            key_point_count=len(parsed.key_points),
        )
        return EmailSummary(
            email_id=message.id,
            user_id=user_id,
            subject=message.subject,
            summary=parsed.summary,
            key_points=parsed.key_points,
            sentiment=parsed.sentiment,
        )

    async def summarize_emails(self, messages: list[EmailMessage], user_id: str) -> list[EmailSummary]:
        """Summarize messages concurrently under the same bound as threads."""

        semaphore = asyncio.Semaphore(self.settings.summarize_concurrency)

        async def _bounded(message: EmailMessage) -> EmailSummary:
            async with semaphore:
                return await self.summarize_email(message, user_id)

        return list(await asyncio.gather(*(_bounded(m) for m in messages)))
