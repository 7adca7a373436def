"""Daily digest run across all users.

Users are processed one after another. Failing to enumerate users fails the
whole run; anything that goes wrong inside one user's iteration is logged and
recorded in the report, and the run moves on to the next user.
"""

from __future__ import annotations

import asyncio
from typing import Protocol

import structlog

from inbox_digest.config import Settings
from inbox_digest.digest.builder import GroupedSummaries, build_digest
from inbox_digest.models import (
    DigestRunReport,
    DigestStatus,
    SuggestedAction,
    ThreadSummary,
    UserDigestOutcome,
    UserToken,
)

logger = structlog.get_logger()


class DigestSource(Protocol):
    """Read access to users and their summaries."""

    def list_users_with_tokens(self) -> list[UserToken]: ...

    def list_thread_summaries(self, user_id: str) -> list[ThreadSummary]: ...


class DigestDelivery(Protocol):
    """Delivers one grouped digest to one address."""

    async def send(self, to_email: str, grouped: GroupedSummaries) -> None: ...


class DigestOrchestrator:
    """Sends each known user a digest of their pending thread summaries."""

    def __init__(
        self,
        source: DigestSource,
        delivery: DigestDelivery,
        settings: Settings | None = None,
    ) -> None:
        from inbox_digest.config import get_settings

        self.settings = settings or get_settings()
        self._source = source
        self._delivery = delivery

    async def run_daily_digests(self, stop: asyncio.Event | None = None) -> DigestRunReport:
        """Run one digest pass over every user with a stored token.

        Args:
            stop: Optional signal checked before each user; once set, the
                remaining users are left for the next run.

        Returns:
            One outcome per processed user.

        Raises:
            Exception: Whatever the user enumeration raised.
        """

        try:
            users = self._source.list_users_with_tokens()
        except Exception as exc:
            logger.exception("digest_user_listing_failed", error=str(exc))
            raise

        logger.info("digest_run_started", user_count=len(users))

        report = DigestRunReport()
        for user in users:
            if stop is not None and stop.is_set():
                logger.warning(
                    "digest_run_stopped",
                    processed=len(report.outcomes),
                    remaining=len(users) - len(report.outcomes),
                )
                report.cancelled = True
                break
            report.outcomes.append(await self._process_user(user))

        logger.info(
            "digest_run_completed",
            sent=len(report.sent),
            skipped=len(report.skipped),
            failed=len(report.failed),
        )
        return report

    async def _process_user(self, user: UserToken) -> UserDigestOutcome:
        try:
            summaries = self._source.list_thread_summaries(user.user_id)
            pending = [s for s in summaries if s.suggested_action is not SuggestedAction.REPLIED]
            if not pending:
                logger.info("digest_user_skipped", user_id=user.user_id)
                return UserDigestOutcome(
                    user_id=user.user_id, email=user.email, status=DigestStatus.SKIPPED
                )

            grouped = build_digest(pending, limit=self.settings.digest_max_items)
            await self._delivery.send(user.email, grouped)
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "digest_user_failed",
                user_id=user.user_id,
                operation="daily_digest",
                error=str(exc),
            )
            return UserDigestOutcome(
                user_id=user.user_id,
                email=user.email,
                status=DigestStatus.FAILED,
                error=str(exc),
            )

        count = sum(len(items) for items in grouped.values())
        logger.info("digest_user_sent", user_id=user.user_id, summary_count=count)
        return UserDigestOutcome(
            user_id=user.user_id,
            email=user.email,
            status=DigestStatus.SENT,
            summary_count=count,
        )
