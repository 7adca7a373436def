"""SMTP delivery of digest emails."""

from __future__ import annotations

import asyncio
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate

import structlog

from inbox_digest.config import Settings
from inbox_digest.digest.builder import GroupedSummaries, render_html, render_text
from inbox_digest.exceptions import ConfigurationError, DeliveryError

logger = structlog.get_logger()


class SmtpDigestDelivery:
    """Sends rendered digests over SMTP with STARTTLS."""

    def __init__(self, settings: Settings | None = None) -> None:
        from inbox_digest.config import get_settings

        self.settings = settings or get_settings()

    @property
    def from_email(self) -> str | None:
        return self.settings.digest_from_email or self.settings.smtp_user

    def build_message(self, to_email: str, grouped: GroupedSummaries) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = self.settings.digest_subject
        msg["From"] = f"{self.settings.digest_from_name} <{self.from_email}>"
        msg["To"] = to_email
        msg["Date"] = formatdate(localtime=True)

        # Plain text first so clients that understand HTML prefer the last part.
        msg.attach(MIMEText(render_text(grouped), "plain", "utf-8"))
        msg.attach(MIMEText(render_html(grouped), "html", "utf-8"))
        return msg

    async def send(self, to_email: str, grouped: GroupedSummaries) -> None:
        """Send one digest to ``to_email``.

        Raises:
            ConfigurationError: If SMTP credentials are not configured.
            DeliveryError: If the SMTP exchange fails.
        """

        if not (self.settings.smtp_user and self.settings.smtp_password and self.from_email):
            raise ConfigurationError(
                "SMTP not fully configured. Set INBOX_DIGEST_SMTP_USER and "
                "INBOX_DIGEST_SMTP_PASSWORD."
            )

        msg = self.build_message(to_email, grouped)
        try:
            await asyncio.to_thread(self._send_sync, msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.exception("digest_delivery_failed", to_email=to_email, error=str(exc))
            raise DeliveryError(str(exc)) from exc

        logger.info(
            "digest_delivered",
            to_email=to_email,
            summary_count=sum(len(items) for items in grouped.values()),
        )

    def _send_sync(self, msg: MIMEMultipart) -> None:
        assert self.settings.smtp_user is not None
        assert self.settings.smtp_password is not None

        with smtplib.SMTP(
            self.settings.smtp_host,
            self.settings.smtp_port,
            timeout=self.settings.request_timeout_seconds,
        ) as server:
            server.starttls()
            server.login(self.settings.smtp_user, self.settings.smtp_password)
            server.send_message(msg)
