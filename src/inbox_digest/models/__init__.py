"""Data models for Inbox Digest.

This module contains Pydantic models for data validation and serialization.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from inbox_digest.models.digest_report import DigestRunReport, DigestStatus, UserDigestOutcome


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class Urgency(str, Enum):
    """Urgency level assigned to a thread summary."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class SuggestedAction(str, Enum):
    """Action suggested for a summarized thread."""

    REPLY = "Reply"
    FOLLOW_UP = "Follow Up"
    READ_LATER = "Read Later"
    ARCHIVE = "Archive"
    FORWARD = "Forward"
    REPLIED = "Replied"


class Sentiment(str, Enum):
    """Overall tone assigned to a single email."""

    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class UserToken(BaseModel):
    """OAuth2 credentials stored for one mailbox user."""

    user_id: str = Field(description="User identifier (the mailbox address)")
    email: str = Field(description="Mailbox address digests are sent to")
    access_token: str = Field(description="Short-lived OAuth access token")
    refresh_token: str = Field(description="Long-lived OAuth refresh token")
    scope: str = Field(default="", description="Space separated granted scopes")
    token_type: str = Field(default="Bearer", description="OAuth token type")
    expiry_date: int = Field(description="Access token expiry in milliseconds since epoch")
    created_at: datetime = Field(default_factory=_utcnow, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=_utcnow, description="Last update timestamp")

    def is_expired(self, now_ms: int) -> bool:
        return self.expiry_date <= now_ms


class RefreshedToken(BaseModel):
    """Token material returned by the provider after a refresh or code exchange."""

    access_token: str = Field(description="New access token")
    expiry_date: int = Field(description="New expiry in milliseconds since epoch")
    refresh_token: Optional[str] = Field(
        default=None,
        description="Rotated refresh token, if the provider issued one",
    )
    scope: Optional[str] = Field(default=None, description="Granted scopes, if returned")
    token_type: Optional[str] = Field(default=None, description="Token type, if returned")


class EmailMessage(BaseModel):
    """A single decoded message of a mailbox thread."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique message ID")
    sender: str = Field(default="", description="Raw From header")
    recipient: str = Field(default="", description="Raw To header")
    subject: str = Field(default="", description="Email subject")
    body: str = Field(default="", description="Decoded body text")
    date: datetime = Field(description="Message date (timezone aware)")
    is_reply: bool = Field(
        default=False,
        description="Whether the message carries In-Reply-To or References headers",
    )


class EmailThread(BaseModel):
    """A mailbox thread with its messages ordered newest first."""

    id: str = Field(description="Thread ID")
    subject: str = Field(description="Subject of the newest message")
    messages: list[EmailMessage] = Field(description="Messages, newest first")
    last_message_date: datetime = Field(description="Date of the newest message")

    @classmethod
    def from_messages(cls, thread_id: str, messages: list[EmailMessage]) -> EmailThread:
        """Build a thread, ordering messages by date descending.

        Raises:
            ValueError: If ``messages`` is empty.
        """
        if not messages:
            raise ValueError(f"thread {thread_id} has no messages")

        ordered = sorted(messages, key=lambda m: m.date, reverse=True)
        newest = ordered[0]
        return cls(
            id=thread_id,
            subject=newest.subject,
            messages=ordered,
            last_message_date=newest.date,
        )


class ThreadSummary(BaseModel):
    """AI summary of a thread, unique per (thread_id, user_id)."""

    id: str = Field(default_factory=_new_id, description="Summary ID")
    thread_id: str = Field(description="Summarized thread ID")
    user_id: str = Field(description="Owner of the thread")
    subject: str = Field(default="", description="Thread subject")
    summary: str = Field(default="", description="Summary text")
    urgency: Urgency = Field(default=Urgency.LOW, description="Urgency level")
    suggested_action: SuggestedAction = Field(
        default=SuggestedAction.READ_LATER,
        description="Suggested next action",
    )
    created_at: datetime = Field(default_factory=_utcnow, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=_utcnow, description="Last update timestamp")


class EmailSummary(BaseModel):
    """AI summary of a single message, unique per (email_id, user_id)."""

    id: str = Field(default_factory=_new_id, description="Summary ID")
    email_id: str = Field(description="Summarized message ID")
    user_id: str = Field(description="Owner of the message")
    subject: str = Field(default="", description="Message subject")
    summary: str = Field(default="", description="Summary text")
    key_points: list[str] = Field(default_factory=list, description="Key points, in order")
    sentiment: Sentiment = Field(default=Sentiment.NEUTRAL, description="Overall sentiment")
    created_at: datetime = Field(default_factory=_utcnow, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=_utcnow, description="Last update timestamp")


class EmailReply(BaseModel):
    """Log entry of a reply sent on behalf of a user."""

    id: str = Field(default_factory=_new_id, description="Reply ID")
    thread_id: str = Field(description="Thread the reply was attached to")
    user_id: str = Field(description="User who sent the reply")
    message: str = Field(description="Reply body text")
    sent_at: datetime = Field(default_factory=_utcnow, description="Send timestamp")
    created_at: datetime = Field(default_factory=_utcnow, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=_utcnow, description="Last update timestamp")

__all__ = [
    "DigestRunReport",
    "DigestStatus",
    "EmailMessage",
    "EmailReply",
    "EmailSummary",
    "EmailThread",
    "RefreshedToken",
    "Sentiment",
    "SuggestedAction",
    "ThreadSummary",
    "Urgency",
    "UserDigestOutcome",
    "UserToken",
]
