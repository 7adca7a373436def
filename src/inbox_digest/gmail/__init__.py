"""Gmail integration: API client, provider protocol and payload parsing."""

from .client import GmailClient
from .protocol import MailboxProvider

__all__ = ["GmailClient", "MailboxProvider"]
