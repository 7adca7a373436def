"""Persistence for tokens, thread summaries and reply logs."""

from .repository import InboxRepository

__all__ = ["InboxRepository"]
