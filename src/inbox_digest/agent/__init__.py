"""Application-facing inbox agent."""

from .email_agent import InboxAgent

__all__ = ["InboxAgent"]
