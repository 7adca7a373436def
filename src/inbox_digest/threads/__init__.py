"""Mailbox thread listing."""

from .fetcher import ThreadFetcher

__all__ = ["ThreadFetcher"]
