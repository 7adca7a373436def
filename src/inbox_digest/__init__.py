"""Inbox Digest - AI summaries, threaded replies and daily digests for Gmail.

This package keeps mailbox credentials fresh, decodes inbox threads, sends
replies into existing threads and delivers a daily digest of pending
summaries to every connected user.
"""

__version__ = "0.1.0"

from inbox_digest.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__"]
