"""Threaded replies."""

from .composer import ReplyComposer, build_reply_message, encode_raw

__all__ = ["ReplyComposer", "build_reply_message", "encode_raw"]
