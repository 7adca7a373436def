"""Helpers for parsing Gmail thread payloads into internal models."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Union

import structlog

from inbox_digest.models import EmailMessage

logger = structlog.get_logger()


@dataclass(frozen=True)
class Leaf:
    """A body part carrying inline base64 content (possibly none)."""

    data: str | None = None

    def decode(self) -> str:
        if not self.data:
            return ""
        return decode_base64_text(self.data)


@dataclass(frozen=True)
class Container:
    """A multipart body part whose text is the newline-joined text of its children."""

    children: tuple[MessagePart, ...]

    def decode(self) -> str:
        return "\n".join(child.decode() for child in self.children)


MessagePart = Union[Leaf, Container]


class MalformedMessageError(ValueError):
    """Raised when a raw Gmail message cannot be mapped to an EmailMessage."""


def decode_base64_text(data: str) -> str:
    """Decode base64 content from either the standard or the url-safe alphabet.

    Gmail returns body data url-safe encoded and usually without padding.
    """
    normalized = data.replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    try:
        raw = base64.b64decode(normalized)
    except (binascii.Error, ValueError) as exc:
        raise MalformedMessageError(f"invalid base64 body data: {exc}") from exc
    return raw.decode("utf-8", errors="replace")


def build_part(payload: dict[str, Any]) -> MessagePart:
    """Build the part tree of a Gmail message payload.

    Inline ``body.data`` wins over ``parts``; a node with neither is an empty leaf.

    Raises:
        MalformedMessageError: If a part, its body or its children are not
            shaped like the Gmail API returns them.
    """
    if not isinstance(payload, dict):
        raise MalformedMessageError(f"message part is {type(payload).__name__}, not an object")

    body = payload.get("body") or {}
    if not isinstance(body, dict):
        raise MalformedMessageError("message part body is not an object")
    data = body.get("data")
    if data is not None and not isinstance(data, str):
        raise MalformedMessageError("message part body data is not a string")
    if data:
        return Leaf(data=data)

    parts = payload.get("parts")
    if parts is not None and not isinstance(parts, list):
        raise MalformedMessageError("message parts is not a list")
    if parts:
        return Container(children=tuple(build_part(p) for p in parts))

    return Leaf()


def decode_body(payload: dict[str, Any]) -> str:
    return build_part(payload).decode()


def _header_name(header: Any) -> Any:
    if not isinstance(header, dict):
        raise MalformedMessageError(f"header entry is {type(header).__name__}, not an object")
    return header.get("name")


def get_header(headers: list[dict[str, Any]], name: str) -> str:
    """Return the first header value matching ``name`` case-insensitively, or ''."""
    wanted = name.lower()
    for h in headers:
        header_name = _header_name(h)
        if isinstance(header_name, str) and header_name.lower() == wanted:
            value = h.get("value")
            return value if isinstance(value, str) else ""
    return ""


def has_header(headers: list[dict[str, Any]], name: str) -> bool:
    wanted = name.lower()
    for h in headers:
        header_name = _header_name(h)
        if isinstance(header_name, str) and header_name.lower() == wanted:
            return True
    return False


def message_headers(message: dict[str, Any]) -> list[dict[str, Any]]:
    if not isinstance(message, dict):
        raise MalformedMessageError(f"message is {type(message).__name__}, not an object")
    payload = message.get("payload")
    if not isinstance(payload, dict):
        raise MalformedMessageError(f"message {message.get('id')} has no payload")
    headers = payload.get("headers")
    if not isinstance(headers, list):
        raise MalformedMessageError(f"message {message.get('id')} has no headers")
    return headers


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, OverflowError, IndexError):
        return None
    if parsed.tzinfo is None:
        # "-0000" and zone-less dates come back naive.
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_internal_date(value: Any) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def message_to_email_message(message: dict[str, Any]) -> EmailMessage:
    """Convert a Gmail API message (format=full) to EmailMessage.

    Args:
        message: Gmail API message dict as returned inside ``threads.get``.

    Returns:
        EmailMessage: Decoded message.

    Raises:
        MalformedMessageError: If the message has no payload or headers, no
            usable date, or undecodable body data.
    """

    headers = message_headers(message)

    date = _parse_date(get_header(headers, "Date")) or _parse_internal_date(
        message.get("internalDate")
    )
    if date is None:
        raise MalformedMessageError(f"message {message.get('id')} has no usable date")

    return EmailMessage(
        id=str(message.get("id") or ""),
        sender=get_header(headers, "From"),
        recipient=get_header(headers, "To"),
        subject=get_header(headers, "Subject"),
        body=decode_body(message["payload"]),
        date=date,
        is_reply=has_header(headers, "In-Reply-To") or has_header(headers, "References"),
    )


def thread_messages(raw_thread: dict[str, Any]) -> list[EmailMessage]:
    """Map every parsable message of a raw thread, skipping malformed ones."""

    thread_id = raw_thread.get("id")
    messages: list[EmailMessage] = []
    for raw in raw_thread.get("messages") or []:
        try:
            messages.append(message_to_email_message(raw))
        except MalformedMessageError as exc:
            logger.warning(
                "gmail_message_skipped",
                thread_id=thread_id,
                message_id=raw.get("id") if isinstance(raw, dict) else None,
                error=str(exc),
            )
    return messages
