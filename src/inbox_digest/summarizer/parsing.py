"""Defensive parsing of free-text summary responses.

Model output is treated as untyped text. Lines that start with an ``Urgency:`` or
``Action:`` label provide those fields when their value names a known level or
action; anything unusable falls back to the configured defaults. Every other
non-empty line is part of the summary. Single-message responses are read the
same way, with key points and a sentiment in place of urgency and action.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from inbox_digest.models import Sentiment, SuggestedAction, Urgency

_VALUE_NOISE = " \t*_`\"'.-:#"

_LABEL_PREFIX = r"^\W*(?:\d+\.\W*)?"
_URGENCY_LABEL = re.compile(_LABEL_PREFIX + r"urgency(?:\s+level)?\W*:", re.IGNORECASE)
_ACTION_LABEL = re.compile(_LABEL_PREFIX + r"(?:suggested\s+)?action\W*:", re.IGNORECASE)
_SUMMARY_LABEL = re.compile(_LABEL_PREFIX + r"summary\W*?:[\s*_]*", re.IGNORECASE)

_URGENCIES = {u.value.casefold(): u for u in Urgency}

# A model should never claim a thread was already replied to.
_ACTIONS = {
    a.value.casefold(): a for a in SuggestedAction if a is not SuggestedAction.REPLIED
}


@dataclass(frozen=True)
class ParsedSummary:
    summary: str
    urgency: Urgency
    suggested_action: SuggestedAction


def _normalize_value(value: str) -> str:
    value = value.strip(_VALUE_NOISE)
    return re.sub(r"[\s\-]+", " ", value).casefold()


def _match_urgency(value: str) -> Urgency | None:
    if value in _URGENCIES:
        return _URGENCIES[value]
    return _URGENCIES.get(value.split(" ", 1)[0])


def _match_action(value: str) -> SuggestedAction | None:
    if value in _ACTIONS:
        return _ACTIONS[value]
    for key, action in _ACTIONS.items():
        if value.startswith(key):
            return action
    return None


def parse_summary_response(
    text: str | None,
    default_urgency: Urgency = Urgency.LOW,
    default_action: SuggestedAction = SuggestedAction.READ_LATER,
) -> ParsedSummary:
    """Extract summary, urgency and action from a model response."""

    urgency: Urgency | None = None
    action: SuggestedAction | None = None
    summary_lines: list[str] = []

    for raw_line in (text or "").splitlines():
        line = raw_line.strip()

        label = _URGENCY_LABEL.match(line)
        if label:
            if urgency is None:
                urgency = _match_urgency(_normalize_value(line[label.end():]))
            continue

        label = _ACTION_LABEL.match(line)
        if label:
            if action is None:
                action = _match_action(_normalize_value(line[label.end():]))
            continue

        line = _SUMMARY_LABEL.sub("", line)
        if line:
            summary_lines.append(line)

    return ParsedSummary(
        summary=" ".join(summary_lines),
        urgency=urgency or default_urgency,
        suggested_action=action or default_action,
    )


_KEY_POINTS_LABEL = re.compile(_LABEL_PREFIX + r"key\s+points?(?:\s*\d+)?\W*(?::|$)", re.IGNORECASE)
_SENTIMENT_LABEL = re.compile(_LABEL_PREFIX + r"(?:overall\s+)?sentiment\W*:", re.IGNORECASE)
_BULLET = re.compile(r"^\s*(?:[-*+•]|\d+[.)])\s+")

_SENTIMENTS = {s.value: s for s in Sentiment}


@dataclass(frozen=True)
class ParsedEmailSummary:
    summary: str
    key_points: list[str]
    sentiment: Sentiment


def parse_email_summary(text: str | None) -> ParsedEmailSummary:
    """Extract summary, key points and sentiment from a model response.

    Bullet lines following a ``Key points`` label, and the remainder of the
    label line itself, are key points. A ``Sentiment:`` line outside the known
    values leaves the sentiment neutral.
    """

    sentiment: Sentiment | None = None
    key_points: list[str] = []
    summary_lines: list[str] = []
    in_points = False

    for raw_line in (text or "").splitlines():
        line = raw_line.strip()
        if not line:
            continue

        label = _SENTIMENT_LABEL.match(line)
        if label:
            if sentiment is None:
                value = _normalize_value(line[label.end():])
                sentiment = _SENTIMENTS.get(value.split(" ", 1)[0]) if value else None
            in_points = False
            continue

        label = _KEY_POINTS_LABEL.match(line)
        if label:
            rest = line[label.end():].strip()
            if rest:
                key_points.append(rest)
            in_points = True
            continue

        bullet = _BULLET.match(line)
        if in_points and bullet and not _SUMMARY_LABEL.match(line):
            point = line[bullet.end():].strip()
            if point:
                key_points.append(point)
            continue

        in_points = False
        line = _SUMMARY_LABEL.sub("", line)
        if line:
            summary_lines.append(line)

    return ParsedEmailSummary(
        summary=" ".join(summary_lines),
        key_points=key_points,
        sentiment=sentiment or Sentiment.NEUTRAL,
    )
