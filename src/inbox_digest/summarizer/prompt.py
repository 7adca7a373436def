"""Prompt construction for thread and message summaries."""

from __future__ import annotations

from inbox_digest.models import EmailMessage, EmailThread

SYSTEM_PROMPT = (
    "You are an AI assistant that analyzes email threads and provides concise "
    "summaries, urgency levels, and suggested actions."
)


def _format_message_block(thread: EmailThread) -> str:
    blocks = []
    for msg in thread.messages:
        marker = "(Reply)" if msg.is_reply else "(Original Message)"
        blocks.append(
            f"From: {msg.sender}\n"
            f"To: {msg.recipient}\n"
            f"Date: {msg.date.isoformat()}\n"
            f"Subject: {msg.subject}\n"
            f"{marker}\n"
            f"{msg.body}\n"
            "---"
        )
    return "\n".join(blocks)


def build_thread_prompt(thread: EmailThread) -> str:
    return (
        "Please analyze this email thread and provide:\n"
        "1. A concise two-sentence summary of the conversation\n"
        "2. Urgency level (Low, Medium, or High)\n"
        "3. Suggested action (Reply, Follow Up, Read Later, Archive, or Forward)\n"
        "\n"
        "Answer with the summary first, then one line 'Urgency: <level>' and one "
        "line 'Action: <action>'.\n"
        "\n"
        "Consider:\n"
        "- The tone and content of the messages\n"
        "- Time sensitivity\n"
        "- Whether it requires immediate attention\n"
        "- If it's a one-time conversation or ongoing discussion\n"
        "\n"
        "Email thread:\n"
        f"{_format_message_block(thread)}"
    )


EMAIL_SYSTEM_PROMPT = (
    "You are an AI assistant that analyzes emails and provides concise "
    "summaries, key points, and sentiment analysis."
)


def build_email_prompt(message: EmailMessage) -> str:
    return (
        "Please analyze the following email and provide:\n"
        "1. A concise summary\n"
        "2. Key points\n"
        "3. Overall sentiment (positive, negative, or neutral)\n"
        "\n"
        "Answer with one line 'Summary: <summary>', then 'Key points:' followed by "
        "one '- <point>' line per point, then one line 'Sentiment: <sentiment>'.\n"
        "\n"
        "Email content:\n"
        f"From: {message.sender}\n"
        f"Subject: {message.subject}\n"
        f"{message.body}"
    )
