"""AI thread and message summarization."""

from .parsing import ParsedEmailSummary, ParsedSummary, parse_email_summary, parse_summary_response
from .service import EmailSummarizer, ThreadSummarizer

__all__ = [
    "EmailSummarizer",
    "ParsedEmailSummary",
    "ParsedSummary",
    "ThreadSummarizer",
    "parse_email_summary",
    "parse_summary_response",
]
