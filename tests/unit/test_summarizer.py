"""Unit tests for thread summarization."""

import asyncio
from datetime import datetime, timezone

import pytest

from inbox_digest.exceptions import OllamaConnectionError
from inbox_digest.models import EmailMessage, EmailThread, Sentiment, SuggestedAction, Urgency
from inbox_digest.summarizer import (
    EmailSummarizer,
    ThreadSummarizer,
    parse_email_summary,
    parse_summary_response,
)
from inbox_digest.summarizer.prompt import build_email_prompt, build_thread_prompt


def _thread(thread_id: str = "t1", subject: str = "Quarterly report") -> EmailThread:
    return EmailThread.from_messages(
        thread_id,
        [
            EmailMessage(
                id=f"{thread_id}-m1",
                sender="boss@example.com",
                recipient="me@example.com",
                subject=subject,
                body="Please send the numbers by noon.",
                date=datetime(2024, 1, 1, 9, tzinfo=timezone.utc),
            ),
            EmailMessage(
                id=f"{thread_id}-m2",
                sender="me@example.com",
                recipient="boss@example.com",
                subject=f"Re: {subject}",
                body="Working on it.",
                date=datetime(2024, 1, 1, 10, tzinfo=timezone.utc),
                is_reply=True,
            ),
        ],
    )


class FakeOllama:
    def __init__(self, response: str = "Summary.\nUrgency: High\nAction: Reply") -> None:
        self.response = response
        self.prompts: list[str] = []
        self.active = 0
        self.peak = 0
        self.error: Exception | None = None

    async def generate(self, prompt, model=None, system=None) -> str:
        self.prompts.append(prompt)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(0.01)
            if self.error is not None:
                raise self.error
            return self.response
        finally:
            self.active -= 1


class TestParseSummaryResponse:
    def test_labelled_response(self) -> None:
        parsed = parse_summary_response(
            "The boss wants the numbers.\nThey are due at noon.\nUrgency: High\nAction: Follow Up"
        )

        assert parsed.summary == "The boss wants the numbers. They are due at noon."
        assert parsed.urgency is Urgency.HIGH
        assert parsed.suggested_action is SuggestedAction.FOLLOW_UP

    def test_markdown_decorations_are_tolerated(self) -> None:
        parsed = parse_summary_response(
            "1. Summary: Lunch plans.\n2. **Urgency level:** medium\n3. Suggested action: *read-later*"
        )

        assert parsed.summary == "Lunch plans."
        assert parsed.urgency is Urgency.MEDIUM
        assert parsed.suggested_action is SuggestedAction.READ_LATER

    @pytest.mark.parametrize("text", [None, "", "just some prose"])
    def test_missing_fields_use_defaults(self, text) -> None:
        parsed = parse_summary_response(text)

        assert parsed.urgency is Urgency.LOW
        assert parsed.suggested_action is SuggestedAction.READ_LATER

    def test_unknown_values_use_defaults(self) -> None:
        parsed = parse_summary_response(
            "x\nUrgency: critical\nAction: panic",
            default_urgency=Urgency.MEDIUM,
            default_action=SuggestedAction.ARCHIVE,
        )

        assert parsed.urgency is Urgency.MEDIUM
        assert parsed.suggested_action is SuggestedAction.ARCHIVE

    def test_replied_is_never_suggested(self) -> None:
        parsed = parse_summary_response("x\nAction: Replied")

        assert parsed.suggested_action is SuggestedAction.READ_LATER

    def test_first_label_wins(self) -> None:
        parsed = parse_summary_response("Urgency: Low\nUrgency: High")

        assert parsed.urgency is Urgency.LOW

    @pytest.mark.parametrize("word", ["transaction", "interaction", "reaction"])
    def test_label_words_inside_summary_text_are_kept(self, word) -> None:
        parsed = parse_summary_response(
            f"Bank asks you to confirm the pending {word}: $500 to ACME.\nUrgency: High\nAction: Reply"
        )

        assert parsed.summary == f"Bank asks you to confirm the pending {word}: $500 to ACME."
        assert parsed.urgency is Urgency.HIGH
        assert parsed.suggested_action is SuggestedAction.REPLY

    def test_summary_line_mentioning_urgency_midway_is_kept(self) -> None:
        parsed = parse_summary_response("Client stresses the urgency: ship Friday.\nUrgency: Medium")

        assert parsed.summary == "Client stresses the urgency: ship Friday."
        assert parsed.urgency is Urgency.MEDIUM


class TestThreadSummarizer:
    def test_prompt_includes_every_message(self) -> None:
        prompt = build_thread_prompt(_thread())

        assert "Please send the numbers by noon." in prompt
        assert "Working on it." in prompt
        assert "(Reply)" in prompt
        assert "(Original Message)" in prompt

    @pytest.mark.asyncio
    async def test_summarize_thread(self, mock_settings) -> None:
        summarizer = ThreadSummarizer(FakeOllama(), mock_settings)

        summary = await summarizer.summarize_thread(_thread(), "a@example.com")

        assert summary.thread_id == "t1"
        assert summary.user_id == "a@example.com"
        assert summary.subject == "Re: Quarterly report"
        assert summary.summary == "Summary."
        assert summary.urgency is Urgency.HIGH
        assert summary.suggested_action is SuggestedAction.REPLY

    @pytest.mark.asyncio
    async def test_configured_defaults_apply(self, mock_settings) -> None:
        settings = mock_settings.model_copy(update={"default_urgency": Urgency.MEDIUM})
        summarizer = ThreadSummarizer(FakeOllama("no labels here"), settings)

        summary = await summarizer.summarize_thread(_thread(), "a@example.com")

        assert summary.urgency is Urgency.MEDIUM

    @pytest.mark.asyncio
    async def test_batch_is_bounded_and_ordered(self, mock_settings) -> None:
        ollama = FakeOllama()
        summarizer = ThreadSummarizer(ollama, mock_settings)
        threads = [_thread(f"t{i}") for i in range(6)]

        summaries = await summarizer.summarize_threads(threads, "a@example.com")

        assert [s.thread_id for s in summaries] == [f"t{i}" for i in range(6)]
        assert ollama.peak == mock_settings.summarize_concurrency

    @pytest.mark.asyncio
    async def test_backend_failure_propagates(self, mock_settings) -> None:
        ollama = FakeOllama()
        ollama.error = OllamaConnectionError("down")

        with pytest.raises(OllamaConnectionError):
            await ThreadSummarizer(ollama, mock_settings).summarize_threads([_thread()], "a@example.com")


class TestParseEmailSummary:
    def test_labelled_response(self) -> None:
        parsed = parse_email_summary(
            "Summary: The vendor asks for payment of invoice 42.\n"
            "Key points:\n"
            "- Invoice 42 is overdue\n"
            "- A late fee applies after Friday\n"
            "Sentiment: Negative"
        )

        assert parsed.summary == "The vendor asks for payment of invoice 42."
        assert parsed.key_points == ["Invoice 42 is overdue", "A late fee applies after Friday"]
        assert parsed.sentiment is Sentiment.NEGATIVE

    def test_numbered_markdown_response(self) -> None:
        parsed = parse_email_summary(
            "1. **Summary:** Team lunch on Friday.\n"
            "2. **Key Points**\n"
            "   1. Venue is the usual place\n"
            "   2. RSVP by Thursday\n"
            "3. **Overall sentiment:** *positive*"
        )

        assert parsed.summary == "Team lunch on Friday."
        assert parsed.key_points == ["Venue is the usual place", "RSVP by Thursday"]
        assert parsed.sentiment is Sentiment.POSITIVE

    def test_inline_key_point_lines(self) -> None:
        parsed = parse_email_summary("Summary: x\nKey point 1: first\nKey point 2: second")

        assert parsed.key_points == ["first", "second"]

    @pytest.mark.parametrize(
        "text",
        [None, "", "Just some prose.", "Summary: x\nSentiment: ecstatic", "Sentiment:"],
    )
    def test_sentiment_falls_back_to_neutral(self, text) -> None:
        assert parse_email_summary(text).sentiment is Sentiment.NEUTRAL

    def test_bullets_outside_key_points_stay_in_summary(self) -> None:
        parsed = parse_email_summary("Summary:\n- ships Friday\nSentiment: neutral")

        assert parsed.summary == "- ships Friday"
        assert parsed.key_points == []

    def test_first_sentiment_wins(self) -> None:
        assert parse_email_summary("Sentiment: positive\nSentiment: negative").sentiment is Sentiment.POSITIVE


class TestEmailSummarizer:
    def test_prompt_includes_the_message(self) -> None:
        message = _thread().messages[0]

        prompt = build_email_prompt(message)

        assert message.body in prompt
        assert "Overall sentiment (positive, negative, or neutral)" in prompt

    @pytest.mark.asyncio
    async def test_summarize_email(self, mock_settings) -> None:
        ollama = FakeOllama("Summary: Numbers due.\nKey points:\n- by noon\nSentiment: neutral")
        message = _thread().messages[0]

        summary = await EmailSummarizer(ollama, mock_settings).summarize_email(message, "a@example.com")

        assert summary.email_id == message.id
        assert summary.user_id == "a@example.com"
        assert summary.subject == message.subject
        assert summary.summary == "Numbers due."
        assert summary.key_points == ["by noon"]
        assert summary.sentiment is Sentiment.NEUTRAL

    @pytest.mark.asyncio
    async def test_batch_is_bounded_and_ordered(self, mock_settings) -> None:
        ollama = FakeOllama("Summary: x")
        messages = [m for i in range(3) for m in _thread(f"t{i}").messages]

        summaries = await EmailSummarizer(ollama, mock_settings).summarize_emails(messages, "a@example.com")

        assert [s.email_id for s in summaries] == [m.id for m in messages]
        assert ollama.peak == mock_settings.summarize_concurrency
