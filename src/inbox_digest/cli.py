"""Command-line interface for Inbox Digest.

``inbox-digest-daily`` is the scheduled entry point: it takes no arguments,
runs one digest pass and exits 0 once the pass completes, even if some users
failed, or 1 if the users could not be enumerated. ``inbox-digest`` groups
the operator commands.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys

import structlog

from inbox_digest import __version__
from inbox_digest.agent import InboxAgent
from inbox_digest.config import Settings, get_settings
from inbox_digest.digest import DigestOrchestrator, SmtpDigestDelivery
from inbox_digest.exceptions import InboxDigestError
from inbox_digest.models import EmailSummary
from inbox_digest.storage import InboxRepository

logger = structlog.get_logger()


def _configure_logging(settings: Settings) -> None:
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(level))


def _configure_oauthlib() -> None:
    # Google adds openid to the granted scopes of a code exchange; oauthlib
    # rejects a scope change unless this is set.
    os.environ.setdefault("OAUTHLIB_RELAX_TOKEN_SCOPE", "1")


def _open_repository(settings: Settings) -> InboxRepository:
    repo = InboxRepository(settings.database_path)
    repo.initialize()
    return repo


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="inbox-digest", description="Inbox Digest")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("digest", help="Send the daily digest to every connected user")
    subparsers.add_parser("auth-url", help="Print the Google consent URL")

    exchange_parser = subparsers.add_parser(
        "auth-exchange",
        help="Exchange an OAuth authorization code and store the user's token",
    )
    exchange_parser.add_argument("code", help="Authorization code from the OAuth callback")

    threads_parser = subparsers.add_parser("threads", help="List a user's recent inbox threads")
    threads_parser.add_argument("user_id", help="User identifier (mailbox address)")
    threads_parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of threads (default: settings gmail_max_threads)",
    )

    summarize_parser = subparsers.add_parser(
        "summarize",
        help="Summarize a user's recent inbox threads and store the summaries",
    )
    summarize_parser.add_argument("user_id", help="User identifier (mailbox address)")
    summarize_parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of threads (default: settings gmail_max_threads)",
    )

    reply_parser = subparsers.add_parser("reply", help="Reply to the last message of a thread")
    reply_parser.add_argument("user_id", help="User identifier (mailbox address)")
    reply_parser.add_argument("thread_id", help="Gmail thread ID")
    reply_parser.add_argument("message", help="Plain-text reply body")

    process_parser = subparsers.add_parser(
        "process",
        help="Summarize a user's recent messages one by one and store the summaries",
    )
    process_parser.add_argument("user_id", help="User identifier (mailbox address)")
    process_parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of messages (default: settings gmail_max_threads)",
    )

    summaries_parser = subparsers.add_parser(
        "email-summaries", help="List a user's stored message summaries"
    )
    summaries_parser.add_argument("user_id", help="User identifier (mailbox address)")

    summary_parser = subparsers.add_parser("email-summary", help="Show one stored message summary")
    summary_parser.add_argument("summary_id", help="Summary ID")

    logout_parser = subparsers.add_parser("logout", help="Delete a user's stored token")
    logout_parser.add_argument("user_id", help="User identifier (mailbox address)")

    return parser


async def _run_digest(settings: Settings) -> int:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Signal handlers are unavailable on some platforms and threads.
            pass

    try:
        repo = _open_repository(settings)
        orchestrator = DigestOrchestrator(repo, SmtpDigestDelivery(settings), settings)
        report = await orchestrator.run_daily_digests(stop=stop)
    except Exception as exc:  # noqa: BLE001
        logger.error("daily_digest_failed", error=str(exc))
        print(f"Error sending daily digests: {exc}", file=sys.stderr)
        return 1

    print(
        f"Daily digests sent: {len(report.sent)} sent, {len(report.skipped)} skipped, "
        f"{len(report.failed)} failed"
    )
    return 0


async def _cmd_auth_exchange(args: argparse.Namespace, agent: InboxAgent) -> int:
    token = await agent.credentials.exchange_code(args.code)
    print(f"Authenticated {token.email} (user id {token.user_id})")
    return 0


async def _cmd_threads(args: argparse.Namespace, agent: InboxAgent) -> int:
    threads = await agent.list_threads(args.user_id, args.limit)
    for t in threads:
        print(f"{t.id}\t{t.last_message_date.isoformat()}\t{len(t.messages)}\t{t.subject}")
    return 0


async def _cmd_summarize(args: argparse.Namespace, agent: InboxAgent) -> int:
    results = await agent.summarize_threads(args.user_id, args.limit)
    for thread, summary in results:
        print(
            f"{thread.id}\t{summary.urgency.value}\t{summary.suggested_action.value}\t"
            f"{summary.subject}\n    {summary.summary}"
        )
    return 0


def _print_email_summary(summary: EmailSummary) -> None:
    print(f"{summary.id}\t{summary.email_id}\t{summary.sentiment.value}\t{summary.subject}")
    print(f"    {summary.summary}")
    for point in summary.key_points:
        print(f"    - {point}")


async def _cmd_process(args: argparse.Namespace, agent: InboxAgent) -> int:
    results = await agent.process_emails(args.user_id, args.limit)
    for _message, summary in results:
        _print_email_summary(summary)
    return 0


async def _cmd_email_summaries(args: argparse.Namespace, agent: InboxAgent) -> int:
    for summary in agent.email_summaries(args.user_id):
        _print_email_summary(summary)
    return 0


async def _cmd_email_summary(args: argparse.Namespace, agent: InboxAgent) -> int:
    _print_email_summary(agent.email_summary(args.summary_id))
    return 0


async def _cmd_reply(args: argparse.Namespace, agent: InboxAgent) -> int:
    reply = await agent.send_reply(args.user_id, args.thread_id, args.message)
    print(f"Reply {reply.id} sent to thread {reply.thread_id}")
    return 0


async def _cmd_logout(args: argparse.Namespace, agent: InboxAgent) -> int:
    await agent.credentials.forget(args.user_id)
    print(f"Logged out {args.user_id}")
    return 0


_AGENT_COMMANDS = {
    "auth-exchange": _cmd_auth_exchange,
    "threads": _cmd_threads,
    "summarize": _cmd_summarize,
    "process": _cmd_process,
    "email-summaries": _cmd_email_summaries,
    "email-summary": _cmd_email_summary,
    "reply": _cmd_reply,
    "logout": _cmd_logout,
}


def main(args: list[str] | None = None) -> int:
    """Main entry point for the Inbox Digest CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    if args is None:
        args = sys.argv[1:]

    settings = get_settings()
    _configure_logging(settings)
    _configure_oauthlib()

    logger.info("inbox_digest_started", version=__version__, debug=settings.debug)

    parser = _build_parser()
    parsed = parser.parse_args(args)

    if parsed.command == "digest":
        return asyncio.run(_run_digest(settings))

    try:
        agent = InboxAgent(_open_repository(settings), settings=settings)
        if parsed.command == "auth-url":
            print(agent.credentials.authorization_url())
            return 0

        handler = _AGENT_COMMANDS.get(parsed.command)
        if handler is not None:
            return asyncio.run(handler(parsed, agent))
    except InboxDigestError as exc:
        logger.error("command_failed", command=parsed.command, error=str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    logger.error("unknown_command", command=parsed.command)
    return 2


def daily_main(args: list[str] | None = None) -> int:
    """Scheduled entry point: run one daily digest pass."""
    if args is None:
        args = sys.argv[1:]

    argparse.ArgumentParser(
        prog="inbox-digest-daily",
        description="Send the daily digest to every connected user",
    ).parse_args(args)

    settings = get_settings()
    _configure_logging(settings)
    return asyncio.run(_run_digest(settings))


if __name__ == "__main__":
    sys.exit(main())
