"""SQLite-backed persistence for tokens, summaries and reply logs.

One row per user in ``user_tokens`` (keyed by user_id), one row per
(thread_id, user_id) in ``thread_summaries``, one row per (email_id, user_id)
in ``email_summaries`` and an append-only ``email_replies`` log.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

import structlog

from inbox_digest.exceptions import StorageError
from inbox_digest.models import (
    EmailReply,
    EmailSummary,
    Sentiment,
    SuggestedAction,
    ThreadSummary,
    Urgency,
    UserToken,
)

logger = structlog.get_logger()


_SCHEMA_VERSION = 2


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InboxRepository:
    """Repository for tokens, thread summaries and sent replies."""

    def __init__(self, db_path: Path) -> None:
        """Create a repository.

        Args:
            db_path: Path to the SQLite database file.
        """

        self._db_path = db_path

    def initialize(self) -> None:
        """Create or upgrade the schema."""

        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL;")

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS _schema_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );
                """
            )

            current_version = self._get_schema_version(conn)
            if current_version is None:
                self._create_schema_v1(conn)
                self._migrate_v1_to_v2(conn)
                self._set_schema_version(conn, _SCHEMA_VERSION)
                conn.commit()
                logger.info("inbox_schema_created", version=_SCHEMA_VERSION)
                return

            if current_version == 1:
                self._migrate_v1_to_v2(conn)
                self._set_schema_version(conn, 2)
                conn.commit()
                logger.info("inbox_schema_migrated", from_version=1, to_version=2)
                return

            if current_version != _SCHEMA_VERSION:
                raise StorageError(
                    f"Unsupported schema version {current_version}; expected {_SCHEMA_VERSION}"
                )

    # Tokens

    def save_token(self, token: UserToken) -> UserToken:
        """Insert or replace the token of ``token.user_id``."""

        updated_at = _now()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO user_tokens (
                    user_id, email, access_token, refresh_token, scope, token_type,
                    expiry_date, created_at, updated_at
                )
                VALUES (
                    :user_id, :email, :access_token, :refresh_token, :scope, :token_type,
                    :expiry_date, :created_at, :updated_at
                )
                ON CONFLICT(user_id) DO UPDATE SET
                    email=excluded.email,
                    access_token=excluded.access_token,
                    refresh_token=excluded.refresh_token,
                    scope=excluded.scope,
                    token_type=excluded.token_type,
                    expiry_date=excluded.expiry_date,
                    updated_at=excluded.updated_at
                """,
                {
                    "user_id": token.user_id,
                    "email": token.email,
                    "access_token": token.access_token,
                    "refresh_token": token.refresh_token,
                    "scope": token.scope,
                    "token_type": token.token_type,
                    "expiry_date": token.expiry_date,
                    "created_at": token.created_at.isoformat(),
                    "updated_at": updated_at.isoformat(),
                },
            )
            conn.commit()

        logger.info("user_token_saved", user_id=token.user_id, expiry_date=token.expiry_date)
        stored = self.get_token(token.user_id)
        assert stored is not None
        return stored

    def get_token(self, user_id: str) -> UserToken | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM user_tokens WHERE user_id = ?", (user_id,)
            ).fetchone()
        return self._row_to_token(row) if row else None

    def delete_token(self, user_id: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM user_tokens WHERE user_id = ?", (user_id,))
            conn.commit()
        logger.info("user_token_deleted", user_id=user_id)

    def list_users_with_tokens(self) -> list[UserToken]:
        """Return every stored token, i.e. every user known to the system."""

        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM user_tokens ORDER BY user_id").fetchall()
        return [self._row_to_token(row) for row in rows]

    # Thread summaries

    def save_thread_summary(self, summary: ThreadSummary) -> ThreadSummary:
        """Upsert a summary on (thread_id, user_id).

        An existing row keeps its id and created_at.
        """

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO thread_summaries (
                    id, thread_id, user_id, subject, summary, urgency, suggested_action,
                    created_at, updated_at
                )
                VALUES (
                    :id, :thread_id, :user_id, :subject, :summary, :urgency, :suggested_action,
                    :created_at, :updated_at
                )
                ON CONFLICT(thread_id, user_id) DO UPDATE SET
                    subject=excluded.subject,
                    summary=excluded.summary,
                    urgency=excluded.urgency,
                    suggested_action=excluded.suggested_action,
                    updated_at=excluded.updated_at
                """,
                {
                    "id": summary.id,
                    "thread_id": summary.thread_id,
                    "user_id": summary.user_id,
                    "subject": summary.subject,
                    "summary": summary.summary,
                    "urgency": summary.urgency.value,
                    "suggested_action": summary.suggested_action.value,
                    "created_at": summary.created_at.isoformat(),
                    "updated_at": _now().isoformat(),
                },
            )
            conn.commit()

        stored = self.get_thread_summary(summary.thread_id, summary.user_id)
        assert stored is not None
        return stored

    def get_thread_summary(self, thread_id: str, user_id: str) -> ThreadSummary | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM thread_summaries WHERE thread_id = ? AND user_id = ?",
                (thread_id, user_id),
            ).fetchone()
        return self._row_to_summary(row) if row else None

    def list_thread_summaries(self, user_id: str) -> list[ThreadSummary]:
        """Return the user's summaries, newest first."""

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM thread_summaries
                WHERE user_id = ?
                ORDER BY created_at DESC, rowid DESC
                """,
                (user_id,),
            ).fetchall()
        return [self._row_to_summary(row) for row in rows]

    def mark_thread_replied(self, thread_id: str, user_id: str) -> ThreadSummary | None:
        """Set the summary's suggested action to Replied, if a summary exists."""

        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE thread_summaries
                SET suggested_action = ?, updated_at = ?
                WHERE thread_id = ? AND user_id = ?
                """,
                (SuggestedAction.REPLIED.value, _now().isoformat(), thread_id, user_id),
            )
            conn.commit()
            changed = cursor.rowcount

        if not changed:
            return None
        return self.get_thread_summary(thread_id, user_id)

    # Email summaries

    def save_email_summary(self, summary: EmailSummary) -> EmailSummary:
        """Upsert a summary on (email_id, user_id).

        An existing row keeps its id and created_at.
        """

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO email_summaries (
                    id, email_id, user_id, subject, summary, key_points, sentiment,
                    created_at, updated_at
                )
                VALUES (
                    :id, :email_id, :user_id, :subject, :summary, :key_points, :sentiment,
                    :created_at, :updated_at
                )
                ON CONFLICT(email_id, user_id) DO UPDATE SET
                    subject=excluded.subject,
                    summary=excluded.summary,
                    key_points=excluded.key_points,
                    sentiment=excluded.sentiment,
                    updated_at=excluded.updated_at
                """,
                {
                    "id": summary.id,
                    "email_id": summary.email_id,
                    "user_id": summary.user_id,
                    "subject": summary.subject,
                    "summary": summary.summary,
                    "key_points": json.dumps(summary.key_points),
                    "sentiment": summary.sentiment.value,
                    "created_at": summary.created_at.isoformat(),
                    "updated_at": _now().isoformat(),
                },
            )
            conn.commit()
            row = conn.execute(
                "SELECT * FROM email_summaries WHERE email_id = ? AND user_id = ?",
                (summary.email_id, summary.user_id),
            ).fetchone()

        logger.info("email_summary_saved", user_id=summary.user_id, email_id=summary.email_id)
        return self._row_to_email_summary(row)

    def get_email_summary(self, summary_id: str) -> EmailSummary | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM email_summaries WHERE id = ?", (summary_id,)
            ).fetchone()
        return self._row_to_email_summary(row) if row else None

    def list_email_summaries(self, user_id: str) -> list[EmailSummary]:
        """Return the user's message summaries, newest first."""

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM email_summaries
                WHERE user_id = ?
                ORDER BY created_at DESC, rowid DESC
                """,
                (user_id,),
            ).fetchall()
        return [self._row_to_email_summary(row) for row in rows]

    # Replies

    def save_email_reply(self, reply: EmailReply) -> EmailReply:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO email_replies (
                    id, thread_id, user_id, message, sent_at, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    reply.id,
                    reply.thread_id,
                    reply.user_id,
                    reply.message,
                    reply.sent_at.isoformat(),
                    reply.created_at.isoformat(),
                    reply.updated_at.isoformat(),
                ),
            )
            conn.commit()
        logger.info("email_reply_logged", user_id=reply.user_id, thread_id=reply.thread_id)
        return reply

    def list_thread_replies(self, thread_id: str) -> list[EmailReply]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM email_replies WHERE thread_id = ? ORDER BY sent_at DESC",
                (thread_id,),
            ).fetchall()
        return [self._row_to_reply(row) for row in rows]

    def list_user_replies(self, user_id: str) -> list[EmailReply]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM email_replies WHERE user_id = ? ORDER BY sent_at DESC",
                (user_id,),
            ).fetchall()
        return [self._row_to_reply(row) for row in rows]

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self._db_path)
        except sqlite3.Error as exc:
            raise StorageError(f"cannot open {self._db_path}: {exc}") from exc
        try:
            conn.row_factory = sqlite3.Row
            yield conn
        except sqlite3.Error as exc:
            logger.exception("storage_query_failed", db_path=str(self._db_path), error=str(exc))
            raise StorageError(str(exc)) from exc
        finally:
            conn.close()

    def _get_schema_version(self, conn: sqlite3.Connection) -> int | None:
        row = conn.execute(
            "SELECT value FROM _schema_meta WHERE key = 'schema_version'"
        ).fetchone()
        if row is None:
            return None
        return int(row[0])

    def _set_schema_version(self, conn: sqlite3.Connection, version: int) -> None:
        conn.execute(
            "INSERT OR REPLACE INTO _schema_meta(key, value) VALUES('schema_version', ?) ",
            (str(version),),
        )

    def _create_schema_v1(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS user_tokens (
                user_id TEXT PRIMARY KEY,
                email TEXT NOT NULL,
                access_token TEXT NOT NULL,
                refresh_token TEXT NOT NULL,
                scope TEXT NOT NULL,
                token_type TEXT NOT NULL,
                expiry_date INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS thread_summaries (
                rowid INTEGER PRIMARY KEY,
                id TEXT NOT NULL UNIQUE,
                thread_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                subject TEXT NOT NULL,
                summary TEXT NOT NULL,
                urgency TEXT NOT NULL,
                suggested_action TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE(thread_id, user_id)
            );

            CREATE INDEX IF NOT EXISTS idx_thread_summaries_user
                ON thread_summaries(user_id, created_at);

            CREATE TABLE IF NOT EXISTS email_replies (
                id TEXT PRIMARY KEY,
                thread_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                message TEXT NOT NULL,
                sent_at TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_email_replies_thread
                ON email_replies(thread_id);

            CREATE INDEX IF NOT EXISTS idx_email_replies_user
                ON email_replies(user_id);
            """
        )

    def _migrate_v1_to_v2(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS email_summaries (
                rowid INTEGER PRIMARY KEY,
                id TEXT NOT NULL UNIQUE,
                email_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                subject TEXT NOT NULL,
                summary TEXT NOT NULL,
                key_points TEXT NOT NULL,
                sentiment TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE(email_id, user_id)
            );

            CREATE INDEX IF NOT EXISTS idx_email_summaries_user
                ON email_summaries(user_id, created_at);
            """
        )

    def _row_to_token(self, row: sqlite3.Row) -> UserToken:
        return UserToken(
            user_id=row["user_id"],
            email=row["email"],
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            scope=row["scope"],
            token_type=row["token_type"],
            expiry_date=int(row["expiry_date"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def _row_to_summary(self, row: sqlite3.Row) -> ThreadSummary:
        return ThreadSummary(
            id=row["id"],
            thread_id=row["thread_id"],
            user_id=row["user_id"],
            subject=row["subject"],
            summary=row["summary"],
            urgency=Urgency(row["urgency"]),
            suggested_action=SuggestedAction(row["suggested_action"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def _row_to_reply(self, row: sqlite3.Row) -> EmailReply:
        return EmailReply(
            id=row["id"],
            thread_id=row["thread_id"],
            user_id=row["user_id"],
            message=row["message"],
            sent_at=datetime.fromisoformat(row["sent_at"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def _row_to_email_summary(self, row: sqlite3.Row) -> EmailSummary:
        return EmailSummary(
            id=row["id"],
            email_id=row["email_id"],
            user_id=row["user_id"],
            subject=row["subject"],
            summary=row["summary"],
            key_points=json.loads(row["key_points"]),
            sentiment=Sentiment(row["sentiment"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
