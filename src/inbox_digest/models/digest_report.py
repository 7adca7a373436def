"""Per-user results of a digest run.

The orchestrator never lets one user's failure escape its loop; instead every
user ends up as exactly one outcome in the report, so callers can see what
was sent, skipped and failed.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class DigestStatus(str, Enum):
    """Outcome of processing one user in a digest run."""

    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"


class UserDigestOutcome(BaseModel):
    """What happened to a single user during a digest run."""

    user_id: str = Field(description="Processed user")
    email: str = Field(description="Digest recipient address")
    status: DigestStatus = Field(description="Outcome of the user's iteration")
    summary_count: int = Field(default=0, description="Summaries handed to delivery")
    error: str | None = Field(default=None, description="Error message if failed")


class DigestRunReport(BaseModel):
    """Collected outcomes of one digest run."""

    outcomes: list[UserDigestOutcome] = Field(default_factory=list)
    cancelled: bool = Field(
        default=False,
        description="Whether the run stopped early on a stop signal",
    )

    def _with_status(self, status: DigestStatus) -> list[UserDigestOutcome]:
        return [o for o in self.outcomes if o.status is status]

    @property
    def sent(self) -> list[UserDigestOutcome]:
        return self._with_status(DigestStatus.SENT)

    @property
    def skipped(self) -> list[UserDigestOutcome]:
        return self._with_status(DigestStatus.SKIPPED)

    @property
    def failed(self) -> list[UserDigestOutcome]:
        return self._with_status(DigestStatus.FAILED)
