"""Daily digest selection, delivery and orchestration."""

from .builder import GroupedSummaries, build_digest
from .delivery import SmtpDigestDelivery
from .orchestrator import DigestOrchestrator

__all__ = ["DigestOrchestrator", "GroupedSummaries", "SmtpDigestDelivery", "build_digest"]
