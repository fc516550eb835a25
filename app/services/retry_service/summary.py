"""
Retry Service - Summary Module.

Module: summary.py
Aggregate counts reported by one retry cycle.
"""

from dataclasses import asdict, dataclass
from enum import Enum


class RetryOutcome(str, Enum):
    """Outcome of a single retry attempt."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    RESCHEDULED = "rescheduled"


@dataclass
class RetrySummary:
    """Counts for one cycle. processed == succeeded + failed + rescheduled."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    rescheduled: int = 0

    def record(self, outcome: RetryOutcome) -> None:
        """Count one processed item."""
        self.processed += 1
        if outcome is RetryOutcome.SUCCEEDED:
            self.succeeded += 1
        elif outcome is RetryOutcome.FAILED:
            self.failed += 1
        else:
            self.rescheduled += 1

    def to_dict(self) -> dict[str, int]:
        """Plain dict for logs and job results."""
        return asdict(self)
