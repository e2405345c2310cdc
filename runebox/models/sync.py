from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from runebox.models.failure import FailureDetail


class SyncMode(str, Enum):
    """Which sync path produced a result."""

    FULL = "full"
    INCREMENTAL = "incremental"


class SyncStatus(str, Enum):
    """Outcome of a single sync run."""

    NEW_DATA = "new_data"
    NO_DATA = "no_data"
    # Another run was already in flight; this request was coalesced into it
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class SyncResult:
    """
    Result of one sync run.

    Attributes:
        mode: Full or incremental
        status: Outcome classification
        cards_applied: Card rows actually written
        sets_applied: Set rows actually written
        watermark: Card watermark the run fetched from (None for a full fetch)
        started_at: When the run began
        finished_at: When the run ended
        error: Failure description when status is FAILED
    """

    mode: SyncMode
    status: SyncStatus
    cards_applied: int = 0
    sets_applied: int = 0
    watermark: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error: FailureDetail | None = None

    @property
    def applied(self) -> int:
        return self.cards_applied + self.sets_applied

    @property
    def ok(self) -> bool:
        return self.status is not SyncStatus.FAILED
