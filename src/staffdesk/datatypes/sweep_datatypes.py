"""Reports returned by the periodic sweeps and batch operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass(slots=True)
class SweepReport:
    """Outcome of one sweep run.

    Attributes:
        processed: Records examined.
        succeeded: Records the sweep acted on successfully.
        failed: Records whose handling raised; they are retried on the next run.
        skipped: Records examined that needed no action (or were handled concurrently).
        overlapped: True when the run was skipped because the previous one was still in progress.
    """
    name: str = ""
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    overlapped: bool = False

    def __str__(self) -> str:
        if self.overlapped:
            return f"{self.name}: skipped (previous run still in progress)"
        return (
            f"{self.name}: processed={self.processed} succeeded={self.succeeded} "
            f"failed={self.failed} skipped={self.skipped}"
        )


@dataclass(slots=True)
class RestorationReport:
    """Result of a manual suspension restore across all of a member's active suspensions."""
    user_id: str
    succeeded: int = 0
    failed: int = 0
    completed_infractions: List[str] = field(default_factory=list)
    restored_roles: List[str] = field(default_factory=list)
