"""Exception types raised by the study core."""

from __future__ import annotations


class CortexSRSError(Exception):
    """Base class for errors surfaced to callers."""
    pass


class SchedulerContractError(CortexSRSError):
    """Raised when the FSRS scheduler returns a state that breaks its contract."""

    def __init__(self, card_id: str, reason: str):
        self.card_id = card_id
        self.reason = reason
        super().__init__(f"Scheduler contract violated for card {card_id}: {reason}")


class CatalogError(CortexSRSError):
    """Raised when catalog or learner snapshot data cannot be loaded."""
    pass
