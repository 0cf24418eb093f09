"""
Shared data model for the study core.

These are pure data structures with no I/O. CardMemoryState is the
per-(learner, card) memory record produced by the scheduler; everything else
in the package reads it but never mutates it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any

SECONDS_PER_DAY = 86400.0


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime:
    """
    Normalise a datetime to aware UTC.

    Naive datetimes are taken to already be UTC. None means "now".
    """
    if value is None:
        return utcnow()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def days_between(start: datetime, end: datetime) -> float:
    """Fractional days from start to end (negative if end is earlier)."""
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / SECONDS_PER_DAY


class CardState(IntEnum):
    """FSRS card state. Values match the persisted integer codes."""

    NEW = 0
    LEARNING = 1
    REVIEW = 2
    RELEARNING = 3

    @property
    def label(self) -> str:
        return self.name.lower()


class Grade(IntEnum):
    """Learner self-rating for one review."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


class MasteryLevel(str, Enum):
    """Five-level mastery label, totally ordered from NEW to MASTERED."""

    NEW = "new"
    LEARNING = "learning"
    FAMILIAR = "familiar"
    PROFICIENT = "proficient"
    MASTERED = "mastered"

    @property
    def rank(self) -> int:
        return _MASTERY_ORDER.index(self)

    # str comparisons would order alphabetically
    def __lt__(self, other: object) -> bool:
        if not isinstance(other, MasteryLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, MasteryLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, MasteryLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, MasteryLevel):
            return NotImplemented
        return self.rank >= other.rank


_MASTERY_ORDER = [
    MasteryLevel.NEW,
    MasteryLevel.LEARNING,
    MasteryLevel.FAMILIAR,
    MasteryLevel.PROFICIENT,
    MasteryLevel.MASTERED,
]


@dataclass(frozen=True)
class CardMemoryState:
    """
    FSRS memory state for one learner and one review card.

    Attributes:
        card_id: Catalog identifier of the review card.
        due: When the card is next eligible for review (aware UTC).
        stability: Days until recall probability drops to the target retention.
        difficulty: Scheduler difficulty estimate (1-10).
        reps: Graded reviews so far.
        lapses: Times the card was forgotten after graduating to Review.
        state: Current FSRS state.
        last_review: Most recent grading, None if never reviewed.
        scheduled_days: Interval assigned by the last review (days).
        elapsed_days: Days between the last two reviews.
        step: Scheduler learning/relearning step, None once in Review.
    """

    card_id: str
    due: datetime
    stability: float = 0.0
    difficulty: float = 0.0
    reps: int = 0
    lapses: int = 0
    state: CardState = CardState.NEW
    last_review: datetime | None = None
    scheduled_days: float = 0.0
    elapsed_days: float = 0.0
    step: int | None = 0

    def is_due(self, now: datetime | None = None) -> bool:
        return ensure_utc(self.due) <= ensure_utc(now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-safe dictionary for persistence by callers."""
        return {
            "card_id": self.card_id,
            "due": ensure_utc(self.due).isoformat(),
            "stability": self.stability,
            "difficulty": self.difficulty,
            "reps": self.reps,
            "lapses": self.lapses,
            "state": int(self.state),
            "last_review": (
                ensure_utc(self.last_review).isoformat() if self.last_review else None
            ),
            "scheduled_days": self.scheduled_days,
            "elapsed_days": self.elapsed_days,
            "step": self.step,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CardMemoryState:
        """
        Create from a dictionary produced by to_dict().

        Raises:
            ValueError: a reviewed (non-New) state carries no stability
        """
        last_review = data.get("last_review")
        state = CardState(int(data.get("state", CardState.NEW)))
        stability = float(data.get("stability") or 0.0)
        if state != CardState.NEW and stability <= 0:
            raise ValueError(f"Card {data['card_id']} in state {state.label} has no stability")
        return cls(
            card_id=str(data["card_id"]),
            due=ensure_utc(_parse_datetime(data["due"])),
            stability=stability,
            difficulty=float(data.get("difficulty") or 0.0),
            reps=int(data.get("reps", 0)),
            lapses=int(data.get("lapses", 0)),
            state=state,
            last_review=ensure_utc(_parse_datetime(last_review)) if last_review else None,
            scheduled_days=float(data.get("scheduled_days") or 0.0),
            elapsed_days=float(data.get("elapsed_days") or 0.0),
            step=data.get("step", 0 if state in (CardState.NEW, CardState.LEARNING) else None),
        )


@dataclass(frozen=True)
class ReviewLogEntry:
    """
    Scheduler log for one graded review.

    The memory fields (state, due, stability, difficulty) describe the card
    *before* the review, matching the append-only review history.
    """

    card_id: str
    grade: Grade
    state: CardState
    due: datetime
    stability: float
    difficulty: float
    elapsed_days: float
    last_elapsed_days: float
    scheduled_days: float
    reviewed_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "card_id": self.card_id,
            "rating": int(self.grade),
            "state": int(self.state),
            "due": self.due.isoformat(),
            "stability": self.stability,
            "difficulty": self.difficulty,
            "elapsed_days": self.elapsed_days,
            "last_elapsed_days": self.last_elapsed_days,
            "scheduled_days": self.scheduled_days,
            "reviewed_at": self.reviewed_at.isoformat(),
        }


def _parse_datetime(value: datetime | str) -> datetime:
    if isinstance(value, datetime):
        return value
    # fromisoformat() on older interpreters rejects the Z suffix
    return datetime.fromisoformat(value.replace("Z", "+00:00"))
