"""
Card Scheduler - FSRS adapter for the study core.

Wraps ``fsrs.Scheduler`` behind the small interface the review session and
mastery calculations depend on:

- create_card: fresh memory state for a card the learner has never seen
- review: grade a card and get its next memory state + log entry
- retrievability: current probability of recall
- preview: all four grade outcomes without committing

The wrapped library has no notion of a "New" state and does not count
reviews or lapses, so those are tracked here. Every review result is checked
against the scheduler contract (due date not in the past, reps +1); a
violation is logged and raised, never corrected.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Sequence, TypeVar

from fsrs import Card, Rating, Scheduler, State
from loguru import logger

from config import get_settings
from cortex_srs.errors import SchedulerContractError
from cortex_srs.models import (
    CardMemoryState,
    CardState,
    Grade,
    ReviewLogEntry,
    days_between,
    ensure_utc,
)

T = TypeVar("T")

# Lower number = reviewed sooner
STATE_PRIORITY = {
    CardState.RELEARNING: 0,
    CardState.LEARNING: 1,
    CardState.REVIEW: 2,
    CardState.NEW: 3,
}

_TO_FSRS_STATE = {
    CardState.NEW: State.Learning,
    CardState.LEARNING: State.Learning,
    CardState.REVIEW: State.Review,
    CardState.RELEARNING: State.Relearning,
}

_FROM_FSRS_STATE = {
    State.Learning: CardState.LEARNING,
    State.Review: CardState.REVIEW,
    State.Relearning: CardState.RELEARNING,
}


def state_priority(state: CardState) -> int:
    """Map a card state to its review priority (lower = more urgent)."""
    return STATE_PRIORITY.get(state, len(STATE_PRIORITY))


class CardScheduler:
    """
    FSRS scheduler with parameters fixed at construction.

    Pure with respect to its arguments: no I/O, no stored per-card state.
    Reviews are deterministic for identical inputs when fuzzing is off.
    """

    def __init__(
        self,
        desired_retention: float = 0.9,
        maximum_interval: int = 365,
        enable_fuzzing: bool = True,
        parameters: Sequence[float] | None = None,
    ):
        """
        Initialize the scheduler.

        Args:
            desired_retention: Target recall probability at the due date
            maximum_interval: Longest interval in days
            enable_fuzzing: Randomise intervals to prevent review clustering
            parameters: Optional personalised FSRS weights
        """
        self.desired_retention = desired_retention
        self.maximum_interval = maximum_interval
        self.enable_fuzzing = enable_fuzzing

        kwargs = {
            "desired_retention": desired_retention,
            "maximum_interval": maximum_interval,
            "enable_fuzzing": enable_fuzzing,
        }
        if parameters is not None:
            kwargs["parameters"] = tuple(parameters)
        self._fsrs = Scheduler(**kwargs)

    # ------------------------------------------------------------------
    # Card lifecycle
    # ------------------------------------------------------------------

    def create_card(self, card_id: str, now: datetime | None = None) -> CardMemoryState:
        """Fresh state for a card the learner has just encountered: New, due now."""
        return CardMemoryState(card_id=card_id, due=ensure_utc(now))

    def review(
        self,
        card: CardMemoryState,
        grade: Grade,
        now: datetime | None = None,
    ) -> tuple[CardMemoryState, ReviewLogEntry]:
        """
        Grade a card and return its updated state and the review log entry.

        Raises:
            SchedulerContractError: the card has no memory to review, or the
                wrapped scheduler returned an invalid state
        """
        reviewed_at = ensure_utc(now)
        grade = Grade(grade)

        if card.state != CardState.NEW and card.stability <= 0:
            reason = f"{card.state.label} card has no stability"
            logger.error(f"FSRS contract violation for {card.card_id}: {reason}")
            raise SchedulerContractError(card.card_id, reason)

        fsrs_card, _ = self._fsrs.review_card(
            self._to_fsrs_card(card),
            Rating(int(grade)),
            review_datetime=reviewed_at,
        )

        elapsed_days = (
            max(0.0, days_between(card.last_review, reviewed_at))
            if card.last_review
            else 0.0
        )
        lapsed = grade == Grade.AGAIN and card.state == CardState.REVIEW

        updated = CardMemoryState(
            card_id=card.card_id,
            due=ensure_utc(fsrs_card.due),
            stability=float(fsrs_card.stability or 0.0),
            difficulty=float(fsrs_card.difficulty or 0.0),
            reps=card.reps + 1,
            lapses=card.lapses + (1 if lapsed else 0),
            state=_FROM_FSRS_STATE[State(fsrs_card.state)],
            last_review=reviewed_at,
            scheduled_days=max(0.0, days_between(reviewed_at, fsrs_card.due)),
            elapsed_days=elapsed_days,
            step=fsrs_card.step,
        )
        self._check_contract(card, updated, reviewed_at)

        log = ReviewLogEntry(
            card_id=card.card_id,
            grade=grade,
            state=card.state,
            due=ensure_utc(card.due),
            stability=card.stability,
            difficulty=card.difficulty,
            elapsed_days=elapsed_days,
            last_elapsed_days=card.elapsed_days,
            scheduled_days=updated.scheduled_days,
            reviewed_at=reviewed_at,
        )
        return updated, log

    def preview(
        self,
        card: CardMemoryState,
        now: datetime | None = None,
    ) -> dict[Grade, tuple[CardMemoryState, ReviewLogEntry]]:
        """Outcomes for every grade, without committing any of them."""
        reviewed_at = ensure_utc(now)
        return {grade: self.review(card, grade, reviewed_at) for grade in Grade}

    # ------------------------------------------------------------------
    # Scheduling helpers
    # ------------------------------------------------------------------

    def retrievability(self, card: CardMemoryState, now: datetime | None = None) -> float:
        """
        Current probability of recall (0-1).

        Cards that have never been reviewed return 0.
        """
        if card.state == CardState.NEW or card.last_review is None or card.stability <= 0:
            return 0.0
        value = self._fsrs.get_card_retrievability(
            self._to_fsrs_card(card),
            current_datetime=ensure_utc(now),
        )
        return max(0.0, min(1.0, float(value)))

    def next_review(self, card: CardMemoryState) -> datetime:
        """When the card is next due."""
        return ensure_utc(card.due)

    def due_cards(
        self,
        cards: Iterable[CardMemoryState],
        now: datetime | None = None,
    ) -> list[CardMemoryState]:
        """Filter to cards whose due date is at or before now."""
        cutoff = ensure_utc(now)
        return [card for card in cards if card.is_due(cutoff)]

    def sort_by_priority(self, items: Iterable[T], key=None) -> list[T]:
        """
        Sort by review priority, most urgent first.

        Relearning, then Learning, then Review, then New; earlier due dates
        first within a group. ``key`` extracts the CardMemoryState from each
        item (identity by default). The sort is stable.
        """
        get_state = key or (lambda item: item)

        def sort_key(item):
            state = get_state(item)
            return (state_priority(state.state), ensure_utc(state.due))

        return sorted(items, key=sort_key)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _to_fsrs_card(self, card: CardMemoryState) -> Card:
        is_new = card.state == CardState.NEW
        step = card.step
        if card.state in (CardState.NEW, CardState.LEARNING, CardState.RELEARNING) and step is None:
            step = 0
        if card.state == CardState.REVIEW:
            step = None

        return Card(
            card_id=0,
            state=_TO_FSRS_STATE[card.state],
            step=step,
            stability=None if is_new or card.stability <= 0 else card.stability,
            difficulty=None if is_new or card.difficulty <= 0 else card.difficulty,
            due=ensure_utc(card.due),
            last_review=None if is_new or card.last_review is None else ensure_utc(card.last_review),
        )

    def _check_contract(
        self,
        before: CardMemoryState,
        after: CardMemoryState,
        reviewed_at: datetime,
    ) -> None:
        reason = None
        if after.due < reviewed_at:
            reason = f"due {after.due.isoformat()} is before review time {reviewed_at.isoformat()}"
        elif after.reps != before.reps + 1:
            reason = f"reps went from {before.reps} to {after.reps}"
        elif after.lapses < before.lapses:
            reason = f"lapses decreased from {before.lapses} to {after.lapses}"
        elif after.state == CardState.NEW:
            reason = "card returned to New after a review"

        if reason:
            logger.error(f"FSRS contract violation for {before.card_id}: {reason}")
            raise SchedulerContractError(before.card_id, reason)


_scheduler: CardScheduler | None = None


def get_scheduler() -> CardScheduler:
    """Get the shared scheduler built from settings."""
    global _scheduler
    if _scheduler is None:
        _scheduler = CardScheduler(**get_settings().get_scheduler_config())
    return _scheduler
