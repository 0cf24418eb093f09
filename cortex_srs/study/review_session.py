"""
Review Session for spaced-repetition study.

Orchestrates a single sitting: orders due cards by urgency, mixes in new
cards at an even spacing, collects grades through the FSRS scheduler, and
tracks session statistics.

The session state is an explicit immutable record advanced by pure
transition functions (present, apply_rating, insert_after_cursor).
ReviewSession is a thin single-consumer wrapper around them:

    session = ReviewSession(due_cards, new_cards)
    while session.has_next():
        card = session.current()
        session.rate_current_card(Grade.GOOD)
    stats = session.get_stats()
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Iterable, Mapping

from loguru import logger

from config import get_settings
from cortex_srs.catalog import ReviewCard
from cortex_srs.models import CardMemoryState, Grade, ReviewLogEntry, ensure_utc, utcnow
from cortex_srs.study.scheduler import CardScheduler, get_scheduler


@dataclass(frozen=True)
class SessionCard:
    """A card queued for review within a session."""

    review_card: ReviewCard
    user_state: CardMemoryState
    is_new: bool  # learner had no prior memory state

    @property
    def card_id(self) -> str:
        return self.review_card.id


@dataclass(frozen=True)
class ReviewSessionConfig:
    """Limits for one review session."""

    max_cards: int = 20
    max_new_cards: int = 10
    new_card_ratio: float = 0.3  # share of the session reserved for new cards

    @classmethod
    def from_settings(cls) -> ReviewSessionConfig:
        return cls(**get_settings().get_session_config())


@dataclass(frozen=True)
class RatingResult:
    """Outcome of grading a single card within a session."""

    card_id: str
    grade: Grade
    updated_state: CardMemoryState
    log: ReviewLogEntry
    response_time_ms: int


@dataclass(frozen=True)
class SessionStatistics:
    """Summary statistics for a completed (or in-progress) session."""

    total_reviewed: int
    remaining: int
    again_count: int
    hard_count: int
    good_count: int
    easy_count: int
    new_cards_studied: int
    review_cards_studied: int
    total_time_ms: int
    average_time_ms: float
    retention_rate: float  # review (non-new) cards graded Good or Easy
    started_at: datetime


@dataclass(frozen=True)
class ReviewSessionState:
    """Everything a session knows, as one immutable record."""

    queue: tuple[SessionCard, ...]
    cursor: int = 0
    results: tuple[RatingResult, ...] = ()
    card_started_at: float | None = None  # clock reading when the current card was shown

    @property
    def exhausted(self) -> bool:
        return self.cursor >= len(self.queue)

    @property
    def current_card(self) -> SessionCard | None:
        return None if self.exhausted else self.queue[self.cursor]


# ---------------------------------------------------------------------------
# Queue construction
# ---------------------------------------------------------------------------


def build_queue(
    due_cards: Iterable[SessionCard],
    new_cards: Iterable[SessionCard],
    config: ReviewSessionConfig,
    scheduler: CardScheduler,
) -> tuple[SessionCard, ...]:
    """
    Build the session queue from due and new cards.

    Due cards are ordered by urgency, both pools are capped by the config
    limits, then new cards are interleaved among the reviews.
    """
    ordered_due = scheduler.sort_by_priority(due_cards, key=lambda sc: sc.user_state)
    new_cards = list(new_cards)

    max_cards = max(0, config.max_cards)
    target_new = max(
        0,
        min(
            len(new_cards),
            config.max_new_cards,
            math.floor(max_cards * config.new_card_ratio),
        ),
    )
    target_review = max(0, min(len(ordered_due), max_cards - target_new))
    actual_new = max(0, min(target_new, max_cards - target_review))

    queue = interleave(ordered_due[:target_review], new_cards[:actual_new])
    logger.debug(
        f"Built review queue: {len(queue)} cards "
        f"({target_review} review, {actual_new} new, max {max_cards})"
    )
    return tuple(queue)


def interleave(review_cards: list[SessionCard], new_cards: list[SessionCard]) -> list[SessionCard]:
    """
    Interleave new cards among review cards at roughly even intervals.

    With 14 review and 6 new cards the new ones land at positions
    1, 5, 8, 11, 15 and 18.
    """
    if not new_cards:
        return list(review_cards)
    if not review_cards:
        return list(new_cards)

    total = len(review_cards) + len(new_cards)
    interval = total / len(new_cards)
    result: list[SessionCard] = []
    new_index = 0
    review_index = 0
    next_new_at = math.floor(interval / 2)

    for position in range(total):
        if new_index < len(new_cards) and position >= next_new_at:
            result.append(new_cards[new_index])
            new_index += 1
            next_new_at = math.floor(interval / 2 + interval * new_index)
        elif review_index < len(review_cards):
            result.append(review_cards[review_index])
            review_index += 1
        else:
            result.append(new_cards[new_index])
            new_index += 1

    return result


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def present(state: ReviewSessionState, clock_reading: float) -> ReviewSessionState:
    """Show the current card, starting its response timer if not yet running."""
    if state.exhausted or state.card_started_at is not None:
        return state
    return replace(state, card_started_at=clock_reading)


def apply_rating(state: ReviewSessionState, result: RatingResult) -> ReviewSessionState:
    """Record a result for the current card and move to the next one."""
    if state.exhausted:
        return state
    return replace(
        state,
        cursor=state.cursor + 1,
        results=state.results + (result,),
        card_started_at=None,
    )


def insert_after_cursor(
    state: ReviewSessionState,
    cards: Iterable[SessionCard],
) -> ReviewSessionState:
    """Splice cards in immediately after the current card."""
    cards = tuple(cards)
    if not cards:
        return state
    at = min(state.cursor + 1, len(state.queue))
    return replace(state, queue=state.queue[:at] + cards + state.queue[at:])


def session_statistics(
    state: ReviewSessionState,
    is_new: Callable[[str], bool],
    started_at: datetime,
) -> SessionStatistics:
    """Compute statistics for a session state."""
    results = state.results
    counts = {grade: 0 for grade in Grade}
    total_time_ms = 0
    new_studied = 0
    review_results = 0
    review_recalled = 0

    for result in results:
        counts[result.grade] += 1
        total_time_ms += result.response_time_ms
        if is_new(result.card_id):
            new_studied += 1
        else:
            review_results += 1
            if result.grade in (Grade.GOOD, Grade.EASY):
                review_recalled += 1

    return SessionStatistics(
        total_reviewed=len(results),
        remaining=max(0, len(state.queue) - state.cursor),
        again_count=counts[Grade.AGAIN],
        hard_count=counts[Grade.HARD],
        good_count=counts[Grade.GOOD],
        easy_count=counts[Grade.EASY],
        new_cards_studied=new_studied,
        review_cards_studied=len(results) - new_studied,
        total_time_ms=total_time_ms,
        average_time_ms=total_time_ms / len(results) if results else 0.0,
        retention_rate=review_recalled / review_results if review_results else 0.0,
        started_at=started_at,
    )


# ---------------------------------------------------------------------------
# ReviewSession
# ---------------------------------------------------------------------------


class ReviewSession:
    """
    One learner's review sitting.

    Not thread-safe: one session serves exactly one consumer.
    """

    def __init__(
        self,
        due_cards: Iterable[SessionCard],
        new_cards: Iterable[SessionCard],
        config: ReviewSessionConfig | None = None,
        scheduler: CardScheduler | None = None,
        clock: Callable[[], float] = time.monotonic,
        started_at: datetime | None = None,
    ):
        """
        Build the session queue.

        Args:
            due_cards: Cards currently due for review
            new_cards: Cards the learner has never seen
            config: Session limits (defaults from settings)
            scheduler: FSRS scheduler (shared instance by default)
            clock: Monotonic seconds source used for response times
            started_at: Session start time (defaults to now)
        """
        self.config = config or ReviewSessionConfig.from_settings()
        self.scheduler = scheduler or get_scheduler()
        self._clock = clock
        self.started_at = ensure_utc(started_at) if started_at else utcnow()

        due_cards = list(due_cards)
        new_cards = list(new_cards)
        self._index: dict[str, SessionCard] = {}
        self._register(due_cards + new_cards)

        self._state = ReviewSessionState(
            queue=build_queue(due_cards, new_cards, self.config, self.scheduler)
        )

    @property
    def state(self) -> ReviewSessionState:
        return self._state

    # -----------------------------------------------------------------------
    # Session flow
    # -----------------------------------------------------------------------

    def current(self) -> SessionCard | None:
        """The card to show now, or None once the queue is exhausted."""
        self._state = present(self._state, self._clock())
        return self._state.current_card

    def rate_current_card(self, grade: Grade, now: datetime | None = None) -> RatingResult | None:
        """
        Grade the current card and advance.

        Returns None (and changes nothing) when the session is finished.

        Raises:
            SchedulerContractError: the scheduler returned an invalid state
        """
        card = self.current()
        if card is None:
            return None

        started = self._state.card_started_at
        response_time_ms = (
            max(0, int(round((self._clock() - started) * 1000))) if started is not None else 0
        )
        updated_state, log = self.scheduler.review(card.user_state, grade, now)

        result = RatingResult(
            card_id=card.card_id,
            grade=Grade(grade),
            updated_state=updated_state,
            log=log,
            response_time_ms=response_time_ms,
        )
        self._state = apply_rating(self._state, result)

        if self._state.exhausted:
            stats = self.get_stats()
            logger.info(
                f"Review session complete: {stats.total_reviewed} cards, "
                f"retention {stats.retention_rate:.0%}"
            )
        return result

    def has_next(self) -> bool:
        return not self._state.exhausted

    def remaining(self) -> int:
        """Cards left in the queue, including the current one."""
        return max(0, len(self._state.queue) - self._state.cursor)

    def total_cards(self) -> int:
        return len(self._state.queue)

    def add_cards(self, cards: Iterable[SessionCard]) -> None:
        """
        Inject cards right after the current one.

        Used when a quiz flags concepts for urgent re-study mid-session.
        """
        cards = list(cards)
        self._register(cards)
        self._state = insert_after_cursor(self._state, cards)
        if cards:
            logger.debug(f"Added {len(cards)} cards after position {self._state.cursor}")

    # -----------------------------------------------------------------------
    # Statistics
    # -----------------------------------------------------------------------

    def get_stats(self) -> SessionStatistics:
        return session_statistics(self._state, self._is_new, self.started_at)

    def get_results(self) -> tuple[RatingResult, ...]:
        return self._state.results

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _register(self, cards: Iterable[SessionCard]) -> None:
        for card in cards:
            self._index.setdefault(card.card_id, card)

    def _is_new(self, card_id: str) -> bool:
        card = self._index.get(card_id)
        return card.is_new if card else False


def split_session_cards(
    cards: Iterable[ReviewCard],
    states: Mapping[str, CardMemoryState],
    now: datetime | None = None,
    scheduler: CardScheduler | None = None,
) -> tuple[list[SessionCard], list[SessionCard]]:
    """
    Pair catalog cards with the learner's memory states.

    Returns (due, new): cards with a state due at or before now, and cards
    with no state at all (given a fresh New state). Cards not yet due are
    left out.
    """
    scheduler = scheduler or get_scheduler()
    cutoff = ensure_utc(now)
    due: list[SessionCard] = []
    new: list[SessionCard] = []

    for card in cards:
        state = states.get(card.id)
        if state is None:
            new.append(SessionCard(card, scheduler.create_card(card.id, cutoff), is_new=True))
        elif state.is_due(cutoff):
            due.append(SessionCard(card, state, is_new=False))

    return due, new
