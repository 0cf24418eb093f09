"""
Mastery aggregation for the study core.

Rolls per-card FSRS memory state and quiz results up into a five-level
mastery label at card, lesson, module and overall granularity.

Mastery levels (lowest to highest):
    new        - No cards reviewed
    learning   - Under 50% of cards in Review state
    familiar   - 50%+ of cards in Review state
    proficient - 80%+ of cards in Review state and quiz score >= 80
    mastered   - 90%+ of cards in Review state with mean stability >= 30 days

Every function here is pure: records are recomputed on demand from the
learner's card states and lesson progress.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Sequence

from cortex_srs.models import CardMemoryState, CardState, MasteryLevel, ensure_utc
from cortex_srs.study.progress import LessonProgress
from cortex_srs.study.scheduler import CardScheduler, get_scheduler

MASTERY_THRESHOLDS = {
    "familiar_review_fraction": 0.5,
    "proficient_review_fraction": 0.8,
    "proficient_quiz_score": 80,
    "mastered_review_fraction": 0.9,
    "mastered_stability_days": 30.0,
    # Card level: Review cards below this stability are only familiar
    "proficient_stability_days": 7.0,
}

# Share of child lessons (or modules) needed at each level
_AGGREGATE_MASTERED = 0.9
_AGGREGATE_PROFICIENT = 0.8
_AGGREGATE_FAMILIAR = 0.5

MASTERY_LABELS = {
    MasteryLevel.NEW: "New",
    MasteryLevel.LEARNING: "Learning",
    MasteryLevel.FAMILIAR: "Familiar",
    MasteryLevel.PROFICIENT: "Proficient",
    MasteryLevel.MASTERED: "Mastered",
}

_MASTERY_SCORES = {
    MasteryLevel.NEW: 0,
    MasteryLevel.LEARNING: 25,
    MasteryLevel.FAMILIAR: 50,
    MasteryLevel.PROFICIENT: 75,
    MasteryLevel.MASTERED: 100,
}


def mastery_to_score(level: MasteryLevel | str) -> int:
    """Numeric score (0-100) for a level, for progress bars and sorting."""
    return _MASTERY_SCORES[MasteryLevel(level)]


def _empty_distribution() -> dict[MasteryLevel, int]:
    return {level: 0 for level in MasteryLevel}


# ========================================
# Records
# ========================================


@dataclass(frozen=True)
class CardMastery:
    """Mastery of a single review card."""

    card_id: str
    level: MasteryLevel
    state: CardState
    retrievability: float  # 0-1, probability of recall right now
    stability_days: float
    is_due: bool

    @property
    def state_name(self) -> str:
        return self.state.label


@dataclass(frozen=True)
class LessonMastery:
    """Mastery of a lesson from its cards and quiz results."""

    lesson_id: str
    level: MasteryLevel
    state_distribution: dict[str, float]  # fraction of total cards per FSRS state
    quiz_score: int
    quiz_attempts: int
    total_cards: int
    review_state_cards: int
    reviewed_cards: int
    average_stability_days: float  # over reviewed cards
    average_retrievability: float  # over reviewed cards
    cards: tuple[CardMastery, ...]


@dataclass(frozen=True)
class ModuleMastery:
    """Mastery of a module, aggregated from its lessons."""

    module_id: str
    level: MasteryLevel
    lesson_distribution: dict[MasteryLevel, int]
    total_lessons: int
    completed_lessons: int
    average_quiz_score: float  # over lessons with at least one quiz attempt
    overall_review_fraction: float
    lessons: tuple[LessonMastery, ...]


@dataclass(frozen=True)
class OverallMastery:
    """Mastery across every module."""

    level: MasteryLevel
    module_distribution: dict[MasteryLevel, int]
    total_modules: int
    total_lessons: int
    total_cards: int
    overall_review_fraction: float
    average_quiz_score: float
    average_stability_days: float
    modules: tuple[ModuleMastery, ...]


# ========================================
# Card level
# ========================================


def calculate_card_mastery(
    card_id: str,
    state: CardMemoryState | None,
    now: datetime | None = None,
    scheduler: CardScheduler | None = None,
) -> CardMastery:
    """
    Calculate mastery for one card.

    A card with no memory state has never been seen: New, retrievability 0,
    not due.
    """
    if state is None:
        return CardMastery(
            card_id=card_id,
            level=MasteryLevel.NEW,
            state=CardState.NEW,
            retrievability=0.0,
            stability_days=0.0,
            is_due=False,
        )

    current_time = ensure_utc(now)
    scheduler = scheduler or get_scheduler()

    if state.state == CardState.NEW:
        level = MasteryLevel.NEW
    elif state.state in (CardState.LEARNING, CardState.RELEARNING):
        level = MasteryLevel.LEARNING
    elif state.stability >= MASTERY_THRESHOLDS["mastered_stability_days"]:
        level = MasteryLevel.MASTERED
    elif state.stability >= MASTERY_THRESHOLDS["proficient_stability_days"]:
        level = MasteryLevel.PROFICIENT
    else:
        level = MasteryLevel.FAMILIAR

    retrievability = scheduler.retrievability(state, current_time)

    return CardMastery(
        card_id=card_id,
        level=level,
        state=state.state,
        retrievability=max(0.0, min(1.0, retrievability)),
        stability_days=state.stability,
        is_due=state.is_due(current_time),
    )


# ========================================
# Lesson level
# ========================================


def calculate_lesson_mastery(
    lesson_id: str,
    card_states: Iterable[CardMemoryState],
    progress: LessonProgress | None,
    total_card_count: int,
    now: datetime | None = None,
    scheduler: CardScheduler | None = None,
) -> LessonMastery:
    """
    Calculate mastery for a lesson.

    Args:
        lesson_id: Lesson identifier
        card_states: Memory states the learner has for this lesson's cards
        progress: The learner's lesson progress (quiz score and attempts)
        total_card_count: Cards in the lesson, including ones never seen
        now: Evaluation time
        scheduler: Source of retrievability (shared instance by default)

    Returns:
        LessonMastery with per-state fractions over the lesson's total cards
    """
    current_time = ensure_utc(now)
    scheduler = scheduler or get_scheduler()
    card_states = list(card_states)

    cards = tuple(
        calculate_card_mastery(s.card_id, s, current_time, scheduler) for s in card_states
    )

    # States beyond the catalog count still count toward the total
    total = max(total_card_count, len(card_states))
    effective_total = max(total, 1)

    counts = {state: 0 for state in CardState}
    for card in cards:
        counts[card.state] += 1
    counts[CardState.NEW] += total - len(card_states)

    state_distribution = {
        state.label: counts[state] / effective_total for state in CardState
    }
    review_fraction = counts[CardState.REVIEW] / effective_total

    reviewed = [c for c in cards if c.state != CardState.NEW]
    average_stability = (
        sum(c.stability_days for c in reviewed) / len(reviewed) if reviewed else 0.0
    )
    average_retrievability = (
        sum(c.retrievability for c in reviewed) / len(reviewed) if reviewed else 0.0
    )

    quiz_score = progress.best_quiz_score if progress else 0
    quiz_attempts = progress.quiz_attempts if progress else 0

    return LessonMastery(
        lesson_id=lesson_id,
        level=_lesson_level(len(reviewed), review_fraction, average_stability, quiz_score),
        state_distribution=state_distribution,
        quiz_score=quiz_score,
        quiz_attempts=quiz_attempts,
        total_cards=total,
        review_state_cards=counts[CardState.REVIEW],
        reviewed_cards=len(reviewed),
        average_stability_days=average_stability,
        average_retrievability=average_retrievability,
        cards=cards,
    )


def _lesson_level(
    reviewed_count: int,
    review_fraction: float,
    average_stability: float,
    quiz_score: float,
) -> MasteryLevel:
    if reviewed_count == 0:
        return MasteryLevel.NEW
    if (
        review_fraction >= MASTERY_THRESHOLDS["mastered_review_fraction"]
        and average_stability >= MASTERY_THRESHOLDS["mastered_stability_days"]
    ):
        return MasteryLevel.MASTERED
    if (
        review_fraction >= MASTERY_THRESHOLDS["proficient_review_fraction"]
        and quiz_score >= MASTERY_THRESHOLDS["proficient_quiz_score"]
    ):
        return MasteryLevel.PROFICIENT
    if review_fraction >= MASTERY_THRESHOLDS["familiar_review_fraction"]:
        return MasteryLevel.FAMILIAR
    return MasteryLevel.LEARNING


# ========================================
# Module and overall level
# ========================================


def _aggregate_level(levels: Sequence[MasteryLevel], average_quiz_score: float) -> MasteryLevel:
    """Shared rule for rolling child levels (lessons or modules) up one level."""
    if not levels or all(level == MasteryLevel.NEW for level in levels):
        return MasteryLevel.NEW

    total = len(levels)
    mastered = sum(1 for level in levels if level >= MasteryLevel.MASTERED)
    proficient = sum(1 for level in levels if level >= MasteryLevel.PROFICIENT)
    familiar = sum(1 for level in levels if level >= MasteryLevel.FAMILIAR)

    if mastered / total >= _AGGREGATE_MASTERED:
        return MasteryLevel.MASTERED
    if (
        proficient / total >= _AGGREGATE_PROFICIENT
        and average_quiz_score >= MASTERY_THRESHOLDS["proficient_quiz_score"]
    ):
        return MasteryLevel.PROFICIENT
    if familiar / total >= _AGGREGATE_FAMILIAR:
        return MasteryLevel.FAMILIAR
    return MasteryLevel.LEARNING


def _average_attempted_quiz_score(lessons: Iterable[LessonMastery]) -> float:
    attempted = [lesson.quiz_score for lesson in lessons if lesson.quiz_attempts > 0]
    return sum(attempted) / len(attempted) if attempted else 0.0


def calculate_module_mastery(
    module_id: str,
    lessons: Iterable[LessonMastery],
    completed_count: int,
) -> ModuleMastery:
    """
    Calculate mastery for a module from its lessons' mastery.

    ``completed_count`` is the number of lessons the learner has completed,
    reported as-is.
    """
    lessons = tuple(lessons)

    distribution = _empty_distribution()
    for lesson in lessons:
        distribution[lesson.level] += 1

    average_quiz_score = _average_attempted_quiz_score(lessons)
    total_cards = sum(lesson.total_cards for lesson in lessons)
    review_cards = sum(lesson.review_state_cards for lesson in lessons)

    return ModuleMastery(
        module_id=module_id,
        level=_aggregate_level([lesson.level for lesson in lessons], average_quiz_score),
        lesson_distribution=distribution,
        total_lessons=len(lessons),
        completed_lessons=completed_count,
        average_quiz_score=average_quiz_score,
        overall_review_fraction=review_cards / total_cards if total_cards else 0.0,
        lessons=lessons,
    )


def calculate_overall_mastery(modules: Iterable[ModuleMastery]) -> OverallMastery:
    """Calculate mastery across modules using the same rule as for lessons."""
    modules = tuple(modules)

    distribution = _empty_distribution()
    for module in modules:
        distribution[module.level] += 1

    lessons = [lesson for module in modules for lesson in module.lessons]
    cards = [card for lesson in lessons for card in lesson.cards if card.state != CardState.NEW]
    total_cards = sum(lesson.total_cards for lesson in lessons)
    review_cards = sum(lesson.review_state_cards for lesson in lessons)
    average_quiz_score = _average_attempted_quiz_score(lessons)

    return OverallMastery(
        level=_aggregate_level([module.level for module in modules], average_quiz_score),
        module_distribution=distribution,
        total_modules=len(modules),
        total_lessons=len(lessons),
        total_cards=total_cards,
        overall_review_fraction=review_cards / total_cards if total_cards else 0.0,
        average_quiz_score=average_quiz_score,
        average_stability_days=(
            sum(card.stability_days for card in cards) / len(cards) if cards else 0.0
        ),
        modules=modules,
    )
