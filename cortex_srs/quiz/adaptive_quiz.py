"""
Adaptive Quiz Engine for end-of-lesson quizzes.

When a learner answers a question incorrectly the engine:
1. Records which concepts were missed
2. Links missed concepts to their related review cards
3. After the initial pass, re-presents missed questions in retry rounds
4. Gives targeted feedback pointing at the concept's review card

Rounds: round 0 asks every question once in catalog order. A round that
ends with misses starts another round holding only the missed questions,
until a round is clean, the retry limit is reached, or the round's correct
rate meets the pass threshold.

Scoring:
- First-attempt score: share of questions right in round 0
- Final score: 1 point for first-attempt correct, 0.5 for correct on a
  retry, 0 otherwise
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable, Mapping

from loguru import logger

from config import get_settings
from cortex_srs.catalog import QuizQuestion, ReviewCard
from cortex_srs.models import ensure_utc


class QuizMastery(str, Enum):
    """Mastery bucket from the first-attempt score."""

    NEEDS_REVIEW = "needs-review"
    DEVELOPING = "developing"
    PROFICIENT = "proficient"
    MASTERED = "mastered"


# First-attempt score thresholds (0-100)
MASTERY_THRESHOLDS = {
    QuizMastery.MASTERED: 95,
    QuizMastery.PROFICIENT: 80,
    QuizMastery.DEVELOPING: 60,
}

# Minimum first-attempt score to pass and complete the lesson
PASSING_SCORE = 70

GENERIC_FEEDBACK = (
    "Review the explanation carefully and revisit the related section of the lesson."
)


@dataclass(frozen=True)
class AdaptiveQuizConfig:
    """Retry behaviour for an adaptive quiz."""

    max_retry_rounds: int = 2
    retry_pass_threshold: float = 1.0  # 1.0 = a retry round must be perfect to stop early

    @classmethod
    def from_settings(cls) -> AdaptiveQuizConfig:
        return cls(**get_settings().get_quiz_config())


@dataclass(frozen=True)
class AnswerRecord:
    """One submitted answer."""

    answer: str
    is_correct: bool
    round: int
    timestamp: datetime
    response_time_ms: int


@dataclass(frozen=True)
class QuestionAttempt:
    """Every answer given to one question, in order."""

    question_id: str
    answers: tuple[AnswerRecord, ...] = ()

    @property
    def first_answer(self) -> AnswerRecord | None:
        return next((a for a in self.answers if a.round == 0), None)

    @property
    def last_answer(self) -> AnswerRecord | None:
        return self.answers[-1] if self.answers else None


@dataclass(frozen=True)
class AnswerResult:
    """Result of submitting an answer to a single question."""

    question_id: str
    is_correct: bool
    correct_answer: str
    explanation: str
    feedback: str | None  # only on wrong answers
    related_card_ids: tuple[str, ...]  # only on wrong answers
    is_retry: bool
    round: int


@dataclass(frozen=True)
class QuestionResult:
    """Per-question line of the quiz summary."""

    question_id: str
    concept_id: str
    is_correct_first_attempt: bool
    is_correct_final: bool
    total_attempts: int
    total_time_ms: int


@dataclass(frozen=True)
class QuizSummary:
    """Overall quiz score and mastery assessment."""

    lesson_id: str
    total_questions: int
    correct_first_attempt: int
    correct_total: int
    never_correct: int
    first_attempt_score: int  # 0-100
    final_score: int  # 0-100, partial credit for retries
    mastery: QuizMastery
    missed_concept_ids: tuple[str, ...]
    cards_for_relearning: tuple[str, ...]
    total_time_ms: int
    retry_rounds_completed: int
    passed: bool
    question_results: tuple[QuestionResult, ...]


@dataclass(frozen=True)
class QuizProgress:
    """Position within the current round."""

    current: int
    total: int
    round: int


@dataclass(frozen=True)
class QuizState:
    """Everything a quiz knows, as one immutable record."""

    round_queue: tuple[str, ...]  # question ids for this round, in catalog order
    attempts: Mapping[str, QuestionAttempt]
    index: int = 0
    round: int = 0
    missed_this_round: tuple[str, ...] = ()
    complete: bool = False
    question_started_at: float | None = None

    @property
    def current_question_id(self) -> str | None:
        if self.complete or self.index >= len(self.round_queue):
            return None
        return self.round_queue[self.index]


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def start_quiz(question_ids: Iterable[str]) -> QuizState:
    """Initial state: round 0 over every question. An empty quiz is already complete."""
    ids = tuple(question_ids)
    return QuizState(
        round_queue=ids,
        attempts={qid: QuestionAttempt(qid) for qid in ids},
        complete=not ids,
    )


def present_question(state: QuizState, clock_reading: float) -> QuizState:
    """Start the response timer for the current question if not yet running."""
    if state.current_question_id is None or state.question_started_at is not None:
        return state
    return replace(state, question_started_at=clock_reading)


def record_answer(
    state: QuizState,
    record: AnswerRecord,
    config: AdaptiveQuizConfig,
) -> QuizState:
    """Store an answer for the current question and advance, closing the round at its end."""
    question_id = state.current_question_id
    if question_id is None:
        return state

    attempt = state.attempts[question_id]
    attempts = dict(state.attempts)
    attempts[question_id] = replace(attempt, answers=attempt.answers + (record,))

    missed = state.missed_this_round
    if not record.is_correct and question_id not in missed:
        missed = missed + (question_id,)

    state = replace(
        state,
        attempts=attempts,
        index=state.index + 1,
        missed_this_round=missed,
        question_started_at=None,
    )
    if state.index >= len(state.round_queue):
        state = close_round(state, config)
    return state


def close_round(state: QuizState, config: AdaptiveQuizConfig) -> QuizState:
    """Finish the quiz or start a retry round with the questions just missed."""
    missed = set(state.missed_this_round)

    if not missed or state.round >= config.max_retry_rounds:
        return replace(state, complete=True)

    round_size = len(state.round_queue)
    round_rate = (round_size - len(missed)) / round_size if round_size else 1.0
    if round_rate >= config.retry_pass_threshold:
        return replace(state, complete=True)

    retry_queue = tuple(qid for qid in state.round_queue if qid in missed)
    logger.debug(f"Starting retry round {state.round + 1} with {len(retry_queue)} questions")
    return replace(
        state,
        round_queue=retry_queue,
        index=0,
        round=state.round + 1,
        missed_this_round=(),
    )


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def check_answer(question: QuizQuestion, answer: str) -> bool:
    """Case-insensitive, whitespace-trimmed exact match."""
    return answer.strip().lower() == question.correct_answer.strip().lower()


def assess_mastery(first_attempt_score: float) -> QuizMastery:
    for level, threshold in MASTERY_THRESHOLDS.items():
        if first_attempt_score >= threshold:
            return level
    return QuizMastery.NEEDS_REVIEW


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _unique(items: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(items))


def summarize(
    questions: list[QuizQuestion],
    state: QuizState,
    lesson_id: str,
) -> QuizSummary:
    """Score a quiz state against its questions."""
    question_results = []
    for question in questions:
        attempt = state.attempts[question.id]
        first = attempt.first_answer
        last = attempt.last_answer
        question_results.append(
            QuestionResult(
                question_id=question.id,
                concept_id=question.concept_id,
                is_correct_first_attempt=first.is_correct if first else False,
                is_correct_final=last.is_correct if last else False,
                total_attempts=len(attempt.answers),
                total_time_ms=sum(a.response_time_ms for a in attempt.answers),
            )
        )

    total = len(questions)
    correct_first = sum(1 for r in question_results if r.is_correct_first_attempt)
    correct_final = sum(1 for r in question_results if r.is_correct_final)
    points = sum(
        1.0 if r.is_correct_first_attempt else 0.5 if r.is_correct_final else 0.0
        for r in question_results
    )

    first_attempt_score = _round_half_up(correct_first / total * 100) if total else 0
    final_score = _round_half_up(points / total * 100) if total else 0

    missed_first = [
        (question, result)
        for question, result in zip(questions, question_results)
        if not result.is_correct_first_attempt
    ]

    return QuizSummary(
        lesson_id=lesson_id,
        total_questions=total,
        correct_first_attempt=correct_first,
        correct_total=correct_final,
        never_correct=total - correct_final,
        first_attempt_score=first_attempt_score,
        final_score=final_score,
        mastery=assess_mastery(first_attempt_score),
        missed_concept_ids=_unique(result.concept_id for _, result in missed_first),
        cards_for_relearning=_unique(
            card_id for question, _ in missed_first for card_id in question.related_card_ids
        ),
        total_time_ms=sum(r.total_time_ms for r in question_results),
        retry_rounds_completed=state.round,
        passed=first_attempt_score >= PASSING_SCORE,
        question_results=tuple(question_results),
    )


# ---------------------------------------------------------------------------
# AdaptiveQuiz
# ---------------------------------------------------------------------------


class AdaptiveQuiz:
    """
    End-of-lesson quiz with automatic retry of missed questions.

    Not thread-safe: one quiz serves exactly one learner.
    """

    def __init__(
        self,
        questions: Iterable[QuizQuestion],
        lesson_id: str,
        related_cards: Mapping[str, ReviewCard] | None = None,
        config: AdaptiveQuizConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the quiz.

        Args:
            questions: Quiz questions in display order
            lesson_id: Lesson the quiz belongs to
            related_cards: Review cards by id, used for targeted feedback
            config: Retry behaviour (defaults from settings)
            clock: Monotonic seconds source used for response times
        """
        self.questions = list(questions)
        self.lesson_id = lesson_id
        self.related_cards = dict(related_cards or {})
        self.config = config or AdaptiveQuizConfig.from_settings()
        self._clock = clock
        self._by_id = {q.id: q for q in self.questions}
        self._state = start_quiz(q.id for q in self.questions)

    @property
    def state(self) -> QuizState:
        return self._state

    # -----------------------------------------------------------------------
    # Quiz flow
    # -----------------------------------------------------------------------

    def current_question(self) -> QuizQuestion | None:
        """The question to show now, or None once the quiz is complete."""
        self._state = present_question(self._state, self._clock())
        question_id = self._state.current_question_id
        return self._by_id[question_id] if question_id is not None else None

    def submit_answer(self, answer: str, now: datetime | None = None) -> AnswerResult | None:
        """
        Submit an answer for the current question.

        Args:
            answer: Option text for multiple choice, "true"/"false" for true/false
            now: Override for the answer timestamp

        Returns:
            Correctness, explanation and feedback, or None if the quiz is over
        """
        question = self.current_question()
        if question is None:
            return None

        started = self._state.question_started_at
        response_time_ms = (
            max(0, int(round((self._clock() - started) * 1000))) if started is not None else 0
        )
        is_correct = check_answer(question, answer)
        round_number = self._state.round

        record = AnswerRecord(
            answer=answer,
            is_correct=is_correct,
            round=round_number,
            timestamp=ensure_utc(now),
            response_time_ms=response_time_ms,
        )
        self._state = record_answer(self._state, record, self.config)

        if self._state.complete:
            logger.info(
                f"Quiz {self.lesson_id} complete after {self._state.round + 1} round(s)"
            )

        return AnswerResult(
            question_id=question.id,
            is_correct=is_correct,
            correct_answer=question.correct_answer,
            explanation=question.explanation,
            feedback=None if is_correct else self._build_feedback(question),
            related_card_ids=() if is_correct else tuple(question.related_card_ids),
            is_retry=round_number > 0,
            round=round_number,
        )

    def has_next(self) -> bool:
        return self._state.current_question_id is not None

    def is_quiz_complete(self) -> bool:
        return self._state.complete

    @property
    def current_round(self) -> int:
        """0 for the initial pass, 1+ for retry rounds."""
        return self._state.round

    def get_progress(self) -> QuizProgress:
        total = len(self._state.round_queue)
        return QuizProgress(
            current=min(self._state.index + 1, total),
            total=total,
            round=self._state.round,
        )

    # -----------------------------------------------------------------------
    # Summary
    # -----------------------------------------------------------------------

    def get_summary(self) -> QuizSummary:
        """Score the quiz. Can be called at any time, most useful once complete."""
        return summarize(self.questions, self._state, self.lesson_id)

    def get_cards_for_relearning(self) -> tuple[str, ...]:
        """Review cards linked to every question answered wrong at least once so far."""
        missed = {
            qid
            for qid, attempt in self._state.attempts.items()
            if any(not a.is_correct for a in attempt.answers)
        }
        return _unique(
            card_id
            for question in self.questions
            if question.id in missed
            for card_id in question.related_card_ids
        )

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _build_feedback(self, question: QuizQuestion) -> str:
        related = next(
            (
                self.related_cards[card_id]
                for card_id in question.related_card_ids
                if card_id in self.related_cards
            ),
            None,
        )
        if related is not None:
            return (
                f'This question tests the same concept as: "{related.prompt}" '
                "Review this concept to strengthen your understanding."
            )
        return GENERIC_FEEDBACK
