"""
Lesson progress bookkeeping.

Pure updates over a learner's per-lesson progress record. Persisting the
returned record is the caller's job.

Status transitions:
    locked -> available -> in-progress -> completed -> mastered
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any, Literal

from cortex_srs.models import ensure_utc

if TYPE_CHECKING:
    from cortex_srs.quiz.adaptive_quiz import QuizSummary

LessonStatus = Literal["locked", "available", "in-progress", "completed", "mastered"]

_STATUS_ORDER: tuple[str, ...] = ("locked", "available", "in-progress", "completed", "mastered")


@dataclass(frozen=True)
class LessonProgress:
    """Learner progress through a single lesson."""

    lesson_id: str
    status: LessonStatus = "available"
    quiz_attempts: int = 0
    best_quiz_score: int = 0  # 0-100
    sections_read: tuple[str, ...] = ()
    completed_at: datetime | None = None
    total_time_spent_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "lesson_id": self.lesson_id,
            "status": self.status,
            "quiz_attempts": self.quiz_attempts,
            "best_quiz_score": self.best_quiz_score,
            "sections_read": list(self.sections_read),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "total_time_spent_ms": self.total_time_spent_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LessonProgress:
        completed_at = data.get("completed_at")
        if isinstance(completed_at, str):
            completed_at = datetime.fromisoformat(completed_at.replace("Z", "+00:00"))
        status = data.get("status", "available")
        if status not in _STATUS_ORDER:
            raise ValueError(f"Unknown lesson status: {status}")
        return cls(
            lesson_id=str(data["lesson_id"]),
            status=status,
            quiz_attempts=int(data.get("quiz_attempts", 0)),
            best_quiz_score=int(data.get("best_quiz_score", 0)),
            sections_read=tuple(data.get("sections_read", ())),
            completed_at=ensure_utc(completed_at) if completed_at else None,
            total_time_spent_ms=int(data.get("total_time_spent_ms", 0)),
        )


def _advance(current: str, target: str) -> str:
    """Statuses only move forward."""
    if _STATUS_ORDER.index(target) > _STATUS_ORDER.index(current):
        return target
    return current


def mark_started(progress: LessonProgress) -> LessonProgress:
    return replace(progress, status=_advance(progress.status, "in-progress"))


def mark_section_read(progress: LessonProgress, section_id: str) -> LessonProgress:
    if section_id in progress.sections_read:
        return progress
    return replace(
        progress,
        sections_read=progress.sections_read + (section_id,),
        status=_advance(progress.status, "in-progress"),
    )


def add_time_spent(progress: LessonProgress, milliseconds: int) -> LessonProgress:
    return replace(
        progress,
        total_time_spent_ms=progress.total_time_spent_ms + max(0, int(milliseconds)),
    )


def record_quiz_attempt(
    progress: LessonProgress,
    summary: QuizSummary,
    now: datetime | None = None,
) -> LessonProgress:
    """
    Fold a finished quiz into the lesson's progress.

    The best score tracks first-attempt scores only; retries are practice.
    A passed quiz completes the lesson, a mastered quiz marks it mastered.
    """
    status = progress.status
    if summary.passed:
        status = _advance(status, "completed")
    if summary.mastery == "mastered":
        status = _advance(status, "mastered")

    completed_at = progress.completed_at
    if completed_at is None and status in ("completed", "mastered"):
        completed_at = ensure_utc(now)

    return replace(
        progress,
        status=status,
        quiz_attempts=progress.quiz_attempts + 1,
        best_quiz_score=max(progress.best_quiz_score, summary.first_attempt_score),
        completed_at=completed_at,
    )
