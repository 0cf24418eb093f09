"""
Content catalog and learner snapshot models.

The catalog is static content (modules, lessons, review cards, quiz
questions) authored elsewhere and shipped as JSON. A learner snapshot is an
export of one learner's card states and lesson progress. Both are validated
with Pydantic on load; nothing here writes data back.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from cortex_srs.errors import CatalogError
from cortex_srs.models import CardMemoryState
from cortex_srs.study.progress import LessonProgress


# ========================================
# Content Models
# ========================================


class ReviewCard(BaseModel):
    """A spaced-repetition prompt embedded in a lesson."""

    id: str
    lesson_id: str
    prompt: str
    answer: str
    card_type: Literal["recall", "concept", "application", "cloze"] = "recall"
    tags: list[str] = Field(default_factory=list)
    order: int = 0


class QuizQuestion(BaseModel):
    """An end-of-lesson quiz question linked back to its review cards."""

    id: str
    lesson_id: str
    question: str
    question_type: Literal["multiple-choice", "fill-blank", "true-false"] = "multiple-choice"
    options: list[str] = Field(default_factory=list)
    correct_answer: str
    explanation: str = ""
    related_card_ids: list[str] = Field(default_factory=list)
    concept: str | None = None
    order: int = 0

    @property
    def concept_id(self) -> str:
        """Concept key for missed-concept reporting."""
        return self.concept or f"{self.lesson_id}:{self.id}"


class Lesson(BaseModel):
    """A single learning unit within a module."""

    id: str
    module_id: str
    title: str
    description: str = ""
    order: int = 0
    prerequisites: list[str] = Field(default_factory=list)
    key_concepts: list[str] = Field(default_factory=list)


class Module(BaseModel):
    """A high-level grouping of lessons."""

    id: str
    title: str
    description: str = ""
    order: int = 0
    lesson_ids: list[str] = Field(default_factory=list)


class Catalog(BaseModel):
    """All static content for one course."""

    modules: list[Module] = Field(default_factory=list)
    lessons: list[Lesson] = Field(default_factory=list)
    cards: list[ReviewCard] = Field(default_factory=list)
    questions: list[QuizQuestion] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_references(self) -> Catalog:
        card_ids = {card.id for card in self.cards}
        for question in self.questions:
            unknown = [cid for cid in question.related_card_ids if cid not in card_ids]
            if unknown:
                logger.warning(
                    f"Question {question.id} references unknown cards: {', '.join(unknown)}"
                )
        lesson_ids = {lesson.id for lesson in self.lessons}
        for module in self.modules:
            missing = [lid for lid in module.lesson_ids if lid not in lesson_ids]
            if missing:
                raise ValueError(f"Module {module.id} lists unknown lessons: {', '.join(missing)}")
        return self

    def card_lookup(self) -> dict[str, ReviewCard]:
        return {card.id: card for card in self.cards}

    def lesson_cards(self, lesson_id: str) -> list[ReviewCard]:
        return sorted(
            (card for card in self.cards if card.lesson_id == lesson_id),
            key=lambda card: card.order,
        )

    def lesson_questions(self, lesson_id: str) -> list[QuizQuestion]:
        return sorted(
            (q for q in self.questions if q.lesson_id == lesson_id),
            key=lambda q: q.order,
        )

    def total_card_count(self, lesson_id: str) -> int:
        return sum(1 for card in self.cards if card.lesson_id == lesson_id)

    def module_lessons(self, module_id: str) -> list[Lesson]:
        """Lessons of a module, in the module's listed order."""
        by_id = {lesson.id: lesson for lesson in self.lessons}
        module = next((m for m in self.modules if m.id == module_id), None)
        if module is None:
            return []
        return [by_id[lid] for lid in module.lesson_ids if lid in by_id]

    def ordered_modules(self) -> list[Module]:
        return sorted(self.modules, key=lambda m: m.order)


# ========================================
# Learner Snapshot
# ========================================


class LearnerSnapshot(BaseModel):
    """One learner's exported card states and lesson progress."""

    card_states: list[CardMemoryState] = Field(default_factory=list)
    lesson_progress: list[LessonProgress] = Field(default_factory=list)

    @field_validator("card_states", mode="before")
    @classmethod
    def _parse_card_states(cls, value: Any) -> list[CardMemoryState]:
        return [_coerce(item, CardMemoryState) for item in value or []]

    @field_validator("lesson_progress", mode="before")
    @classmethod
    def _parse_lesson_progress(cls, value: Any) -> list[LessonProgress]:
        return [_coerce(item, LessonProgress) for item in value or []]

    def state_lookup(self) -> dict[str, CardMemoryState]:
        return {state.card_id: state for state in self.card_states}

    def progress_lookup(self) -> dict[str, LessonProgress]:
        return {progress.lesson_id: progress for progress in self.lesson_progress}


def _coerce(item: Any, model: type) -> Any:
    if isinstance(item, model):
        return item
    if not isinstance(item, dict):
        raise ValueError(f"Expected an object for {model.__name__}, got {type(item).__name__}")
    try:
        return model.from_dict(item)
    except (KeyError, TypeError) as e:
        raise ValueError(f"Invalid {model.__name__}: {e}") from e


# ========================================
# Loaders
# ========================================


def load_catalog(path: Path | str) -> Catalog:
    """Load and validate a catalog JSON file."""
    catalog = _load(Path(path), Catalog)
    logger.info(
        f"Loaded catalog {path}: {len(catalog.modules)} modules, "
        f"{len(catalog.lessons)} lessons, {len(catalog.cards)} cards, "
        f"{len(catalog.questions)} questions"
    )
    return catalog


def load_snapshot(path: Path | str) -> LearnerSnapshot:
    """Load and validate a learner snapshot JSON file."""
    snapshot = _load(Path(path), LearnerSnapshot)
    logger.info(
        f"Loaded snapshot {path}: {len(snapshot.card_states)} card states, "
        f"{len(snapshot.lesson_progress)} lesson progress records"
    )
    return snapshot


def _load(path: Path, model: type[BaseModel]) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CatalogError(f"Cannot read {path}: {e}") from e
    try:
        return model.model_validate_json(text)
    except ValidationError as e:
        raise CatalogError(f"Invalid {model.__name__} in {path}: {e}") from e
