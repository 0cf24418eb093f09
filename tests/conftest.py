"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from cortex_srs.catalog import Catalog, QuizQuestion, ReviewCard  # noqa: E402
from cortex_srs.models import CardMemoryState, CardState  # noqa: E402
from cortex_srs.study.scheduler import CardScheduler  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def now():
    """Fixed evaluation time."""
    return datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def scheduler():
    """Deterministic scheduler (no interval fuzzing)."""
    return CardScheduler(desired_retention=0.9, maximum_interval=365, enable_fuzzing=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_review_card():
    """Factory for catalog review cards."""

    def _make(card_id: str, lesson_id: str = "lesson-1", order: int = 0) -> ReviewCard:
        return ReviewCard(
            id=card_id,
            lesson_id=lesson_id,
            prompt=f"Prompt for {card_id}",
            answer=f"Answer for {card_id}",
            order=order,
        )

    return _make


@pytest.fixture
def make_state(now):
    """Factory for learner card states."""

    def _make(
        card_id: str,
        state: CardState = CardState.REVIEW,
        stability: float = 10.0,
        due_in_days: float = -1.0,
        reviewed_days_ago: float = 5.0,
        reps: int = 3,
        lapses: int = 0,
    ) -> CardMemoryState:
        return CardMemoryState(
            card_id=card_id,
            due=now + timedelta(days=due_in_days),
            stability=stability,
            difficulty=5.0,
            reps=reps,
            lapses=lapses,
            state=state,
            last_review=now - timedelta(days=reviewed_days_ago),
            scheduled_days=3.0,
            elapsed_days=2.0,
            step=None if state == CardState.REVIEW else 0,
        )

    return _make


@pytest.fixture
def sample_questions():
    """Five multiple-choice questions, each tied to one review card."""
    return [
        QuizQuestion(
            id=f"q{i}",
            lesson_id="lesson-1",
            question=f"Question {i}?",
            options=[f"right {i}", f"wrong {i}"],
            correct_answer=f"right {i}",
            explanation=f"Explanation {i}",
            related_card_ids=[f"card-{i}"],
            order=i,
        )
        for i in range(1, 6)
    ]


@pytest.fixture
def sample_catalog_data():
    """Raw catalog JSON with one module, two lessons, cards and questions."""
    return {
        "modules": [
            {"id": "module-1", "title": "Foundations", "order": 1, "lesson_ids": ["lesson-1", "lesson-2"]}
        ],
        "lessons": [
            {"id": "lesson-1", "module_id": "module-1", "title": "Tensors", "order": 1},
            {"id": "lesson-2", "module_id": "module-1", "title": "Gradients", "order": 2},
        ],
        "cards": [
            {"id": "card-1", "lesson_id": "lesson-1", "prompt": "What is a tensor?", "answer": "An n-d array", "order": 1},
            {"id": "card-2", "lesson_id": "lesson-1", "prompt": "What is a shape?", "answer": "Dimensions", "order": 2},
            {"id": "card-3", "lesson_id": "lesson-2", "prompt": "What is a gradient?", "answer": "Partial derivatives", "order": 1},
        ],
        "questions": [
            {
                "id": "q1",
                "lesson_id": "lesson-1",
                "question": "A tensor is...",
                "options": ["An n-d array", "A scalar only"],
                "correct_answer": "An n-d array",
                "explanation": "Tensors generalise arrays.",
                "related_card_ids": ["card-1"],
                "order": 1,
            },
            {
                "id": "q2",
                "lesson_id": "lesson-1",
                "question_type": "true-false",
                "question": "Shapes list dimensions.",
                "correct_answer": "true",
                "related_card_ids": ["card-2"],
                "order": 2,
            },
        ],
    }


@pytest.fixture
def sample_catalog(sample_catalog_data):
    return Catalog.model_validate(sample_catalog_data)
