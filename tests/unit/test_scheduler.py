"""
Unit tests for CardScheduler.

Tests:
- New card lifecycle (create, first review)
- Review and lapse bookkeeping (reps, lapses, log entry)
- Scheduler contract enforcement
- Retrievability bounds
- Priority ordering
"""

from datetime import datetime, timedelta

import pytest
from fsrs import Card, State

from cortex_srs.errors import SchedulerContractError
from cortex_srs.models import CardMemoryState, CardState, Grade


class TestCreateCard:
    """Tests for fresh card states."""

    def test_new_card_is_due_now(self, scheduler, now):
        """A never-seen card is New and due immediately."""
        card = scheduler.create_card("card-1", now)

        assert card.state == CardState.NEW
        assert card.due == now
        assert card.reps == 0
        assert card.lapses == 0
        assert card.last_review is None
        assert card.is_due(now)


class TestReview:
    """Tests for grading cards."""

    def test_first_review_leaves_new_state(self, scheduler, now):
        """Any grade moves a New card out of New."""
        card = scheduler.create_card("card-1", now)

        for grade in Grade:
            updated, _ = scheduler.review(card, grade, now)
            assert updated.state != CardState.NEW
            assert updated.reps == 1
            assert updated.last_review == now

    def test_again_on_new_card_is_not_a_lapse(self, scheduler, now):
        """Forgetting a card still in learning does not count as a lapse."""
        card = scheduler.create_card("card-1", now)

        updated, _ = scheduler.review(card, Grade.AGAIN, now)

        assert updated.state == CardState.LEARNING
        assert updated.lapses == 0

    def test_easy_on_new_card_graduates(self, scheduler, now):
        """Easy skips the learning steps."""
        card = scheduler.create_card("card-1", now)

        updated, _ = scheduler.review(card, Grade.EASY, now)

        assert updated.state == CardState.REVIEW
        assert updated.due > now + timedelta(days=1)
        assert updated.stability > 0
        assert updated.scheduled_days > 1

    def test_again_on_review_card_is_a_lapse(self, scheduler, make_state, now):
        """Forgetting a graduated card relearns it and counts a lapse."""
        card = make_state("card-1", state=CardState.REVIEW, lapses=1)

        updated, _ = scheduler.review(card, Grade.AGAIN, now)

        assert updated.state == CardState.RELEARNING
        assert updated.lapses == 2
        assert updated.reps == card.reps + 1

    def test_good_on_review_card_extends_interval(self, scheduler, make_state, now):
        """Recalling a review card schedules it further out."""
        card = make_state("card-1", state=CardState.REVIEW, stability=10.0)

        updated, _ = scheduler.review(card, Grade.GOOD, now)

        assert updated.state == CardState.REVIEW
        assert updated.due > now
        assert updated.lapses == card.lapses
        assert updated.elapsed_days == pytest.approx(5.0)

    def test_log_records_state_before_review(self, scheduler, make_state, now):
        """The log entry captures the card as it was when graded."""
        card = make_state("card-1", state=CardState.REVIEW, stability=10.0)

        updated, log = scheduler.review(card, Grade.HARD, now)

        assert log.card_id == "card-1"
        assert log.grade == Grade.HARD
        assert log.state == CardState.REVIEW
        assert log.stability == 10.0
        assert log.due == card.due
        assert log.reviewed_at == now
        assert log.scheduled_days == updated.scheduled_days

    def test_review_is_deterministic_without_fuzzing(self, scheduler, make_state, now):
        """Identical inputs give identical outputs."""
        card = make_state("card-1")

        first, _ = scheduler.review(card, Grade.GOOD, now)
        second, _ = scheduler.review(card, Grade.GOOD, now)

        assert first == second

    def test_naive_datetime_treated_as_utc(self, scheduler, now):
        """Naive review times are interpreted as UTC."""
        card = scheduler.create_card("card-1", now)

        updated, _ = scheduler.review(card, Grade.GOOD, now.replace(tzinfo=None))

        assert updated.last_review == now

    def test_preview_covers_every_grade(self, scheduler, make_state, now):
        """Preview returns an outcome per grade without touching the input."""
        card = make_state("card-1")

        outcomes = scheduler.preview(card, now)

        assert set(outcomes) == set(Grade)
        assert outcomes[Grade.AGAIN][0].due <= outcomes[Grade.EASY][0].due
        assert card.reps == 3


class TestSchedulerContract:
    """Tests for rejecting invalid scheduler output."""

    def test_due_in_past_raises(self, scheduler, make_state, now, monkeypatch):
        """A due date before the review time is surfaced, not corrected."""
        past_card = Card(
            card_id=0,
            state=State.Review,
            step=None,
            stability=5.0,
            difficulty=5.0,
            due=now - timedelta(days=1),
            last_review=now,
        )

        class PastDueBackend:
            def review_card(self, card, rating, review_datetime=None):
                return past_card, None

        monkeypatch.setattr(scheduler, "_fsrs", PastDueBackend())

        with pytest.raises(SchedulerContractError) as exc_info:
            scheduler.review(make_state("card-1"), Grade.GOOD, now)

        assert exc_info.value.card_id == "card-1"
        assert "before review time" in exc_info.value.reason

    def test_review_without_stability_raises(self, scheduler, now):
        """A graduated card with no memory is rejected before scheduling."""
        card = CardMemoryState(
            card_id="card-1",
            due=now,
            state=CardState.REVIEW,
            reps=3,
            last_review=now - timedelta(days=5),
            step=None,
        )

        with pytest.raises(SchedulerContractError) as exc_info:
            scheduler.review(card, Grade.GOOD, now)

        assert exc_info.value.card_id == "card-1"
        assert "no stability" in exc_info.value.reason


class TestRetrievability:
    """Tests for recall probability."""

    def test_new_card_is_zero(self, scheduler, now):
        """Never-reviewed cards have zero retrievability."""
        assert scheduler.retrievability(scheduler.create_card("card-1", now), now) == 0.0

    @pytest.mark.parametrize("days_ago", [0.0, 1.0, 10.0, 100.0, 1000.0])
    def test_reviewed_card_in_unit_interval(self, scheduler, make_state, now, days_ago):
        """Retrievability is always a probability."""
        card = make_state("card-1", reviewed_days_ago=days_ago)

        value = scheduler.retrievability(card, now)

        assert 0.0 <= value <= 1.0

    def test_decays_over_time(self, scheduler, make_state, now):
        """Longer since the last review means lower recall."""
        recent = scheduler.retrievability(make_state("a", reviewed_days_ago=1), now)
        stale = scheduler.retrievability(make_state("b", reviewed_days_ago=60), now)

        assert stale < recent


class TestPriority:
    """Tests for review ordering."""

    def test_sort_by_state_then_due(self, scheduler, make_state, now):
        """Relearning first, then Learning, then Review, then New."""
        cards = [
            scheduler.create_card("new", now),
            make_state("review-late", state=CardState.REVIEW, due_in_days=-1),
            make_state("review-early", state=CardState.REVIEW, due_in_days=-3),
            make_state("learning", state=CardState.LEARNING),
            make_state("relearning", state=CardState.RELEARNING),
        ]

        ordered = scheduler.sort_by_priority(cards)

        assert [c.card_id for c in ordered] == [
            "relearning",
            "learning",
            "review-early",
            "review-late",
            "new",
        ]

    def test_due_cards_filter(self, scheduler, make_state, now):
        """Only cards due at or before now are returned."""
        due = make_state("due", due_in_days=-1)
        future = make_state("future", due_in_days=2)

        assert scheduler.due_cards([due, future], now) == [due]


class TestCardMemoryStateSerialization:
    """Tests for persisting card states."""

    def test_round_trip(self, scheduler, make_state, now):
        """A reviewed state survives to_dict/from_dict unchanged."""
        updated, _ = scheduler.review(make_state("card-1"), Grade.GOOD, now)

        assert CardMemoryState.from_dict(updated.to_dict()) == updated

    def test_reviewed_state_without_stability_rejected(self, now):
        """A Review record missing its stability cannot be loaded."""
        data = {
            "card_id": "card-1",
            "due": now.isoformat(),
            "state": int(CardState.REVIEW),
            "reps": 3,
            "last_review": (now - timedelta(days=5)).isoformat(),
        }

        with pytest.raises(ValueError, match="no stability"):
            CardMemoryState.from_dict(data)

    def test_new_state_without_stability_allowed(self, now):
        """New records have no memory yet."""
        card = CardMemoryState.from_dict({"card_id": "card-1", "due": now.isoformat()})

        assert card.state == CardState.NEW
        assert card.stability == 0.0


class TestNextReview:
    """Tests for the next due date."""

    def test_next_review_is_updated_due(self, scheduler, make_state, now):
        """After grading, the next review is the new due date."""
        updated, _ = scheduler.review(make_state("card-1"), Grade.GOOD, now)

        assert scheduler.next_review(updated) == updated.due
        assert scheduler.next_review(updated) > now

    def test_naive_due_returned_as_utc(self, scheduler, now):
        """Naive due dates are treated as UTC."""
        card = CardMemoryState(card_id="card-1", due=now.replace(tzinfo=None))

        assert scheduler.next_review(card) == now
        assert scheduler.next_review(card).tzinfo is not None


class TestReviewLog:
    """Tests for the review history entry."""

    def test_to_dict_shape(self, scheduler, make_state, now):
        """Log entries persist the rating and ISO timestamps."""
        card = make_state("card-1")
        _, log = scheduler.review(card, Grade.HARD, now)

        data = log.to_dict()

        assert data["card_id"] == "card-1"
        assert data["rating"] == int(Grade.HARD)
        assert "grade" not in data
        assert data["state"] == int(CardState.REVIEW)
        assert data["due"] == card.due.isoformat()
        assert data["reviewed_at"] == now.isoformat()
        assert datetime.fromisoformat(data["reviewed_at"]) == now
        assert data["stability"] == card.stability
        assert data["last_elapsed_days"] == card.elapsed_days
