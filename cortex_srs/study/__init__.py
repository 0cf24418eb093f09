"""
Study core: scheduling, mastery and lesson progress.

Review sessions live in cortex_srs.study.review_session, which depends on
the content catalog.
"""

from cortex_srs.study.mastery import (
    calculate_card_mastery,
    calculate_lesson_mastery,
    calculate_module_mastery,
    calculate_overall_mastery,
)
from cortex_srs.study.scheduler import CardScheduler, get_scheduler

__all__ = [
    "CardScheduler",
    "get_scheduler",
    "calculate_card_mastery",
    "calculate_lesson_mastery",
    "calculate_module_mastery",
    "calculate_overall_mastery",
]
