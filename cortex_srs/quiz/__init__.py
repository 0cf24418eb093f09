"""
Adaptive end-of-lesson quizzes.
"""

from cortex_srs.quiz.adaptive_quiz import (
    AdaptiveQuiz,
    AdaptiveQuizConfig,
    QuizMastery,
    QuizSummary,
)

__all__ = [
    "AdaptiveQuiz",
    "AdaptiveQuizConfig",
    "QuizMastery",
    "QuizSummary",
]
