"""
cortex-srs: spaced-repetition study core.

Provides:
- FSRS card scheduling (study.scheduler)
- Review session queues with new-card interleaving (study.review_session)
- Adaptive end-of-lesson quizzes with retry rounds (quiz.adaptive_quiz)
- Card, lesson, module and overall mastery (study.mastery)
"""

__version__ = "0.1.0"
