# Pure scoring, grading and gradebook helpers (no database access)
from .scoring import ExamScore, score_submission, count_correct, credit_delta

__all__ = [
    "ExamScore",
    "score_submission",
    "count_correct",
    "credit_delta",
]
