"""
Exam scoring with credit-point adjustment.

A submission is scored in three steps:

1. ``count_correct`` awards one point per question answered correctly.
   Multiple-choice answers must match the stored answer verbatim, short
   answers are compared trimmed and case-folded.
2. ``credit_delta`` moves the student's balance by +1 for a submission
   strictly before the due time and by -2 at or after it (floored at 0).
3. The gap between the raw score and the question count is filled from
   the balance, one point per credit.

Nothing here touches the database; the exam router applies the result.
"""
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

EARLY_BONUS = 1
LATE_PENALTY = 2


@dataclass
class ExamScore:
    raw_score: int
    final_score: int
    total: int
    credits_used: int
    credit_balance: int

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

    @property
    def feedback_suffix(self) -> str:
        return f"(raw {self.raw_score}/{self.total}, +{self.credits_used} credits)"


def _normalize(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip().casefold()


def is_correct(question: Dict[str, Any], answer: Any) -> bool:
    correct = question.get("correct_answer")
    if correct is None or correct == "":
        return False

    qtype = question.get("type")
    if qtype == "multiple":
        return answer == correct
    if qtype == "short":
        if answer is None:
            return False
        return _normalize(answer) == _normalize(correct)
    return False


def count_correct(questions: List[Dict[str, Any]], answers: Iterable[Dict[str, Any]]) -> int:
    raw = 0
    for entry in answers or []:
        index = entry.get("question_index")
        if not isinstance(index, int) or isinstance(index, bool):
            continue
        if index < 0 or index >= len(questions):
            continue
        if is_correct(questions[index], entry.get("answer")):
            raw += 1
    return raw


def credit_delta(due: Optional[datetime], now: datetime) -> int:
    if due is None:
        return 0
    if now < due:
        return EARLY_BONUS
    return -LATE_PENALTY


def score_submission(
        questions: List[Dict[str, Any]],
        answers: Iterable[Dict[str, Any]],
        credit_points: int,
        due: Optional[datetime],
        now: datetime,
) -> ExamScore:
    total = len(questions)
    raw = count_correct(questions, answers)

    # the upper bound of the balance is not applied here
    balance = max(0, (credit_points or 0) + credit_delta(due, now))

    deficit = max(0, total - raw)
    credits_used = min(balance, deficit)
    balance = max(0, balance - credits_used)

    return ExamScore(
        raw_score=raw,
        final_score=raw + credits_used,
        total=total,
        credits_used=credits_used,
        credit_balance=balance,
    )
