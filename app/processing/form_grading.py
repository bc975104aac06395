from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

EXACT_TYPES = ("multiple_choice", "dropdown")
CHOICE_TYPES = ("multiple_choice", "dropdown", "checkboxes")

PASSING_PERCENTAGE = 60


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, list):
        return value
    return [value]


def _clean(value: Any) -> str:
    return str(value if value is not None else "").strip().lower()


def is_gradable(question: Dict[str, Any]) -> bool:
    return (
        question.get("correct_answer") is not None
        or bool(question.get("enumeration_answers"))
        or bool(question.get("matching_pairs"))
    )


def grade_answer(question: Dict[str, Any], answer: Any) -> Tuple[bool, float]:
    """Returns (is_correct, partial_credit) where partial credit is 0..1."""
    qtype = question.get("type")
    correct = question.get("correct_answer")

    if qtype in EXACT_TYPES:
        ok = answer == correct
        return ok, 1.0 if ok else 0.0

    if qtype == "checkboxes":
        expected = sorted(str(v) for v in _as_list(correct))
        given = sorted(str(v) for v in _as_list(answer))
        ok = expected == given
        return ok, 1.0 if ok else 0.0

    if qtype in ("true_false", "identification"):
        ok = _clean(answer) == _clean(correct)
        return ok, 1.0 if ok else 0.0

    if qtype == "enumeration":
        expected = [_clean(v) for v in question.get("enumeration_answers") or []]
        if not expected:
            return False, 0.0
        if isinstance(answer, list):
            given = [_clean(v) for v in answer]
        else:
            given = [_clean(v) for v in str(answer or "").split(",")]
        hits = len([g for g in given if g in expected])
        partial = min(1.0, hits / len(expected))
        return partial == 1.0, partial

    if qtype == "matching_type":
        pairs = question.get("matching_pairs") or []
        if not pairs:
            return False, 0.0
        given = answer if isinstance(answer, list) else []
        hits = 0
        for idx, pair in enumerate(pairs):
            if idx < len(given) and given[idx] == pair.get("right"):
                hits += 1
        partial = hits / len(pairs)
        return partial == 1.0, partial

    return False, 0.0


def grade_response(form_questions: List[Dict[str, Any]], answers: List[Dict[str, Any]], is_quiz: bool):
    """
    Auto-grades a form response.

    Only quiz forms are scored. Each gradable answer gets ``is_correct`` and
    ``points_awarded``; the score dict holds total, max_score and percentage.
    """
    by_id = {str(q.get("id")): q for q in form_questions}
    score = {"total": 0.0, "max_score": 0.0, "percentage": 0.0}
    graded = []

    for answer in answers:
        entry = dict(answer)
        question = by_id.get(str(answer.get("question_id")))
        if is_quiz and question is not None and is_gradable(question):
            points = float(question.get("points") or 0)
            ok, partial = grade_answer(question, answer.get("answer"))
            awarded = points * partial
            score["max_score"] += points
            score["total"] += awarded
            entry["is_correct"] = ok
            entry["points_awarded"] = awarded
            if 0 < partial < 1:
                entry["partial_credit"] = partial
        graded.append(entry)

    if is_quiz and score["max_score"] > 0:
        score["percentage"] = score["total"] / score["max_score"] * 100
    return graded, score


def availability_status(settings: Dict[str, Any], now: Optional[datetime] = None) -> str:
    now = now or datetime.utcnow()
    open_at = parse_time(settings.get("open_at"))
    close_at = parse_time(settings.get("close_at")) or parse_time(settings.get("deadline"))

    if open_at and now < open_at:
        return "not_yet_open"
    if close_at and now > close_at:
        return "closed"
    if not settings.get("accepting_responses", True):
        return "closed"
    return "available"


def parse_time(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def question_analytics(question: Dict[str, Any], responses: List[Dict[str, Any]], is_quiz: bool) -> Dict[str, Any]:
    qid = str(question.get("id"))
    answers = []
    for response in responses:
        for answer in response.get("answers") or []:
            if str(answer.get("question_id")) == qid:
                answers.append(answer)
                break

    analysis: Dict[str, Any] = {
        "question_id": qid,
        "question_title": question.get("title"),
        "question_type": question.get("type"),
        "total_answers": len(answers),
        "answers": {},
    }

    qtype = question.get("type")
    if qtype in CHOICE_TYPES:
        for answer in answers:
            for value in _as_list(answer.get("answer")):
                key = str(value)
                analysis["answers"][key] = analysis["answers"].get(key, 0) + 1
    elif qtype == "linear_scale":
        values = []
        for answer in answers:
            key = str(answer.get("answer"))
            analysis["answers"][key] = analysis["answers"].get(key, 0) + 1
            try:
                values.append(float(answer.get("answer") or 0))
            except (TypeError, ValueError):
                continue
        analysis["average"] = sum(values) / len(values) if values else 0
    else:
        analysis["responses"] = [a.get("answer") for a in answers]

    if is_quiz and is_gradable(question):
        correct = len([a for a in answers if a.get("is_correct")])
        analysis["correct_count"] = correct
        analysis["incorrect_count"] = len(answers) - correct
        analysis["correct_percentage"] = correct / len(answers) * 100 if answers else 0
    return analysis


def quiz_summary(percentages: List[float]) -> Dict[str, float]:
    if not percentages:
        return {"average_score": 0, "highest_score": 0, "lowest_score": 0, "pass_rate": 0}
    return {
        "average_score": sum(percentages) / len(percentages),
        "highest_score": max(percentages),
        "lowest_score": min(percentages),
        "pass_rate": len([p for p in percentages if p >= PASSING_PERCENTAGE]) / len(percentages) * 100,
    }
