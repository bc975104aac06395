from datetime import datetime, timedelta

from app.processing.scoring import count_correct, credit_delta, is_correct, score_submission

NOW = datetime(2024, 5, 1, 12, 0, 0)

QUESTIONS = [
    {"text": "2 + 2", "type": "multiple", "options": ["3", "4"], "correct_answer": "4"},
    {"text": "Capital of France", "type": "short", "correct_answer": "Paris"},
    {"text": "Largest planet", "type": "short", "correct_answer": "Jupiter"},
    {"text": "H2O is", "type": "multiple", "options": ["Water", "Salt"], "correct_answer": "Water"},
]


def test_multiple_choice_needs_exact_match():
    question = QUESTIONS[3]
    assert is_correct(question, "Water")
    assert not is_correct(question, "water")
    assert not is_correct(question, " Water")


def test_short_answer_is_trimmed_and_case_folded():
    assert is_correct(QUESTIONS[1], "  pARIS ")
    assert not is_correct(QUESTIONS[1], None)


def test_empty_correct_answer_never_scores():
    assert not is_correct({"type": "short", "correct_answer": ""}, "")
    assert not is_correct({"type": "multiple", "correct_answer": None}, None)


def test_out_of_range_and_malformed_indexes_are_skipped():
    answers = [
        {"question_index": 0, "answer": "4"},
        {"question_index": 9, "answer": "4"},
        {"question_index": -1, "answer": "Water"},
        {"question_index": "1", "answer": "Paris"},
    ]
    assert count_correct(QUESTIONS, answers) == 1


def test_credit_delta():
    assert credit_delta(None, NOW) == 0
    assert credit_delta(NOW + timedelta(minutes=1), NOW) == 1
    assert credit_delta(NOW, NOW) == -2
    assert credit_delta(NOW - timedelta(days=1), NOW) == -2


def test_early_submission_earns_a_credit_and_spends_it():
    answers = [{"question_index": 0, "answer": "4"}, {"question_index": 1, "answer": "paris"}]
    score = score_submission(QUESTIONS, answers, credit_points=0, due=NOW + timedelta(hours=1), now=NOW)

    assert score.raw_score == 2
    assert score.credits_used == 1
    assert score.final_score == 3
    assert score.total == 4
    assert score.credit_balance == 0


def test_late_submission_pays_penalty_floored_at_zero():
    answers = [{"question_index": 0, "answer": "4"}]
    score = score_submission(QUESTIONS, answers, credit_points=1, due=NOW - timedelta(hours=1), now=NOW)

    assert score.raw_score == 1
    assert score.credits_used == 0
    assert score.final_score == 1
    assert score.credit_balance == 0


def test_perfect_score_keeps_the_balance():
    answers = [
        {"question_index": 0, "answer": "4"},
        {"question_index": 1, "answer": "Paris"},
        {"question_index": 2, "answer": "jupiter"},
        {"question_index": 3, "answer": "Water"},
    ]
    score = score_submission(QUESTIONS, answers, credit_points=10, due=NOW + timedelta(days=1), now=NOW)

    assert score.final_score == 4
    assert score.credits_used == 0
    # the cap of 10 is not applied while scoring
    assert score.credit_balance == 11


def test_to_dict_and_feedback_suffix():
    score = score_submission(QUESTIONS, [], credit_points=3, due=None, now=NOW)

    assert score.to_dict() == {
        "raw_score": 0,
        "final_score": 3,
        "total": 4,
        "credits_used": 3,
        "credit_balance": 0,
    }
    assert score.feedback_suffix == "(raw 0/4, +3 credits)"


def test_deficit_is_filled_from_the_balance():
    questions = QUESTIONS[:3]
    answers = [{"question_index": 1, "answer": "paris"}]
    score = score_submission(questions, answers, credit_points=2, due=None, now=NOW)

    assert (score.raw_score, score.total) == (1, 3)
    assert score.credits_used == 2
    assert score.final_score == 3
    assert score.credit_balance == 0
