from datetime import datetime, timedelta

import pytest
from sqlmodel import select

from app.models import Form, FormResponse
from app.processing.form_grading import availability_status, grade_answer, grade_response, quiz_summary
from tests.helpers import auth_headers

QUIZ = [
    {"id": "q1", "type": "multiple_choice", "title": "Unit of force", "points": 2, "correct_answer": "Newton"},
    {"id": "q2", "type": "checkboxes", "title": "Vectors", "points": 1, "correct_answer": ["velocity", "force"]},
    {"id": "q3", "type": "enumeration", "title": "States of matter", "points": 3,
     "enumeration_answers": ["solid", "liquid", "gas"]},
    {"id": "q4", "type": "paragraph", "title": "Anything else?"},
]


# ---------- grading ----------
def test_grade_answer_by_question_type():
    assert grade_answer(QUIZ[0], "Newton") == (True, 1.0)
    assert grade_answer(QUIZ[0], "newton") == (False, 0.0)
    assert grade_answer(QUIZ[1], ["force", "velocity"]) == (True, 1.0)
    assert grade_answer({"type": "true_false", "correct_answer": "True"}, " true ") == (True, 1.0)
    assert grade_answer(QUIZ[2], "Solid, gas") == (False, 2 / 3)
    assert grade_answer(QUIZ[2], ["gas", "liquid", "solid"]) == (True, 1.0)


def test_grade_answer_matching_pairs():
    question = {"type": "matching_type", "matching_pairs": [{"left": "H", "right": "1"}, {"left": "He", "right": "2"}]}

    assert grade_answer(question, ["1", "3"]) == (False, 0.5)
    assert grade_answer(question, "not a list") == (False, 0.0)


def test_grade_response_scores_only_quizzes():
    answers = [
        {"question_id": "q1", "answer": "Newton"},
        {"question_id": "q3", "answer": "solid"},
        {"question_id": "q4", "answer": "no"},
    ]

    graded, score = grade_response(QUIZ, answers, is_quiz=True)

    assert score["max_score"] == 5
    assert score["total"] == 3
    assert score["percentage"] == pytest.approx(60)
    assert graded[0]["is_correct"] is True
    assert graded[1]["partial_credit"] == 1 / 3
    assert "is_correct" not in graded[2]

    _, survey_score = grade_response(QUIZ, answers, is_quiz=False)
    assert survey_score == {"total": 0.0, "max_score": 0.0, "percentage": 0.0}


def test_availability_status():
    now = datetime(2024, 6, 1, 12, 0)

    assert availability_status({}, now) == "available"
    assert availability_status({"open_at": "2024-06-02T00:00:00Z"}, now) == "not_yet_open"
    assert availability_status({"deadline": "2024-05-31T00:00:00"}, now) == "closed"
    assert availability_status({"accepting_responses": False}, now) == "closed"


def test_quiz_summary():
    assert quiz_summary([100, 50, 60]) == {
        "average_score": 70,
        "highest_score": 100,
        "lowest_score": 50,
        "pass_rate": 2 / 3 * 100,
    }
    assert quiz_summary([])["pass_rate"] == 0


# ---------- endpoints ----------
def create_form(client, teacher, **settings):
    body = {
        "title": "Forces quiz",
        "class_name": "Physics 101",
        "questions": [{k: v for k, v in q.items() if k != "id"} for q in QUIZ],
        "settings": {"is_quiz": True, "auto_grade": True, **settings},
        "status": "published",
    }
    response = client.post("/api/forms", json=body, headers=auth_headers(teacher))
    assert response.status_code == 201, response.text
    return response.json()


def test_questions_get_ids_and_answers_are_hidden(client, teacher, student, classroom):
    form = create_form(client, teacher)
    assert all(q["id"] for q in form["questions"])

    as_student = client.get(f"/api/forms/{form['id']}", headers=auth_headers(student)).json()
    as_owner = client.get(f"/api/forms/{form['id']}", headers=auth_headers(teacher)).json()

    assert as_student["availability_status"] == "available"
    assert as_student["settings"]["require_login"] is True
    assert all("correct_answer" not in q and "enumeration_answers" not in q for q in as_student["questions"])
    assert as_owner["questions"][0]["correct_answer"] == "Newton"


def test_students_see_published_forms_of_their_classes(client, teacher, student, classroom):
    create_form(client, teacher)
    client.post("/api/forms", json={"title": "Draft", "class_name": "Physics 101"}, headers=auth_headers(teacher))

    listed = client.get("/api/forms", headers=auth_headers(student)).json()

    assert [f["title"] for f in listed] == ["Forces quiz"]


def test_submit_response_grades_and_counts(client, session, teacher, student, classroom):
    form = create_form(client, teacher, show_correct_answers=True)
    q1 = form["questions"][0]["id"]

    response = client.post(
        f"/api/forms/{form['id']}/responses",
        json={"answers": [{"question_id": q1, "answer": "Newton"}]},
        headers=auth_headers(student),
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["message"] == "Your response has been recorded."
    assert body["score"]["total"] == 2
    assert body["score"]["auto_graded"] is True

    session.expire_all()
    stored = session.exec(select(FormResponse)).one()
    assert stored.status == "graded"
    assert stored.respondent["email"] == student.email
    assert session.get(Form, form["id"]).response_count == 1


def test_second_response_is_a_conflict(client, teacher, student, classroom):
    form = create_form(client, teacher)
    headers = auth_headers(student)

    first = client.post(f"/api/forms/{form['id']}/responses", json={"answers": []}, headers=headers)
    second = client.post(f"/api/forms/{form['id']}/responses", json={"answers": []}, headers=headers)

    assert first.status_code == 201
    assert first.json()["score"] is None
    assert second.status_code == 409


def test_login_required_and_closed_forms(client, teacher, classroom):
    login_form = create_form(client, teacher)
    closed = create_form(client, teacher, deadline=(datetime.utcnow() - timedelta(days=1)).isoformat())
    public = create_form(client, teacher, require_login=False, allow_multiple_responses=True)

    anonymous = client.post(f"/api/forms/{login_form['id']}/responses", json={"answers": []})
    late = client.post(f"/api/forms/{closed['id']}/responses", json={"answers": []}, headers=auth_headers(teacher))
    open_one = client.post(f"/api/forms/{public['id']}/responses", json={"answers": [], "respondent": {"name": "Guest"}})

    assert anonymous.status_code == 401
    assert anonymous.json() == {"error": "Login required to submit this form"}
    assert late.status_code == 400
    assert late.json() == {"error": "Form has closed"}
    assert open_one.status_code == 201


def test_analytics_and_export(client, teacher, student, classroom):
    form = create_form(client, teacher)
    q1 = form["questions"][0]["id"]
    client.post(
        f"/api/forms/{form['id']}/responses",
        json={"answers": [{"question_id": q1, "answer": "Newton"}], "respondent": {"name": "Juan"}},
        headers=auth_headers(student),
    )

    analytics = client.get(f"/api/forms/{form['id']}/analytics", headers=auth_headers(teacher)).json()
    exported = client.get(f"/api/forms/{form['id']}/export", headers=auth_headers(teacher))

    assert analytics["total_responses"] == 1
    assert analytics["question_analytics"][0]["answers"] == {"Newton": 1}
    assert analytics["question_analytics"][0]["correct_count"] == 1
    assert analytics["quiz_analytics"]["highest_score"] == 100
    header, row = exported.text.splitlines()
    assert header.startswith("Timestamp,Respondent Name,Respondent Email,Unit of force")
    assert header.endswith("Score,Max Score,Percentage")
    assert ",Juan,juan@example.com,Newton," in row


def test_collaborators_can_edit_but_not_delete(client, teacher, make_user, classroom):
    from app.models import TEACHER

    colleague = make_user("mr_tan", role=TEACHER)
    form = create_form(client, teacher)

    client.post(f"/api/forms/{form['id']}/collaborators", json={"collaborator_username": "mr_tan"},
                headers=auth_headers(teacher))
    edited = client.put(f"/api/forms/{form['id']}", json={"title": "Forces quiz v2"}, headers=auth_headers(colleague))
    deleted = client.delete(f"/api/forms/{form['id']}", headers=auth_headers(colleague))

    assert edited.status_code == 200
    assert edited.json()["title"] == "Forces quiz v2"
    assert deleted.status_code == 403


def test_send_to_class_makes_published_copies(client, session, teacher, classroom):
    from app.crud.classes import create_class

    create_class(session, name="Physics 102", teacher=teacher.username, code="PHY102", section="B")
    form = create_form(client, teacher)

    response = client.post(
        f"/api/forms/{form['id']}/send-to-class",
        json={"target_classes": ["Physics 102"], "new_deadline": "2030-01-01T00:00:00"},
        headers=auth_headers(teacher),
    )

    assert response.status_code == 200
    copy = response.json()["forms"][0]
    assert copy["class_name"] == "Physics 102"
    assert copy["status"] == "published"
    assert copy["settings"]["deadline"] == "2030-01-01T00:00:00"
