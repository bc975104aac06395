from datetime import datetime, timedelta

from sqlmodel import select

from app.models import TEACHER, Announcement, Exam, ExamSubmission, Grade, Material, Notification, Topic
from tests.helpers import auth_headers


def add_exam(session, teacher, title="Quiz 1", class_name="Physics 101"):
    exam = Exam(
        title=title,
        class_name=class_name,
        created_by=teacher.username,
        due=datetime.utcnow() + timedelta(days=1),
        questions=[{"text": "1 + 1", "type": "short", "correct_answer": "2"}],
    )
    session.add(exam)
    session.commit()
    session.refresh(exam)
    return exam


# ---------- bulk ----------
def test_bulk_grades_report_each_row(client, session, teacher, student, classroom):
    payload = {
        "class_name": "Physics 101",
        "grades": [
            {"student": student.username, "grade": "B"},
            {"student": student.username, "grade": "A", "feedback": "better"},
            {"student": "", "grade": "A"},
        ],
    }

    response = client.post("/api/bulk/grades", json=payload, headers=auth_headers(teacher))

    assert response.status_code == 200
    assert [r["success"] for r in response.json()["results"]] == [True, True, False]
    session.expire_all()
    grades = session.exec(select(Grade)).all()
    assert [(g.grade, g.feedback) for g in grades] == [("A", "better")]


def test_bulk_delete_refuses_foreign_items(client, session, teacher, make_user, classroom):
    other = make_user("mr_tan", role=TEACHER)
    mine = Announcement(teacher=teacher.username, class_name="Physics 101", message="mine")
    theirs = Announcement(teacher=other.username, class_name="Physics 101", message="theirs")
    session.add_all([mine, theirs])
    session.commit()

    refused = client.post("/api/bulk/announcements/delete", json={"ids": [mine.id, theirs.id]}, headers=auth_headers(teacher))
    allowed = client.post("/api/bulk/announcements/delete", json={"ids": [mine.id]}, headers=auth_headers(teacher))

    assert refused.status_code == 403
    assert allowed.json()["deleted_count"] == 1


def test_bulk_delete_exams_takes_submissions_along(client, session, teacher, student, classroom):
    exam = add_exam(session, teacher)
    session.add(ExamSubmission(exam_id=exam.id, class_name="Physics 101", student=student.username, answers=[]))
    session.commit()

    response = client.post("/api/bulk/exams/delete", json={"ids": [exam.id]}, headers=auth_headers(teacher))

    assert response.json()["deleted_count"] == 1
    session.expire_all()
    assert session.exec(select(ExamSubmission)).all() == []


def test_bulk_notification_reaches_every_student(client, session, teacher, student, make_user, classroom):
    from app.crud.classes import add_student_to_class

    add_student_to_class(session, classroom.id, make_user("pedro").username)

    response = client.post(
        "/api/bulk/notifications",
        json={"class_name": "Physics 101", "message": "No class tomorrow"},
        headers=auth_headers(teacher),
    )

    assert response.json()["count"] == 2
    recipients = {n.recipient for n in session.exec(select(Notification))}
    assert recipients == {student.username, "pedro"}


# ---------- reuse ----------
def second_class(session, teacher):
    from app.crud.classes import create_class

    return create_class(session, name="Physics 102", teacher=teacher.username, code="PHY102", section="B")


def test_reuse_announcement_drops_topic(client, session, teacher, classroom):
    second_class(session, teacher)
    topic = Topic(name="Week 1", class_name="Physics 101", teacher=teacher.username)
    session.add(topic)
    session.commit()
    original = Announcement(teacher=teacher.username, class_name="Physics 101", message="Bring a calculator",
                            topic_id=topic.id)
    session.add(original)
    session.commit()

    response = client.post(
        "/api/reuse/announcement",
        json={"announcement_id": original.id, "target_class": "Physics 102"},
        headers=auth_headers(teacher),
    )

    copy = response.json()["announcement"]
    assert copy["class_name"] == "Physics 102"
    assert copy["message"] == "Bring a calculator"
    assert copy["topic_id"] is None


def test_reuse_material_into_foreign_class_is_refused(client, session, teacher, make_user, classroom):
    from app.crud.classes import create_class

    other = make_user("mr_tan", role=TEACHER)
    create_class(session, name="Chemistry", teacher=other.username, code="CHM001", section="A")
    material = Material(title="Slides", type="link", content="https://example.org", class_name="Physics 101",
                        teacher=teacher.username)
    session.add(material)
    session.commit()

    foreign = client.post("/api/reuse/material", json={"material_id": material.id, "target_class": "Chemistry"},
                          headers=auth_headers(teacher))
    missing = client.post("/api/reuse/material", json={"material_id": material.id, "target_class": "Nope"},
                          headers=auth_headers(teacher))

    assert foreign.status_code == 403
    assert missing.status_code == 404


def test_reuse_exam_with_new_due_date_notifies(client, session, teacher, student, classroom):
    from app.crud.classes import add_student_to_class

    target = second_class(session, teacher)
    add_student_to_class(session, target.id, student.username)
    exam = add_exam(session, teacher)

    response = client.post(
        "/api/reuse/exam",
        json={"exam_id": exam.id, "target_class": "Physics 102", "new_due_date": "2031-05-01T08:00:00"},
        headers=auth_headers(teacher),
    )

    copy = response.json()["exam"]
    assert copy["class_name"] == "Physics 102"
    assert copy["due"].startswith("2031-05-01T08:00:00")
    assert copy["questions"] == exam.questions
    notes = session.exec(select(Notification).where(Notification.reference_id == copy["id"])).all()
    assert [n.recipient for n in notes] == [student.username]
