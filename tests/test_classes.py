from sqlmodel import select

from app.models import Class, ClassStudentLink
from tests.helpers import auth_headers


def test_teacher_creates_class_with_generated_code(client, teacher):
    response = client.post(
        "/api/classes",
        json={"name": "Chemistry", "section": "B", "course": "SCI", "year": "2024"},
        headers=auth_headers(teacher),
    )

    assert response.status_code == 201
    created = response.json()["cls"]
    assert created["teacher"] == teacher.username
    assert len(created["code"]) == 6
    assert created["code"] == created["code"].upper()
    assert created["students"] == []


def test_duplicate_class_code_is_rejected(client, session, teacher, monkeypatch):
    monkeypatch.setattr("app.crud.classes.generate_class_code", lambda length=6: "SAME01")
    headers = auth_headers(teacher)

    first = client.post("/api/classes", json={"name": "One", "section": "A"}, headers=headers)
    second = client.post("/api/classes", json={"name": "Two", "section": "A"}, headers=headers)

    assert first.status_code == 201
    assert second.status_code == 400
    assert second.json() == {"error": "Class code already exists"}
    assert len(session.exec(select(Class)).all()) == 1


def test_students_cannot_create_classes(client, student):
    response = client.post("/api/classes", json={"name": "Nope", "section": "A"}, headers=auth_headers(student))
    assert response.status_code == 403


def test_join_by_code(client, session, teacher, make_user, classroom):
    newcomer = make_user("pedro")
    headers = auth_headers(newcomer)

    joined = client.post("/api/classes/join", json={"code": "phy101"}, headers=headers)
    again = client.post("/api/classes/join", json={"code": "PHY101"}, headers=headers)
    missing = client.post("/api/classes/join", json={"code": "ZZZZZZ"}, headers=headers)

    assert joined.status_code == 200
    assert "pedro" in joined.json()["class"]["students"]
    assert again.status_code == 400
    assert again.json()["error"] == "Already joined this class"
    assert missing.status_code == 404


def test_student_sees_only_enrolled_classes(client, session, teacher, student, classroom):
    from app.crud.classes import create_class

    create_class(session, name="Biology", teacher=teacher.username, code="BIO999", section="C")

    response = client.get("/api/student/classes", headers=auth_headers(student))

    assert response.status_code == 200
    assert [c["name"] for c in response.json()] == ["Physics 101"]


def test_people_lists_teacher_and_classmates(client, teacher, student, classroom):
    response = client.get("/api/classes/Physics 101/people", headers=auth_headers(student))

    assert response.status_code == 200
    body = response.json()
    assert body["teacher"]["username"] == teacher.username
    assert [c["username"] for c in body["classmates"]] == [student.username]


def test_teacher_removes_student(client, session, teacher, student, classroom):
    response = client.delete(f"/api/classes/{classroom.id}/students/{student.username}", headers=auth_headers(teacher))

    assert response.status_code == 200
    session.expire_all()
    assert session.exec(select(ClassStudentLink)).all() == []


def test_other_teacher_cannot_delete_class(client, make_user, classroom):
    from app.models import TEACHER

    intruder = make_user("intruder", role=TEACHER)
    response = client.delete(f"/api/classes/{classroom.id}", headers=auth_headers(intruder))

    assert response.status_code == 403
