from sqlmodel import select

from app.models import MaterialSubmission, Notification
from tests.helpers import auth_headers


def post_material(client, teacher, **overrides):
    body = {"title": "Lecture 1 slides", "type": "link", "content": "https://example.org/l1", "class_name": "Physics 101"}
    body.update(overrides)
    response = client.post("/api/materials", json=body, headers=auth_headers(teacher))
    assert response.status_code == 201, response.text
    return response.json()["material"]


def submit(client, student, material_id):
    return client.post(
        f"/api/materials/{material_id}/submit",
        json={"file_name": "answers.pdf", "file_path": "uploads/assignments/abc.pdf", "file_size": 120},
        headers=auth_headers(student),
    )


def test_posting_material_notifies_students(client, session, teacher, student, classroom):
    material = post_material(client, teacher)

    note = session.exec(select(Notification).where(Notification.recipient == student.username)).one()
    assert note.message == 'New material posted in Physics 101: "Lecture 1 slides"'
    assert note.reference_id == material["id"]


def test_students_list_materials_of_their_classes(client, session, teacher, student, classroom):
    from app.crud.classes import create_class

    create_class(session, name="Biology", teacher=teacher.username, code="BIO001", section="A")
    post_material(client, teacher)
    post_material(client, teacher, title="Cells", class_name="Biology")

    listed = client.get("/api/materials", headers=auth_headers(student)).json()

    assert [m["title"] for m in listed] == ["Lecture 1 slides"]


def test_update_keeps_unset_fields(client, teacher, classroom):
    material = post_material(client, teacher)

    response = client.put(f"/api/materials/{material['id']}", json={"title": "Lecture 1 (rev)"}, headers=auth_headers(teacher))

    updated = response.json()["material"]
    assert updated["title"] == "Lecture 1 (rev)"
    assert updated["content"] == "https://example.org/l1"


def test_submission_grading_flow(client, session, teacher, student, classroom):
    material = post_material(client, teacher)

    submitted = submit(client, student, material["id"])
    assert submitted.status_code == 201
    submission = submitted.json()["submission"]

    mine = client.get(f"/api/materials/{material['id']}/my-submission", headers=auth_headers(student))
    assert mine.json()["id"] == submission["id"]

    graded = client.put(
        f"/api/materials/{material['id']}/submissions/{submission['id']}/grade",
        json={"score": 9, "feedback": "Neat"},
        headers=auth_headers(teacher),
    )
    assert graded.json()["submission"]["status"] == "graded"
    assert graded.json()["submission"]["score"] == 9

    messages = [n.message for n in session.exec(select(Notification).where(Notification.recipient == student.username))]
    assert 'Your submission for "Lecture 1 slides" has been graded' in messages


def test_students_cannot_delete_others_submissions(client, make_user, teacher, student, classroom):
    material = post_material(client, teacher)
    submission = submit(client, student, material["id"]).json()["submission"]
    classmate = make_user("pedro")

    url = f"/api/materials/{material['id']}/submissions/{submission['id']}"
    assert client.delete(url, headers=auth_headers(classmate)).status_code == 403
    assert client.delete(url, headers=auth_headers(student)).status_code == 200


def test_delete_material_removes_submissions(client, session, teacher, student, make_user, classroom):
    from app.models import TEACHER

    material = post_material(client, teacher)
    submit(client, student, material["id"])
    other_teacher = make_user("mr_tan", role=TEACHER)

    assert client.delete(f"/api/materials/{material['id']}", headers=auth_headers(other_teacher)).status_code == 403
    assert client.delete(f"/api/materials/{material['id']}", headers=auth_headers(teacher)).status_code == 200
    session.expire_all()
    assert session.exec(select(MaterialSubmission)).all() == []
