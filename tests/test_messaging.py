from sqlmodel import select

from app.models import Announcement, Notification
from tests.helpers import auth_headers


def notify(session, recipient, message="hello"):
    note = Notification(recipient=recipient, sender="system", type="announcement", message=message)
    session.add(note)
    session.commit()
    session.refresh(note)
    return note


# ---------- notifications ----------
def test_list_notifications_with_unread_count(client, session, student):
    notify(session, student.username, "one")
    read = notify(session, student.username, "two")
    read.read = True
    session.add(read)
    session.commit()

    everything = client.get("/api/notifications", headers=auth_headers(student)).json()
    unread = client.get("/api/notifications", params={"unread_only": True}, headers=auth_headers(student)).json()

    assert len(everything["notifications"]) == 2
    assert everything["unread_count"] == 1
    assert [n["message"] for n in unread["notifications"]] == ["one"]


def test_read_all_is_not_taken_for_an_id(client, session, student):
    notify(session, student.username)
    notify(session, student.username)

    response = client.put("/api/notifications/read-all", headers=auth_headers(student))

    assert response.status_code == 200
    session.expire_all()
    assert all(n.read for n in session.exec(select(Notification)).all())


def test_only_the_recipient_touches_a_notification(client, session, teacher, student):
    note = notify(session, student.username)

    foreign = client.put(f"/api/notifications/{note.id}/read", headers=auth_headers(teacher))
    missing = client.delete("/api/notifications/999", headers=auth_headers(student))
    deleted = client.delete(f"/api/notifications/{note.id}", headers=auth_headers(student))

    assert foreign.status_code == 403
    assert foreign.json() == {"error": "Not authorized to update this notification"}
    assert missing.status_code == 404
    assert deleted.status_code == 200


# ---------- messages ----------
def test_conversation_in_order_with_unread_count(client, teacher, student, classroom):
    client.post("/api/messages", json={"class_name": "Physics 101", "recipient": teacher.username, "content": "Hi"},
                headers=auth_headers(student))
    client.post("/api/messages", json={"class_name": "Physics 101", "recipient": student.username, "content": "Hello"},
                headers=auth_headers(teacher))
    client.post("/api/messages", json={"class_name": "Physics 101", "recipient": student.username, "content": "Ask away"},
                headers=auth_headers(teacher))

    thread = client.get("/api/messages", params={"class_name": "Physics 101", "other_user": teacher.username},
                        headers=auth_headers(student))
    assert [m["content"] for m in thread.json()] == ["Hi", "Hello", "Ask away"]

    assert client.get("/api/messages/unread-count", headers=auth_headers(student)).json() == {"count": 2}
    client.patch("/api/messages/read", json={"class_name": "Physics 101", "sender": teacher.username},
                 headers=auth_headers(student))
    assert client.get("/api/messages/unread-count", headers=auth_headers(student)).json() == {"count": 0}


def test_messages_stay_inside_the_class(client, make_user, teacher, student, classroom):
    outsider = make_user("outsider")

    to_outsider = client.post(
        "/api/messages",
        json={"class_name": "Physics 101", "recipient": outsider.username, "content": "psst"},
        headers=auth_headers(student),
    )
    reading = client.get(
        "/api/messages",
        params={"class_name": "Physics 101", "other_user": student.username},
        headers=auth_headers(outsider),
    )
    unknown = client.get(
        "/api/messages",
        params={"class_name": "Nope", "other_user": student.username},
        headers=auth_headers(student),
    )

    assert to_outsider.status_code == 403
    assert to_outsider.json() == {"error": "Both users must be in the class"}
    assert reading.status_code == 403
    assert unknown.status_code == 404


# ---------- topics ----------
def test_topics_are_ordered_and_unique(client, teacher, student, classroom):
    headers = auth_headers(teacher)
    first = client.post("/api/topics", json={"name": "Week 1", "class_name": "Physics 101"}, headers=headers)
    second = client.post("/api/topics", json={"name": "Week 2", "class_name": "Physics 101", "color": "#ff0000"},
                         headers=headers)
    duplicate = client.post("/api/topics", json={"name": "Week 1", "class_name": "Physics 101"}, headers=headers)

    assert first.json()["topic"]["order"] == 0
    assert first.json()["topic"]["color"] == "#6c757d"
    assert second.json()["topic"]["order"] == 1
    assert duplicate.status_code == 400
    assert duplicate.json() == {"error": "Topic with this name already exists in this class"}

    listed = client.get("/api/topics", params={"class_name": "Physics 101"}, headers=auth_headers(student))
    assert [t["name"] for t in listed.json()] == ["Week 1", "Week 2"]


def test_topic_listing_checks_class(client, make_user, classroom):
    outsider = make_user("outsider")

    assert client.get("/api/topics", headers=auth_headers(outsider)).status_code == 400
    assert client.get("/api/topics", params={"class_name": "Nope"}, headers=auth_headers(outsider)).status_code == 404
    assert client.get("/api/topics", params={"class_name": "Physics 101"},
                      headers=auth_headers(outsider)).status_code == 403


def test_deleting_a_topic_detaches_announcements(client, session, teacher, classroom):
    headers = auth_headers(teacher)
    topic = client.post("/api/topics", json={"name": "Labs", "class_name": "Physics 101"}, headers=headers).json()["topic"]
    created = client.post(
        "/api/announcements",
        json={"message": "Lab safety briefing", "class_name": "Physics 101", "topic_id": topic["id"]},
        headers=headers,
    )
    assert created.status_code == 201

    response = client.delete(f"/api/topics/{topic['id']}", headers=headers)

    assert response.status_code == 200
    session.expire_all()
    announcement = session.exec(select(Announcement)).one()
    assert announcement.topic_id is None


# ---------- comments ----------
def test_comment_lifecycle(client, teacher, student, make_user, classroom):
    body = {"content": "When is it due?", "reference_type": "announcement", "reference_id": 1, "class_name": "Physics 101"}
    comment = client.post("/api/comments", json=body, headers=auth_headers(student)).json()["comment"]
    classmate = make_user("pedro")

    edit_by_teacher = client.put(f"/api/comments/{comment['id']}", json={"content": "x"}, headers=auth_headers(teacher))
    edit_by_author = client.put(f"/api/comments/{comment['id']}", json={"content": "When is lab 2 due?"},
                                headers=auth_headers(student))
    delete_by_classmate = client.delete(f"/api/comments/{comment['id']}", headers=auth_headers(classmate))

    assert edit_by_teacher.status_code == 403
    assert edit_by_author.json()["comment"]["content"] == "When is lab 2 due?"
    assert delete_by_classmate.status_code == 403

    listed = client.get("/api/comments", params={"reference_type": "announcement", "reference_id": 1},
                        headers=auth_headers(teacher))
    assert [c["author"] for c in listed.json()] == [student.username]

    assert client.delete(f"/api/comments/{comment['id']}", headers=auth_headers(teacher)).status_code == 200
