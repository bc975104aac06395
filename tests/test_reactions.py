from tests.helpers import auth_headers

TARGET = {"reference_type": "announcement", "reference_id": 7, "class_name": "Physics 101"}


def toggle(client, user, reaction_type="heart"):
    return client.post("/api/reactions", json={**TARGET, "reaction_type": reaction_type}, headers=auth_headers(user))


def counts(client, user):
    params = {"reference_type": TARGET["reference_type"], "reference_id": TARGET["reference_id"]}
    return client.get("/api/reactions", params=params, headers=auth_headers(user)).json()


def test_toggle_adds_replaces_and_removes(client, student, classroom):
    added = toggle(client, student)
    assert added.status_code == 201
    assert added.json()["action"] == "added"

    updated = toggle(client, student, "like")
    assert updated.status_code == 200
    assert updated.json()["action"] == "updated"
    assert counts(client, student) == {"reactions": {"like": 1}, "user_reaction": "like", "total_reactions": 1}

    removed = toggle(client, student, "like")
    assert removed.json()["action"] == "removed"
    assert counts(client, student)["total_reactions"] == 0


def test_counts_are_grouped_by_type(client, teacher, student, make_user, classroom):
    toggle(client, student, "heart")
    toggle(client, make_user("pedro"), "heart")
    toggle(client, teacher, "thumbs_up")

    body = counts(client, teacher)

    assert body["reactions"] == {"heart": 2, "thumbs_up": 1}
    assert body["user_reaction"] == "thumbs_up"
    assert body["total_reactions"] == 3


def test_counts_need_a_reference(client, student):
    response = client.get("/api/reactions", params={"reference_type": "announcement"}, headers=auth_headers(student))

    assert response.status_code == 400
    assert response.json() == {"error": "Required fields: reference_type, reference_id"}


def test_details_list_who_reacted(client, teacher, student, classroom):
    toggle(client, student, "heart")
    toggle(client, teacher, "like")

    params = {"reference_type": "announcement", "reference_id": 7, "reaction_type": "heart"}
    response = client.get("/api/reactions/details", params=params, headers=auth_headers(teacher))

    assert [r["username"] for r in response.json()] == [student.username]


def test_students_delete_only_their_own(client, teacher, student, classroom):
    reaction = toggle(client, teacher).json()["reaction"]

    forbidden = client.delete(f"/api/reactions/{reaction['id']}", headers=auth_headers(student))
    allowed = client.delete(f"/api/reactions/{reaction['id']}", headers=auth_headers(teacher))

    assert forbidden.status_code == 403
    assert allowed.status_code == 200
