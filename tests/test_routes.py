import base64
import io

import pytest

from stride import ai_analyst


def login(client, name, password):
    return client.post('/api/login', json={"fullName": name, "password": password})


def create_user(client, **fields):
    response = client.post('/api/users', json=fields)
    assert response.status_code == 201
    return response.get_json()["user"]


@pytest.fixture
def school(client, controller):
    """Admin creates a teacher and a student in the Einstein section, then logs out."""
    assert login(client, "research administrator", "admin").status_code == 200
    teacher = create_user(client, name="Tess Teacher", username="tess", password="t-pass",
                          role="TEACHER", section="Grade 11 - Einstein", subject="Physics")
    student = create_user(client, name="Sam Student", username="sam", password="s-pass",
                          role="STUDENT", section="Grade 11 - Einstein")
    other = create_user(client, name="Gil Galilei", username="gil", password="g-pass",
                        role="STUDENT", section="Grade 12 - Galilei")
    client.post('/api/logout')
    return {"teacher": teacher, "student": student, "other": other}


def test_status_reports_ready(client):
    assert client.get('/api/status').get_json() == {"state": "ready"}


def test_requests_wait_for_hydration(make_app):
    client = make_app(HYDRATE_ON_START=False).test_client()

    assert client.get('/api/status').get_json() == {"state": "hydrating"}
    assert client.get('/api/session').status_code == 503


def test_bootstrap_assets_are_served(client):
    assert client.get('/').status_code == 200
    assert b"Mustang Stride" in client.get('/index.html').data
    assert client.get('/manifest.json').get_json()["name"] == "Mustang Stride"


def test_login_requires_both_fields(client):
    assert login(client, "  ", "admin").status_code == 400
    assert login(client, "Research Administrator", "").status_code == 400


def test_login_failure_sets_error_until_input(client):
    response = login(client, "Research Administrator", "wrong")
    assert response.status_code == 401
    assert client.get('/api/session').get_json() == {"user": None, "loginError": True}

    assert client.post('/api/login/input', json={"password": "a"}).get_json() == {"error": False}
    assert client.get('/api/session').get_json()["loginError"] is False


def test_login_and_logout(client, controller):
    response = login(client, "RESEARCH ADMINISTRATOR", "admin")
    assert response.get_json()["user"]["role"] == "ADMIN"
    assert controller.state.current_user.id == "admin-1"

    client.post('/api/logout')
    assert client.get('/api/session').get_json() == {"user": None, "loginError": False}


def test_dashboard_requires_login(client):
    assert client.get('/api/dashboard').status_code == 401


def test_admin_manages_users(client, school):
    login(client, "Research Administrator", "admin")
    board = client.get('/api/dashboard').get_json()
    assert [u["name"] for u in board["users"]] == [
        "Research Administrator", "Tess Teacher", "Sam Student", "Gil Galilei"]

    updated = client.patch(f'/api/users/{school["student"]["id"]}', json={"section": "Grade 12 - Galilei"})
    sam = next(u for u in updated.get_json()["users"] if u["id"] == school["student"]["id"])
    assert sam["section"] == "Grade 12 - Galilei"

    assert client.delete('/api/users/admin-1').status_code == 400
    remaining = client.delete(f'/api/users/{school["other"]["id"]}').get_json()["users"]
    assert school["other"]["id"] not in [u["id"] for u in remaining]


def test_roles_are_enforced(client, school):
    login(client, "Sam Student", "s-pass")
    assert client.post('/api/assignments', json={"title": "Sneaky"}).status_code == 403
    assert client.post('/api/users', json={"name": "Mallory"}).status_code == 403
    assert client.get('/api/admin/analysis').status_code == 403


def test_assignment_lifecycle(client, controller, school):
    login(client, "Tess Teacher", "t-pass")
    created = client.post('/api/assignments', json={"title": "Lab 1", "dueDate": "2999-01-01"})
    assert created.status_code == 201
    assignment = created.get_json()["assignment"]
    assert assignment["teacherId"] == school["teacher"]["id"]
    assert assignment["section"] == "Grade 11 - Einstein"
    assert assignment["subject"] == "Physics"

    edited = client.patch(f'/api/assignments/{assignment["id"]}', json={"description": "Pendulum"})
    assert edited.get_json()["assignments"][0]["description"] == "Pendulum"
    client.post('/api/logout')

    login(client, "Sam Student", "s-pass")
    board = client.get('/api/dashboard').get_json()
    assert [a["id"] for a in board["assignments"]] == [assignment["id"]]
    submitted = client.post('/api/submissions', json={"assignmentId": assignment["id"], "textResponse": "Done"})
    assert submitted.status_code == 201
    assert submitted.get_json()["submission"]["status"] == "ON_TIME"
    client.post('/api/logout')

    login(client, "Gil Galilei", "g-pass")
    assert client.get('/api/dashboard').get_json()["assignments"] == []
    assert client.post('/api/submissions', json={"assignmentId": assignment["id"]}).status_code == 403
    client.post('/api/logout')

    login(client, "Tess Teacher", "t-pass")
    assert len(client.get('/api/dashboard').get_json()["submissions"]) == 1
    client.delete(f'/api/assignments/{assignment["id"]}')
    assert controller.state.assignments == []
    assert controller.state.submissions == []


def test_late_submission_with_uploaded_file(client, school):
    login(client, "Tess Teacher", "t-pass")
    assignment = client.post('/api/assignments', json={"title": "Essay", "dueDate": "2000-01-01"}) \
        .get_json()["assignment"]
    client.post('/api/logout')

    login(client, "Sam Student", "s-pass")
    response = client.post('/api/submissions', data={
        "assignmentId": assignment["id"],
        "files": (io.BytesIO(b"my essay"), "../essay final.txt", "text/plain"),
    }, content_type="multipart/form-data")

    submission = response.get_json()["submission"]
    assert submission["status"] == "LATE"
    [stored] = submission["files"]
    assert stored["name"] == "essay_final.txt"
    assert stored["type"] == "text/plain"
    assert base64.b64decode(stored["data"]) == b"my essay"


def test_teacher_cannot_touch_others_assignments(client, school, controller):
    from stride import reducers

    with controller.mutate() as state:
        state.assignments = reducers.add_assignment(state.assignments, {"title": "Foreign", "teacherId": "u-else"})
        foreign = state.assignments[0]

    login(client, "Tess Teacher", "t-pass")
    assert client.patch(f'/api/assignments/{foreign.id}', json={"title": "Mine"}).status_code == 403
    assert client.delete(f'/api/assignments/{foreign.id}').status_code == 403
    client.post('/api/logout')

    login(client, "Research Administrator", "admin")
    client.delete(f'/api/assignments/{foreign.id}')
    assert controller.state.assignments == []


def test_submission_to_unknown_assignment(client, school):
    login(client, "Sam Student", "s-pass")
    assert client.post('/api/submissions', json={"assignmentId": "a-missing"}).status_code == 404


def test_admin_analysis_without_key_falls_back(client):
    login(client, "Research Administrator", "admin")
    assert client.get('/api/admin/analysis').get_json() == {"analysis": ai_analyst.FALLBACK_MESSAGE}


def test_unknown_enum_value_is_rejected(client, controller):
    login(client, "Research Administrator", "admin")
    response = client.post('/api/users', json={"name": "X", "password": "p", "role": "JANITOR"})

    assert response.status_code == 400
    body = response.get_json()
    assert body["error"] == "Invalid input"
    assert body["details"][0]["field"] == "role"
    assert [u.id for u in controller.state.users] == ["admin-1"]


def test_non_object_json_body_is_rejected(client, school):
    login(client, "Research Administrator", "admin")
    assert client.post('/api/users', json=[{"name": "X"}]).status_code == 400
    assert client.patch(f'/api/users/{school["student"]["id"]}', json=["x"]).status_code == 400
    assert client.patch(f'/api/users/{school["student"]["id"]}',
                        json={"section": "Grade 13"}).status_code == 400
    assert login(client, 12, "admin").status_code == 401
    client.post('/api/logout')

    login(client, "Tess Teacher", "t-pass")
    assert client.post('/api/assignments', json="Lab").status_code == 400
    assert client.post('/api/assignments', json={"title": "Lab", "section": "Mars"}).status_code == 400
    assignment = client.post('/api/assignments', json={"title": "Lab"}).get_json()["assignment"]
    assert client.patch(f'/api/assignments/{assignment["id"]}', json=[1]).status_code == 400
    client.post('/api/logout')

    login(client, "Sam Student", "s-pass")
    response = client.post('/api/submissions', data={"assignmentId": assignment["id"], "files": "not-a-list"})
    assert response.status_code == 400
