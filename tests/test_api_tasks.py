"""
Task listing, creation and completion over HTTP, including the trial
quota and the role and ownership gates.
"""

import json
import uuid
from datetime import date, datetime, time, timedelta

import pytest
from fastapi.testclient import TestClient

from busybee.api.tasks import validate_create_request
from busybee.errors import ValidationError
from busybee.models import Role
from busybee.safety.values import Username
from busybee.schemas import CreateRequest
from busybee.utils.auth import get_password_hash
from main import create_app
from tests.conftest import create_task


@pytest.fixture
def ann(logged_in) -> TestClient:
    return logged_in("Ann", Role.CREATOR)


@pytest.fixture
def ben(logged_in) -> TestClient:
    return logged_in("Ben", Role.CREATOR)


@pytest.fixture
def eve(logged_in) -> TestClient:
    return logged_in("Eve", Role.CREATOR)


def register_and_login(app, name: str) -> TestClient:
    user_client = TestClient(app)
    response = user_client.post("/register", json={"username": name, "password": "hunter2A!"})
    assert response.status_code == 200
    response = user_client.post(
        "/login", data={"username": name, "password": "hunter2A!"}, follow_redirects=False
    )
    assert response.status_code == 302
    return user_client


def test_create_with_unknown_responsible_user(app, client):
    ann = register_and_login(app, "Ann")
    response = create_task(ann, "Buy milk", responsibilityOf=["Ben"])

    assert response.status_code == 400
    assert response.json() == {"error": "responsibilityOf[0]: user does not exist"}
    assert app.state.tasks.get_all() == ()


def test_create_then_duplicate_name(app, client, create_account):
    ann = register_and_login(app, "Ann")
    create_account("Ben")

    response = create_task(ann, "Buy milk", responsibilityOf=["Ben"])
    assert response.status_code == 200
    taskid = uuid.UUID(response.json()["taskid"])
    assert app.state.tasks.find(taskid).createdBy == "Ann"

    response = create_task(ann, "buy MILK", responsibilityOf=["Ben"])
    assert response.status_code == 409
    assert response.json() == {"error": "name: task name already exists"}


def test_trial_quota(app, client):
    trial = register_and_login(app, "Or")

    first = create_task(trial, "First")
    assert first.status_code == 200

    response = create_task(trial, "Second")
    assert response.status_code == 403
    assert response.json() == {"error": "access denied"}

    assert trial.post("/done", json={"taskid": first.json()["taskid"]}).json() == {"success": True}
    assert create_task(trial, "Second").status_code == 200


def test_creator_has_no_quota(ann):
    assert create_task(ann, "One").status_code == 200
    assert create_task(ann, "Two").status_code == 200


def test_account_without_creating_role_is_forbidden(app, client):
    app.state.users.create_user(Username("Nobody"), get_password_hash("hunter2A!", 4), [])
    nobody = TestClient(app)
    nobody.post("/login", data={"username": "Nobody", "password": "hunter2A!"}, follow_redirects=False)

    response = create_task(nobody, "Mine")
    assert response.status_code == 403


@pytest.mark.parametrize(
    "body, message",
    [
        ({"desc": "x", "responsibilityOf": []}, "name: required"),
        ({"name": "   ", "desc": "x", "responsibilityOf": []}, "name: required"),
        ({"name": "A", "responsibilityOf": []}, "desc: required"),
        ({"name": "A", "desc": "x"}, "responsibilityOf: required"),
        ({"name": "<b>A</b>", "desc": "x", "responsibilityOf": []}, "name: contains invalid characters"),
        ({"name": "A", "desc": "d" * 2001, "responsibilityOf": []}, "desc: too long (max 2000)"),
        (
            {"name": "A", "desc": "x", "responsibilityOf": [], "dueTime": "10:00:00"},
            "dueTime: cannot be set without dueDate",
        ),
        (
            {"name": "A", "desc": "x", "responsibilityOf": [], "dueDate": "2000-01-01"},
            "dueDate: cannot be in the past",
        ),
        (
            {"name": "A", "desc": "x", "responsibilityOf": [], "dueDate": "not-a-date"},
            "dueDate: invalid",
        ),
        (
            {"name": "A", "desc": "x", "responsibilityOf": ["A", "B", "C", "D", "E", "F"]},
            "responsibilityOf: too many values (max 5)",
        ),
        ({"name": "A", "desc": "x", "responsibilityOf": [None]}, "responsibilityOf[0]: required"),
        (
            {"name": "A", "desc": "x", "responsibilityOf": ["Ann", "9lives"]},
            "responsibilityOf[1]: contains invalid characters",
        ),
        ({"name": "A", "desc": "x", "responsibilityOf": "Ann"}, "responsibilityOf: invalid"),
    ],
)
def test_create_validation_messages(ann, body, message):
    response = ann.post("/create", json=body)
    assert response.status_code == 400
    assert response.json() == {"error": message}


def test_create_stores_sanitized_description(ann):
    response = create_task(ann, "Clean", desc='<b onclick="x()">bold</b><script>alert(1)</script>')
    assert response.status_code == 200

    task = ann.get("/tasks").json()[0]
    assert task["description"] == "<b>bold</b>"


def test_create_with_due_date_and_time(ann):
    tomorrow = date.today() + timedelta(days=1)
    response = create_task(ann, "Later", dueDate=tomorrow.isoformat(), dueTime="08:30:00")
    assert response.status_code == 200

    task = ann.get("/tasks").json()[0]
    assert task["dueDate"] == tomorrow.isoformat()
    assert task["dueTime"] == "08:30:00"


def test_due_time_earlier_today_is_rejected():
    now = datetime(2031, 5, 1, 12, 0)
    request = CreateRequest.model_validate(
        {"name": "A", "desc": "x", "responsibilityOf": [], "dueDate": "2031-05-01", "dueTime": "11:59:00"}
    )
    with pytest.raises(ValidationError) as exc_info:
        validate_create_request(request, now)
    assert exc_info.value.code == "dueTime: cannot set dueDate+dueTime in the past"

    later = request.model_copy(update={"dueTime": time(12, 30)})
    validate_create_request(later, now)


def test_tasks_are_visible_to_owner_and_responsible_only(app, ann, ben, eve, logged_in):
    create_task(ann, "Shared", responsibilityOf=["Ben"])
    create_task(eve, "Private")
    admin = logged_in("Dor", Role.ADMIN)

    assert [t["name"] for t in ann.get("/tasks").json()] == ["Shared"]
    assert [t["name"] for t in ben.get("/tasks").json()] == ["Shared"]
    assert [t["name"] for t in eve.get("/tasks").json()] == ["Private"]
    assert sorted(t["name"] for t in admin.get("/tasks").json()) == ["Private", "Shared"]


def test_task_listing_shape(ann, ben):
    create_task(ann, "Shared", responsibilityOf=["Ben"])
    task = ben.get("/tasks").json()[0]

    assert task["name"] == "Shared"
    assert task["description"] == "At dawn"
    assert task["createdBy"] == "Ann"
    assert task["responsibilityOf"] == ["Ben"]
    assert task["done"] is False
    assert task["comments"] == []
    uuid.UUID(task["taskid"])


def test_filter_by_responsible_user(ann, ben, create_account):
    create_account("Cat")
    create_task(ann, "For Ben", responsibilityOf=["Ben"])
    create_task(ann, "For Cat", responsibilityOf=["Cat"])
    create_task(ann, "Nobody")

    names = [t["name"] for t in ann.get("/tasks", params={"responsibilityOf": "Ben"}).json()]
    assert names == ["For Ben"]
    names = [t["name"] for t in ann.get("/tasks", params={"responsibilityOf": ""}).json()]
    assert names == ["For Ben", "For Cat", "Nobody"]


def test_filter_rejects_invalid_characters(ann):
    response = ann.get("/tasks", params={"responsibilityOf": "<script>"})
    assert response.status_code == 400
    assert response.json() == {"error": "responsibilityOf: contains invalid characters"}


def test_mark_done_is_idempotent(ann):
    taskid = create_task(ann, "Buy milk").json()["taskid"]

    assert ann.post("/done", json={"taskid": taskid}).json() == {"success": True}
    assert ann.post("/done", json={"taskid": taskid}).json() == {"success": False}
    assert ann.get("/tasks").json()[0]["done"] is True


def test_responsible_user_and_admin_may_mark_done(ann, ben, logged_in):
    first = create_task(ann, "First", responsibilityOf=["Ben"]).json()["taskid"]
    second = create_task(ann, "Second").json()["taskid"]
    admin = logged_in("Dor", Role.ADMIN)

    assert ben.post("/done", json={"taskid": first}).json() == {"success": True}
    assert admin.post("/done", json={"taskid": second}).json() == {"success": True}


def test_other_users_may_not_mark_done(ann, eve):
    taskid = create_task(ann, "Buy milk").json()["taskid"]
    response = eve.post("/done", json={"taskid": taskid})
    assert response.status_code == 403
    assert response.json() == {"error": "access denied"}


def test_mark_done_unknown_or_invalid_task(ann):
    response = ann.post("/done", json={"taskid": str(uuid.uuid4())})
    assert response.status_code == 404
    assert response.json() == {"error": "task: not found"}

    response = ann.post("/done", json={"taskid": "not-a-uuid"})
    assert response.status_code == 400
    assert response.json() == {"error": "taskid: invalid"}

    response = ann.post("/done", json={})
    assert response.status_code == 400
    assert response.json() == {"error": "taskid: required"}


def test_tasks_survive_restart(app, ann, settings):
    create_task(ann, "Persistent")

    snapshot = json.loads(settings.tasks_file.read_text(encoding="utf-8"))
    assert [t["name"] for t in snapshot["tasks"]] == ["Persistent"]

    restarted = create_app(settings)
    assert [t.name for t in restarted.state.tasks.get_all()] == ["Persistent"]
