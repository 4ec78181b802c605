"""
POST /comment: text comments, uploaded files, URL downloads and the
cleanup of stored files when a comment cannot be recorded.
"""

import json
import uuid

import pytest
from fastapi.testclient import TestClient

from busybee.models import Role
from tests.conftest import JPEG_BYTES, PDF_BYTES, PNG_BYTES, create_task


@pytest.fixture
def ann(logged_in) -> TestClient:
    return logged_in("Ann", Role.CREATOR)


@pytest.fixture
def ben(logged_in) -> TestClient:
    return logged_in("Ben", Role.CREATOR)


@pytest.fixture
def taskid(ann, ben) -> str:
    response = create_task(ann, "Buy milk", responsibilityOf=["Ben"])
    assert response.status_code == 200
    return response.json()["taskid"]


def post_comment(user_client: TestClient, fields: dict, file=None):
    files = {"file": file} if file is not None else None
    return user_client.post("/comment", data={"commentFields": json.dumps(fields)}, files=files)


def comments_of(user_client: TestClient) -> list:
    return user_client.get("/tasks").json()[0]["comments"]


def user_files(settings, segment: str = "Ann") -> list:
    directory = settings.uploads_dir / segment
    if not directory.exists():
        return []
    return sorted(p.name for p in directory.iterdir())


def test_text_comment(ann, taskid):
    response = post_comment(ann, {"taskid": taskid, "text": "hi"})
    assert response.status_code == 200
    commentid = response.json()["commentid"]

    comments = comments_of(ann)
    assert [c["commentid"] for c in comments] == [commentid]
    assert comments[0]["text"] == "hi"
    assert comments[0]["createdBy"] == "Ann"
    assert comments[0]["image"] is None
    assert comments[0]["attachment"] is None


def test_responsible_user_may_comment(ben, taskid):
    assert post_comment(ben, {"taskid": taskid, "text": "on it"}).status_code == 200


def test_comment_inserted_after_existing_comment(ann, taskid):
    first = post_comment(ann, {"taskid": taskid, "text": "first"}).json()["commentid"]
    post_comment(ann, {"taskid": taskid, "text": "third"})
    post_comment(ann, {"taskid": taskid, "text": "second", "commentid": first})

    assert [c["text"] for c in comments_of(ann)] == ["first", "second", "third"]


def test_image_upload_becomes_comment_image(ann, taskid, settings):
    response = post_comment(
        ann, {"taskid": taskid, "text": "photo"}, ("milk.png", PNG_BYTES, "image/png")
    )
    assert response.status_code == 200

    comment = comments_of(ann)[0]
    assert comment["image"].startswith("Ann/")
    assert comment["image"].endswith(".png")
    assert comment["attachment"] is None
    assert user_files(settings) == [comment["image"].split("/")[1]]


def test_pdf_upload_becomes_attachment(ann, taskid):
    response = post_comment(
        ann, {"taskid": taskid, "text": "receipt"}, ("receipt.pdf", PDF_BYTES, "application/pdf")
    )
    assert response.status_code == 200

    comment = comments_of(ann)[0]
    assert comment["attachment"].endswith(".pdf")
    assert comment["image"] is None


def test_jpeg_bytes_named_png_are_rejected(ann, taskid, settings):
    response = post_comment(
        ann, {"taskid": taskid, "text": "hi"}, ("pic.png", JPEG_BYTES, "image/png")
    )
    assert response.status_code == 415
    assert response.json() == {"error": "upload: rejected"}
    assert comments_of(ann) == []
    assert user_files(settings) == []


def test_oversized_upload_is_rejected(ann, taskid, settings):
    data = PNG_BYTES + b"\x00" * (5 * 1024 * 1024 + 1 - len(PNG_BYTES))
    response = post_comment(ann, {"taskid": taskid, "text": "big"}, ("big.png", data, "image/png"))
    assert response.status_code == 413
    assert response.json() == {"error": "upload: rejected"}
    assert user_files(settings) == []


def test_empty_file_part_means_no_file(ann, taskid):
    response = post_comment(ann, {"taskid": taskid, "text": "hi"}, ("empty.png", b"", "image/png"))
    assert response.status_code == 200
    assert comments_of(ann)[0]["image"] is None


def test_loopback_image_url_is_blocked(ann, taskid, settings):
    response = post_comment(
        ann, {"taskid": taskid, "text": "hi", "imageUrl": "http://127.0.0.1/x.png"}
    )
    assert response.status_code == 400
    assert response.json() == {"error": "imageUrl: blocked host address"}
    assert comments_of(ann) == []


def test_blank_image_url_is_ignored(ann, taskid):
    response = post_comment(ann, {"taskid": taskid, "text": "hi", "imageUrl": "  "})
    assert response.status_code == 200


def test_file_and_image_url_are_exclusive(ann, taskid, settings):
    response = post_comment(
        ann,
        {"taskid": taskid, "text": "hi", "imageUrl": "https://images.example.com/x.png"},
        ("milk.png", PNG_BYTES, "image/png"),
    )
    assert response.status_code == 400
    assert response.json() == {"error": "request: file and imageUrl are mutually exclusive"}
    assert user_files(settings) == []


def test_unrelated_user_may_not_comment(logged_in, taskid):
    eve = logged_in("Eve", Role.CREATOR)
    response = post_comment(eve, {"taskid": taskid, "text": "hi"})
    assert response.status_code == 403
    assert response.json() == {"error": "access denied"}


def test_admin_has_no_comment_override(logged_in, taskid):
    admin = logged_in("Dor", Role.ADMIN)
    assert post_comment(admin, {"taskid": taskid, "text": "hi"}).status_code == 403


def test_unknown_task_is_forbidden(ann, taskid):
    response = post_comment(ann, {"taskid": str(uuid.uuid4()), "text": "hi"})
    assert response.status_code == 403


def test_done_task_rejects_comments_and_keeps_no_file(ann, taskid, settings):
    ann.post("/done", json={"taskid": taskid})
    response = post_comment(
        ann, {"taskid": taskid, "text": "late"}, ("milk.png", PNG_BYTES, "image/png")
    )
    assert response.status_code == 409
    assert response.json() == {"error": "task: already done"}
    assert user_files(settings) == []


def test_failed_comment_removes_stored_file(ann, taskid, settings):
    """An unknown anchor comment is detected after the upload was stored."""
    response = post_comment(
        ann,
        {"taskid": taskid, "text": "hi", "commentid": str(uuid.uuid4())},
        ("milk.png", PNG_BYTES, "image/png"),
    )
    assert response.status_code == 400
    assert response.json() == {"error": "commentid: not found"}
    assert user_files(settings) == []


@pytest.mark.parametrize(
    "text, message",
    [
        ("<b>hi</b>", "text: contains invalid characters"),
        ("", "text: required"),
        ("x" * 501, "text: length must be between 1 and 500"),
    ],
)
def test_comment_text_validation(ann, taskid, text, message):
    response = post_comment(ann, {"taskid": taskid, "text": text})
    assert response.status_code == 400
    assert response.json() == {"error": message}


def test_comment_taskid_validation(ann, taskid):
    response = post_comment(ann, {"text": "hi"})
    assert response.status_code == 400
    assert response.json() == {"error": "taskid: required"}

    response = post_comment(ann, {"taskid": "nope", "text": "hi"})
    assert response.status_code == 400
    assert response.json() == {"error": "taskid: invalid"}


def test_malformed_comment_fields(ann, taskid):
    response = ann.post("/comment", data={"commentFields": "{not json"})
    assert response.status_code == 400
    assert response.json() == {"error": "request: malformed"}

    response = ann.post("/comment", data={})
    assert response.status_code == 400
    assert response.json() == {"error": "commentFields: required"}
