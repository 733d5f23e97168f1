import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import FREE_TEXT, SINGLE_CHOICE, auth_headers, create_quiz
from quizcraft.core.config import settings
from quizcraft.main import app
from quizcraft.storage import LocalBlobStorage, get_storage


@pytest.mark.asyncio
async def test_signup_login_and_me(client):
    headers = await auth_headers(client, "Author@Example.com")
    response = await client.get("/api/me", headers=headers)
    assert response.status_code == 200
    assert response.json()["email"] == "author@example.com"

    response = await client.post("/api/signup", json={"email": "author@example.com", "password": "another-pass"})
    assert response.status_code == 400

    response = await client.post("/api/login", data={"username": "author@example.com", "password": "secret-pass"})
    assert response.status_code == 200
    assert response.json()["token_type"] == "bearer"

    response = await client.post("/api/login", data={"username": "author@example.com", "password": "nope"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_requests_without_a_token_are_rejected(client):
    response = await client.get("/api/quizzes")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_quiz_with_settings(client):
    headers = await auth_headers(client, "author@example.com")
    quiz = await create_quiz(
        client, headers, [], settings={"time_limit": 15, "question_limit": 3}, publish=False
    )
    assert quiz["is_published"] is False
    assert quiz["settings"]["time_limit"] == 15
    assert quiz["settings"]["confirm_finish"] is True

    response = await client.put(
        f"/api/quizzes/{quiz['id']}/settings", json={"time_limit": 500}, headers=headers
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_publishing_needs_a_question(client):
    headers = await auth_headers(client, "author@example.com")
    quiz = await create_quiz(client, headers, [], publish=False)

    response = await client.post(f"/api/quizzes/{quiz['id']}/publish", headers=headers)
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "ValidationError"

    await client.post(f"/api/quizzes/{quiz['id']}/questions", json=SINGLE_CHOICE, headers=headers)
    response = await client.post(f"/api/quizzes/{quiz['id']}/publish", headers=headers)
    assert response.status_code == 200
    assert response.json()["is_published"] is True
    assert response.json()["question_count"] == 1


@pytest.mark.asyncio
async def test_question_payload_is_validated_and_normalized(client):
    headers = await auth_headers(client, "author@example.com")
    quiz = await create_quiz(client, headers, [], publish=False)
    url = f"/api/quizzes/{quiz['id']}/questions"

    bad = {**SINGLE_CHOICE, "options": [{"id": "A", "text": "Paris"}]}
    response = await client.post(url, json=bad, headers=headers)
    assert response.status_code == 400
    assert response.json()["detail"]["details"][0]["field"] == "options"

    response = await client.post(url, json={"content": "Sky is blue", "question_type": "true_false", "correct_answers": ["0"]}, headers=headers)
    assert response.status_code == 200
    assert response.json()["options"] == [{"0": "True"}, {"1": "False"}]
    assert response.json()["position"] == 0

    response = await client.post(url, json=FREE_TEXT, headers=headers)
    assert response.status_code == 200
    assert response.json()["grading_method"] == "manual"
    assert response.json()["position"] == 1

    question_id = response.json()["id"]
    response = await client.patch(f"/api/questions/{question_id}", json={"points": 3, "content": "Explain rain."}, headers=headers)
    assert response.status_code == 200
    assert response.json()["points"] == 3
    assert response.json()["content"] == "Explain rain."

    response = await client.delete(f"/api/questions/{question_id}", headers=headers)
    assert response.status_code == 204
    response = await client.get(f"/api/quizzes/{quiz['id']}", headers=headers)
    assert response.json()["question_count"] == 1


@pytest.mark.asyncio
async def test_quiz_is_private_to_its_owner(client):
    owner = await auth_headers(client, "owner@example.com")
    other = await auth_headers(client, "other@example.com")
    quiz = await create_quiz(client, owner, [SINGLE_CHOICE])

    response = await client.get(f"/api/quizzes/{quiz['id']}", headers=other)
    assert response.status_code == 403
    assert response.json()["detail"]["error"] == "Forbidden"

    response = await client.get("/api/quizzes/999", headers=owner)
    assert response.status_code == 404

    response = await client.get("/api/quizzes", headers=other)
    assert response.json() == []


@pytest.mark.asyncio
async def test_browse_lists_public_published_quizzes(client):
    headers = await auth_headers(client, "author@example.com")
    await create_quiz(client, headers, [SINGLE_CHOICE], title="European capitals")
    await create_quiz(client, headers, [SINGLE_CHOICE], title="Private capitals", is_public=False)
    await create_quiz(client, headers, [SINGLE_CHOICE], title="Draft capitals", publish=False)
    await create_quiz(client, headers, [SINGLE_CHOICE], title="Rivers", settings={"password": "pw"})

    response = await client.get("/api/quizzes/public")
    assert response.status_code == 200
    titles = {q["title"] for q in response.json()}
    assert titles == {"European capitals", "Rivers"}

    response = await client.get("/api/quizzes/public", params={"search": "capital"})
    assert [q["title"] for q in response.json()] == ["European capitals"]

    rivers = (await client.get("/api/quizzes/public", params={"search": "rivers"})).json()[0]
    assert rivers["has_password"] is True


@pytest.mark.asyncio
async def test_custom_fields_are_replaced_as_a_set(client):
    headers = await auth_headers(client, "author@example.com")
    quiz = await create_quiz(client, headers, [SINGLE_CHOICE], publish=False)
    url = f"/api/quizzes/{quiz['id']}/custom-fields"

    body = {"fields": [
        {"field_name": "name", "field_label": "Full name", "is_required": True},
        {"field_name": "team", "field_label": "Team"},
    ]}
    response = await client.put(url, json=body, headers=headers)
    assert response.status_code == 200
    assert [(f["field_name"], f["position"]) for f in response.json()] == [("name", 0), ("team", 1)]

    response = await client.put(url, json={"fields": [{"field_name": "team", "field_label": "Team"}]}, headers=headers)
    assert [f["field_name"] for f in response.json()] == ["team"]

    duplicate = {"fields": [{"field_name": "a", "field_label": "A"}, {"field_name": "a", "field_label": "B"}]}
    response = await client.put(url, json=duplicate, headers=headers)
    assert response.status_code == 400

    blank = {"fields": [{"field_name": "a", "field_label": " "}]}
    response = await client.put(url, json=blank, headers=headers)
    assert response.status_code == 400
    assert response.json()["detail"]["details"][0]["field"] == "fields[0]"

    response = await client.get(url, headers=headers)
    assert [f["field_name"] for f in response.json()] == ["team"]


@pytest.mark.asyncio
async def test_delete_quiz_removes_its_attempts(client):
    author = await auth_headers(client, "author@example.com")
    taker = await auth_headers(client, "taker@example.com")
    quiz = await create_quiz(client, author, [SINGLE_CHOICE])

    started = await client.post(f"/api/quizzes/{quiz['id']}/sessions", headers=taker)
    attempt_id = started.json()["session"]["attempt_id"]

    response = await client.delete(f"/api/quizzes/{quiz['id']}", headers=author)
    assert response.status_code == 204
    assert (await client.get(f"/api/quizzes/{quiz['id']}", headers=author)).status_code == 404
    assert (await client.get(f"/api/attempts/{attempt_id}", headers=taker)).status_code == 404


@pytest.mark.asyncio
async def test_upload_question_image(client, tmp_path):
    app.dependency_overrides[get_storage] = lambda: LocalBlobStorage(tmp_path, "/media")
    headers = await auth_headers(client, "author@example.com")
    quiz = await create_quiz(client, headers, [SINGLE_CHOICE], publish=False)
    quiz = (await client.get(f"/api/quizzes/{quiz['id']}", headers=headers)).json()
    question_id = quiz["questions"][0]["id"]

    response = await client.post(
        f"/api/questions/{question_id}/image",
        files={"file": ("map.png", b"\x89PNG fake", "image/png")},
        headers=headers,
    )
    assert response.status_code == 200
    image_url = response.json()["image_url"]
    assert image_url.startswith(f"/media/questions/{question_id}/")
    assert image_url.endswith(".png")
    assert (tmp_path / image_url.removeprefix("/media/")).read_bytes() == b"\x89PNG fake"

    response = await client.post(
        f"/api/questions/{question_id}/image",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        headers=headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "ValidationError"
    assert response.json()["detail"]["details"][0]["field"] == "file"


@pytest.mark.asyncio
async def test_oversized_images_are_rejected(client, tmp_path, monkeypatch):
    app.dependency_overrides[get_storage] = lambda: LocalBlobStorage(tmp_path, "/media")
    monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", 4)
    headers = await auth_headers(client, "author@example.com")
    quiz = await create_quiz(client, headers, [SINGLE_CHOICE], publish=False)
    quiz = (await client.get(f"/api/quizzes/{quiz['id']}", headers=headers)).json()
    question_id = quiz["questions"][0]["id"]

    response = await client.post(
        f"/api/questions/{question_id}/image",
        files={"file": ("map.png", b"\x89PNG fake", "image/png")},
        headers=headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"]["details"][0]["field"] == "file"
    assert not any(tmp_path.iterdir())

    quiz = (await client.get(f"/api/quizzes/{quiz['id']}", headers=headers)).json()
    assert quiz["questions"][0]["image_url"] is None


@pytest.mark.asyncio
async def test_failed_commit_is_reported_and_rolled_back(client, monkeypatch):
    headers = await auth_headers(client, "author@example.com")

    async def failing_commit(self):
        raise OperationalError("INSERT INTO quizzes", {}, Exception("database is down"))

    monkeypatch.setattr(AsyncSession, "commit", failing_commit)
    response = await client.post("/api/quizzes", json={"title": "Capitals"}, headers=headers)
    assert response.status_code == 500
    assert response.json()["detail"]["error"] == "PersistenceError"
    assert response.json()["detail"]["message"] == "Failed to create the quiz"

    monkeypatch.undo()
    response = await client.get("/api/quizzes", headers=headers)
    assert response.json() == []
