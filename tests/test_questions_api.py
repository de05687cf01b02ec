import pytest

from certexam.models.orm import Question

API = "/api/v1"
QUESTIONS = f"{API}/questions"

def _payload(**overrides):
    body = {
        "competency": "Networking",
        "level": "B2",
        "questionText": "Which layer does TCP operate on?",
        "options": ["Physical", "Network", "Transport", "Application"],
        "correctAnswer": 2,
        "explanation": "TCP is a transport layer protocol.",
    }
    body.update(overrides)
    return body

@pytest.fixture
def admin_headers(make_user, auth):
    return auth(make_user(role="admin"))

def test_admin_creates_question(client, db, admin_headers):
    r = client.post(f"{QUESTIONS}/create", headers=admin_headers, json=_payload())
    assert r.status_code == 201, r.text
    data = r.json()["data"]
    assert data["correctAnswer"] == 2
    assert data["isActive"] is True
    stored = db.get(Question, data["id"])
    assert stored.level == "B2"
    assert stored.options[2] == "Transport"

def test_students_cannot_manage_questions(client, make_user, auth):
    headers = auth(make_user())
    assert client.post(f"{QUESTIONS}/create", headers=headers, json=_payload()).status_code == 403
    r = client.get(f"{QUESTIONS}/questions", headers=headers)
    assert r.status_code == 403
    assert r.json() == {"success": False, "message": "Access denied"}

@pytest.mark.parametrize("overrides, message", [
    ({"options": ["a", "b", "c"]}, "Exactly 4 options are required"),
    ({"options": ["a", "b", "c", "d", "e"]}, "Exactly 4 options are required"),
    ({"correctAnswer": 5}, "Correct answer must be between 0 and 3"),
    ({"correctAnswer": -1}, "Correct answer must be between 0 and 3"),
])
def test_create_rejects_malformed_questions(client, admin_headers, overrides, message):
    r = client.post(f"{QUESTIONS}/create", headers=admin_headers, json=_payload(**overrides))
    assert r.status_code == 400
    assert r.json()["message"] == message

def test_create_rejects_unknown_level(client, admin_headers):
    r = client.post(f"{QUESTIONS}/create", headers=admin_headers, json=_payload(level="D1"))
    assert r.status_code == 400

def test_list_filters_and_paginates_without_answers(client, admin_headers, seed_questions):
    seed_questions("A1", 5, competency="Networking")
    seed_questions("A2", 4, competency="Networking")
    seed_questions("A1", 3, competency="Programming")
    seed_questions("A1", 2, competency="Networking", active=False)

    r = client.get(f"{QUESTIONS}/questions", headers=admin_headers,
                   params={"competency": "Networking", "levels": "A1,A2", "page": 2, "pageSize": 4})
    assert r.status_code == 200
    body = r.json()
    assert body["total"] == 9
    assert body["page"] == 2
    assert body["pageSize"] == 4
    assert len(body["items"]) == 4
    for item in body["items"]:
        assert item["competency"] == "Networking"
        assert item["level"] in ("A1", "A2")
        assert "correctAnswer" not in item

    only_a2 = client.get(f"{QUESTIONS}/questions", headers=admin_headers, params={"levels": "A2"})
    assert only_a2.json()["total"] == 4

def test_update_question(client, db, admin_headers, seed_questions):
    q = seed_questions("A1", 1)[0]
    r = client.put(f"{QUESTIONS}/update-question/{q.id}", headers=admin_headers,
                   json={"questionText": "Updated text", "correctAnswer": 3})
    assert r.status_code == 200
    db.expire_all()
    stored = db.get(Question, q.id)
    assert stored.question_text == "Updated text"
    assert stored.correct_answer == 3
    assert stored.level == "A1"

def test_update_validates_and_reports_missing(client, admin_headers, seed_questions):
    q = seed_questions("A1", 1)[0]
    bad = client.put(f"{QUESTIONS}/update-question/{q.id}", headers=admin_headers, json={"options": ["x"]})
    assert bad.status_code == 400
    missing = client.put(f"{QUESTIONS}/update-question/nope", headers=admin_headers, json={"questionText": "x"})
    assert missing.status_code == 404
    assert missing.json()["message"] == "Question not found"

def test_toggle_question_status(client, db, admin_headers, seed_questions):
    q = seed_questions("A1", 1)[0]
    r = client.patch(f"{QUESTIONS}/toggle-question-status/{q.id}", headers=admin_headers)
    assert r.json()["data"] == {"id": q.id, "isActive": False}
    r = client.patch(f"{QUESTIONS}/toggle-question-status/{q.id}", headers=admin_headers)
    assert r.json()["data"]["isActive"] is True
    assert client.patch(f"{QUESTIONS}/toggle-question-status/nope", headers=admin_headers).status_code == 404
