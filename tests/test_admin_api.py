from datetime import timedelta

import pytest

from certexam.models.orm import Assessment, SystemLog, User, utcnow

API = "/api/v1"
ADMIN = f"{API}/admin"

@pytest.fixture
def admin(make_user):
    return make_user(role="admin", email="admin@example.com")

def _assessment(db, user, passed, awarded=None, score=0.0):
    now = utcnow()
    db.add(Assessment(user_id=user.id, step=1, level_tested="A1", answers=[], score=score, passed=passed,
                      started_at=now - timedelta(minutes=3), completed_at=now, time_taken=180,
                      awarded_certification=awarded))
    db.commit()

def test_admin_routes_reject_students(client, make_user, auth):
    headers = auth(make_user())
    for path in ("get-system-stats", "get-all-users", "get-security-logs"):
        r = client.get(f"{ADMIN}/{path}", headers=headers)
        assert r.status_code == 403

def test_system_stats(client, db, admin, auth, make_user, seed_questions):
    student = make_user()
    student.last_assessment_date = utcnow()
    db.commit()
    seed_questions("A1", 3)
    _assessment(db, student, True, "A2", 80.0)
    _assessment(db, student, False, None, 10.0)

    data = client.get(f"{ADMIN}/get-system-stats", headers=auth(admin)).json()["data"]
    assert data["totalUsers"] == 2
    assert data["activeUsers"] == 1
    assert data["totalAssessments"] == 2
    assert data["passedAssessments"] == 1
    assert data["passRate"] == 50.0
    assert data["totalCertificates"] == 0
    assert data["totalQuestions"] == 3

def test_certification_stats(client, db, admin, auth, make_user):
    student = make_user()
    _assessment(db, student, True, "A2", 80.0)
    _assessment(db, student, True, "A2", 90.0)
    _assessment(db, student, True, "B1", 60.0)
    data = client.get(f"{ADMIN}/get-certification-stats", headers=auth(admin)).json()["data"]
    assert data == [
        {"level": "A2", "count": 2, "avgScore": 85.0},
        {"level": "B1", "count": 1, "avgScore": 60.0},
    ]

def test_question_bank_stats(client, admin, auth, seed_questions):
    seed_questions("A1", 3, competency="Networking")
    seed_questions("A1", 2, competency="Networking", active=False)
    seed_questions("B2", 1, competency="Programming")
    data = client.get(f"{ADMIN}/get-question-bank-stats", headers=auth(admin)).json()["data"]
    assert {"competency": "Networking", "level": "A1", "count": 5, "active": 3} in data
    assert {"competency": "Programming", "level": "B2", "count": 1, "active": 1} in data

def test_users_pagination_and_lookup(client, admin, auth, make_user):
    for _ in range(4):
        make_user()
    r = client.get(f"{ADMIN}/get-all-users", headers=auth(admin), params={"page": 2, "pageSize": 2})
    body = r.json()
    assert body["total"] == 5
    assert body["count"] == 2
    assert all("passwordHash" not in u and "password_hash" not in u for u in body["data"])

    one = client.get(f"{ADMIN}/get-user/{admin.id}", headers=auth(admin))
    assert one.json()["data"]["email"] == "admin@example.com"
    assert client.get(f"{ADMIN}/get-user/nope", headers=auth(admin)).status_code == 404

def test_manage_user(client, db, admin, auth, make_user):
    student = make_user()
    r = client.patch(f"{ADMIN}/manage-user/{student.id}", headers=auth(admin),
                     json={"role": "admin", "certificationLevel": "B2"})
    assert r.status_code == 200
    db.expire_all()
    stored = db.get(User, student.id)
    assert stored.role == "admin"
    assert stored.certification_level == "B2"

    bad = client.patch(f"{ADMIN}/manage-user/{student.id}", headers=auth(admin), json={"role": "superuser"})
    assert bad.status_code == 400

def test_security_logs_paginate_newest_first(client, db, admin, auth):
    base = utcnow()
    for i in range(20):
        db.add(SystemLog(level="security", category="security", message=f"event {i}",
                         details={}, created_at=base + timedelta(seconds=i)))
    db.add(SystemLog(level="info", category="email", message="unrelated", details={}))
    db.commit()

    first = client.get(f"{ADMIN}/get-security-logs", headers=auth(admin)).json()
    assert first["pagination"] == {"page": 1, "limit": 15, "total": 20, "pages": 2}
    assert len(first["data"]) == 15
    assert first["data"][0]["message"] == "event 19"

    second = client.get(f"{ADMIN}/get-security-logs", headers=auth(admin), params={"page": 2}).json()
    assert len(second["data"]) == 5
