from fastapi.testclient import TestClient

from certexam.core.config import Settings
from certexam.main import create_app

API = "/api/v1"

def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "healthy"}

def test_root(client):
    assert client.get("/").json() == {"name": "Test School", "version": "1.0.0"}

def test_unknown_route_uses_error_envelope(client):
    r = client.get(f"{API}/does-not-exist")
    assert r.status_code == 404
    assert r.json()["success"] is False

def test_validation_errors_are_bad_requests(client):
    r = client.post(f"{API}/users/sign-in", json={"email": "not-an-email"})
    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert "email" in body["message"]

def test_unhandled_errors_include_stack_outside_production(app):
    def boom():
        raise RuntimeError("kaboom")
    app.add_api_route("/boom", boom)
    with TestClient(app, raise_server_exceptions=False) as c:
        r = c.get("/boom")
    assert r.status_code == 500
    body = r.json()
    assert body["message"] == "Internal Server Error"
    assert "kaboom" in body["stack"]

def test_production_hides_stack_and_docs(tmp_path):
    app = create_app(Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'prod.db'}",
        ENVIRONMENT="production",
        LOG_LEVEL="WARNING",
    ))

    def boom():
        raise RuntimeError("kaboom")
    app.add_api_route("/boom", boom)
    with TestClient(app, raise_server_exceptions=False) as c:
        r = c.get("/boom")
        assert "stack" not in r.json()
        assert c.get("/docs").status_code == 404

def test_security_headers_outside_production(client):
    r = client.get("/")
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert r.headers["X-Frame-Options"] == "DENY"
    assert r.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
    assert "Strict-Transport-Security" not in r.headers
    assert "Content-Security-Policy" not in r.headers
    # error envelopes carry them too
    assert client.get(f"{API}/does-not-exist").headers["X-Frame-Options"] == "DENY"

def test_production_adds_hsts_and_csp(tmp_path):
    app = create_app(Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'prod.db'}",
        ENVIRONMENT="production",
        LOG_LEVEL="WARNING",
    ))
    with TestClient(app) as c:
        r = c.get("/health")
    assert r.headers["Strict-Transport-Security"].startswith("max-age=31536000")
    assert "frame-ancestors 'none'" in r.headers["Content-Security-Policy"]
    assert r.headers["X-Content-Type-Options"] == "nosniff"
