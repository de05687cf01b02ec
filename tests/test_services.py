import smtplib

import redis
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from certexam.core.cache import check_rate_limit, rate_limit_key
from certexam.core.config import Settings
from certexam.middleware.rate_limit import RateLimitMiddleware
from certexam.models.orm import SystemLog
from certexam.services import mailer as mailer_module
from certexam.services.audit import AuditLog
from certexam.services.mailer import Mailer, Attachment

class FakePipeline:
    def __init__(self, store):
        self.store = store
        self.ops = []

    def incr(self, key, amount=1):
        self.ops.append(("incr", key, amount))

    def expire(self, key, seconds):
        self.ops.append(("expire", key, seconds))

    def execute(self):
        results = []
        for op, key, arg in self.ops:
            if op == "incr":
                self.store[key] = self.store.get(key, 0) + arg
                results.append(self.store[key])
            else:
                results.append(True)
        return results

class FakeRedis:
    def __init__(self):
        self.store = {}

    def pipeline(self):
        return FakePipeline(self.store)

class DownRedis:
    def pipeline(self):
        raise redis.ConnectionError("connection refused")

def _logs(app, category):
    with app.state.session_factory() as db:
        return db.query(SystemLog).filter_by(category=category).all()

def test_rate_limit_counts_per_identifier():
    client = FakeRedis()
    assert check_rate_limit(client, "1.2.3.4", 2, 60) == (True, 1)
    assert check_rate_limit(client, "1.2.3.4", 2, 60) == (True, 2)
    assert check_rate_limit(client, "1.2.3.4", 2, 60) == (False, 3)
    assert check_rate_limit(client, "5.6.7.8", 2, 60) == (True, 1)
    assert client.store[rate_limit_key("1.2.3.4")] == 3

def test_rate_limit_fails_open_when_redis_is_down():
    assert check_rate_limit(DownRedis(), "1.2.3.4", 1, 60) == (True, 0)

def test_rate_limit_middleware_returns_429():
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, client=FakeRedis(), limit=2, window=900)

    @app.get("/ping")
    def ping():
        return {"pong": True}

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    c = TestClient(app)
    first = c.get("/ping")
    assert first.headers["X-RateLimit-Remaining"] == "1"
    c.get("/ping")
    blocked = c.get("/ping")
    assert blocked.status_code == 429
    assert blocked.json() == {"success": False, "message": "Too many requests from this IP, please try again later"}
    assert blocked.headers["Retry-After"] == "900"
    assert c.get("/health").status_code == 200

def test_mailer_without_transport_reports_failure(app, client, settings):
    m = Mailer(settings, AuditLog(app.state.session_factory))
    result = m.send("someone@example.com", "Hello", "otp-verification", {"name": "A", "otp": "123456"})
    assert result.success is False
    assert result.error == "Email transport is not configured"
    entries = _logs(app, "email")
    assert len(entries) == 1
    assert entries[0].level == "error"

def test_mailer_rejects_missing_fields_and_unknown_templates(app, client, settings):
    m = Mailer(settings, AuditLog(app.state.session_factory))
    assert m.send("", "Hello", "otp-verification").success is False
    assert m.send("a@example.com", "Hello", "no-such-template").error == "Unknown email template: no-such-template"
    assert len(_logs(app, "email")) == 2

def test_mailer_transport_errors_do_not_raise(app, client, tmp_path, monkeypatch):
    smtp_settings = Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'unused.db'}",
        SMTP_HOST="smtp.invalid", SMTP_PORT=587, SMTP_USER="mailer", SMTP_PASSWORD="secret",
    )

    def refuse(*args, **kwargs):
        raise ConnectionRefusedError("connection refused")
    monkeypatch.setattr(mailer_module.smtplib, "SMTP", refuse)

    m = Mailer(smtp_settings, AuditLog(app.state.session_factory))
    result = m.send("a@example.com", "Hi", "otp-verification", {"otp": "123456"},
                    [Attachment("c.pdf", b"%PDF-1.4", "application/pdf")])
    assert result.success is False
    assert "connection refused" in result.error

def test_mailer_delivers_over_starttls(app, client, tmp_path, monkeypatch):
    sent = {}

    class FakeSMTP:
        def __init__(self, host, port, timeout=None):
            sent["host"] = (host, port)

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def ehlo(self):
            pass

        def starttls(self, context=None):
            sent["tls"] = True

        def login(self, user, password):
            sent["login"] = (user, password)

        def sendmail(self, sender, to, body):
            sent["to"] = to
            sent["body"] = body

    monkeypatch.setattr(mailer_module.smtplib, "SMTP", FakeSMTP)
    smtp_settings = Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'unused.db'}",
        SMTP_HOST="smtp.example.com", SMTP_PORT=587, SMTP_USER="mailer", SMTP_PASSWORD="secret",
    )
    m = Mailer(smtp_settings, AuditLog(app.state.session_factory))
    result = m.send(["a@example.com"], "Hi", "otp-verification", {"otp": "654321"})
    assert result.success is True
    assert result.message_id
    assert sent["host"] == ("smtp.example.com", 587)
    assert sent["tls"] is True
    assert sent["login"] == ("mailer", "secret")
    assert sent["to"] == ["a@example.com"]
    assert _logs(app, "email")[0].level == "info"

def test_smtp_exception_is_caught(app, client, tmp_path, monkeypatch):
    def broken(*args, **kwargs):
        raise smtplib.SMTPServerDisconnected("gone")
    monkeypatch.setattr(mailer_module.smtplib, "SMTP", broken)
    smtp_settings = Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'unused.db'}",
        SMTP_HOST="smtp.example.com", SMTP_USER="mailer", SMTP_PASSWORD="secret",
    )
    result = Mailer(smtp_settings, AuditLog(app.state.session_factory)).send("a@example.com", "Hi", "otp-verification", {"otp": "1"})
    assert result.success is False

def test_record_safely_swallows_store_errors(app, client, monkeypatch):
    audit = AuditLog(app.state.session_factory)
    assert audit.record_safely("info", "system", "started") is True

    def broken(self, *args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("locked"))
    monkeypatch.setattr(AuditLog, "record", broken)
    assert audit.record_safely("info", "system", "again") is False
    assert len(_logs(app, "system")) == 1
