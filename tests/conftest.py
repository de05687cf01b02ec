import pytest
from fastapi.testclient import TestClient

from certexam.core.auth import CredentialService, TokenService
from certexam.core.config import Settings
from certexam.main import create_app
from certexam.models.orm import User, Question, UserRole
from certexam.services.audit import AuditLog
from certexam.services.mailer import Mailer

PASSWORD = "s3cret-pass"

class RecordingMailer(Mailer):
    """Keeps outgoing mail in memory instead of talking to an SMTP server."""

    def __init__(self, settings, audit):
        super().__init__(settings, audit)
        self.outbox = []
        self.fail = False

    def _deliver(self, email):
        if self.fail:
            raise OSError("SMTP connection refused")
        self.outbox.append(email)
        return f"<test-{len(self.outbox)}@certexam.local>"

@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'test.db'}",
        ENVIRONMENT="testing",
        BCRYPT_ROUNDS=4,
        QUESTIONS_PER_ASSESSMENT=10,
        CERTIFICATES_DIR=str(tmp_path / "certificates"),
        BASE_URL="http://testserver",
        LOG_LEVEL="WARNING",
    )

@pytest.fixture
def app(settings):
    application = create_app(settings)
    application.state.mailer = RecordingMailer(settings, AuditLog(application.state.session_factory))
    return application

@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c

@pytest.fixture
def mailer(app):
    return app.state.mailer

@pytest.fixture
def db(app, client):
    session = app.state.session_factory()
    try:
        yield session
    finally:
        session.close()

@pytest.fixture
def make_user(db):
    credentials = CredentialService(rounds=4)
    counter = {"n": 0}

    def _make(role=UserRole.STUDENT.value, level="A1", verified=True, email=None, name="Test User"):
        counter["n"] += 1
        user = User(
            name=name,
            email=email or f"user{counter['n']}@example.com",
            password_hash=credentials.hash(PASSWORD),
            role=role,
            is_email_verified=verified,
            certification_level=level,
        )
        db.add(user)
        db.commit()
        return user
    return _make

@pytest.fixture
def auth(settings):
    tokens = TokenService(settings)

    def _headers(user):
        return {"Authorization": f"Bearer {tokens.issue_access(user)}"}
    return _headers

@pytest.fixture
def seed_questions(db):
    def _seed(level="A1", n=10, competency="Digital Literacy", active=True):
        questions = []
        for i in range(n):
            q = Question(
                competency=competency,
                level=level,
                question_text=f"{level} question {i}",
                options=["a", "b", "c", "d"],
                correct_answer=i % 4,
                explanation="because",
                is_active=active,
            )
            db.add(q)
            questions.append(q)
        db.commit()
        return questions
    return _seed
