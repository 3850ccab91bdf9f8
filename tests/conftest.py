import os
import pathlib
import sys
from datetime import datetime, timezone

import pytest
import reportlab
from PIL import Image

PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from certflow.app import create_app, db
from certflow.models import Intern, Submission


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "slow" in item.keywords or "quarantine" in item.keywords:
            continue
        item.add_marker("full")
        if "no_smoke" in item.keywords:
            continue
        item.add_marker("smoke")


@pytest.fixture
def cert_assets(tmp_path):
    template = tmp_path / "certificate-template.png"
    Image.new("RGB", (842, 595), (255, 255, 255)).save(template)
    font = pathlib.Path(reportlab.__file__).resolve().parent / "fonts" / "Vera.ttf"
    return {"template": str(template), "font": str(font)}


@pytest.fixture
def app(cert_assets):
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    application = create_app()
    application.config.update(
        TESTING=True,
        CERT_TEMPLATE_PATH=cert_assets["template"],
        CERT_NAME_FONT_PATH=cert_assets["font"],
        CERT_ORGANIZATION="Athenura",
        BREVO_API_KEY="test-api-key",
        MAIL_FROM_EMAIL="certificates@example.com",
        MAIL_FROM_NAME="Athenura",
        MAIL_TIMEOUT_SECONDS=15,
    )
    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def outbox(monkeypatch):
    """Capture outgoing mail instead of calling the provider."""
    sent: list[dict] = []

    def fake_send(recipients, subject, html, *, attachments=None):
        sent.append(
            {
                "to": recipients,
                "subject": subject,
                "html": html,
                "attachments": list(attachments or []),
            }
        )
        return {"ok": True, "detail": "sent"}

    monkeypatch.setattr("certflow.emailer.send", fake_send)
    return sent


@pytest.fixture
def failing_mail(monkeypatch):
    attempts: list[str] = []

    def fake_send(recipients, subject, html, *, attachments=None):
        attempts.append(subject)
        return {"ok": False, "detail": "500: provider unavailable"}

    monkeypatch.setattr("certflow.emailer.send", fake_send)
    return attempts


def make_submission(**overrides) -> Submission:
    values = dict(
        unique_id="ATH-001",
        intern_name="Jane Doe",
        intern_email="jane@example.com",
        intern_mobile="9876543210",
        intern_dob="2001-04-12",
        domain="Web Development",
        duration="3 Months",
        start_month="January 2025",
        end_month="March 2025",
        feedback_text="Great learning experience",
        submitted_at=datetime(2025, 4, 1, 10, 30, tzinfo=timezone.utc),
    )
    values.update(overrides)
    submission = Submission(**values)
    db.session.add(submission)
    db.session.commit()
    return submission


def make_intern(**overrides) -> Intern:
    values = dict(
        unique_id="ATH-001",
        full_name="Jane Doe",
        email="jane@example.com",
        mobile="9876543210",
        domain="Web Development",
        duration="3 Months",
    )
    values.update(overrides)
    intern = Intern(**values)
    db.session.add(intern)
    db.session.commit()
    return intern
