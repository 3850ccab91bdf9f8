import pytest
import requests

from certflow import emailer


class FakeResponse:
    def __init__(self, status_code=201, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


@pytest.fixture
def captured_posts(monkeypatch):
    calls: list[dict] = []
    responses: list = []

    def fake_post(url, json=None, headers=None, timeout=None):
        calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        result = responses.pop(0) if responses else FakeResponse(201, {"messageId": "<m1>"})
        if isinstance(result, Exception):
            raise result
        return result

    monkeypatch.setattr(emailer.requests, "post", fake_post)
    return calls, responses


def test_send_posts_payload_with_api_key(app, captured_posts):
    calls, _ = captured_posts

    result = emailer.send(
        "jane@example.com",
        "Hello",
        "<p>Hi</p>",
        attachments=[{"name": "Certificate_Jane_Doe.pdf", "content": "JVBERi0="}],
    )

    assert result == {"ok": True, "detail": "sent", "message_id": "<m1>"}
    assert len(calls) == 1
    call = calls[0]
    assert call["url"] == "https://api.brevo.com/v3/smtp/email"
    assert call["headers"]["api-key"] == "test-api-key"
    assert call["timeout"] == 15
    assert call["json"] == {
        "sender": {"email": "certificates@example.com", "name": "Athenura"},
        "to": [{"email": "jane@example.com"}],
        "subject": "Hello",
        "htmlContent": "<p>Hi</p>",
        "attachment": [{"name": "Certificate_Jane_Doe.pdf", "content": "JVBERi0="}],
    }


def test_send_omits_attachment_key_when_none(app, captured_posts):
    calls, _ = captured_posts

    emailer.send(["jane@example.com"], "Hello", "<p>Hi</p>")

    assert "attachment" not in calls[0]["json"]


def test_send_stub_mode_without_api_key(app, captured_posts, monkeypatch, caplog):
    calls, _ = captured_posts
    app.config["BREVO_API_KEY"] = None
    monkeypatch.delenv("BREVO_API_KEY", raising=False)
    caplog.set_level("INFO", logger="certflow.mailer")

    result = emailer.send("jane@example.com", "Hello", "<p>Hi</p>")

    assert result == {"ok": False, "detail": "stub: missing config"}
    assert calls == []
    assert "result=stub" in caplog.text
    assert "test-api-key" not in caplog.text


def test_send_reports_provider_error(app, captured_posts):
    _, responses = captured_posts
    responses.append(FakeResponse(500, {"message": "internal error"}))

    result = emailer.send("jane@example.com", "Hello", "<p>Hi</p>")

    assert result["ok"] is False
    assert result["detail"] == "500: internal error"


def test_send_reports_timeout(app, captured_posts):
    _, responses = captured_posts
    responses.append(requests.exceptions.Timeout("read timed out"))

    result = emailer.send("jane@example.com", "Hello", "<p>Hi</p>")

    assert result == {"ok": False, "detail": "timeout after 15s"}


def test_send_reports_connection_error(app, captured_posts):
    _, responses = captured_posts
    responses.append(requests.exceptions.ConnectionError("connection refused"))

    result = emailer.send("jane@example.com", "Hello", "<p>Hi</p>")

    assert result["ok"] is False
    assert "connection refused" in result["detail"]


def test_send_without_valid_recipients(app, captured_posts, caplog):
    calls, _ = captured_posts
    caplog.set_level("WARNING", logger="certflow.mailer")

    result = emailer.send("not-an-address", "Hello", "<p>Hi</p>")

    assert result == {"ok": False, "detail": "no valid recipients"}
    assert calls == []
    assert "[MAIL-NO-RECIPIENTS]" in caplog.text


def test_send_tolerates_non_object_json_body(app, captured_posts):
    _, responses = captured_posts
    responses.append(FakeResponse(201, ["queued"]))

    result = emailer.send("jane@example.com", "Hello", "<p>Hi</p>")

    assert result == {"ok": True, "detail": "sent", "message_id": ""}


def test_send_prefers_empty_app_config_over_environment(app, captured_posts, monkeypatch):
    calls, _ = captured_posts
    app.config["MAIL_FROM_NAME"] = ""
    monkeypatch.setenv("FROM_NAME", "Env Sender")

    emailer.send("jane@example.com", "Hello", "<p>Hi</p>")

    assert calls[0]["json"]["sender"] == {"email": "certificates@example.com"}


def test_send_replaces_non_positive_timeout(app, captured_posts):
    calls, _ = captured_posts
    app.config["MAIL_TIMEOUT_SECONDS"] = 0

    emailer.send("jane@example.com", "Hello", "<p>Hi</p>")

    assert calls[0]["timeout"] == 20
