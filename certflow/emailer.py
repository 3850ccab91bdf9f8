import json
import logging
import os
import sys
from typing import Sequence

import requests
from flask import current_app, has_app_context

from .shared.mail_utils import normalize_recipients

logger = logging.getLogger("certflow.mailer")
if not logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    logger.addHandler(handler)
logger.setLevel(logging.INFO)

DEFAULT_API_URL = "https://api.brevo.com/v3/smtp/email"
DEFAULT_TIMEOUT_SECONDS = 20


def _stringify_envelope(recipients: Sequence[str]) -> str:
    return json.dumps(list(recipients))


def _config(key: str, env: str, default=None):
    if has_app_context():
        value = current_app.config.get(key)
        if value is not None:
            return value
    return os.getenv(env, default)


def _provider_error(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return f"{response.status_code}: {body['message']}"
    return f"{response.status_code}: {response.text[:200]}"


def send(
    recipients: Sequence[str] | str | None,
    subject: str,
    html: str,
    *,
    attachments: Sequence[dict] | None = None,
):
    """Submit one message to the transactional email API.

    Returns ``{"ok": bool, "detail": str}``; never raises for provider errors.
    """
    api_url = _config("BREVO_API_URL", "BREVO_API_URL", DEFAULT_API_URL)
    api_key = _config("BREVO_API_KEY", "BREVO_API_KEY")
    from_addr = _config("MAIL_FROM_EMAIL", "FROM_EMAIL")
    from_name = _config("MAIL_FROM_NAME", "FROM_NAME", "")
    timeout = int(_config("MAIL_TIMEOUT_SECONDS", "MAIL_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS))
    if timeout <= 0:
        timeout = DEFAULT_TIMEOUT_SECONDS

    envelope = normalize_recipients(recipients)
    mode = "real"
    if not api_key or not from_addr:
        mode = "stub"
        logger.info(
            "[MAIL-OUT] mode=%s envelope=%s subject=\"%s\" result=stub",
            mode,
            _stringify_envelope(envelope),
            subject,
        )
        return {"ok": False, "detail": "stub: missing config"}

    if not envelope:
        logger.warning("[MAIL-NO-RECIPIENTS] subject=\"%s\"", subject)
        return {"ok": False, "detail": "no valid recipients"}

    sender = {"email": from_addr}
    if from_name:
        sender["name"] = from_name
    payload = {
        "sender": sender,
        "to": [{"email": address} for address in envelope],
        "subject": subject,
        "htmlContent": html,
    }
    if attachments:
        payload["attachment"] = list(attachments)

    try:
        response = requests.post(
            api_url,
            json=payload,
            headers={
                "api-key": api_key,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=timeout,
        )
    except requests.exceptions.Timeout:
        detail = f"timeout after {timeout}s"
    except requests.exceptions.RequestException as e:
        detail = str(e)
    else:
        if response.ok:
            try:
                body = response.json()
            except ValueError:
                body = None
            message_id = body.get("messageId", "") if isinstance(body, dict) else ""
            logger.info(
                "[MAIL-OUT] mode=%s envelope=%s subject=\"%s\" attachments=%s result=sent message_id=%s",
                mode,
                _stringify_envelope(envelope),
                subject,
                len(attachments or []),
                message_id,
            )
            return {"ok": True, "detail": "sent", "message_id": message_id}
        detail = _provider_error(response)

    logger.info(
        "[MAIL-OUT] mode=%s envelope=%s subject=\"%s\" result=%s",
        mode,
        _stringify_envelope(envelope),
        subject,
        detail,
    )
    return {"ok": False, "detail": detail}
