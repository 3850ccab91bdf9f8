"""Outcome emails for certificate status changes."""

from __future__ import annotations

from flask import current_app, render_template

from .. import emailer
from ..certgen import CertificateData
from ..shared.errors import NotificationFailed
from ..shared.mail_utils import attachment_filename, encode_attachment

__all__ = [
    "send_issued",
    "send_rejected",
    "send_pending",
]

ISSUED_SUBJECT = "Your Internship Completion Certificate - {name}"
REJECTED_SUBJECT = "Update Regarding Your Internship Certificate Request"
PENDING_SUBJECT = "Your Certificate Request is Under Review"


def _organization() -> str:
    return current_app.config.get("CERT_ORGANIZATION", "")


def _deliver(kind: str, recipient: str | None, subject: str, html: str, attachments=None) -> dict:
    result = emailer.send(recipient, subject, html, attachments=attachments)
    if not result.get("ok"):
        raise NotificationFailed(
            f"Failed to send {kind} email", detail=result.get("detail")
        )
    current_app.logger.info(
        "[CERT-NOTIFY] kind=%s recipient=%s subject=\"%s\"", kind, recipient, subject
    )
    return result


def send_issued(
    recipient: str | None,
    person_name: str | None,
    document: bytes,
    details: CertificateData,
) -> dict:
    """Email the rendered certificate as a PDF attachment."""

    name = person_name or ""
    html = render_template(
        "email/certificate_issued.html",
        person_name=name,
        details=details,
        organization=_organization(),
    )
    attachment = encode_attachment(attachment_filename(name), document)
    return _deliver(
        "issued",
        recipient,
        ISSUED_SUBJECT.format(name=name),
        html,
        attachments=[attachment],
    )


def send_rejected(
    recipient: str | None,
    person_name: str | None,
    submission_id,
    reason: str | None = None,
) -> dict:
    html = render_template(
        "email/certificate_rejected.html",
        person_name=person_name or "",
        submission_id=submission_id,
        reason=reason,
        organization=_organization(),
    )
    return _deliver("rejected", recipient, REJECTED_SUBJECT, html)


def send_pending(recipient: str | None, person_name: str | None, submission_id) -> dict:
    html = render_template(
        "email/certificate_pending.html",
        person_name=person_name or "",
        submission_id=submission_id,
        organization=_organization(),
    )
    return _deliver("pending", recipient, PENDING_SUBJECT, html)
