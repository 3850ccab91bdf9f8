from __future__ import annotations

from io import BytesIO

from flask import Blueprint, current_app, jsonify, request, send_file
from sqlalchemy.exc import SQLAlchemyError

from ..app import db
from ..certgen import certificate_data_for, render_certificate
from ..models import Submission
from ..services.certificate_workflow import update_certificate_status
from ..shared.certificate_status import ISSUED, current_status
from ..shared.errors import CertificateError, NotFound, PersistenceError
from ..shared.mail_utils import attachment_filename

bp = Blueprint("feedback", __name__, url_prefix="/api/feedback")


@bp.errorhandler(CertificateError)
def handle_certificate_error(exc: CertificateError):
    if exc.status_code >= 500:
        current_app.logger.error("[CERT-FAIL] %s detail=%s", exc, exc.detail)
    return jsonify({"success": False, "message": exc.message}), exc.status_code


def _get_submission(feedback_id: int) -> Submission:
    submission = db.session.get(Submission, feedback_id)
    if submission is None:
        raise NotFound("Feedback not found.")
    return submission


@bp.get("")
def list_feedback():
    rows = (
        db.session.query(Submission)
        .order_by(Submission.submitted_at.desc(), Submission.id.desc())
        .all()
    )
    return jsonify([row.to_dict() for row in rows])


@bp.get("/<int:feedback_id>")
def get_feedback(feedback_id: int):
    return jsonify(_get_submission(feedback_id).to_dict())


@bp.patch("/<int:feedback_id>/certificate-status")
def update_status(feedback_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        snapshot = update_certificate_status(
            feedback_id,
            payload.get("certificateStatus"),
            payload.get("rejectionReason"),
        )
    except CertificateError:
        raise
    except Exception as exc:
        current_app.logger.exception(
            "[CERT-FAIL] feedback=%s error updating certificate status", feedback_id
        )
        return jsonify({"message": f"Server error: {exc}"}), 500
    return jsonify({"success": True, "feedback": snapshot})


@bp.delete("/<int:feedback_id>")
def delete_feedback(feedback_id: int):
    submission = _get_submission(feedback_id)
    try:
        db.session.delete(submission)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError("Server error while deleting feedback", detail=str(exc)) from exc
    current_app.logger.info("[FEEDBACK-DELETE] feedback=%s", feedback_id)
    return jsonify({"message": "Feedback deleted successfully", "deletedId": feedback_id})


@bp.get("/<int:feedback_id>/certificate.pdf")
def download_certificate(feedback_id: int):
    submission = _get_submission(feedback_id)
    if current_status(submission.certificate_status) != ISSUED or not submission.certificate_number:
        raise NotFound("No certificate has been issued for this feedback.")
    pdf_bytes = render_certificate(
        certificate_data_for(submission, submission.certificate_number)
    )
    return send_file(
        BytesIO(pdf_bytes),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=attachment_filename(submission.intern_name),
    )
