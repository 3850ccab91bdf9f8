from __future__ import annotations

from datetime import date

from flask import Blueprint, jsonify, request

from ..app import db
from ..models import Intern
from ..shared.certificate_status import ISSUED, current_status
from ..shared.time import isoformat_or_none

bp = Blueprint("verify", __name__, url_prefix="/api")


def _parse_date(value) -> date | None:
    if not value or not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _mask(name: str | None) -> str:
    return (name[0] + "***") if name else "***"


@bp.post("/intern/verify")
def verify_intern():
    payload = request.get_json(silent=True) or {}
    unique_id = (payload.get("uniqueId") or "").strip()
    email = (payload.get("email") or "").strip().lower()
    if not unique_id or not email:
        return jsonify({"message": "Unique ID and email are required"}), 400

    intern = (
        db.session.query(Intern)
        .filter(Intern.unique_id == unique_id)
        .filter(db.func.lower(Intern.email) == email)
        .one_or_none()
    )
    joining_date = _parse_date(payload.get("joiningDate"))
    if intern and joining_date and intern.joining_date and intern.joining_date != joining_date:
        intern = None
    if not intern:
        return jsonify({"message": "No intern found with the provided details"}), 404

    issued = current_status(intern.certificate_status) == ISSUED
    return jsonify(
        {
            "success": True,
            "responseData": {
                "fullName": intern.full_name,
                "email": intern.email,
                "mobile": intern.mobile,
                "uniqueId": intern.unique_id,
                "domain": intern.domain,
                "duration": intern.duration,
                "joiningDate": isoformat_or_none(intern.joining_date),
                "certificateStatus": current_status(intern.certificate_status),
                "certificateNumber": intern.certificate_number if issued else None,
                "certificateIssuedAt": (
                    isoformat_or_none(intern.certificate_issued_at) if issued else None
                ),
            },
        }
    )


@bp.get("/verify/<certificate_number>")
def verify_certificate(certificate_number: str):
    intern = (
        db.session.query(Intern)
        .filter(Intern.certificate_number == certificate_number.strip())
        .one_or_none()
    )
    if not intern or current_status(intern.certificate_status) != ISSUED:
        return jsonify({"ok": False}), 404
    return jsonify(
        {
            "ok": True,
            "certificateNumber": intern.certificate_number,
            "participant": _mask(intern.full_name),
            "domain": intern.domain,
            "issuedAt": isoformat_or_none(intern.certificate_issued_at),
        }
    )
