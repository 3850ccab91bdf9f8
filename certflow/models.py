from __future__ import annotations

from sqlalchemy.orm import validates

from .app import db
from .shared.certificate_status import NOT_ISSUED
from .shared.time import isoformat_or_none, now_utc


class Submission(db.Model):
    """Feedback submission carrying the certificate workflow state."""

    __tablename__ = "submissions"

    id = db.Column(db.Integer, primary_key=True)
    unique_id = db.Column(db.String(64), index=True)
    intern_name = db.Column(db.String(255))
    intern_email = db.Column(db.String(255))
    intern_mobile = db.Column(db.String(32))
    intern_dob = db.Column(db.String(32))
    domain = db.Column(db.String(255))
    duration = db.Column(db.String(64))
    start_month = db.Column(db.String(64))
    end_month = db.Column(db.String(64))
    certificate_number = db.Column(db.String(32), index=True)
    certificate_status = db.Column(
        db.String(16), nullable=False, default=NOT_ISSUED, server_default=NOT_ISSUED
    )
    rejection_reason = db.Column(db.Text)
    certificate_issued_at = db.Column(db.DateTime(timezone=True))
    rejected_at = db.Column(db.DateTime(timezone=True))
    feedback_text = db.Column(db.Text)
    photo_url = db.Column(db.String(1024))
    video_url = db.Column(db.String(1024))
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=False, default=now_utc)
    # bumped on every status write; compare-and-swap guard for transitions
    status_version = db.Column(db.Integer, nullable=False, default=0, server_default="0")

    @validates("submitted_at")
    def _freeze_submitted_at(self, key, value):
        if self.submitted_at is not None and value != self.submitted_at:
            raise ValueError("submitted_at is immutable")
        return value

    def intern_details(self) -> dict:
        return {
            "fullName": self.intern_name or "N/A",
            "email": self.intern_email or "N/A",
            "mobile": self.intern_mobile or "N/A",
            "dob": self.intern_dob,
        }

    def internship_info(self) -> dict:
        return {
            "domain": self.domain or "N/A",
            "duration": self.duration or "N/A",
            "startMonth": self.start_month or "N/A",
            "endMonth": self.end_month or "N/A",
            "certificateNumber": self.certificate_number,
        }

    def to_dict(self) -> dict:
        return {
            "_id": self.id,
            "uniqueId": self.unique_id or "",
            "internDetails": self.intern_details(),
            "internshipInfo": self.internship_info(),
            "feedbackText": self.feedback_text or "No feedback provided",
            "certificateStatus": self.certificate_status or NOT_ISSUED,
            "rejectionReason": self.rejection_reason,
            "certificateIssuedAt": isoformat_or_none(self.certificate_issued_at),
            "rejectedAt": isoformat_or_none(self.rejected_at),
            "media": {
                "photoUrl": self.photo_url or "",
                "videoUrl": self.video_url or "",
            },
            "submittedAt": isoformat_or_none(self.submitted_at),
        }


class Intern(db.Model):
    """Canonical person record, looked up by ``unique_id``."""

    __tablename__ = "interns"

    id = db.Column(db.Integer, primary_key=True)
    unique_id = db.Column(db.String(64), nullable=False, unique=True)
    full_name = db.Column(db.String(255))
    email = db.Column(db.String(255))
    mobile = db.Column(db.String(32))
    domain = db.Column(db.String(255))
    duration = db.Column(db.String(64))
    joining_date = db.Column(db.Date)
    certificate_number = db.Column(db.String(32), unique=True)
    certificate_status = db.Column(
        db.String(16), nullable=False, default=NOT_ISSUED, server_default=NOT_ISSUED
    )
    certificate_issued_at = db.Column(db.DateTime(timezone=True))
    rejection_reason = db.Column(db.Text)
    rejected_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    @validates("email")
    def lower_email(self, key, value):  # pragma: no cover - simple normalizer
        return value.lower() if value else value

    @validates("certificate_number")
    def _keep_certificate_number(self, key, value):
        if self.certificate_number and value != self.certificate_number:
            raise ValueError(
                f"certificate number already assigned for {self.unique_id}"
            )
        return value
