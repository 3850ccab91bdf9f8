"""Certificate status transitions.

A transition first claims the submission with a compare-and-swap on
``status_version`` and then runs a fixed list of stages. Each stage declares
whether its failure aborts the transition or is logged and skipped:

    issued:   allocate (abort) -> render (abort) -> notify (continue) -> persist (abort)
    rejected: notify (continue) -> persist (abort)
    pending:  notify (continue) -> persist (abort)

The claim is re-checked before every stage and the persist writes are
conditional on the claimed version, so a request that loses the claim midway
stops with TransitionConflict instead of overwriting the winner.

When an aborting stage fails the claim is released, restoring the previous
status, and the error propagates to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from ..app import db
from ..certgen import CertificateData, certificate_data_for, render_certificate
from ..models import Intern, Submission
from ..shared.certificate_numbers import (
    allocate_certificate_number,
    existing_certificate_number,
)
from ..shared.certificate_status import (
    ISSUED,
    PENDING,
    REJECTED,
    REQUESTABLE_STATUSES,
    can_transition,
    current_status,
    is_noop,
    normalize_status,
)
from ..shared.errors import (
    CertificateError,
    NotFound,
    PersistenceError,
    TransitionConflict,
    ValidationError,
)
from ..shared.time import now_utc
from . import certificate_notifications

__all__ = [
    "ABORT",
    "CONTINUE",
    "StageResult",
    "TransitionOutcome",
    "update_certificate_status",
    "run_transition",
    "load_snapshot",
]

ABORT = "abort"
CONTINUE = "continue"


@dataclass(frozen=True)
class StageResult:
    stage: str
    ok: bool
    detail: str = ""


@dataclass
class TransitionContext:
    submission_id: int
    requested: str
    previous: str
    version: int
    reason: str | None
    unique_id: str | None
    recipient: str | None
    person_name: str | None
    previous_reason: str | None = None
    previous_rejected_at: datetime | None = None
    existing_number: str | None = None
    certificate_number: str | None = None
    render_data: CertificateData | None = None
    document: bytes | None = None
    at: datetime = field(default_factory=now_utc)
    results: list[StageResult] = field(default_factory=list)


@dataclass(frozen=True)
class Stage:
    name: str
    on_failure: str
    run: Callable[[TransitionContext], Any]


@dataclass(frozen=True)
class TransitionOutcome:
    snapshot: dict
    changed: bool
    results: tuple[StageResult, ...] = ()


def _validate_request(requested_status, rejection_reason) -> tuple[str, str | None]:
    requested = normalize_status(requested_status)
    if requested not in REQUESTABLE_STATUSES:
        allowed = ", ".join(REQUESTABLE_STATUSES)
        raise ValidationError(
            f"Invalid certificate status {requested_status!r}; expected one of: {allowed}"
        )
    if rejection_reason is not None and not isinstance(rejection_reason, str):
        raise ValidationError("rejectionReason must be a string")
    reason = rejection_reason if (rejection_reason or "").strip() else None
    return requested, reason


def load_snapshot(submission_id: int) -> dict:
    """Re-read the submission from the database and serialize it."""

    db.session.expire_all()
    submission = db.session.get(Submission, submission_id)
    if submission is None:
        raise NotFound("Feedback not found.")
    return {
        "_id": submission.id,
        "certificateStatus": current_status(submission.certificate_status),
        "certificateNumber": submission.certificate_number,
        "internDetails": submission.intern_details(),
        "internshipInfo": submission.internship_info(),
        "uniqueId": submission.unique_id or "",
        "rejectionReason": submission.rejection_reason,
    }


def _find_intern(unique_id: str | None) -> Intern | None:
    if not unique_id:
        return None
    return db.session.query(Intern).filter(Intern.unique_id == unique_id).one_or_none()


# -- claim -----------------------------------------------------------------


def _claim(ctx: TransitionContext) -> None:
    values: dict[str, Any] = {
        "certificate_status": ctx.requested,
        "status_version": Submission.status_version + 1,
    }
    if ctx.requested == REJECTED:
        values["rejected_at"] = ctx.at
        if ctx.reason:
            values["rejection_reason"] = ctx.reason
    stmt = (
        update(Submission)
        .where(Submission.id == ctx.submission_id)
        .where(Submission.status_version == ctx.version)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    try:
        result = db.session.execute(stmt)
        if result.rowcount != 1:
            db.session.rollback()
            current_app.logger.warning(
                "[CERT-STATUS-CONFLICT] feedback=%s requested=%s version=%s",
                ctx.submission_id,
                ctx.requested,
                ctx.version,
            )
            raise TransitionConflict(
                "Certificate status was changed by another request; reload and retry."
            )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError("Failed to update certificate status", detail=str(exc)) from exc
    ctx.version += 1


def _check_claim(ctx: TransitionContext, stage: str) -> None:
    """Raise TransitionConflict when another request has claimed the row since."""

    version = (
        db.session.query(Submission.status_version)
        .filter(Submission.id == ctx.submission_id)
        .scalar()
    )
    if version == ctx.version:
        return
    ctx.results.append(StageResult(stage, False, "claim lost"))
    current_app.logger.warning(
        "[CERT-STATUS-CONFLICT] feedback=%s stage=%s claimed_version=%s current_version=%s",
        ctx.submission_id,
        stage,
        ctx.version,
        version,
    )
    raise TransitionConflict(
        "Certificate status was changed by another request; reload and retry."
    )


def _guarded_update(ctx: TransitionContext, **values) -> None:
    """Write ``values`` onto the submission only while this transition holds the claim."""

    stmt = (
        update(Submission)
        .where(Submission.id == ctx.submission_id)
        .where(Submission.status_version == ctx.version)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount != 1:
        current_app.logger.warning(
            "[CERT-STATUS-CONFLICT] feedback=%s persist lost claim version=%s",
            ctx.submission_id,
            ctx.version,
        )
        raise TransitionConflict(
            "Certificate status was changed by another request; reload and retry."
        )


def _release_claim(ctx: TransitionContext) -> None:
    stmt = (
        update(Submission)
        .where(Submission.id == ctx.submission_id)
        .where(Submission.status_version == ctx.version)
        .values(
            certificate_status=ctx.previous,
            rejection_reason=ctx.previous_reason,
            rejected_at=ctx.previous_rejected_at,
            status_version=Submission.status_version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    try:
        result = db.session.execute(stmt)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception(
            "[CERT-STATUS] could not restore feedback=%s to status=%s",
            ctx.submission_id,
            ctx.previous,
        )
        return
    if result.rowcount != 1:
        current_app.logger.warning(
            "[CERT-STATUS-CONFLICT] feedback=%s changed before status=%s could be restored",
            ctx.submission_id,
            ctx.previous,
        )
        return
    ctx.version += 1
    current_app.logger.info(
        "[CERT-STATUS] feedback=%s restored status=%s", ctx.submission_id, ctx.previous
    )


# -- stages ----------------------------------------------------------------


def _allocate(ctx: TransitionContext) -> str:
    # the intern record is canonical; its number never changes once assigned
    person_number = existing_certificate_number(ctx.unique_id)
    if person_number:
        if ctx.existing_number and ctx.existing_number != person_number:
            current_app.logger.warning(
                "[CERT-MIRROR-MISMATCH] unique_id=%s intern_number=%s feedback_number=%s",
                ctx.unique_id,
                person_number,
                ctx.existing_number,
            )
        ctx.certificate_number = person_number
        return f"reused {person_number} from intern"
    if ctx.existing_number:
        ctx.certificate_number = ctx.existing_number
        return f"reused {ctx.existing_number} from feedback"
    config = current_app.config
    ctx.certificate_number = allocate_certificate_number(
        prefix=config.get("CERT_NUMBER_PREFIX", "100"),
        max_attempts=config.get("CERT_NUMBER_MAX_ATTEMPTS", 50),
    )
    return f"allocated {ctx.certificate_number}"


def _render(ctx: TransitionContext) -> str:
    submission = db.session.get(Submission, ctx.submission_id)
    if submission is None:
        raise NotFound("Feedback not found.")
    ctx.render_data = certificate_data_for(submission, ctx.certificate_number)
    ctx.document = render_certificate(ctx.render_data)
    return f"{len(ctx.document)} bytes"


def _notify_issued(ctx: TransitionContext) -> str:
    certificate_notifications.send_issued(
        ctx.recipient, ctx.person_name, ctx.document, ctx.render_data
    )
    return "sent"


def _notify_rejected(ctx: TransitionContext) -> str:
    certificate_notifications.send_rejected(
        ctx.recipient, ctx.person_name, ctx.submission_id, ctx.reason
    )
    return "sent"


def _notify_pending(ctx: TransitionContext) -> str:
    certificate_notifications.send_pending(
        ctx.recipient, ctx.person_name, ctx.submission_id
    )
    return "sent"


def _mirror_missing(ctx: TransitionContext) -> str:
    current_app.logger.info(
        "[CERT-MIRROR-MISSING] feedback=%s unique_id=%s status=%s",
        ctx.submission_id,
        ctx.unique_id,
        ctx.requested,
    )
    return "feedback updated; no intern record"


def _persist_issued(ctx: TransitionContext) -> str:
    _guarded_update(
        ctx,
        certificate_number=ctx.certificate_number,
        certificate_issued_at=ctx.at,
    )
    intern = _find_intern(ctx.unique_id)
    if intern is None:
        return _mirror_missing(ctx)
    if not intern.certificate_number:
        intern.certificate_number = ctx.certificate_number
    elif intern.certificate_number != ctx.certificate_number:
        current_app.logger.warning(
            "[CERT-MIRROR-MISMATCH] unique_id=%s intern_number=%s feedback_number=%s",
            ctx.unique_id,
            intern.certificate_number,
            ctx.certificate_number,
        )
    intern.certificate_issued_at = ctx.at
    intern.certificate_status = ISSUED
    return "feedback and intern updated"


def _persist_rejected(ctx: TransitionContext) -> str:
    _guarded_update(ctx, certificate_status=REJECTED)
    intern = _find_intern(ctx.unique_id)
    if intern is None:
        return _mirror_missing(ctx)
    intern.certificate_status = REJECTED
    if ctx.reason:
        intern.rejection_reason = ctx.reason
    intern.rejected_at = ctx.at
    return "intern updated"


def _persist_pending(ctx: TransitionContext) -> str:
    _guarded_update(ctx, certificate_status=PENDING)
    intern = _find_intern(ctx.unique_id)
    if intern is None:
        return _mirror_missing(ctx)
    intern.certificate_status = PENDING
    return "intern updated"


def _transactional(step: Callable[[TransitionContext], str]) -> Callable[[TransitionContext], str]:
    """Run ``step`` and commit its writes to both tables as one transaction."""

    def run(ctx: TransitionContext) -> str:
        try:
            detail = step(ctx)
            db.session.commit()
        except TransitionConflict:
            db.session.rollback()
            raise
        except (SQLAlchemyError, ValueError) as exc:
            db.session.rollback()
            raise PersistenceError(
                "Failed to persist certificate status", detail=str(exc)
            ) from exc
        return detail

    return run


STAGES: dict[str, tuple[Stage, ...]] = {
    ISSUED: (
        Stage("allocate", ABORT, _allocate),
        Stage("render", ABORT, _render),
        Stage("notify", CONTINUE, _notify_issued),
        Stage("persist", ABORT, _transactional(_persist_issued)),
    ),
    REJECTED: (
        Stage("notify", CONTINUE, _notify_rejected),
        Stage("persist", ABORT, _transactional(_persist_rejected)),
    ),
    PENDING: (
        Stage("notify", CONTINUE, _notify_pending),
        Stage("persist", ABORT, _transactional(_persist_pending)),
    ),
}


def _run_stages(ctx: TransitionContext, stages: tuple[Stage, ...]) -> None:
    for stage in stages:
        _check_claim(ctx, stage.name)
        try:
            detail = stage.run(ctx)
        except Exception as exc:
            detail = getattr(exc, "detail", None) or str(exc)
            ctx.results.append(StageResult(stage.name, False, detail))
            if stage.on_failure == ABORT:
                current_app.logger.error(
                    "[CERT-FAIL] feedback=%s stage=%s error=%s",
                    ctx.submission_id,
                    stage.name,
                    exc,
                )
                raise
            if isinstance(exc, CertificateError):
                current_app.logger.warning(
                    "[CERT-NOTIFY] feedback=%s stage=%s skipped error=%s detail=%s",
                    ctx.submission_id,
                    stage.name,
                    exc,
                    detail,
                )
            else:
                current_app.logger.exception(
                    "[CERT-NOTIFY] feedback=%s stage=%s skipped", ctx.submission_id, stage.name
                )
            continue
        ctx.results.append(StageResult(stage.name, True, detail or ""))


def run_transition(
    submission_id: int,
    requested_status: str,
    rejection_reason: str | None = None,
) -> TransitionOutcome:
    requested, reason = _validate_request(requested_status, rejection_reason)

    submission = db.session.get(Submission, submission_id)
    if submission is None:
        raise NotFound("Feedback not found.")

    previous = current_status(submission.certificate_status)
    if is_noop(previous, requested):
        if requested == ISSUED and not submission.certificate_number:
            # claimed by another request that has not persisted its number yet
            current_app.logger.warning(
                "[CERT-STATUS-CONFLICT] feedback=%s issuance in progress", submission_id
            )
            raise TransitionConflict(
                "Certificate issuance is already in progress; reload and retry."
            )
        current_app.logger.info(
            "[CERT-STATUS] feedback=%s status=%s unchanged", submission_id, previous
        )
        return TransitionOutcome(load_snapshot(submission_id), changed=False)
    if not can_transition(previous, requested):
        raise ValidationError(f"Cannot move certificate from {previous} to {requested}")

    ctx = TransitionContext(
        submission_id=submission.id,
        requested=requested,
        previous=submission.certificate_status or previous,
        version=submission.status_version or 0,
        reason=reason,
        unique_id=submission.unique_id,
        recipient=submission.intern_email,
        person_name=submission.intern_name,
        previous_reason=submission.rejection_reason,
        previous_rejected_at=submission.rejected_at,
        existing_number=submission.certificate_number,
    )

    _claim(ctx)
    try:
        _run_stages(ctx, STAGES[requested])
    except Exception:
        _release_claim(ctx)
        raise

    current_app.logger.info(
        "[CERT-STATUS] feedback=%s %s -> %s number=%s stages=%s",
        ctx.submission_id,
        previous,
        requested,
        ctx.certificate_number or "",
        ",".join(f"{r.stage}:{'ok' if r.ok else 'failed'}" for r in ctx.results),
    )
    return TransitionOutcome(
        load_snapshot(submission_id), changed=True, results=tuple(ctx.results)
    )


def update_certificate_status(
    submission_id: int,
    requested_status: str,
    rejection_reason: str | None = None,
) -> dict:
    """Apply a reviewer's status change and return the persisted snapshot."""

    return run_transition(submission_id, requested_status, rejection_reason).snapshot
