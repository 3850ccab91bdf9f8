"""Certificate number allocation.

Numbers are a fixed prefix followed by six random digits and are checked
against every number already persisted before being handed out.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Callable

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from ..app import db
from ..models import Intern, Submission
from .errors import AllocationExhausted

logger = logging.getLogger("certflow.certificates")

DEFAULT_PREFIX = "100"
DEFAULT_MAX_ATTEMPTS = 50
_RANDOM_LOW = 100000
_RANDOM_HIGH = 999999

_system_random = random.SystemRandom()


def certificate_number_exists(number: str) -> bool:
    """Return True when ``number`` is already held by a person or submission."""

    hit = (
        db.session.query(Intern.id)
        .filter(Intern.certificate_number == number)
        .first()
    )
    if hit is not None:
        return True
    hit = (
        db.session.query(Submission.id)
        .filter(Submission.certificate_number == number)
        .first()
    )
    return hit is not None


def existing_certificate_number(unique_id: str | None, email: str | None = None) -> str | None:
    """Number already assigned to this person, if any."""

    filters = []
    if unique_id:
        filters.append(Intern.unique_id == unique_id)
    if email:
        filters.append(db.func.lower(Intern.email) == email.strip().lower())
    if not filters:
        return None
    row = (
        db.session.query(Intern.certificate_number)
        .filter(or_(*filters))
        .filter(Intern.certificate_number.isnot(None))
        .filter(Intern.certificate_number != "")
        .first()
    )
    return row[0] if row else None


def fallback_certificate_number(prefix: str, clock: Callable[[], float] | None = None) -> str:
    millis = int((clock or time.time)() * 1000)
    return f"{prefix}{str(millis)[-6:]}"


def allocate_certificate_number(
    *,
    prefix: str = DEFAULT_PREFIX,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    exists: Callable[[str], bool] | None = None,
    rng: random.Random | None = None,
    clock: Callable[[], float] | None = None,
) -> str:
    """Return a certificate number no persisted record currently holds.

    Raises ``AllocationExhausted`` after ``max_attempts`` collisions. When the
    lookup itself fails the timestamp fallback is returned instead; that value
    is not checked for uniqueness.
    """

    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    check = exists or certificate_number_exists
    source = rng or _system_random

    for attempt in range(1, max_attempts + 1):
        candidate = f"{prefix}{source.randint(_RANDOM_LOW, _RANDOM_HIGH)}"
        try:
            taken = check(candidate)
        except SQLAlchemyError as exc:
            number = fallback_certificate_number(prefix, clock)
            logger.error(
                "[CERT-NUMBER-FALLBACK] lookup failed attempt=%s number=%s error=%s",
                attempt,
                number,
                exc,
            )
            return number
        if not taken:
            logger.info("[CERT-NUMBER] number=%s attempts=%s", candidate, attempt)
            return candidate
        logger.info("[CERT-NUMBER] collision number=%s attempt=%s", candidate, attempt)

    raise AllocationExhausted(
        f"Could not allocate a free certificate number after {max_attempts} attempts"
    )
