"""Certificate status values and transition rules."""

from __future__ import annotations

NOT_ISSUED = "Not Issued"
PENDING = "pending"
ISSUED = "issued"
REJECTED = "rejected"

ALL_STATUSES: tuple[str, ...] = (NOT_ISSUED, PENDING, ISSUED, REJECTED)

# Statuses a reviewer may request. Not Issued is only ever the initial value.
REQUESTABLE_STATUSES: tuple[str, ...] = (PENDING, ISSUED, REJECTED)

_ALIASES = {
    "not issued": NOT_ISSUED,
    "not_issued": NOT_ISSUED,
    "notissued": NOT_ISSUED,
    "pending": PENDING,
    "issued": ISSUED,
    "rejected": REJECTED,
}


def normalize_status(value: str | None) -> str | None:
    """Map loose spellings onto the stored status strings."""

    if not isinstance(value, str):
        return None
    return _ALIASES.get(value.strip().lower())


def current_status(value: str | None) -> str:
    return normalize_status(value) or NOT_ISSUED


def can_transition(previous: str | None, requested: str) -> bool:
    """Every requestable status is reachable from every state."""

    return requested in REQUESTABLE_STATUSES and current_status(previous) in ALL_STATUSES


def is_noop(previous: str | None, requested: str) -> bool:
    return current_status(previous) == requested
