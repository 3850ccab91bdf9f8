"""Mail helper utilities."""

from __future__ import annotations

import base64
import logging
import re
from collections.abc import Iterable, Sequence

logger = logging.getLogger("certflow.mailer")

_SPLIT_RE = re.compile(r"[;,]")
_WHITESPACE_RE = re.compile(r"\s+")


def _iter_tokens(recipients: Sequence[str] | str | None) -> Iterable[str]:
    if recipients is None:
        return []
    if isinstance(recipients, str):
        return (part for part in _SPLIT_RE.split(recipients))
    return (str(value) for value in recipients)


def normalize_recipients(recipients: Sequence[str] | str | None) -> list[str]:
    """Split, trim, validate and de-duplicate recipient addresses."""

    seen: set[str] = set()
    kept: list[str] = []

    for raw in _iter_tokens(recipients):
        candidate = (raw or "").strip()
        if not candidate:
            continue
        normalized = candidate.lower()
        if "@" not in normalized or "." not in normalized.split("@")[-1]:
            logger.warning("[MAIL-INVALID-RECIPIENT] token=%s", candidate)
            continue
        if normalized in seen:
            continue
        seen.add(normalized)
        kept.append(candidate)

    return kept


def attachment_filename(person_name: str | None, *, prefix: str = "Certificate") -> str:
    """``"Jane  Doe"`` → ``"Certificate_Jane_Doe.pdf"``."""

    cleaned = _WHITESPACE_RE.sub("_", (person_name or "").strip())
    return f"{prefix}_{cleaned or 'Intern'}.pdf"


def encode_attachment(name: str, content: bytes) -> dict:
    return {
        "name": name,
        "content": base64.b64encode(content).decode("ascii"),
    }
