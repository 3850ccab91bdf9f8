"""Error taxonomy for the certificate workflow.

Each error carries the HTTP status the API maps it to.
"""

from __future__ import annotations


class CertificateError(RuntimeError):
    status_code = 500

    def __init__(self, message: str, *, detail: str | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(CertificateError):
    status_code = 400


class NotFound(CertificateError):
    status_code = 404


class RenderInputInvalid(CertificateError):
    status_code = 400


class TransitionConflict(CertificateError):
    status_code = 409


class TemplateMissing(CertificateError):
    status_code = 500


class FontMissing(CertificateError):
    status_code = 500


class NotificationFailed(CertificateError):
    status_code = 502


class AllocationExhausted(CertificateError):
    status_code = 503


class PersistenceError(CertificateError):
    status_code = 500
