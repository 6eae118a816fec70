"""
Error taxonomy for subscription reconciliation.

Every error carries the HTTP status it maps to; the exception handler in
app.main turns them into a JSON body of the form {"error": ..., **details}.
"""
from typing import Any


class BillingSyncError(Exception):
    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        body.update(self.details)
        return body


class ConfigurationError(BillingSyncError):
    """Missing required credentials; raised before any work begins."""
    status_code = 500


class ValidationError(BillingSyncError):
    status_code = 400


class AuthorizationError(BillingSyncError):
    status_code = 403


class NotFoundError(BillingSyncError):
    status_code = 404


class UpstreamError(BillingSyncError):
    """Non-success response (or transport failure) from the payment provider."""
    status_code = 502

    def __init__(self, message: str, provider_status: int | None = None, details: dict[str, Any] | None = None):
        status_code = None
        if provider_status is not None and 400 <= provider_status < 600:
            status_code = provider_status
        super().__init__(message, details=details, status_code=status_code)
        self.provider_status = provider_status


class StoreError(BillingSyncError):
    status_code = 500
