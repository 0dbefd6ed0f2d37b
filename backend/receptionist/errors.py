"""Failures that end a webhook invocation with a non-200 response.

Anything that happens after the contractor is resolved degrades instead of
raising; the only exception is a job store that stays unavailable.
"""

from __future__ import annotations


class ReceptionistError(Exception):
    """Base class carrying the HTTP status and the machine-readable code."""

    status_code = 500
    error_code = "INTERNAL_ERROR"
    message = "Internal server error"

    def __init__(self, message: str | None = None, call_sid: str | None = None) -> None:
        super().__init__(message or self.message)
        self.call_sid = call_sid

    def to_body(self) -> dict[str, object]:
        body: dict[str, object] = {
            "success": False,
            "error": str(self),
            "errorCode": self.error_code,
        }
        if self.call_sid:
            body["callSid"] = self.call_sid
        return body


class MethodNotAllowed(ReceptionistError):
    status_code = 405
    error_code = "METHOD_NOT_ALLOWED"
    message = "Method not allowed"


class InvalidPayload(ReceptionistError):
    status_code = 400
    error_code = "INVALID_PAYLOAD"
    message = "Invalid call event payload"


class Unauthorized(ReceptionistError):
    status_code = 401
    error_code = "INVALID_SIGNATURE"
    message = "Invalid webhook signature"


class ContractorNotFound(ReceptionistError):
    status_code = 404
    error_code = "CONTRACTOR_NOT_FOUND"
    message = "Contractor not found"


class DirectoryUnavailable(ReceptionistError):
    """The directory could not answer; distinct from a number with no owner."""

    status_code = 503
    error_code = "DIRECTORY_UNAVAILABLE"
    message = "Contractor directory unavailable"


class StoreUnavailable(ReceptionistError):
    status_code = 500
    error_code = "JOB_STORE_UNAVAILABLE"
    message = "Job store unavailable"
