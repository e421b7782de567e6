# app/models/domain/errors.py
"""
Error taxonomy for the communication history pipeline.

Per-entity and per-record errors are contained where they happen and only
shrink the result set. Collection-level failures surface as FatalRequestError.
"""


class CommsHistoryError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.operation = operation


class RemoteApiError(CommsHistoryError):
    """A remote API returned an error response."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        status_code: int | None = None,
        error_code: str | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message, operation)
        self.status_code = status_code
        self.error_code = error_code
        self.response_data = response_data or {}


class TransientRemoteError(RemoteApiError):
    """Network failure, timeout, 429 or 5xx that outlived the retry budget."""


class AccessDeniedError(RemoteApiError):
    """The remote source refused access to one sub-resource (e.g. a mailbox)."""


class JobTimeoutError(CommsHistoryError):
    """An export job failed or did not complete within the attempt budget."""

    def __init__(self, job_id: str, last_status: str | None, attempts: int):
        super().__init__(
            f"Export job {job_id} did not complete after {attempts} attempts "
            f"(last status: {last_status or 'none'})",
            operation="poll_export",
        )
        self.job_id = job_id
        self.last_status = last_status
        self.attempts = attempts


class ParseError(CommsHistoryError):
    """A record or timestamp could not be normalized."""


class FatalRequestError(CommsHistoryError):
    """Aborts the whole request; rendered as a 5xx with an error payload."""

    def __init__(self, message: str, operation: str | None = None, status_code: int = 500):
        super().__init__(message, operation)
        self.status_code = status_code
