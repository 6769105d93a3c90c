# gosafe/errors.py
"""
Error kinds raised by the report/vote core. Each kind carries a stable `code`
and the HTTP status the API layer maps it to.
"""
from __future__ import annotations


class GoSafeError(Exception):
    code = "error"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class ValidationError(GoSafeError):
    code = "validation_error"
    status_code = 400


class UnauthorizedError(GoSafeError):
    code = "unauthorized"
    status_code = 401


class ForbiddenError(ValidationError):
    # An ownership failure is still a rejected request; it only renders as 403.
    code = "forbidden"
    status_code = 403


class NotFoundError(GoSafeError):
    code = "not_found"
    status_code = 404


class ConflictError(GoSafeError):
    code = "conflict"
    status_code = 409


class DuplicateVoteError(ConflictError):
    code = "duplicate_vote"


class SelfVoteError(ConflictError):
    code = "self_vote"


class StaleReportError(Exception):
    """Report changed between read and conditional write; the caller re-reads and retries."""
