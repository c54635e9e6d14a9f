"""
Shared error types.

Every service raises one of these; the API layer maps them onto the
structured `{"error": {...}}` payload using `status_code` and `code`.
"""

from typing import Any, Optional

# Forbidden reasons
NOT_PARTICIPANT = "not a participant"
WRONG_STAGE = "wrong stage"
WRONG_ROLE = "wrong role"
NOT_OWNER = "not the owner"


class CaseLedgerError(Exception):
    """Base class for errors surfaced to callers."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class Unauthenticated(CaseLedgerError):
    status_code = 401
    code = "unauthorized"


class Forbidden(CaseLedgerError):
    """Actor is authenticated but may not perform the action."""

    status_code = 403
    code = "forbidden"

    def __init__(self, message: str, reason: Optional[str] = None, details: Any = None):
        super().__init__(message, details)
        self.reason = reason or message
        if self.details is None:
            self.details = {"reason": self.reason}


class NotFound(CaseLedgerError):
    status_code = 404
    code = "not_found"


class BadRequest(CaseLedgerError):
    status_code = 400
    code = "bad_request"


class InvalidState(BadRequest):
    """Target is in a state that does not admit the operation (e.g. closed case)."""

    code = "invalid_state"


class Conflict(CaseLedgerError):
    status_code = 409
    code = "conflict"


class ExternalFailure(CaseLedgerError):
    """A collaborator outside the process (ledger gateway) failed or timed out."""

    status_code = 502
    code = "external_failure"
