"""
Error taxonomy for order processing.

Reducer errors are domain errors raised while interpreting a message.
EditError subclasses map one-to-one onto the response codes of the edit
and history endpoints.
"""

from typing import Optional


class ReducerError(Exception):
    """A message could not be applied to the order state."""

    reason = "reducer_error"

    def __init__(self, message: str, diagnostics: Optional[dict] = None):
        super().__init__(message)
        self.diagnostics = diagnostics or {}


class OverCapacityError(ReducerError):
    """Relative quantity ("restul L") on a variant with nothing left to fill."""

    reason = "over_capacity"

    def __init__(
        self,
        color: str,
        assigned: int,
        total: int,
        diagnostics: Optional[dict] = None,
    ):
        super().__init__(
            f"over_capacity: {color} sum={assigned} >= total={total}",
            diagnostics,
        )
        self.color = color
        self.assigned = assigned
        self.total = total


class EditError(Exception):
    """Base for failures returned by the edit/history endpoints."""

    status_code = 500
    tag = "internal_error"

    def __init__(
        self,
        message: str = "",
        diagnostics: Optional[dict] = None,
        audited: bool = False,
    ):
        super().__init__(message or self.tag)
        self.message = message or self.tag
        self.diagnostics = diagnostics
        # Already written to the audit log where it was raised
        self.audited = audited

    def to_body(self) -> dict:
        body = {"error": self.tag, "message": self.message}
        if self.diagnostics is not None:
            body["diagnostics"] = self.diagnostics
        return body


class BadRequestError(EditError):
    status_code = 400
    tag = "bad_request"


class UnauthorizedError(EditError):
    status_code = 403
    tag = "unauthorized"


class NotFoundError(EditError):
    status_code = 404
    tag = "not_found"


class ConflictError(EditError):
    """Order is locked by another edit, or changed under this writer."""
    status_code = 409
    tag = "conflict"


class ReparseFailedError(EditError):
    """Replaying the edited conversation hit a reducer failure."""
    status_code = 400
    tag = "reparse_failed"


class InternalError(EditError):
    status_code = 500
    tag = "internal_error"
