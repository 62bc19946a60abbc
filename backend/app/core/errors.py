"""
Domain exceptions raised by the identity sync and library services.

Routers and the handlers registered in app.main translate these into HTTP
responses; services never raise HTTPException themselves.
"""
from typing import List, Optional


class LibraryError(Exception):
    """Base class for all domain errors."""

    detail = "Request failed"

    def __init__(self, detail: Optional[str] = None):
        if detail:
            self.detail = detail
        super().__init__(self.detail)


class ValidationError(LibraryError):
    detail = "Invalid input"


class NotFoundOrForbiddenError(LibraryError):
    # Same message for "missing" and "owned by someone else"
    detail = "Book not found"


class StatusNotFoundError(LibraryError):
    detail = "Reading status not found"


class DuplicateUserError(LibraryError):
    detail = "User already exists"


class UserNotFoundError(LibraryError):
    detail = "User not found"


class MissingEmailError(LibraryError):
    detail = "No email address available"


class PartialCascadeFailure(LibraryError):
    """A cascade step failed after earlier steps were committed."""

    detail = "Cascade delete did not complete"

    def __init__(self, failed_step: str, completed_steps: List[str], cause: Exception):
        self.failed_step = failed_step
        self.completed_steps = list(completed_steps)
        self.cause = cause
        super().__init__(
            f"Cascade delete failed at step '{failed_step}' "
            f"(completed: {', '.join(completed_steps) or 'none'})"
        )
