"""
Domain errors shared by the analytics, taxonomy and entry services.

Routers map these onto HTTP status codes; services never raise
HTTPException themselves.
"""


class StatDeskError(Exception):
    """Base class for errors reported to API callers."""

    status_code = 500

    def __init__(self, message: str, error_code: str | None = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class ValidationError(StatDeskError):
    """Request structure is invalid. Raised before anything is written."""

    status_code = 400


class NotFoundError(StatDeskError):
    """The addressed option, draft, entry or period does not exist."""

    status_code = 404


class ConflictError(StatDeskError):
    """A write would break a uniqueness rule, e.g. a duplicate option label."""

    status_code = 409


class PublishError(StatDeskError):
    """A multi-row write failed and was rolled back."""

    status_code = 500
