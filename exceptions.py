"""
Exception hierarchy for the budget API.

Every error raised by the service layer derives from BudgetAppError so the
HTTP layer can render them uniformly as ``{"success": false, "message": ...}``.
"""

from typing import Optional


class BudgetAppError(Exception):
    """
    Base exception class for all budget API errors.

    Attributes:
        message: Human-readable error message
        details: Optional dictionary with additional error context
        original_error: Optional original exception that caused this error
        status_code: HTTP status used when the error reaches a client
    """

    status_code = 400

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        original_error: Optional[Exception] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def __str__(self) -> str:
        msg = self.message
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            msg = f"{msg} ({detail_str})"
        return msg

    def to_dict(self) -> dict:
        """Serialise the error into the client-facing envelope."""
        body = {'success': False, 'message': self.message}
        if self.details:
            body['errors'] = self.details
        return body


class ValidationError(BudgetAppError):
    """Raised when a required field is missing or malformed."""
    status_code = 400


class ConflictError(BudgetAppError):
    """Raised when a budget already exists for the requested period, or an email is taken."""
    status_code = 400


class NotFoundOrForbiddenError(BudgetAppError):
    """Raised when a resource is missing or owned by somebody else."""
    status_code = 404


class AuthenticationError(BudgetAppError):
    """Raised when the caller is not logged in or supplied bad credentials."""
    status_code = 401


class StorageError(BudgetAppError):
    """Raised when the underlying database fails."""
    status_code = 500

    def to_dict(self) -> dict:
        # Driver messages stay in the logs.
        return {'success': False, 'message': 'Internal storage error.'}
