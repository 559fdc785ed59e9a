"""
Error taxonomy for back-office operations.

- ValidationError: bad input, rejected before any transaction opens.
- BusinessRuleViolation: a rule failed mid-transaction; the whole unit rolls back.
- NotFoundError: an entity referenced by id does not exist.
- TransientStorageError: lock/busy/version conflict; the caller may retry the
  whole operation from scratch.

Routes translate status_code directly; anything outside this hierarchy is an
unexpected failure and is reported as an opaque 500.
"""

from __future__ import annotations


class BackofficeError(Exception):
    """Base class for errors with a caller-facing reason."""
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(BackofficeError, ValueError):
    """400-level input problem."""
    status_code = 400


class NotFoundError(BackofficeError):
    """404-level missing entity."""
    status_code = 404


class BusinessRuleViolation(BackofficeError):
    """409-level business rule conflict."""
    status_code = 409


class ShiftAlreadyOpen(BusinessRuleViolation):
    pass


class ShiftAlreadyClosed(BusinessRuleViolation):
    pass


class NoOpenShift(BusinessRuleViolation):
    pass


class InsufficientStock(BusinessRuleViolation):
    pass


class PriceUnavailable(BusinessRuleViolation):
    pass


class AuthorizationNotPending(BusinessRuleViolation):
    pass


class TransientStorageError(BackofficeError):
    """503-level storage conflict; safe to retry."""
    status_code = 503
