"""Domain errors raised by the services and mapped to HTTP responses in main."""


class LedgerError(Exception):
    """Base class for every error the services raise on purpose."""

    kind = "internal"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AccessDenied(LedgerError):
    kind = "access_denied"
    status_code = 403


class NotFound(LedgerError):
    kind = "not_found"
    status_code = 404


class ValidationFailed(LedgerError):
    kind = "validation"
    status_code = 422


class DatabaseError(LedgerError):
    """Loading accounts or rules failed; nothing was processed."""

    kind = "database"
    status_code = 503


class ConcurrentAdvance(LedgerError):
    """A rule's cursor moved under us; the whole run must be rolled back."""

    kind = "conflict"
    status_code = 409


class InsertFailure(LedgerError):
    """A single generated transaction could not be stored. Never fatal."""

    kind = "insert_failure"
