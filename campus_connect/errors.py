# Typed domain errors raised by the services.
# Each carries the HTTP status the API boundary renders it with (see main.py).

from campus_connect.utils.text import count_of


class DomainError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(DomainError):
    status_code = 404


class UnauthorizedError(DomainError):
    status_code = 403


class ValidationError(DomainError):
    status_code = 400


class ConflictError(DomainError):
    status_code = 409


class PendingOrdersError(ConflictError):
    """Batch completion blocked by orders not yet OTP-verified."""

    def __init__(self, pending: int):
        super().__init__(f"{count_of(pending, 'order')} still pending OTP verification")
        self.pending = pending
