"""Exceptions raised by the account handlers and turned into JSON responses by the app."""

from fastapi import status


class AccountError(Exception):
    """Base class: carries the HTTP status and the user-facing message."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidInput(AccountError):
    """A required field is missing or malformed."""
    status_code = status.HTTP_400_BAD_REQUEST


class Unauthenticated(AccountError):
    """Missing, malformed, expired or revoked session token."""
    status_code = status.HTTP_401_UNAUTHORIZED


class NotFound(AccountError):
    status_code = status.HTTP_404_NOT_FOUND


class PolicyViolation(AccountError):
    """Password does not satisfy the composition rules."""
    status_code = status.HTTP_412_PRECONDITION_FAILED


class Mismatch(AccountError):
    """Credentials, confirmation or verification code do not match."""
    status_code = status.HTTP_412_PRECONDITION_FAILED


class Duplicate(AccountError):
    status_code = status.HTTP_412_PRECONDITION_FAILED


class DeliveryFailed(AccountError):
    """The verification email could not be handed to the mail relay."""
    status_code = status.HTTP_400_BAD_REQUEST
