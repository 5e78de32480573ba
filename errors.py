"""
Error taxonomy for the storefront gateway.

Every domain service catches these and turns them into a user-facing message;
only the HTTP layer maps what is left over onto status codes.
"""
from typing import Optional


class StoreError(Exception):
    """Base class for all recoverable storefront errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputError(StoreError):
    """Caught before any network call: missing field, bad quantity, no variant."""


class AuthenticationError(StoreError):
    """No session identity, or an identity without a user id."""


class ApiError(StoreError):
    """The backend answered with a non-2xx status, timed out or sent malformed JSON."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_rejection(self) -> bool:
        # the server looked at the request and refused it (stock, price, missing item)
        return self.status_code is not None and 400 <= self.status_code < 500


class DuplicateSubmissionError(StoreError):
    """The same mutating action is already in flight for this target."""
