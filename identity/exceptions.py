"""Errors raised by identity operations."""

from typing import Dict, List, Optional


class IdentityError(Exception):
    """Base class for every declined identity operation."""

    kind = 'error'


class ValidationError(IdentityError, ValueError):
    """
    Field-level constraint failures.

    ``errors`` maps a field name to the list of messages for that field,
    e.g. ``{'password': ['should be at least 12 character(s)']}``.
    """

    kind = 'validation'

    def __init__(self, errors: Dict[str, List[str]]):
        self.errors = errors
        super().__init__('; '.join(
            f"{field} {message}"
            for field, messages in errors.items()
            for message in messages
        ))


class InvalidCurrentPassword(IdentityError):
    kind = 'invalid_current_password'

    def __init__(self, message: str = 'Current password is not valid'):
        super().__init__(message)


class InvalidCode(IdentityError):
    kind = 'invalid_code'

    def __init__(self, message: str = 'Invalid code'):
        super().__init__(message)


class NotFound(IdentityError):
    kind = 'not_found'

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or 'Not found')


class InvalidToken(NotFound):
    """Token could not be decoded. Surfaced like :class:`NotFound`."""

    kind = 'invalid'

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or 'Invalid token')


class OnlyEmail(IdentityError):
    """Removing the address would leave the user without a usable email."""

    kind = 'only_email'

    def __init__(self, message: str = 'Cannot remove the only email'):
        super().__init__(message)
