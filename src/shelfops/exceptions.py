# shelfops/exceptions.py
# Domain errors raised by repos and services, handled in shelf_app

from __future__ import annotations


class ShelfError(Exception):
    """Base class for errors raised by shelfops."""


class NotFoundException(ShelfError):
    """The requested entity does not exist or is not visible to the user."""


class PermissionDenied(ShelfError):
    """The current user may not perform the requested action."""

    def __init__(self, message: str = "You do not have permission to access the requested page.") -> None:
        super().__init__(message)
        self.message = message


class NotifyException(ShelfError):
    """An error to be shown to the user before redirecting to `redirect_location`."""

    def __init__(self, message: str, redirect_location: str = "/") -> None:
        super().__init__(message)
        self.message = message
        self.redirect_location = redirect_location


class UserRegistrationException(NotifyException):
    pass


class ConfirmationEmailException(NotifyException):
    pass


class RoleProtectedException(NotifyException):
    """The role is required by the system and cannot be removed."""
