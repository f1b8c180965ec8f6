"""
Application error taxonomy.

Every expected failure of the sign-in state machine and of the RBAC layer is a
subclass of ``AppError``. Each class carries a stable ``code`` and the HTTP
status the API layer renders it with; the handler registered in ``app.main``
turns them into ``{"error": code, "message": message}`` bodies.

Server-side failures (``StorageError``, ``CatalogEntryNotFound``,
``ProviderError``) always render a generic message. Their ``detail`` is only
ever logged.
"""

from __future__ import annotations

from typing import Optional


class AppError(Exception):
    code = "app_error"
    status_code = 500
    message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, *, detail: Optional[str] = None) -> None:
        self.message = message or self.message
        self.detail = detail
        super().__init__(detail or self.message)

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500


class AuthenticationRequired(AppError):
    code = "authentication_required"
    status_code = 401
    message = "Authentication required"


class InvalidCredentials(AppError):
    # Unknown email and wrong password share this exact shape
    code = "invalid_credentials"
    status_code = 401
    message = "Invalid email or password"


class EmailNotVerified(AppError):
    code = "email_not_verified"
    status_code = 403
    message = "Email address has not been verified"


class InvalidOrExpiredToken(AppError):
    code = "invalid_or_expired_token"
    status_code = 400
    message = "Verification token is invalid or has expired"


class AlreadyVerified(AppError):
    code = "already_verified"
    status_code = 409
    message = "Email address is already verified"


class AuthorizationDenied(AppError):
    code = "authorization_denied"
    status_code = 403
    message = "You are not permitted to perform this action"


class ValidationError(AppError):
    code = "validation_error"
    status_code = 400
    message = "Invalid request"


class UserNotFound(AppError):
    code = "user_not_found"
    status_code = 404
    message = "User not found"


class Conflict(AppError):
    code = "conflict"
    status_code = 409
    message = "The request conflicts with the current state"


class EmailAlreadyRegistered(Conflict):
    code = "email_already_registered"
    message = "Email is already registered"


class PasswordAlreadySet(Conflict):
    code = "password_already_set"
    message = "A password is already set for this account"


class LastRoleRemoval(Conflict):
    code = "last_role_removal"
    message = "A user must keep at least one role"


class CatalogEntryNotFound(AppError):
    """A role or permission referenced by code or configuration does not exist."""

    code = "catalog_entry_not_found"
    status_code = 500

    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(detail=f"{kind} '{name}' does not exist in the catalog")


class StorageError(AppError):
    code = "storage_error"
    status_code = 500


class ProviderError(AppError):
    code = "provider_error"
    status_code = 502
    message = "Upstream identity provider is unavailable"
