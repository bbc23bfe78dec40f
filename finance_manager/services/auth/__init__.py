"""Authentication services package."""

from finance_manager.services.auth.service import (
    AuthError,
    AuthService,
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    InvalidTokenError,
    hash_password,
    verify_password,
)

__all__ = [
    "AuthError",
    "AuthService",
    "EmailAlreadyRegisteredError",
    "InvalidCredentialsError",
    "InvalidTokenError",
    "hash_password",
    "verify_password",
]
