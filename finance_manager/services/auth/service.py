"""
Authentication Service

Handles sign-up, login and bearer token verification.

DESIGN DECISION: The rest of the system never sees credentials.
Route handlers resolve the Authorization header to a user id here and
pass only that id down to the lifecycle controller and the advisor.

- Passwords are hashed with passlib (pbkdf2_sha256, pure Python)
- Tokens are HS256 JWTs from python-jose, signed with the configured key
"""

from datetime import timedelta
from typing import Optional
from uuid import UUID

from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import ValidationError

from finance_manager.audit import AuditLogger
from finance_manager.config import AuthSettings, get_settings
from finance_manager.models.transaction import User, utc_now
from finance_manager.services.storage import DuplicateError, UserStorageInterface


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

BEARER_PREFIX = "Bearer "


class AuthError(Exception):
    """Base exception for authentication errors (missing credential)."""
    pass


class InvalidTokenError(AuthError):
    """Token could not be decoded, was tampered with, or expired."""
    pass


class InvalidCredentialsError(AuthError):
    """Email/password pair did not match."""
    pass


class EmailAlreadyRegisteredError(AuthError):
    """Sign-up with an email that already has an account."""
    pass


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError):
        # Unrecognised or corrupt hash
        return False


class AuthService:
    """Registers users, issues tokens and resolves tokens to user ids."""

    def __init__(
        self,
        user_storage: UserStorageInterface,
        settings: Optional[AuthSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._users = user_storage
        self._settings = settings or get_settings().auth
        self._audit_logger = audit_logger

    async def signup(self, email: str, password: str) -> User:
        """
        Register a new user.

        Raises:
            EmailAlreadyRegisteredError: If the email is taken
        """
        if not email or not password:
            raise InvalidCredentialsError("Email and password are required.")

        email = email.strip().lower()
        if await self._users.get_user_by_email(email):
            raise EmailAlreadyRegisteredError("Email already registered!")

        try:
            user = User(email=email, password_hash=hash_password(password))
        except ValidationError:
            raise InvalidCredentialsError("A valid email address is required.")

        try:
            await self._users.save_user(user)
        except DuplicateError:
            # Lost a race with a concurrent sign-up for the same email
            raise EmailAlreadyRegisteredError("Email already registered!")

        if self._audit_logger:
            await self._audit_logger.log_user_signed_up(user.id, user.email)
        return user

    async def login(self, email: str, password: str) -> str:
        """
        Verify credentials and return a signed access token.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password
        """
        user = await self._users.get_user_by_email(email or "")
        if user is None or not verify_password(password or "", user.password_hash):
            if self._audit_logger:
                await self._audit_logger.log_login_failed(email or "")
            raise InvalidCredentialsError("Invalid email or password!")

        if self._audit_logger:
            await self._audit_logger.log_user_logged_in(user.id)
        return self.create_access_token(user.id)

    def create_access_token(
        self,
        user_id: UUID,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        expire = utc_now() + (
            expires_delta or timedelta(minutes=self._settings.token_expire_minutes)
        )
        claims = {"sub": str(user_id), "exp": expire}
        return jwt.encode(claims, self._settings.secret_key, algorithm=self._settings.algorithm)

    def decode_token(self, token: str) -> UUID:
        """
        Return the user id a token was issued for.

        Raises:
            InvalidTokenError: Bad signature, expired, or no usable subject
        """
        try:
            payload = jwt.decode(
                token,
                self._settings.secret_key,
                algorithms=[self._settings.algorithm],
            )
            return UUID(payload["sub"])
        except (JWTError, KeyError, ValueError, TypeError):
            raise InvalidTokenError("Invalid token.")

    def resolve_user_id(self, authorization: Optional[str]) -> UUID:
        """
        Resolve an Authorization header value to a user id.

        Accepts the token with or without the "Bearer " prefix.

        Raises:
            AuthError: No credential supplied
            InvalidTokenError: Credential supplied but invalid
        """
        if not authorization or not authorization.strip():
            raise AuthError("Access denied. No token provided.")

        token = authorization.strip()
        if token.startswith(BEARER_PREFIX):
            token = token[len(BEARER_PREFIX):].strip()
        return self.decode_token(token)
