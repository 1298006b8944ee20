"""Account and session flows: register, login, token refresh, password recovery."""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import asyncpg
from loguru import logger

from gymbook.core.auth import (
    PasswordHasher,
    TokenBlacklistService,
    TokenPair,
    decode_token_unverified,
    generate_token_pair,
    token_expiry,
    validate_password,
    verify_access_token,
    verify_refresh_token,
)
from gymbook.core.config.settings import Settings
from gymbook.core.exceptions import (
    AccountLockedError,
    ApiError,
    AuthenticationError,
    DuplicateEmailError,
    InvalidCredentialsError,
    ValidationError,
)
from gymbook.models.db_connection import DatabasePool, TransactionalClient
from gymbook.repositories import TokenBlacklistRepository, User, UserRepository
from gymbook.services.email_service import (
    EmailService,
    generate_email_verification_token,
    generate_password_reset_token,
)
from gymbook.utils.masking import mask_email

MAX_LOGIN_ATTEMPTS = 5
LOCKOUT_DURATION = timedelta(minutes=30)

FORGOT_PASSWORD_MESSAGE = (
    "If an account exists with this email, a password reset link will be sent"
)
RESEND_VERIFICATION_MESSAGE = (
    "If an account exists and is not verified, a verification email will be sent"
)
DEACTIVATED_MESSAGE = "Your account has been deactivated"


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass
class RegistrationData:
    email: str
    password: str
    full_name: str
    phone: Optional[str] = None
    role: str = "member"


@dataclass
class AuthResult:
    """Authenticated user plus the freshly minted session pair."""

    user: User
    tokens: TokenPair

    def to_dict(self) -> Dict[str, Any]:
        return {"user": self.user.to_dict(), **self.tokens.to_dict()}


class AuthService:
    """
    Orchestrates account flows against the connection pool.

    Access tokens are stateless. The current refresh token is stored on the
    user row, and replaced or revoked ones go to the revocation list.
    """

    def __init__(
        self,
        db: DatabasePool,
        settings: Settings,
        hasher: Optional[PasswordHasher] = None,
        email_service: Optional[EmailService] = None,
    ):
        """
        Initialize auth service.

        Args:
            db: Open connection pool
            settings: Application settings
            hasher: Password hasher (defaults to bcrypt with the configured cost)
            email_service: Email preparation service
        """
        self.db = db
        self.settings = settings
        self.users = UserRepository(db)
        self.revocations = TokenBlacklistService(TokenBlacklistRepository(db), self.users)
        self.hasher = hasher or PasswordHasher(settings.security.bcrypt_rounds)
        self.email = email_service or EmailService(settings.email.frontend_url, settings.env)

    def _check_password_policy(self, password: str, email: Optional[str]) -> None:
        validation = validate_password(password, email)
        if not validation.is_valid:
            raise ValidationError(validation.errors[0], field="password")

    async def register(self, data: RegistrationData) -> AuthResult:
        """
        Create an account and sign the user in.

        Args:
            data: Registration details

        Returns:
            AuthResult with the created user and token pair

        Raises:
            ValidationError: If the password fails the policy
            DuplicateEmailError: If the email is already registered
        """
        email = normalize_email(data.email)
        self._check_password_policy(data.password, email)

        password_hash = await self.hasher.hash(data.password)
        verification_token, verification_expires = generate_email_verification_token()

        async def create_account(client: TransactionalClient) -> Tuple[User, TokenPair]:
            if await self.users.email_exists(email, client):
                raise DuplicateEmailError()
            user = await self.users.create(
                {
                    "email": email,
                    "password": password_hash,
                    "full_name": data.full_name.strip(),
                    "phone": data.phone,
                    "role": data.role,
                    "email_verification_token": verification_token,
                    "email_verification_expires": verification_expires,
                },
                client,
            )
            tokens = generate_token_pair(user, self.settings.jwt)
            await self.users.set_refresh_token(user.id, tokens.refresh_token, client)
            return user, tokens

        try:
            user, tokens = await self.db.run_transaction(create_account)
        except asyncpg.UniqueViolationError as e:
            raise DuplicateEmailError() from e

        await self.email.send(self.email.verification_email(user, verification_token))
        logger.info(f"User registered: {mask_email(email)}")
        return AuthResult(user=user, tokens=tokens)

    async def login(self, email: str, password: str) -> AuthResult:
        """
        Check credentials and issue a token pair.

        Five consecutive failures lock the account for 30 minutes.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password
            AccountLockedError: Account is, or has just become, locked
            AuthenticationError: Account is deactivated
        """
        email = normalize_email(email)
        user = await self.users.get_by_email(email)
        if user is None:
            raise InvalidCredentialsError()

        now = datetime.now(timezone.utc)
        if user.is_locked(now):
            remaining = (user.locked_until - now).total_seconds()
            raise AccountLockedError(
                f"Account temporarily locked. Try again in {math.ceil(remaining / 60)} minutes",
                retry_after=math.ceil(remaining),
            )

        if not user.is_active:
            raise AuthenticationError(DEACTIVATED_MESSAGE)

        if not await self.hasher.verify(password, user.password):
            attempts = user.login_attempts + 1
            if attempts >= MAX_LOGIN_ATTEMPTS:
                await self.users.update_login_attempts(user.id, attempts, now + LOCKOUT_DURATION)
                logger.warning(f"Account locked after {attempts} failed logins: {mask_email(email)}")
                lock_minutes = int(LOCKOUT_DURATION.total_seconds() // 60)
                raise AccountLockedError(
                    f"Too many failed attempts. Account locked for {lock_minutes} minutes",
                    retry_after=int(LOCKOUT_DURATION.total_seconds()),
                )
            await self.users.update_login_attempts(user.id, attempts)
            raise InvalidCredentialsError(attempts_remaining=MAX_LOGIN_ATTEMPTS - attempts)

        await self.users.record_successful_login(user.id)
        tokens = generate_token_pair(user, self.settings.jwt)
        await self.users.set_refresh_token(user.id, tokens.refresh_token)
        logger.info(f"User logged in: {mask_email(email)}")
        return AuthResult(user=user, tokens=tokens)

    async def refresh(self, refresh_token: str) -> TokenPair:
        """
        Rotate a refresh token.

        A token that verifies but no longer matches the stored one is treated
        as reuse: every token of that user is revoked.

        Raises:
            AuthenticationError: Revoked, reused, or the user is gone or inactive
            TokenExpiredError: Refresh token expired
            TokenInvalidError: Refresh token malformed or not a refresh token
        """
        if await self.revocations.is_blacklisted(refresh_token):
            raise AuthenticationError("Token has been revoked")

        payload = verify_refresh_token(refresh_token, self.settings.jwt)

        user = await self.users.get_by_id(payload["sub"])
        if user is None:
            raise AuthenticationError("User not found")
        if not user.is_active:
            raise AuthenticationError(DEACTIVATED_MESSAGE)

        if user.refresh_token != refresh_token:
            logger.warning(f"Refresh token reuse detected for user {user.id}")
            await self.revocations.blacklist_all_user_tokens(user.id, "security")
            raise AuthenticationError("Invalid refresh token. Please log in again")

        await self.revocations.blacklist_token(
            refresh_token,
            user.id,
            TokenBlacklistService.expiry_or_default(token_expiry(payload)),
            "refresh",
        )
        tokens = generate_token_pair(user, self.settings.jwt)
        await self.users.set_refresh_token(user.id, tokens.refresh_token)
        return tokens

    async def logout(self, user_id: Any) -> None:
        """Revoke and clear the stored refresh token. Clients discard their copies."""
        stored = await self.users.get_refresh_token(user_id)
        if stored:
            await self.revocations.blacklist_token(
                stored,
                user_id,
                TokenBlacklistService.expiry_or_default(
                    token_expiry(decode_token_unverified(stored))
                ),
                "logout",
            )
        await self.users.set_refresh_token(user_id, None)
        logger.info(f"User logged out: {user_id}")

    async def forgot_password(self, email: str) -> str:
        """
        Start password recovery.

        Returns the same message whether or not the account exists.
        """
        user = await self.users.get_by_email(normalize_email(email))
        if user is None:
            return FORGOT_PASSWORD_MESSAGE

        token, expires = generate_password_reset_token()
        await self.users.set_password_reset_token(user.id, token, expires)
        await self.email.send(self.email.password_reset_email(user, token))
        return FORGOT_PASSWORD_MESSAGE

    async def reset_password(self, token: str, new_password: str) -> None:
        """
        Set a new password from a reset token.

        Raises:
            ValidationError: Unknown or expired token, or the password fails the policy
        """
        user = await self.users.get_by_reset_token(token)
        if user is None:
            raise ValidationError("Invalid or expired reset token")
        if user.password_reset_expires is None or user.password_reset_expires < datetime.now(
            timezone.utc
        ):
            raise ValidationError("Reset token has expired. Please request a new one")

        self._check_password_policy(new_password, user.email)
        password_hash = await self.hasher.hash(new_password)

        await self.revocations.blacklist_all_user_tokens(user.id, "password_reset")
        await self.users.reset_password(user.id, password_hash)
        logger.info(f"Password reset for user {user.id}")

    async def change_password(self, user_id: Any, current_password: str, new_password: str) -> None:
        """
        Change the password of a signed-in user and revoke their refresh token.

        Raises:
            ApiError: 404 if the user is gone
            AuthenticationError: Current password is wrong
            ValidationError: New password fails the policy or equals the current one
        """
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise ApiError.not_found("User not found")

        if not await self.hasher.verify(current_password, user.password):
            raise AuthenticationError("Current password is incorrect")

        self._check_password_policy(new_password, user.email)
        if new_password == current_password:
            raise ValidationError(
                "New password must be different from current password", field="newPassword"
            )

        password_hash = await self.hasher.hash(new_password)
        await self.revocations.blacklist_all_user_tokens(user.id, "password_change")
        await self.users.update_password(user.id, password_hash)
        logger.info(f"Password changed for user {user.id}")

    async def verify_email(self, token: str) -> None:
        """
        Mark an email address verified.

        Raises:
            ValidationError: Unknown token, already verified, or expired token
        """
        user = await self.users.get_by_verification_token(token)
        if user is None:
            raise ValidationError("Invalid verification token")
        if user.email_verified:
            raise ValidationError("Email is already verified")
        if user.email_verification_expires is None or (
            user.email_verification_expires < datetime.now(timezone.utc)
        ):
            raise ValidationError("Verification token has expired. Please request a new one")

        await self.users.mark_email_verified(user.id)

    async def resend_verification(self, email: str) -> str:
        """Issue a new verification token. The answer never reveals whether the account exists."""
        user = await self.users.get_by_email(normalize_email(email))
        if user is None or user.email_verified:
            return RESEND_VERIFICATION_MESSAGE

        token, expires = generate_email_verification_token()
        await self.users.set_verification_token(user.id, token, expires)
        await self.email.send(self.email.verification_email(user, token))
        return RESEND_VERIFICATION_MESSAGE

    async def get_profile(self, user_id: Any) -> User:
        """
        Current user with the trainer block when present.

        Raises:
            ApiError: 404 if the user does not exist
        """
        user = await self.users.get_profile(user_id)
        if user is None:
            raise ApiError.not_found("User not found")
        return user

    async def update_profile(
        self, user_id: Any, full_name: Optional[str] = None, phone: Optional[str] = None
    ) -> User:
        """
        Update name and/or phone.

        Raises:
            ValidationError: If neither field is given
            ApiError: 404 if the user does not exist
        """
        fields: Dict[str, Any] = {}
        if full_name is not None:
            fields["full_name"] = full_name.strip()
        if phone is not None:
            fields["phone"] = phone.strip()

        user = await self.users.update_profile(user_id, fields)
        if user is None:
            raise ApiError.not_found("User not found")
        return user

    async def authenticate(self, access_token: str) -> User:
        """
        Resolve a bearer token to an active user.

        Raises:
            TokenExpiredError, TokenInvalidError: Token rejected
            AuthenticationError: User deleted or deactivated since the token was issued
        """
        payload = verify_access_token(access_token, self.settings.jwt)
        user = await self.users.get_by_id(payload["sub"])
        if user is None:
            raise AuthenticationError("User no longer exists")
        if not user.is_active:
            raise AuthenticationError(f"{DEACTIVATED_MESSAGE}. Please contact support")
        return user
