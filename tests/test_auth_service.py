"""Tests for AuthService account flows."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest

from gymbook.core.auth import PasswordHasher, generate_token_pair, verify_refresh_token
from gymbook.core.exceptions import (
    AccountLockedError,
    ApiError,
    AuthenticationError,
    DuplicateEmailError,
    InvalidCredentialsError,
    TokenInvalidError,
    ValidationError,
)
from gymbook.services.auth_service import (
    FORGOT_PASSWORD_MESSAGE,
    RESEND_VERIFICATION_MESSAGE,
    AuthService,
    RegistrationData,
)

PASSWORD = "Tr0ub4dor&Kx9!"
HASHER = PasswordHasher(rounds=4)
PASSWORD_HASH = HASHER.hash_sync(PASSWORD)


@pytest.fixture
def users():
    repo = MagicMock()
    for name in (
        "get_by_id",
        "get_profile",
        "get_by_email",
        "email_exists",
        "create",
        "update_login_attempts",
        "record_successful_login",
        "get_refresh_token",
        "set_refresh_token",
        "get_by_verification_token",
        "set_verification_token",
        "mark_email_verified",
        "get_by_reset_token",
        "set_password_reset_token",
        "reset_password",
        "update_password",
        "update_profile",
    ):
        setattr(repo, name, AsyncMock(return_value=None))
    repo.email_exists.return_value = False
    return repo


@pytest.fixture
def revocations():
    service = MagicMock()
    service.is_blacklisted = AsyncMock(return_value=False)
    service.blacklist_token = AsyncMock()
    service.blacklist_all_user_tokens = AsyncMock()
    return service


@pytest.fixture
def email_service():
    email = MagicMock()
    email.verification_email = MagicMock(return_value="verification-message")
    email.password_reset_email = MagicMock(return_value="reset-message")
    email.send = AsyncMock(return_value={"success": True, "message_id": "dev-1"})
    return email


@pytest.fixture
def auth(fake_db, settings, users, revocations, email_service):
    service = AuthService(fake_db, settings, hasher=HASHER, email_service=email_service)
    service.users = users
    service.revocations = revocations
    return service


class TestRegister:
    """Tests for AuthService.register."""

    @pytest.mark.asyncio
    async def test_register_creates_user_inside_transaction(
        self, auth, fake_db, users, email_service, make_user
    ):
        created = make_user(email="new@gymbook.io", email_verified=False)
        users.create.return_value = created

        result = await auth.register(
            RegistrationData(
                email="  New@GymBook.io ", password=PASSWORD, full_name=" New Member "
            )
        )

        fake_db.run_transaction.assert_awaited_once()
        users.email_exists.assert_awaited_once_with("new@gymbook.io", fake_db.client)
        data, client = users.create.call_args.args
        assert client is fake_db.client
        assert data["email"] == "new@gymbook.io"
        assert data["full_name"] == "New Member"
        assert data["role"] == "member"
        assert data["password"] != PASSWORD
        assert HASHER.verify_sync(PASSWORD, data["password"])
        assert len(data["email_verification_token"]) == 64

        assert result.user is created
        users.set_refresh_token.assert_awaited_once_with(
            created.id, result.tokens.refresh_token, fake_db.client
        )
        email_service.send.assert_awaited_once_with("verification-message")
        assert set(result.to_dict()) == {"user", "accessToken", "refreshToken", "expiresIn"}

    @pytest.mark.asyncio
    async def test_duplicate_email(self, auth, users):
        users.email_exists.return_value = True
        with pytest.raises(DuplicateEmailError) as exc_info:
            await auth.register(
                RegistrationData(email="member@gymbook.io", password=PASSWORD, full_name="Jane")
            )
        assert exc_info.value.status_code == 409
        users.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unique_violation_race(self, auth, users):
        """Test a concurrent insert of the same email maps to DuplicateEmailError."""
        users.create.side_effect = asyncpg.UniqueViolationError("duplicate key")
        with pytest.raises(DuplicateEmailError):
            await auth.register(
                RegistrationData(email="race@gymbook.io", password=PASSWORD, full_name="Race")
            )

    @pytest.mark.asyncio
    async def test_weak_password(self, auth, fake_db):
        with pytest.raises(ValidationError) as exc_info:
            await auth.register(
                RegistrationData(email="weak@gymbook.io", password="password", full_name="Weak")
            )
        assert exc_info.value.field == "password"
        fake_db.run_transaction.assert_not_awaited()


class TestLogin:
    """Tests for AuthService.login."""

    @pytest.mark.asyncio
    async def test_success_resets_attempts_and_stores_refresh(self, auth, users, make_user):
        user = make_user(password=PASSWORD_HASH, login_attempts=2)
        users.get_by_email.return_value = user

        result = await auth.login("Member@GymBook.io", PASSWORD)

        users.get_by_email.assert_awaited_once_with("member@gymbook.io")
        users.record_successful_login.assert_awaited_once_with(user.id)
        users.set_refresh_token.assert_awaited_once_with(user.id, result.tokens.refresh_token)

    @pytest.mark.asyncio
    async def test_unknown_email(self, auth, users):
        with pytest.raises(InvalidCredentialsError) as exc_info:
            await auth.login("ghost@gymbook.io", PASSWORD)
        assert exc_info.value.message == "Invalid email or password"

    @pytest.mark.asyncio
    async def test_wrong_password_counts_attempts(self, auth, users, make_user):
        user = make_user(password=PASSWORD_HASH, login_attempts=1)
        users.get_by_email.return_value = user

        with pytest.raises(InvalidCredentialsError) as exc_info:
            await auth.login(user.email, "Wrong#Pass9")

        assert exc_info.value.attempts_remaining == 3
        assert "3 attempts remaining" in exc_info.value.message
        users.update_login_attempts.assert_awaited_once_with(user.id, 2)

    @pytest.mark.asyncio
    async def test_fifth_failure_locks_account(self, auth, users, make_user):
        user = make_user(password=PASSWORD_HASH, login_attempts=4)
        users.get_by_email.return_value = user

        with pytest.raises(AccountLockedError) as exc_info:
            await auth.login(user.email, "Wrong#Pass9")

        assert exc_info.value.status_code == 429
        assert exc_info.value.message == "Too many failed attempts. Account locked for 30 minutes"
        user_id, attempts, locked_until = users.update_login_attempts.call_args.args
        assert attempts == 5
        assert locked_until - datetime.now(timezone.utc) > timedelta(minutes=29)

    @pytest.mark.asyncio
    async def test_locked_account(self, auth, users, make_user):
        users.get_by_email.return_value = make_user(
            password=PASSWORD_HASH,
            locked_until=datetime.now(timezone.utc) + timedelta(minutes=10),
        )
        with pytest.raises(AccountLockedError, match="Try again in 10 minutes"):
            await auth.login("member@gymbook.io", PASSWORD)

    @pytest.mark.asyncio
    async def test_deactivated_account(self, auth, users, make_user):
        users.get_by_email.return_value = make_user(password=PASSWORD_HASH, is_active=False)
        with pytest.raises(AuthenticationError, match="deactivated"):
            await auth.login("member@gymbook.io", PASSWORD)


class TestRefresh:
    """Tests for AuthService.refresh."""

    @pytest.mark.asyncio
    async def test_rotation(self, auth, users, revocations, settings, make_user):
        user = make_user()
        old = generate_token_pair(user, settings.jwt).refresh_token
        users.get_by_id.return_value = make_user(refresh_token=old)

        pair = await auth.refresh(old)

        assert verify_refresh_token(pair.refresh_token, settings.jwt)["sub"] == str(user.id)
        assert revocations.blacklist_token.call_args.args[0] == old
        assert revocations.blacklist_token.call_args.args[3] == "refresh"
        users.set_refresh_token.assert_awaited_once_with(user.id, pair.refresh_token)

    @pytest.mark.asyncio
    async def test_revoked_token(self, auth, revocations):
        revocations.is_blacklisted.return_value = True
        with pytest.raises(AuthenticationError, match="Token has been revoked"):
            await auth.refresh("revoked-token")

    @pytest.mark.asyncio
    async def test_reuse_revokes_everything(self, auth, users, revocations, settings, make_user):
        """Test presenting a superseded refresh token revokes the stored one."""
        user = make_user(refresh_token="newer-token")
        users.get_by_id.return_value = user
        stale = generate_token_pair(user, settings.jwt).refresh_token

        with pytest.raises(AuthenticationError, match="Invalid refresh token"):
            await auth.refresh(stale)
        revocations.blacklist_all_user_tokens.assert_awaited_once_with(user.id, "security")

    @pytest.mark.asyncio
    async def test_access_token_rejected(self, auth, settings, make_user):
        access = generate_token_pair(make_user(), settings.jwt).access_token
        with pytest.raises(TokenInvalidError):
            await auth.refresh(access)

    @pytest.mark.asyncio
    async def test_missing_user(self, auth, settings, make_user):
        token = generate_token_pair(make_user(), settings.jwt).refresh_token
        with pytest.raises(AuthenticationError, match="User not found"):
            await auth.refresh(token)


class TestLogout:
    @pytest.mark.asyncio
    async def test_logout_revokes_stored_token(self, auth, users, revocations, settings, make_user):
        stored = generate_token_pair(make_user(), settings.jwt).refresh_token
        users.get_refresh_token.return_value = stored

        await auth.logout("user-1")

        args = revocations.blacklist_token.call_args.args
        assert args[0] == stored
        assert args[3] == "logout"
        users.set_refresh_token.assert_awaited_once_with("user-1", None)


class TestPasswordRecovery:
    """Tests for forgot/reset/change password."""

    @pytest.mark.asyncio
    async def test_forgot_password_unknown_email(self, auth, users, email_service):
        assert await auth.forgot_password("ghost@gymbook.io") == FORGOT_PASSWORD_MESSAGE
        users.set_password_reset_token.assert_not_awaited()
        email_service.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_forgot_password_known_email(self, auth, users, email_service, make_user):
        user = make_user()
        users.get_by_email.return_value = user

        assert await auth.forgot_password(user.email) == FORGOT_PASSWORD_MESSAGE
        user_id, token, expires = users.set_password_reset_token.call_args.args
        assert user_id == user.id
        assert timedelta(minutes=59) < expires - datetime.now(timezone.utc) <= timedelta(minutes=60)
        email_service.send.assert_awaited_once_with("reset-message")

    @pytest.mark.asyncio
    async def test_reset_password(self, auth, users, revocations, make_user):
        user = make_user(password_reset_expires=datetime.now(timezone.utc) + timedelta(minutes=5))
        users.get_by_reset_token.return_value = user

        await auth.reset_password("reset-token", "N3w$ecureP4ss!")

        revocations.blacklist_all_user_tokens.assert_awaited_once_with(user.id, "password_reset")
        user_id, new_hash = users.reset_password.call_args.args
        assert HASHER.verify_sync("N3w$ecureP4ss!", new_hash)

    @pytest.mark.asyncio
    async def test_reset_password_unknown_token(self, auth):
        with pytest.raises(ValidationError, match="Invalid or expired reset token"):
            await auth.reset_password("nope", "N3w$ecureP4ss!")

    @pytest.mark.asyncio
    async def test_reset_password_expired_token(self, auth, users, make_user):
        users.get_by_reset_token.return_value = make_user(
            password_reset_expires=datetime.now(timezone.utc) - timedelta(minutes=1)
        )
        with pytest.raises(ValidationError, match="Reset token has expired"):
            await auth.reset_password("old-token", "N3w$ecureP4ss!")

    @pytest.mark.asyncio
    async def test_change_password(self, auth, users, revocations, make_user):
        user = make_user(password=PASSWORD_HASH)
        users.get_by_id.return_value = user

        await auth.change_password(user.id, PASSWORD, "N3w$ecureP4ss!")

        revocations.blacklist_all_user_tokens.assert_awaited_once_with(user.id, "password_change")
        users.update_password.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_change_password_wrong_current(self, auth, users, make_user):
        users.get_by_id.return_value = make_user(password=PASSWORD_HASH)
        with pytest.raises(AuthenticationError, match="Current password is incorrect"):
            await auth.change_password("user-1", "Wrong#Pass9", "N3w$ecureP4ss!")

    @pytest.mark.asyncio
    async def test_change_password_must_differ(self, auth, users, make_user):
        users.get_by_id.return_value = make_user(password=PASSWORD_HASH)
        with pytest.raises(ValidationError, match="must be different"):
            await auth.change_password("user-1", PASSWORD, PASSWORD)


class TestEmailVerification:
    @pytest.mark.asyncio
    async def test_verify_email(self, auth, users, make_user):
        user = make_user(
            email_verified=False,
            email_verification_expires=datetime.now(timezone.utc) + timedelta(hours=1),
        )
        users.get_by_verification_token.return_value = user

        await auth.verify_email("token")
        users.mark_email_verified.assert_awaited_once_with(user.id)

    @pytest.mark.asyncio
    async def test_already_verified(self, auth, users, make_user):
        users.get_by_verification_token.return_value = make_user(email_verified=True)
        with pytest.raises(ValidationError, match="already verified"):
            await auth.verify_email("token")

    @pytest.mark.asyncio
    async def test_expired_verification(self, auth, users, make_user):
        users.get_by_verification_token.return_value = make_user(
            email_verified=False,
            email_verification_expires=datetime.now(timezone.utc) - timedelta(hours=1),
        )
        with pytest.raises(ValidationError, match="Verification token has expired"):
            await auth.verify_email("token")

    @pytest.mark.asyncio
    async def test_resend_for_verified_user_sends_nothing(
        self, auth, users, email_service, make_user
    ):
        users.get_by_email.return_value = make_user(email_verified=True)
        assert await auth.resend_verification("member@gymbook.io") == RESEND_VERIFICATION_MESSAGE
        email_service.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_resend_rotates_token(self, auth, users, email_service, make_user):
        user = make_user(email_verified=False)
        users.get_by_email.return_value = user

        await auth.resend_verification(user.email)
        users.set_verification_token.assert_awaited_once()
        email_service.send.assert_awaited_once_with("verification-message")


class TestProfileAndAuthenticate:
    @pytest.mark.asyncio
    async def test_get_profile_missing_user(self, auth):
        with pytest.raises(ApiError) as exc_info:
            await auth.get_profile("user-1")
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_update_profile_strips_fields(self, auth, users, make_user):
        users.update_profile.return_value = make_user(full_name="Jane Doe")
        await auth.update_profile("user-1", full_name="  Jane Doe ")
        users.update_profile.assert_awaited_once_with("user-1", {"full_name": "Jane Doe"})

    @pytest.mark.asyncio
    async def test_authenticate(self, auth, users, settings, make_user):
        user = make_user()
        users.get_by_id.return_value = user
        token = generate_token_pair(user, settings.jwt).access_token

        assert await auth.authenticate(token) is user
        users.get_by_id.assert_awaited_once_with(str(user.id))

    @pytest.mark.asyncio
    async def test_authenticate_deleted_user(self, auth, settings, make_user):
        token = generate_token_pair(make_user(), settings.jwt).access_token
        with pytest.raises(AuthenticationError, match="User no longer exists"):
            await auth.authenticate(token)

    @pytest.mark.asyncio
    async def test_authenticate_deactivated_user(self, auth, users, settings, make_user):
        users.get_by_id.return_value = make_user(is_active=False)
        token = generate_token_pair(make_user(), settings.jwt).access_token
        with pytest.raises(AuthenticationError, match="contact support"):
            await auth.authenticate(token)
