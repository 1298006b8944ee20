"""Authentication routes: registration, login, token rotation, recovery and profile."""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from gymbook.core.auth import get_requirements_text
from gymbook.repositories import User
from gymbook.services.auth_service import AuthService, RegistrationData
from web.dependencies import get_auth_service, get_current_user
from web.models.auth import (
    ChangePasswordRequest,
    EmailRequest,
    LoginRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UpdateProfileRequest,
    VerifyEmailRequest,
)
from web.rate_limit import (
    ACCOUNT_MESSAGE,
    EMAIL_VERIFICATION_LIMIT,
    EMAIL_VERIFICATION_MESSAGE,
    LOGIN_LIMIT,
    LOGIN_MESSAGE,
    PASSWORD_CHANGE_LIMIT,
    PASSWORD_CHANGE_MESSAGE,
    PASSWORD_RESET_LIMIT,
    PASSWORD_RESET_MESSAGE,
    PROFILE_UPDATE_LIMIT,
    REFRESH_LIMIT,
    REFRESH_MESSAGE,
    REGISTER_LIMIT,
    REGISTER_MESSAGE,
    limiter,
)
from web.responses import created, success

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", status_code=201)
@limiter.limit(REGISTER_LIMIT, error_message=REGISTER_MESSAGE)
async def register(
    request: Request,
    body: RegisterRequest,
    auth: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    """
    Create an account and return the first token pair.

    Args:
        request: FastAPI request object (required for rate limiter)
        body: Registration payload
        auth: Auth service

    Returns:
        Created user plus accessToken, refreshToken and expiresIn
    """
    result = await auth.register(
        RegistrationData(
            email=body.email,
            password=body.password,
            full_name=body.full_name,
            phone=body.phone,
            role=body.role,
        )
    )
    data = result.to_dict()
    data["message"] = "Please check your email to verify your account"
    return created(data, "User registered successfully. Verification email sent.")


@router.post("/login")
@limiter.limit(LOGIN_LIMIT, error_message=LOGIN_MESSAGE)
async def login(
    request: Request,
    body: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    """Check credentials and return the user with a fresh token pair."""
    result = await auth.login(body.email, body.password)
    return success(result.to_dict(), "Login successful")


@router.post("/refresh")
@limiter.limit(REFRESH_LIMIT, error_message=REFRESH_MESSAGE)
async def refresh(
    request: Request,
    body: RefreshTokenRequest,
    auth: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    tokens = await auth.refresh(body.refresh_token)
    return success(tokens.to_dict(), "Token refreshed successfully")


@router.post("/forgot-password")
@limiter.limit(PASSWORD_RESET_LIMIT, error_message=PASSWORD_RESET_MESSAGE)
async def forgot_password(
    request: Request,
    body: EmailRequest,
    auth: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    message = await auth.forgot_password(body.email)
    return success(message=message)


@router.post("/reset-password")
@limiter.limit(PASSWORD_RESET_LIMIT, error_message=PASSWORD_RESET_MESSAGE)
async def reset_password(
    request: Request,
    body: ResetPasswordRequest,
    auth: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    await auth.reset_password(body.token, body.new_password)
    return success(message="Password reset successfully. Please log in with your new password")


@router.post("/verify-email")
@limiter.limit(EMAIL_VERIFICATION_LIMIT, error_message=EMAIL_VERIFICATION_MESSAGE)
async def verify_email(
    request: Request,
    body: VerifyEmailRequest,
    auth: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    await auth.verify_email(body.token)
    return success(message="Email verified successfully")


@router.post("/resend-verification")
@limiter.limit(EMAIL_VERIFICATION_LIMIT, error_message=EMAIL_VERIFICATION_MESSAGE)
async def resend_verification(
    request: Request,
    body: EmailRequest,
    auth: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    message = await auth.resend_verification(body.email)
    return success(message=message)


@router.get("/password-requirements")
async def password_requirements() -> Dict[str, Any]:
    """Human-readable password rules for registration forms."""
    return success({"requirements": get_requirements_text()})


@router.post("/logout")
async def logout(
    user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    await auth.logout(user.id)
    return success(message="Logged out successfully")


@router.get("/me")
@router.get("/profile")
async def get_profile(
    user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    """Current user, including the trainer block for trainers."""
    profile = await auth.get_profile(user.id)
    return success(profile.to_dict())


@router.put("/profile")
@limiter.limit(PROFILE_UPDATE_LIMIT, error_message=ACCOUNT_MESSAGE)
async def update_profile(
    request: Request,
    body: UpdateProfileRequest,
    user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    updated = await auth.update_profile(user.id, full_name=body.full_name, phone=body.phone)
    return success(updated.to_dict(), "Profile updated successfully")


@router.put("/change-password")
@limiter.limit(PASSWORD_CHANGE_LIMIT, error_message=PASSWORD_CHANGE_MESSAGE)
async def change_password(
    request: Request,
    body: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    """
    Change the password of the signed-in user.

    The stored refresh token is revoked, so the client must log in again.
    """
    await auth.change_password(user.id, body.current_password, body.new_password)
    return success(
        message="Password changed successfully. Please log in again with your new password."
    )
