"""Pydantic models for the GymBook API."""

from .auth import (
    ChangePasswordRequest,
    EmailRequest,
    LoginRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UpdateProfileRequest,
    VerifyEmailRequest,
)

__all__ = [
    "ChangePasswordRequest",
    "EmailRequest",
    "LoginRequest",
    "RefreshTokenRequest",
    "RegisterRequest",
    "ResetPasswordRequest",
    "UpdateProfileRequest",
    "VerifyEmailRequest",
]
