"""Authentication request models for the GymBook API."""

import re
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

_PHONE = re.compile(r"^[\d\s+()-]{7,20}$")


def _validate_full_name(value: str) -> str:
    value = value.strip()
    if not 2 <= len(value) <= 100:
        raise ValueError("Full name must be between 2 and 100 characters")
    if not all(ch.isalpha() or ch in " '-" for ch in value):
        raise ValueError("Full name can only contain letters, spaces, hyphens, and apostrophes")
    return value


def _validate_phone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not _PHONE.match(value):
        raise ValueError("Please provide a valid phone number (7-20 characters)")
    return value


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RegisterRequest(_CamelModel):
    """Registration request model."""

    email: EmailStr = Field(..., max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    full_name: str
    phone: Optional[str] = None
    role: Literal["member", "trainer"] = "member"

    _check_name = field_validator("full_name")(_validate_full_name)
    _check_phone = field_validator("phone")(_validate_phone)


class LoginRequest(_CamelModel):
    """Login request model."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class RefreshTokenRequest(_CamelModel):
    refresh_token: str = Field(..., alias="refreshToken", min_length=10)


class EmailRequest(_CamelModel):
    """Body of forgot-password and resend-verification."""

    email: EmailStr


class ResetPasswordRequest(_CamelModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., alias="newPassword", min_length=8, max_length=128)


class VerifyEmailRequest(_CamelModel):
    token: str = Field(..., min_length=1)


class ChangePasswordRequest(_CamelModel):
    """Change-password request model."""

    current_password: str = Field(..., alias="currentPassword", min_length=1)
    new_password: str = Field(..., alias="newPassword", min_length=8, max_length=128)
    confirm_password: str = Field(..., alias="confirmPassword", min_length=1)

    @model_validator(mode="after")
    def passwords_match(self) -> "ChangePasswordRequest":
        """Confirmation must equal the new password."""
        if self.confirm_password != self.new_password:
            raise ValueError("Password confirmation does not match")
        return self


class UpdateProfileRequest(_CamelModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None

    _check_name = field_validator("full_name")(
        lambda v: _validate_full_name(v) if v is not None else None
    )
    _check_phone = field_validator("phone")(_validate_phone)
