"""Authentication primitives: tokens, password hashing and policy, revocation."""

from .jwt_tokens import (
    TokenPair,
    decode_token_unverified,
    generate_token_pair,
    token_expiry,
    verify_access_token,
    verify_refresh_token,
)
from .password import MAX_PASSWORD_BYTES, PasswordHasher, _truncate_password
from .password_policy import (
    PasswordValidation,
    calculate_strength,
    get_requirements_text,
    validate_password,
)
from .token_blacklist import TokenBlacklistService, hash_token

__all__ = [
    # JWT tokens
    "TokenPair",
    "generate_token_pair",
    "verify_access_token",
    "verify_refresh_token",
    "decode_token_unverified",
    "token_expiry",
    # Password
    "MAX_PASSWORD_BYTES",
    "PasswordHasher",
    "_truncate_password",
    "PasswordValidation",
    "validate_password",
    "calculate_strength",
    "get_requirements_text",
    # Token blacklist
    "TokenBlacklistService",
    "hash_token",
]
