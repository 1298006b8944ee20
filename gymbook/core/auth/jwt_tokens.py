"""JWT token creation and verification."""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from jwt.exceptions import ExpiredSignatureError
from jwt.exceptions import InvalidTokenError as JWTError

from gymbook.core.config.settings import JWTSettings
from gymbook.core.exceptions import TokenExpiredError, TokenInvalidError

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


@dataclass(frozen=True)
class TokenPair:
    """Access and refresh token minted together from one issue time."""

    access_token: str
    refresh_token: str
    expires_in: str
    access_expires_at: datetime
    refresh_expires_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape used in API responses."""
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiresIn": self.expires_in,
        }


def _encode(
    user: Any, token_type: str, issued_at: datetime, lifetime: timedelta, secret: str, algorithm: str
) -> str:
    user_id = str(user.id)
    claims = {
        "sub": user_id,
        "id": user_id,
        "email": user.email,
        "role": user.role,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + lifetime).timestamp()),
        "jti": str(uuid.uuid4()),
        "type": token_type,
    }
    return jwt.encode(claims, secret, algorithm=algorithm)


def generate_token_pair(
    user: Any, settings: JWTSettings, now: Optional[datetime] = None
) -> TokenPair:
    """
    Mint an access/refresh pair for a user.

    Both tokens share one issue time, so the access token always expires before
    the refresh token.

    Args:
        user: Object with ``id``, ``email`` and ``role``
        settings: Token section of the application settings
        now: Issue time (defaults to the current UTC time)

    Returns:
        TokenPair
    """
    issued_at = (now or datetime.now(timezone.utc)).replace(microsecond=0)
    access = _encode(
        user,
        ACCESS_TOKEN_TYPE,
        issued_at,
        settings.expires_in,
        settings.secret.get_secret_value(),
        settings.algorithm,
    )
    refresh = _encode(
        user,
        REFRESH_TOKEN_TYPE,
        issued_at,
        settings.refresh_expires_in,
        settings.refresh_secret.get_secret_value(),
        settings.algorithm,
    )
    return TokenPair(
        access_token=access,
        refresh_token=refresh,
        expires_in=settings.expires_in_label,
        access_expires_at=issued_at + settings.expires_in,
        refresh_expires_at=issued_at + settings.refresh_expires_in,
    )


def _verify(token: str, secret: str, algorithm: str, expected_type: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"require": ["exp", "iat", "sub"]},
        )
    except ExpiredSignatureError:
        raise TokenExpiredError()
    except JWTError:
        raise TokenInvalidError()

    if payload.get("type") != expected_type:
        raise TokenInvalidError()
    return payload


def verify_access_token(token: str, settings: JWTSettings) -> Dict[str, Any]:
    """
    Verify signature, expiry and type of an access token.

    Returns:
        Decoded claims

    Raises:
        TokenExpiredError: If the token has expired
        TokenInvalidError: If the token is malformed, tampered with or not an access token
    """
    return _verify(
        token, settings.secret.get_secret_value(), settings.algorithm, ACCESS_TOKEN_TYPE
    )


def verify_refresh_token(token: str, settings: JWTSettings) -> Dict[str, Any]:
    """Verify a refresh token against the refresh secret. Raises like :func:`verify_access_token`."""
    return _verify(
        token, settings.refresh_secret.get_secret_value(), settings.algorithm, REFRESH_TOKEN_TYPE
    )


def decode_token_unverified(token: str) -> Optional[Dict[str, Any]]:
    """Read claims without checking the signature or expiry; None when undecodable."""
    try:
        return jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
    except JWTError:
        return None


def token_expiry(payload: Optional[Dict[str, Any]]) -> Optional[datetime]:
    """The ``exp`` claim as an aware datetime."""
    if not payload or not isinstance(payload.get("exp"), (int, float)):
        return None
    return datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
