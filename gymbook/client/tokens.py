"""Local JWT inspection. Signatures are not verified; the server remains the authority."""

import time
from typing import Any, Dict, Optional

import jwt

REFRESH_WINDOW_SECONDS = 5 * 60


def get_token_payload(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Decode the claims of a JWT, or None when it cannot be decoded."""
    if not token:
        return None
    try:
        payload = jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": False},
            algorithms=["HS256", "HS384", "HS512"],
        )
    except jwt.PyJWTError:
        return None
    return payload if isinstance(payload, dict) else None


def _expiry(token: Optional[str]) -> Optional[float]:
    payload = get_token_payload(token)
    if payload is None:
        return None
    try:
        return float(payload["exp"])
    except (KeyError, TypeError, ValueError):
        return None


def is_token_expired(token: Optional[str], now: Optional[float] = None) -> bool:
    """
    Check whether a token is past its ``exp`` claim.

    Any decode failure, or a missing ``exp``, counts as expired.
    """
    expiry = _expiry(token)
    if expiry is None:
        return True
    return (time.time() if now is None else now) >= expiry


def should_refresh_token(token: Optional[str], now: Optional[float] = None) -> bool:
    """True when the token expires within five minutes or cannot be decoded."""
    expiry = _expiry(token)
    if expiry is None:
        return True
    return (time.time() if now is None else now) >= expiry - REFRESH_WINDOW_SECONDS
