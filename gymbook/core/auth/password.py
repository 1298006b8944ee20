"""Password hashing."""

import asyncio

from loguru import logger

# Bcrypt has a maximum password length of 72 bytes
MAX_PASSWORD_BYTES = 72

# passlib 1.7.4's detect_wrap_bug hashes a 200-char test password, which
# bcrypt >= 4.1 rejects. Truncate what reaches the backend.
import passlib.handlers.bcrypt as _pbcrypt  # noqa: E402

_original_calc_checksum = _pbcrypt._BcryptBackend._calc_checksum


def _patched_calc_checksum(self, secret):
    """Truncate to 72 bytes on a UTF-8 boundary before hashing."""
    if isinstance(secret, bytes) and len(secret) > MAX_PASSWORD_BYTES:
        truncated = secret[:MAX_PASSWORD_BYTES]
        for i in range(len(truncated), 0, -1):
            try:
                truncated[:i].decode("utf-8")
                secret = truncated[:i]
                break
            except UnicodeDecodeError:
                continue
    return _original_calc_checksum(self, secret)


_pbcrypt._BcryptBackend._calc_checksum = _patched_calc_checksum

from passlib.context import CryptContext  # noqa: E402


def _truncate_password(password: str) -> str:
    """
    Truncate password to 72 bytes for bcrypt, handling UTF-8 safely.

    Args:
        password: Plain text password

    Returns:
        Truncated password (max 72 bytes when encoded as UTF-8)

    Raises:
        ValueError: If unable to truncate to valid UTF-8 boundary
    """
    password_bytes = password.encode("utf-8")
    if len(password_bytes) > MAX_PASSWORD_BYTES:
        truncated_bytes = password_bytes[:MAX_PASSWORD_BYTES]
        for i in range(len(truncated_bytes), 0, -1):
            try:
                return truncated_bytes[:i].decode("utf-8")
            except UnicodeDecodeError:
                continue
        raise ValueError("Failed to truncate password to valid UTF-8 boundary")
    return password


class PasswordHasher:
    """bcrypt hashing with a fixed cost factor, run off the event loop."""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds
        self._context = CryptContext(
            schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds
        )

    def hash_sync(self, password: str) -> str:
        return self._context.hash(_truncate_password(password))

    def verify_sync(self, password: str, hashed: str) -> bool:
        try:
            return self._context.verify(_truncate_password(password), hashed)
        except (ValueError, TypeError) as e:
            logger.warning(f"Stored password hash could not be checked: {e}")
            return False

    async def hash(self, password: str) -> str:
        """
        Hash a password using bcrypt in a worker thread.

        Args:
            password: Plain text password

        Returns:
            bcrypt hash string
        """
        return await asyncio.to_thread(self.hash_sync, password)

    async def verify(self, password: str, hashed: str) -> bool:
        """
        Verify a password against its hash in a worker thread.

        Returns:
            True if the password matches; False for a mismatch or a malformed hash
        """
        return await asyncio.to_thread(self.verify_sync, password, hashed)
