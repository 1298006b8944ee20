"""Refresh-token revocation backed by the ``token_blacklist`` table."""

import hashlib
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from loguru import logger

from gymbook.repositories import TokenBlacklistEntry, TokenBlacklistRepository, UserRepository

# Lifetime assumed for a stored refresh token whose expiry is unknown
DEFAULT_REVOCATION_TTL = timedelta(days=7)


def hash_token(token: str) -> str:
    """SHA-256 hex digest; raw tokens are never stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class TokenBlacklistService:
    """Revokes refresh tokens and answers whether a token was revoked."""

    def __init__(self, blacklist: TokenBlacklistRepository, users: UserRepository):
        self.blacklist = blacklist
        self.users = users

    async def blacklist_token(
        self, token: str, user_id: Any, expires_at: datetime, reason: str = "logout"
    ) -> None:
        """
        Add a token to the revocation list.

        Args:
            token: Raw token
            user_id: Owner of the token
            expires_at: When the entry can be forgotten
            reason: logout, refresh, security, password_change or password_reset
        """
        added = await self.blacklist.create(
            TokenBlacklistEntry(
                token_hash=hash_token(token),
                user_id=user_id,
                expires_at=expires_at,
                reason=reason,
            )
        )
        if added:
            logger.debug(f"Token revoked for user {user_id} (reason: {reason})")

    async def is_blacklisted(self, token: str) -> bool:
        return await self.blacklist.is_blacklisted(hash_token(token))

    async def blacklist_all_user_tokens(self, user_id: Any, reason: str = "security") -> None:
        """Revoke the user's stored refresh token and clear it from the account."""
        stored = await self.users.get_refresh_token(user_id)
        if stored:
            await self.blacklist_token(
                stored,
                user_id,
                datetime.now(timezone.utc) + DEFAULT_REVOCATION_TTL,
                reason,
            )
        await self.users.set_refresh_token(user_id, None)
        logger.info(f"All tokens revoked for user {user_id} (reason: {reason})")

    async def cleanup_expired(self) -> int:
        return await self.blacklist.cleanup_expired()

    async def get_stats(self) -> Dict[str, int]:
        return await self.blacklist.get_stats()

    @staticmethod
    def expiry_or_default(expires_at: Optional[datetime]) -> datetime:
        return expires_at or datetime.now(timezone.utc) + DEFAULT_REVOCATION_TTL
