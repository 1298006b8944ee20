"""Token blacklist repository implementation."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from loguru import logger

from gymbook.repositories.base import BaseRepository, QueryExecutor


@dataclass
class TokenBlacklistEntry:
    """Revoked token, stored by SHA-256 hash only."""

    token_hash: str
    user_id: Any
    expires_at: datetime
    reason: str = "logout"
    blacklisted_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert token blacklist entry to dictionary."""
        return {
            "token_hash": self.token_hash,
            "user_id": str(self.user_id),
            "expires_at": self.expires_at.isoformat(),
            "reason": self.reason,
            "blacklisted_at": self.blacklisted_at.isoformat() if self.blacklisted_at else None,
        }


class TokenBlacklistRepository(BaseRepository[TokenBlacklistEntry]):
    """Repository for token blacklist operations."""

    async def get_by_id(
        self, id: Any, client: Optional[QueryExecutor] = None
    ) -> Optional[TokenBlacklistEntry]:
        """
        Get an entry by token hash.

        Args:
            id: SHA-256 hex digest of the token
            client: Optional transactional client

        Returns:
            Entry or None if the hash was never blacklisted
        """
        result = await self._executor(client).query(
            """
            SELECT token_hash, user_id, expires_at, reason, blacklisted_at
            FROM token_blacklist WHERE token_hash = $1
            """,
            id,
        )
        row = result.first()
        return TokenBlacklistEntry(**dict(row)) if row else None

    async def create(
        self, data: TokenBlacklistEntry, client: Optional[QueryExecutor] = None
    ) -> bool:
        """
        Add a token hash to the blacklist.

        Returns:
            True if a new row was written, False if the hash was already present
        """
        result = await self._executor(client).query(
            """
            INSERT INTO token_blacklist (token_hash, user_id, expires_at, reason)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (token_hash) DO NOTHING
            """,
            data.token_hash,
            data.user_id,
            data.expires_at,
            data.reason,
        )
        return result.row_count > 0

    async def is_blacklisted(self, token_hash: str) -> bool:
        """
        Check if a token hash is blacklisted.

        Returns:
            True if blacklisted and not yet expired
        """
        result = await self.db.query(
            "SELECT id FROM token_blacklist WHERE token_hash = $1 AND expires_at > NOW()",
            token_hash,
        )
        return result.row_count > 0

    async def cleanup_expired(self) -> int:
        """
        Remove expired entries.

        Returns:
            Number of entries removed
        """
        result = await self.db.query("DELETE FROM token_blacklist WHERE expires_at < NOW()")
        if result.row_count > 0:
            logger.info(f"Cleaned up {result.row_count} expired tokens from blacklist")
        return result.row_count

    async def get_stats(self) -> Dict[str, int]:
        result = await self.db.query(
            """
            SELECT
                COUNT(*) AS total,
                COUNT(*) FILTER (WHERE expires_at > NOW()) AS active,
                COUNT(*) FILTER (WHERE expires_at <= NOW()) AS expired,
                COUNT(DISTINCT user_id) AS unique_users
            FROM token_blacklist
            """
        )
        row = result.first()
        keys = ("total", "active", "expired", "unique_users")
        return {key: int(row[key]) if row else 0 for key in keys}
