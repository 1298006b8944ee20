"""User repository implementation."""

from datetime import datetime
from typing import Any, Dict, Optional

from loguru import logger

from gymbook.core.exceptions import ValidationError
from gymbook.repositories.base import BaseRepository, QueryExecutor
from gymbook.repositories.user_entity import User

ALLOWED_PROFILE_FIELDS = frozenset({"full_name", "phone"})

_PROFILE_QUERY = """
    SELECT u.*, t.id AS trainer_id, t.specialization, t.bio, t.years_experience, t.rating
    FROM users u
    LEFT JOIN trainers t ON u.id = t.user_id
    WHERE u.id = $1
"""


class UserRepository(BaseRepository[User]):
    """Repository for user accounts and their auth bookkeeping columns."""

    async def get_by_id(self, id: Any, client: Optional[QueryExecutor] = None) -> Optional[User]:
        """
        Get user by ID.

        Args:
            id: User UUID
            client: Optional transactional client

        Returns:
            User entity or None if not found
        """
        result = await self._executor(client).query("SELECT * FROM users WHERE id = $1", id)
        row = result.first()
        return User.from_row(row) if row else None

    async def get_profile(self, user_id: Any) -> Optional[User]:
        """Get user with the trainer block attached when one exists."""
        result = await self.db.query(_PROFILE_QUERY, user_id)
        row = result.first()
        return User.from_row(row) if row else None

    async def get_by_email(
        self, email: str, client: Optional[QueryExecutor] = None
    ) -> Optional[User]:
        """
        Get user by email address.

        Args:
            email: Normalized (lowercase) email
            client: Optional transactional client

        Returns:
            User entity or None if not found
        """
        result = await self._executor(client).query("SELECT * FROM users WHERE email = $1", email)
        row = result.first()
        return User.from_row(row) if row else None

    async def email_exists(self, email: str, client: Optional[QueryExecutor] = None) -> bool:
        result = await self._executor(client).query("SELECT id FROM users WHERE email = $1", email)
        return result.row_count > 0

    async def create(self, data: Dict[str, Any], client: Optional[QueryExecutor] = None) -> User:
        """
        Insert a new user.

        Args:
            data: email, password (hash), full_name, phone, role,
                email_verification_token, email_verification_expires
            client: Optional transactional client

        Returns:
            Created user

        Raises:
            ValidationError: If required fields are missing
        """
        for required in ("email", "password", "full_name"):
            if not data.get(required):
                raise ValidationError(f"{required} is required", field=required)

        result = await self._executor(client).query(
            """
            INSERT INTO users (email, password, full_name, phone, role,
                               email_verification_token, email_verification_expires)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            RETURNING *
            """,
            data["email"],
            data["password"],
            data["full_name"],
            data.get("phone"),
            data.get("role", "member"),
            data.get("email_verification_token"),
            data.get("email_verification_expires"),
        )
        user = User.from_row(result.rows[0])
        logger.info(f"User created: {user.id}")
        return user

    async def update_login_attempts(
        self, user_id: Any, attempts: int, locked_until: Optional[datetime] = None
    ) -> None:
        """Store the failed-attempt counter and, when given, the lock expiry."""
        if locked_until is None:
            await self.db.query(
                "UPDATE users SET login_attempts = $1 WHERE id = $2", attempts, user_id
            )
        else:
            await self.db.query(
                "UPDATE users SET login_attempts = $1, locked_until = $2 WHERE id = $3",
                attempts,
                locked_until,
                user_id,
            )

    async def record_successful_login(self, user_id: Any) -> None:
        await self.db.query(
            """
            UPDATE users SET login_attempts = 0, locked_until = NULL, last_login = NOW()
            WHERE id = $1
            """,
            user_id,
        )

    async def get_refresh_token(
        self, user_id: Any, client: Optional[QueryExecutor] = None
    ) -> Optional[str]:
        result = await self._executor(client).query(
            "SELECT refresh_token FROM users WHERE id = $1", user_id
        )
        row = result.first()
        return row["refresh_token"] if row else None

    async def set_refresh_token(
        self, user_id: Any, token: Optional[str], client: Optional[QueryExecutor] = None
    ) -> None:
        """Store the current refresh token, or clear it with None."""
        await self._executor(client).query(
            "UPDATE users SET refresh_token = $1 WHERE id = $2", token, user_id
        )

    async def get_by_verification_token(self, token: str) -> Optional[User]:
        result = await self.db.query(
            "SELECT * FROM users WHERE email_verification_token = $1", token
        )
        row = result.first()
        return User.from_row(row) if row else None

    async def set_verification_token(self, user_id: Any, token: str, expires: datetime) -> None:
        await self.db.query(
            """
            UPDATE users SET email_verification_token = $1, email_verification_expires = $2
            WHERE id = $3
            """,
            token,
            expires,
            user_id,
        )

    async def mark_email_verified(self, user_id: Any) -> None:
        await self.db.query(
            """
            UPDATE users SET email_verified = true, email_verification_token = NULL,
                             email_verification_expires = NULL
            WHERE id = $1
            """,
            user_id,
        )

    async def get_by_reset_token(self, token: str) -> Optional[User]:
        result = await self.db.query("SELECT * FROM users WHERE password_reset_token = $1", token)
        row = result.first()
        return User.from_row(row) if row else None

    async def set_password_reset_token(self, user_id: Any, token: str, expires: datetime) -> None:
        await self.db.query(
            """
            UPDATE users SET password_reset_token = $1, password_reset_expires = $2
            WHERE id = $3
            """,
            token,
            expires,
            user_id,
        )

    async def reset_password(self, user_id: Any, password_hash: str) -> None:
        """Set a new hash and clear the reset token, stored refresh token and lockout."""
        await self.db.query(
            """
            UPDATE users SET password = $1, password_reset_token = NULL,
                             password_reset_expires = NULL, refresh_token = NULL,
                             login_attempts = 0, locked_until = NULL
            WHERE id = $2
            """,
            password_hash,
            user_id,
        )

    async def update_password(self, user_id: Any, password_hash: str) -> None:
        await self.db.query(
            "UPDATE users SET password = $1, refresh_token = NULL WHERE id = $2",
            password_hash,
            user_id,
        )

    async def update_profile(self, user_id: Any, fields: Dict[str, Any]) -> Optional[User]:
        """
        Update whitelisted profile columns.

        Args:
            user_id: User UUID
            fields: Column values; only full_name and phone are accepted

        Returns:
            Updated user or None if not found

        Raises:
            ValidationError: If no updatable field was supplied
        """
        updates = {k: v for k, v in fields.items() if k in ALLOWED_PROFILE_FIELDS}
        if not updates:
            raise ValidationError("No fields to update")

        columns = sorted(updates)
        assignments = ", ".join(f"{column} = ${i}" for i, column in enumerate(columns, start=1))
        params = [updates[column] for column in columns]
        result = await self.db.query(
            f"UPDATE users SET {assignments} WHERE id = ${len(params) + 1} RETURNING *",
            *params,
            user_id,
        )
        row = result.first()
        return User.from_row(row) if row else None
