"""Repository pattern implementation for data access layer."""

from gymbook.repositories.base import BaseRepository, QueryExecutor
from gymbook.repositories.token_blacklist_repository import (
    TokenBlacklistEntry,
    TokenBlacklistRepository,
)
from gymbook.repositories.user_entity import TrainerProfile, User
from gymbook.repositories.user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "QueryExecutor",
    "TokenBlacklistEntry",
    "TokenBlacklistRepository",
    "TrainerProfile",
    "User",
    "UserRepository",
]
