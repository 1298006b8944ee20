"""Centralized environment detection.

Single source of truth for environment-name logic used before settings are loaded
(logging setup, process shell bootstrap).
"""

import os
from typing import FrozenSet


class Environment:
    """Environment name helpers backed by the ``NODE_ENV`` variable."""

    PRODUCTION = "production"
    STAGING = "staging"
    DEVELOPMENT = "development"
    TEST = "test"

    VARIABLE = "NODE_ENV"

    # All valid environment names (whitelist)
    VALID: FrozenSet[str] = frozenset({"production", "staging", "development", "test"})

    _ALIASES = {"dev": "development", "local": "development", "testing": "test"}

    @classmethod
    def normalize(cls, value: str) -> str:
        """Map aliases (dev, local, testing) onto canonical names; unknown names pass through."""
        value = value.strip().lower()
        return cls._ALIASES.get(value, value)

    @classmethod
    def current(cls) -> str:
        """Get the current environment name, lowercased. Defaults to development."""
        return cls.normalize(os.getenv(cls.VARIABLE, cls.DEVELOPMENT) or cls.DEVELOPMENT)

    @classmethod
    def is_production(cls) -> bool:
        """Check if the current environment is production."""
        return cls.current() == cls.PRODUCTION

    @classmethod
    def is_development(cls) -> bool:
        """Check if the current environment is development or test."""
        return cls.current() in (cls.DEVELOPMENT, cls.TEST)
