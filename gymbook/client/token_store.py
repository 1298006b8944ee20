"""Token persistence for API clients."""

import json
from pathlib import Path
from typing import Dict, Optional, Protocol, Union

from loguru import logger

ACCESS_TOKEN_KEY = "gym_access_token"
REFRESH_TOKEN_KEY = "gym_refresh_token"


class TokenStore(Protocol):
    """Where a client keeps its access and refresh tokens."""

    def get_access_token(self) -> Optional[str]:
        ...

    def get_refresh_token(self) -> Optional[str]:
        ...

    def set_tokens(self, access_token: str, refresh_token: str) -> None:
        ...

    def clear_tokens(self) -> None:
        ...


class InMemoryTokenStore:
    """Tokens held for the lifetime of the process."""

    def __init__(self) -> None:
        self._values: Dict[str, str] = {}

    def get_access_token(self) -> Optional[str]:
        return self._values.get(ACCESS_TOKEN_KEY)

    def get_refresh_token(self) -> Optional[str]:
        return self._values.get(REFRESH_TOKEN_KEY)

    def set_tokens(self, access_token: str, refresh_token: str) -> None:
        self._values[ACCESS_TOKEN_KEY] = access_token
        self._values[REFRESH_TOKEN_KEY] = refresh_token

    def clear_tokens(self) -> None:
        self._values.pop(ACCESS_TOKEN_KEY, None)
        self._values.pop(REFRESH_TOKEN_KEY, None)


class FileTokenStore:
    """
    Tokens persisted as a JSON object in a file.

    Other keys already in the file are preserved. An unreadable or corrupt
    file reads as empty.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable token file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding="utf-8")
        self.path.chmod(0o600)

    def get_access_token(self) -> Optional[str]:
        return self._load().get(ACCESS_TOKEN_KEY)

    def get_refresh_token(self) -> Optional[str]:
        return self._load().get(REFRESH_TOKEN_KEY)

    def set_tokens(self, access_token: str, refresh_token: str) -> None:
        data = self._load()
        data[ACCESS_TOKEN_KEY] = access_token
        data[REFRESH_TOKEN_KEY] = refresh_token
        self._save(data)

    def clear_tokens(self) -> None:
        data = self._load()
        if ACCESS_TOKEN_KEY in data or REFRESH_TOKEN_KEY in data:
            data.pop(ACCESS_TOKEN_KEY, None)
            data.pop(REFRESH_TOKEN_KEY, None)
            self._save(data)
