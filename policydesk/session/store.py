"""
Encrypted client-side key/value storage for session data.

All keys live in one Fernet-encrypted JSON document on disk. Reads never raise:
a missing, unreadable or undecryptable file behaves like an empty store.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Protocol

import structlog
from cryptography.fernet import Fernet, InvalidToken

logger = structlog.get_logger(__name__)


class SessionStoreError(Exception):
    """Raised when session data cannot be written."""


class SessionStore(Protocol):
    def get(self, key: str) -> Any | None:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def clear(self) -> None:
        ...


class EncryptedSessionStore:
    """Fernet-encrypted JSON file (AES-128-CBC + HMAC)."""

    def __init__(self, path: str | Path, key: str) -> None:
        """
        Args:
            path: File holding the encrypted document.
            key: Fernet key (base64, 32 bytes). Generate with Fernet.generate_key().

        Raises:
            ValueError: If the key is empty or invalid.
        """
        if not key or not key.strip():
            raise ValueError(
                "SESSION_ENCRYPTION_KEY is required for the session store. "
                'Generate one with: python -c "from cryptography.fernet import Fernet; '
                'print(Fernet.generate_key().decode())"'
            )
        try:
            self._fernet = Fernet(key.strip().encode())
        except ValueError as exc:
            raise ValueError(
                f"SESSION_ENCRYPTION_KEY is invalid (not a valid Fernet key): {exc}"
            ) from exc
        self.path = Path(path)

    def get(self, key: str) -> Any | None:
        return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            raise SessionStoreError(f"Failed to clear session store: {exc}") from exc

    def _read(self) -> dict[str, Any]:
        try:
            token = self.path.read_bytes()
        except FileNotFoundError:
            return {}
        except OSError as exc:
            logger.warning("session_store_unreadable", path=str(self.path), error=str(exc))
            return {}

        try:
            data = json.loads(self._fernet.decrypt(token))
        except InvalidToken:
            logger.warning("session_store_corrupt", path=str(self.path))
            return {}
        except ValueError:
            logger.warning("session_store_not_json", path=str(self.path))
            return {}

        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        payload = self._fernet.encrypt(json.dumps(data).encode())
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp_path.write_bytes(payload)
            tmp_path.replace(self.path)
        except OSError as exc:
            raise SessionStoreError(f"Failed to write session store: {exc}") from exc


class MemorySessionStore:
    """Unencrypted in-process store for tests and ephemeral sessions."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def get(self, key: str) -> Any | None:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def clear(self) -> None:
        self._data.clear()
