"""
Credential cache — persisted session fields, saved password and flags.

``CredentialCache`` is the contract the session manager depends on.
Two implementations are provided:
- ``MemoryCredentialCache`` — process-local dict, for tests and ephemeral use
- ``FileCredentialCache`` — orjson document on disk, survives restarts

Security Note:
    Values stored here are tokens and an already-encrypted password.
    Never log stored values, only field names.
"""
import os
import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Optional, Union

import orjson

from ..conf import SESSION_FIELDS, SESSION_RETAINED_FIELDS
from ..exceptions import StorageError
from .data import Session

logger = logging.getLogger("pwvault.session")

_SAVED_PASSWORD = "SavedPassword"


class CredentialCache(ABC):
    """Durable store the session manager mirrors its state into.

    Every method may raise ``StorageError``.
    """

    @abstractmethod
    async def set_session(self, session: Session) -> None:
        """Persist all session fields."""

    @abstractmethod
    async def clear_session(self) -> None:
        """Remove persisted session fields."""

    @abstractmethod
    async def get_field(self, name: str) -> Optional[str]:
        """Return one persisted field, or None."""

    @abstractmethod
    async def set_saved_password(self, ciphertext: str) -> None:
        """Store the device-encrypted login password."""

    @abstractmethod
    async def get_saved_password(self) -> Optional[str]:
        """Return the device-encrypted login password, or None."""

    @abstractmethod
    async def clear_saved_password(self) -> None:
        """Remove the saved password."""

    @abstractmethod
    async def set_flag(self, name: str, value: bool) -> None:
        """Persist a boolean flag."""

    @abstractmethod
    async def get_flag(self, name: str) -> bool:
        """Return a boolean flag, False when unset."""

    async def get_session_fields(self) -> dict[str, Optional[str]]:
        """Read every session field in one mapping."""
        return {name: await self.get_field(name) for name in SESSION_FIELDS}

    async def has_saved_password(self) -> bool:
        return bool(await self.get_saved_password())


class MemoryCredentialCache(CredentialCache):
    """Dict-backed credential cache."""

    def __init__(self, data: Optional[dict[str, Any]] = None):
        self._data: dict[str, Any] = dict(data or {})

    @property
    def data(self) -> dict[str, Any]:
        return self._data

    # synchronous primitives shared with FileCredentialCache

    def _put_session(self, session: Session) -> None:
        self._data.update(session.session_data())

    def _drop_session(self) -> None:
        for name in SESSION_FIELDS:
            if name not in SESSION_RETAINED_FIELDS:
                self._data.pop(name, None)

    def _field(self, name: str) -> Optional[str]:
        return self._data.get(name) or None

    def _put(self, name: str, value: Any) -> None:
        self._data[name] = value

    def _drop(self, name: str) -> None:
        self._data.pop(name, None)

    def _flag(self, name: str) -> bool:
        return self._data.get(name) is True

    # CredentialCache

    async def set_session(self, session: Session) -> None:
        self._put_session(session)

    async def clear_session(self) -> None:
        self._drop_session()

    async def get_field(self, name: str) -> Optional[str]:
        return self._field(name)

    async def set_saved_password(self, ciphertext: str) -> None:
        self._put(_SAVED_PASSWORD, ciphertext)

    async def get_saved_password(self) -> Optional[str]:
        return self._field(_SAVED_PASSWORD)

    async def clear_saved_password(self) -> None:
        self._drop(_SAVED_PASSWORD)

    async def set_flag(self, name: str, value: bool) -> None:
        self._put(name, bool(value))

    async def get_flag(self, name: str) -> bool:
        return self._flag(name)


class FileCredentialCache(MemoryCredentialCache):
    """Credential cache persisted as a single orjson document.

    Each mutation rewrites the file through a temporary file and an atomic
    replace, so a crash leaves either the old or the new document. A
    failed write restores the in-memory copy to its previous state.
    """

    def __init__(self, path: Union[str, Path]):
        super().__init__()
        self._path = Path(path)
        self._lock = asyncio.Lock()
        self._loaded = False

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        if self._loaded:
            return
        try:
            if self._path.exists():
                parsed = orjson.loads(self._path.read_bytes())
                if not isinstance(parsed, dict):
                    raise StorageError(
                        f"Credential cache {self._path} is not a JSON object"
                    )
                self._data = parsed
        except (OSError, orjson.JSONDecodeError) as err:
            raise StorageError(
                f"Cannot read credential cache {self._path}: {err}"
            ) from err
        self._loaded = True

    def _flush(self) -> None:
        tmp = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(orjson.dumps(self._data))
            os.chmod(tmp, 0o600)
            os.replace(tmp, self._path)
        except OSError as err:
            raise StorageError(
                f"Cannot write credential cache {self._path}: {err}"
            ) from err

    async def _mutate(self, operation: str, change: Callable[[], None]) -> None:
        async with self._lock:
            self._load()
            snapshot = dict(self._data)
            change()
            try:
                self._flush()
            except StorageError:
                self._data = snapshot
                raise
        logger.debug("Credential cache %s: %s", operation, self._path)

    async def _read(self, lookup: Callable[[], Any]) -> Any:
        async with self._lock:
            self._load()
            return lookup()

    async def set_session(self, session: Session) -> None:
        await self._mutate("set_session", lambda: self._put_session(session))

    async def clear_session(self) -> None:
        await self._mutate("clear_session", self._drop_session)

    async def get_field(self, name: str) -> Optional[str]:
        return await self._read(lambda: self._field(name))

    async def set_saved_password(self, ciphertext: str) -> None:
        await self._mutate(
            "set_saved_password", lambda: self._put(_SAVED_PASSWORD, ciphertext),
        )

    async def get_saved_password(self) -> Optional[str]:
        return await self._read(lambda: self._field(_SAVED_PASSWORD))

    async def clear_saved_password(self) -> None:
        await self._mutate(
            "clear_saved_password", lambda: self._drop(_SAVED_PASSWORD),
        )

    async def set_flag(self, name: str, value: bool) -> None:
        await self._mutate(f"set_flag {name}", lambda: self._put(name, bool(value)))

    async def get_flag(self, name: str) -> bool:
        return await self._read(lambda: self._flag(name))
