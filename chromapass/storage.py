"""
Key-value stores used by the vault.

Two stores back the vault engine:
- the *durable* store (verification record, credentials, key pair, lock flag)
- the *session* store (serialized keys for the current unlocked session only)

Both expose the same async API: ``get``, ``set``, ``delete``, ``update``
and ``clear``. Values must be JSON-compatible; they are copied through an
orjson round-trip on write, so callers never share mutable state with a store.
"""
import os
import asyncio
import logging
import tempfile
from pathlib import Path
from typing import Any, Optional, Union
from collections.abc import Iterator, Mapping

import orjson

logger = logging.getLogger("chromapass.storage")


def _copy(value: Any) -> Any:
    try:
        return orjson.loads(orjson.dumps(value))
    except TypeError as err:
        raise ValueError(f"Value is not JSON-serializable: {err}") from err


class MemoryStorage:
    """In-process key-value store.

    Used as the session-scoped store: its content lives exactly as long
    as the object, which is shared by every SessionManager of a process.
    """

    def __init__(self, data: Optional[Mapping[str, Any]] = None) -> None:
        self._data: dict[str, Any] = {}
        if data:
            self._data.update({k: _copy(v) for k, v in data.items()})

    def __repr__(self) -> str:
        return f'<{type(self).__name__} keys={list(self._data.keys())}>'

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    async def _persist(self) -> None:
        """Hook for stores that write through to a backend."""

    async def get(self, key: str, default: Any = None) -> Any:
        value = self._data.get(key)
        if value is None:
            return default
        return _copy(value)

    async def set(self, key: str, value: Any) -> None:
        await self.update({key: value})

    async def update(self, values: Mapping[str, Any]) -> None:
        """Write several keys at once; ``None`` values delete the key.

        All keys become visible together.
        """
        staged = dict(self._data)
        for key, value in values.items():
            if value is None:
                staged.pop(key, None)
            else:
                staged[key] = _copy(value)
        previous, self._data = self._data, staged
        try:
            await self._persist()
        except Exception:
            self._data = previous
            raise

    async def delete(self, key: str) -> None:
        if key in self._data:
            await self.update({key: None})

    async def clear(self) -> None:
        previous, self._data = self._data, {}
        try:
            await self._persist()
        except Exception:
            self._data = previous
            raise


class FileStorage(MemoryStorage):
    """Durable store kept as a single JSON document on disk.

    Every mutation rewrites the whole document to a temporary file and
    moves it over the previous one, so readers never observe partial writes.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        super().__init__()
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self.path.exists() and self.path.stat().st_size > 0:
            try:
                data = orjson.loads(self.path.read_bytes())
            except orjson.JSONDecodeError as err:
                raise ValueError(
                    f"Vault storage {self.path} is not valid JSON: {err}"
                ) from err
            if not isinstance(data, dict):
                raise ValueError(
                    f"Vault storage {self.path} must contain a JSON object"
                )
            self._data = data
        logger.debug("File storage %s opened with %d key(s)", self.path, len(self._data))

    def _write(self, payload: bytes) -> None:
        fd, tmp = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as fp:
                fp.write(payload)
                fp.flush()
                os.fsync(fp.fileno())
            os.replace(tmp, self.path)
        except Exception:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    async def _persist(self) -> None:
        payload = orjson.dumps(self._data, option=orjson.OPT_INDENT_2)
        await asyncio.to_thread(self._write, payload)
