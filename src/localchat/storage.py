import copy
import json
import logging
import threading
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from common.jsonio import atomic_write_json, read_json
from localchat.errors import PersistenceError

logger = logging.getLogger(__name__)

CHATS_KEY = "chats"
TITLE_SETTINGS_KEY = "titleSettings"
AUTH_SESSION_KEY = "session"


@runtime_checkable
class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    def __init__(self, data: dict[str, Any] | None = None):
        self._data: dict[str, Any] = copy.deepcopy(data or {})
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            if key not in self._data:
                return default
            return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class JsonFileStore:
    """Key-value store persisted as a single JSON object.

    Every mutation rewrites the whole file through an atomic rename, so a
    reader never observes a half-written document.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict[str, Any]:
        try:
            data = read_json(self.path, default={})
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Store file {self.path} is corrupt: {e}")
        except OSError as e:
            raise PersistenceError(f"Failed to read {self.path}: {e}")
        if not isinstance(data, dict):
            raise PersistenceError(f"Store file {self.path} does not hold a JSON object")
        return data

    def _write(self, data: dict[str, Any]) -> None:
        try:
            atomic_write_json(self.path, data)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to write {self.path}: {e}")

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)
            logger.debug(f"Stored key '{key}' in {self.path}")

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key not in data:
                return
            del data[key]
            self._write(data)
            logger.debug(f"Deleted key '{key}' from {self.path}")
