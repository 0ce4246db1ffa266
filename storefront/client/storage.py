"""Durable client storage.

Key-value storage for client state that must survive restarts, the way
a browser's local storage holds the cart between page loads.
"""

import json
import os
from pathlib import Path
from typing import Any, Protocol

import structlog

logger = structlog.get_logger()


class ClientStorage(Protocol):
    """Minimal key-value storage interface."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...


class MemoryStorage:
    """Process-local storage, used by tests and short-lived clients."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = {
            key: json.dumps(value) for key, value in (initial or {}).items()
        }

    def get(self, key: str) -> Any | None:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)


class JsonFileStorage:
    """Storage backed by one JSON file.

    Each write replaces the file atomically. A missing or corrupt file
    reads as empty.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        try:
            with self.path.open(encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Unreadable client storage", path=str(self.path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Any | None:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(data, f)
        os.replace(tmp_path, self.path)
