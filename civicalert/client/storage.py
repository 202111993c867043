"""Small key-value stores for tracker state"""

from typing import Any, Dict, Optional, Protocol
from pathlib import Path
import json
import logging
import os

logger = logging.getLogger(__name__)

class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

class InMemoryKeyValueStore:
    """Process-local store; state is lost on exit"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

class JsonFileKeyValueStore:
    """
    Store backed by a single JSON document on disk

    Values must be JSON serializable. Writes replace the file atomically, so
    a crash mid-write leaves the previous state intact.
    """

    def __init__(self, path):
        self.path = Path(path)
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable state file {self.path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Ignoring state file {self.path}: expected a JSON object")
            return {}
        return data

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)

        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._data), encoding="utf-8")
        os.replace(tmp_path, self.path)
