"""Durable key/value storage for client state, kept in one JSON file."""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_PATH = Path.home() / ".flourever" / "storage.json"

class LocalStorage:
    """String values stored under string keys, persisted on every write."""

    def __init__(self, path: Union[str, Path] = DEFAULT_STORAGE_PATH):
        self.path = Path(path)
        self._data = self._load()

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            logger.warning("Unreadable storage file %s, starting empty", self.path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Unexpected storage layout in %s, starting empty", self.path)
            return {}
        return data

    def _flush(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".storage-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f)
            os.replace(tmp, self.path)
        except BaseException:
            os.unlink(tmp)
            raise

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str):
        self._data[key] = value
        self._flush()

    def remove_item(self, key: str):
        if self._data.pop(key, None) is not None:
            self._flush()
